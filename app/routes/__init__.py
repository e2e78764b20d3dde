"""
Routes package for the production scheduler
Centralizes all route blueprints
"""
from .production import production_bp
from .health import health_bp

__all__ = [
    'production_bp',
    'health_bp',
]
