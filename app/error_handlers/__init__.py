"""
Unified Error Handling System

Provides centralized, consistent error handling across the application.

Usage:
    from app.error_handlers import handle_errors
    from app.error_handlers.exceptions import SchedulingRejected

    @production_bp.route('/endpoint')
    @handle_errors
    def my_endpoint():
        if not valid:
            raise SchedulingRejected('Invalid stage transition')
        return jsonify({'success': True})
"""
from .exceptions import (
    AppException,
    ValidationException,
    SchedulingRejected,
    AuthorizationException,
    ResourceNotFoundException,
    JobNotFoundException,
    ConfigurationException,
    DatabaseException,
    PersistenceFailedException,
    ExternalAPIException,
    CollaboratorUnavailableException,
)
from .decorators import handle_errors
from .logging import setup_logging, register_error_handlers


__all__ = [
    # Exceptions
    'AppException',
    'ValidationException',
    'SchedulingRejected',
    'AuthorizationException',
    'ResourceNotFoundException',
    'JobNotFoundException',
    'ConfigurationException',
    'DatabaseException',
    'PersistenceFailedException',
    'ExternalAPIException',
    'CollaboratorUnavailableException',
    # Decorators
    'handle_errors',
    # Setup
    'setup_logging',
    'register_error_handlers',
]
