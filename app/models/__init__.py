"""
Database models for the production scheduler
Centralizes all SQLAlchemy model imports using factory pattern
"""
from .production_job import create_production_job_model
from .audit import create_audit_models
from .org_setting import create_org_setting_model


_initialized = {}


def init_models(db):
    """
    Initialize all models with the database instance

    Model classes are built once per db instance; later calls (a second
    create_app in the same process) return the same classes.

    Args:
        db: SQLAlchemy database instance

    Returns:
        dict: Dictionary containing all model classes
    """
    if id(db) in _initialized:
        return _initialized[id(db)]

    ProductionJob = create_production_job_model(db)
    JobAuditEvent = create_audit_models(db)
    OrganizationSetting = create_org_setting_model(db)

    _initialized[id(db)] = {
        'ProductionJob': ProductionJob,
        'JobAuditEvent': JobAuditEvent,
        'OrganizationSetting': OrganizationSetting,
    }
    return _initialized[id(db)]


__all__ = [
    'init_models',
    'create_production_job_model',
    'create_audit_models',
    'create_org_setting_model',
    # Model registry exports
    'model_registry',
    'get_models',
    'get_db'
]

# Import registry for convenience
from .registry import model_registry, get_models, get_db
