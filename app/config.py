"""
Configuration management for the production scheduler
Handles environment-based settings for the app, scheduling window and
auto-scheduler

Uses lazy validation so development and tests run without production secrets.
"""
import secrets
from decouple import config
from typing import Optional


class Config:
    """Base configuration class"""
    # Flask settings
    SECRET_KEY = config('SECRET_KEY', default=secrets.token_hex(32))
    SQLALCHEMY_DATABASE_URI = config('DATABASE_URL', default='sqlite:///instance/production.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging settings
    LOG_LEVEL = config('LOG_LEVEL', default='INFO')
    LOG_FILE = config('LOG_FILE', default='logs/production_scheduler.log')

    # Operating day shown on the scheduling grid (hours, end exclusive)
    SCHEDULER_DAY_START_HOUR = config('SCHEDULER_DAY_START_HOUR', default=8, cast=int)
    SCHEDULER_DAY_END_HOUR = config('SCHEDULER_DAY_END_HOUR', default=18, cast=int)

    # Auto-scheduler settings
    AUTO_SCHEDULER_START_HOUR = config('AUTO_SCHEDULER_START_HOUR', default=9, cast=int)
    AUTO_SCHEDULER_MAX_JOBS = config('AUTO_SCHEDULER_MAX_JOBS', default=3, cast=int)
    AUTO_SCHEDULER_INTERVAL_SECONDS = config('AUTO_SCHEDULER_INTERVAL_SECONDS', default=300, cast=int)
    AUTO_SCHEDULER_BACKGROUND_ENABLED = config('AUTO_SCHEDULER_BACKGROUND_ENABLED', default=False, cast=bool)

    # Organization used when a request carries no X-Org-Id header
    DEFAULT_ORG_ID = config('DEFAULT_ORG_ID', default='default')

    # Status-change automation webhooks
    WEBHOOK_TIMEOUT = config('WEBHOOK_TIMEOUT', default=10, cast=int)

    @classmethod
    def validate(cls) -> None:
        """
        Validate configuration - can be called explicitly or on-demand

        Raises:
            ValueError: If required configuration is missing or inconsistent
        """
        if not 0 <= cls.SCHEDULER_DAY_START_HOUR < cls.SCHEDULER_DAY_END_HOUR <= 24:
            raise ValueError(
                f"Invalid operating day {cls.SCHEDULER_DAY_START_HOUR}-{cls.SCHEDULER_DAY_END_HOUR}"
            )
        if cls.AUTO_SCHEDULER_MAX_JOBS < 1:
            raise ValueError("AUTO_SCHEDULER_MAX_JOBS must be at least 1")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    AUTO_SCHEDULER_BACKGROUND_ENABLED = False
    LOG_FILE = config('TEST_LOG_FILE', default='logs/test.log')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SECRET_KEY = config('SECRET_KEY', default='change-this-to-a-random-secret-key-in-production')

    # Database Connection Pool (for production databases)
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_recycle': config('DB_POOL_RECYCLE', default=3600, cast=int),
        'pool_pre_ping': True,
    }

    LOG_LEVEL = config('LOG_LEVEL', default='WARNING')

    @classmethod
    def validate(cls) -> None:
        """
        Production mode: validate all required settings

        Raises:
            ValueError: If any required configuration is missing
        """
        super().validate()
        try:
            secret_key = config('SECRET_KEY')
        except Exception:
            raise ValueError(
                "SECRET_KEY environment variable must be set in production. "
                "Generate a secure key with: python -c 'import secrets; print(secrets.token_hex(32))'"
            )

        if len(secret_key) < 32:
            raise ValueError(
                f"SECRET_KEY must be at least 32 characters in production (current: {len(secret_key)})."
            )


# Configuration mapping
config_mapping = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None, validate: bool = False) -> type:
    """
    Get configuration class based on environment.

    Args:
        config_name: Environment name ('development', 'testing', 'production')
        validate: Whether to validate configuration immediately (default: False)

    Returns:
        Config class for the specified environment

    Raises:
        ValueError: If validation is enabled and required variables are missing

    Example:
        >>> config = get_config('production', validate=True)
    """
    if config_name is None:
        config_name = config('FLASK_ENV', default='development')

    config_class = config_mapping.get(config_name, DevelopmentConfig)

    if validate:
        config_class.validate()

    return config_class
