"""
Flask application factory.

This module implements the application factory pattern for creating
Flask application instances with different configurations.
"""

from flask import Flask
import os
import logging
from datetime import datetime

from .extensions import db, migrate
from .config import get_config

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """
    Application factory function.

    Args:
        config_name: Configuration name (development, testing, production)
                    If None, determined from environment

    Returns:
        Flask application instance
    """
    # Create Flask app
    app = Flask(__name__)

    # Load configuration
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Ensure instance directory exists
    basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    os.makedirs(os.path.join(basedir, "instance"), exist_ok=True)

    # Update database URI to use absolute path
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///instance/'):
        app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{os.path.join(basedir, "instance", "production.db")}'

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Enable foreign key constraints for SQLite
    from sqlalchemy import event
    from sqlalchemy.engine import Engine

    @event.listens_for(Engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite connections"""
        if 'sqlite' in str(dbapi_conn):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    # Configure logging and error handling
    from app.error_handlers import setup_logging, register_error_handlers
    setup_logging(app)
    register_error_handlers(app)

    # Initialize database models
    from app.models import init_models, model_registry
    models = init_models(db)

    # Initialize model registry
    model_registry.init_app(app)
    model_registry.register(models)

    # Scheduling engine and auto-scheduler are process-wide singletons so the
    # in-flight guard and the auto-schedule fired keys span requests
    init_scheduling(app)

    # Register blueprints
    register_blueprints(app)

    # Setup background tasks
    if app.config.get('AUTO_SCHEDULER_BACKGROUND_ENABLED'):
        setup_background_tasks(app)

    return app


def init_scheduling(app):
    """Create the scheduling engine and auto-scheduler for this app."""
    from app.services import SchedulingEngine, AutoScheduler

    engine = SchedulingEngine()
    app.extensions['production_engine'] = engine
    app.extensions['auto_scheduler'] = AutoScheduler(
        engine,
        start_hour=app.config['AUTO_SCHEDULER_START_HOUR'],
        max_jobs=app.config['AUTO_SCHEDULER_MAX_JOBS'],
    )


def register_blueprints(app):
    """Register all Flask blueprints."""

    from app.routes import production_bp, health_bp

    app.register_blueprint(production_bp)
    app.register_blueprint(health_bp)


def run_auto_schedule_sweep(app, day=None):
    """
    Run the auto-scheduler for every configured method stage of every organization

    Args:
        app: Flask application
        day: Calendar day to fill (default: today)

    Returns:
        int: Number of jobs placed
    """
    from app.models import get_models
    from app.services.auto_scheduler import SYSTEM_ACTOR, configured_stage_pairs
    from app.services.automation import AutomationCallbacks
    from app.services.effects import EffectRunner
    from app.services.job_store import SqlAlchemyJobStore, SqlAlchemyAuditRecorder
    from app.services.job_types import SchedulingContext

    day = day or datetime.now().date()
    auto_scheduler = app.extensions['auto_scheduler']
    placed = 0

    with app.app_context():
        models = get_models()
        callbacks = AutomationCallbacks(webhook_timeout=app.config['WEBHOOK_TIMEOUT'])

        for org_id in SqlAlchemyJobStore(db.session, models).org_ids():
            store = SqlAlchemyJobStore(db.session, models, org_id=org_id)
            org = store.fetch_org_config(org_id)
            if not org.rules.auto_scheduling:
                continue
            runner = EffectRunner(
                store=store,
                audit=SqlAlchemyAuditRecorder(db.session, models, org_id, SYSTEM_ACTOR.user_id),
                callbacks=callbacks,
            )
            for method, stage in configured_stage_pairs(org.equipment):
                ctx = SchedulingContext(
                    jobs=store.fetch_jobs(),
                    org=org,
                    actor=SYSTEM_ACTOR,
                    selected_stage=stage,
                    effect_runner=runner,
                )
                result = auto_scheduler.run(method, stage, day, org_id, ctx)
                placed += len(result.placed)

    if placed:
        logger.info(f"Auto-schedule sweep placed {placed} job(s) for {day.isoformat()}")
    return placed


def setup_background_tasks(app):
    """Setup background tasks and schedulers."""

    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.triggers.interval import IntervalTrigger
    import atexit

    def auto_schedule_sweep():
        """Background task to fill configured lanes with ready jobs."""
        try:
            run_auto_schedule_sweep(app)
        except Exception as e:
            logger.error(f"Auto-schedule sweep failed: {str(e)}", exc_info=True)

    # Create and start background scheduler
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        func=auto_schedule_sweep,
        trigger=IntervalTrigger(seconds=app.config['AUTO_SCHEDULER_INTERVAL_SECONDS']),
        id='production_auto_schedule',
        name='Auto-schedule ready production jobs',
        replace_existing=True
    )
    scheduler.start()

    # Ensure scheduler shuts down when app exits
    atexit.register(lambda: scheduler.shutdown())


def init_db(app):
    """Initialize the database."""
    basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    os.makedirs(os.path.join(basedir, "instance"), exist_ok=True)
    with app.app_context():
        db.create_all()
