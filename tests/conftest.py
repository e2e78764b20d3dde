"""
Pytest configuration and fixtures for production scheduler tests.

This module provides shared fixtures for:
- Flask application with test configuration
- Database setup and teardown
- Factories for persisted jobs, organization settings and in-memory jobs
- Engine helpers (recording effect runner, scheduling context builder)
"""
import pytest
from datetime import datetime, timedelta

from app import create_app
from app.extensions import db as _db
from app.services.job_types import Actor, Job, JobStatus, OrgConfig, SchedulingContext
from app.services.production_config import build_org_config


@pytest.fixture(scope='session')
def app():
    """
    Create application for the tests.

    Uses TestingConfig with in-memory SQLite database.
    Scope is 'session' to reuse the same app across all tests.
    """
    app = create_app('testing')
    app.config.update({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'AUTO_SCHEDULER_BACKGROUND_ENABLED': False,
    })

    return app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database for the tests.

    Creates all tables before each test function and drops them after.
    This ensures test isolation.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def db_session(db):
    """The scoped session of the per-test database."""
    return db.session


@pytest.fixture(scope='function')
def client(app, db):
    """
    Create a test client for the app.

    The engine singletons are reset so in-flight claims and fired
    auto-schedule keys do not leak between tests.
    """
    app.extensions['auto_scheduler'].reset()
    with app.test_client() as client:
        with app.app_context():
            yield client


@pytest.fixture(scope='function')
def models(app, db):
    """Get all models from the model registry."""
    with app.app_context():
        from app.models import get_models
        return get_models()


# =============================================================================
# Persisted Factories
# =============================================================================

@pytest.fixture
def job_factory(models, db):
    """
    Factory for creating ProductionJob rows.

    Usage:
        job = job_factory(decoration_method='screen_printing', current_stage='print')
    """
    counter = [0]  # Use list to allow mutation in closure

    def _create_job(**kwargs):
        ProductionJob = models['ProductionJob']
        counter[0] += 1
        defaults = {
            'id': f'job-{counter[0]}',
            'org_id': 'default',
            'job_number': f'J-{1000 + counter[0]}',
            'customer_name': 'Test Customer',
            'decoration_method': 'screen_printing',
            'current_stage': 'print',
            'status': 'unscheduled',
            'priority': 'medium',
            'total_quantity': 48,
            'estimated_hours': 1.0,
            'stage_durations': {},
            'due_date': datetime.now() + timedelta(days=14),
            'material_status': 'ready',
            'predecessor_ids': [],
            'stage_schedules': {},
        }
        defaults.update(kwargs)
        job = ProductionJob(**defaults)
        db.session.add(job)
        db.session.commit()
        return job

    return _create_job


@pytest.fixture
def org_settings_factory(models, db):
    """
    Factory for storing an organization settings document.

    Usage:
        org_settings_factory('default', production={'equipment': [...]})
    """
    def _create_settings(org_id='default', **documents):
        OrganizationSetting = models['OrganizationSetting']
        for key, value in documents.items():
            OrganizationSetting.set_setting(org_id, key, value, user='test')
        return OrganizationSetting.get_org_settings(org_id)

    return _create_settings


# =============================================================================
# Engine Helpers
# =============================================================================

class RecordingEffectRunner:
    """Effect runner that only records what it was asked to perform."""

    def __init__(self):
        self.batches = []

    def run(self, effects, org_settings=None):
        self.batches.append(list(effects))
        return []

    @property
    def effects(self):
        return [effect for batch in self.batches for effect in batch]


@pytest.fixture
def recording_runner():
    return RecordingEffectRunner()


@pytest.fixture
def manager():
    return Actor(user_id='mgr-1', role='production_manager')


@pytest.fixture
def make_job():
    """
    Build in-memory Job working copies.

    Usage:
        job = make_job('j1', current_stage='print', total_quantity=24)
    """
    def _make_job(job_id='j1', **kwargs):
        defaults = {
            'decoration_method': 'screen_printing',
            'current_stage': 'print',
            'status': JobStatus.UNSCHEDULED,
            'total_quantity': 48,
            'estimated_hours': 1.0,
            'material_status': 'ready',
            'due_date': datetime(2030, 1, 31, 17, 0),
        }
        defaults.update(kwargs)
        return Job(id=job_id, **defaults)

    return _make_job


@pytest.fixture
def make_context(manager):
    """
    Build a SchedulingContext over in-memory jobs.

    Usage:
        ctx = make_context([job], settings={'production': {...}})
    """
    def _make_context(jobs, settings=None, actor=None, selected_stage=None,
                      now=datetime(2030, 1, 7, 8, 0), effect_runner=None):
        org = build_org_config('default', settings) if settings is not None else OrgConfig()
        return SchedulingContext(
            jobs=list(jobs),
            org=org,
            actor=actor or manager,
            selected_stage=selected_stage,
            now=now,
            effect_runner=effect_runner,
        )

    return _make_context
