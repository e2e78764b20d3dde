"""
Unit tests for database models.

Tests cover:
- ProductionJob defaults and conversion to the engine's Job
- JobAuditEvent details round trip
- OrganizationSetting get/set and the per-organization document
"""
import pytest
from datetime import datetime

from app.services.job_types import JobStatus


class TestProductionJobModel:
    """Tests for the ProductionJob model."""

    @pytest.mark.unit
    def test_create_job_defaults(self, models, db):
        ProductionJob = models['ProductionJob']
        job = ProductionJob(id='J-1', decoration_method='dtg')
        db.session.add(job)
        db.session.commit()

        assert job.org_id == 'default'
        assert job.status == 'unscheduled'
        assert job.priority == 'medium'
        assert job.total_quantity == 0

    @pytest.mark.unit
    def test_to_job(self, job_factory):
        row = job_factory(id='J-2', status='in-progress', stage_durations={'print': 1.5},
                          predecessor_ids=['J-1'], assigned_user_id='op-1')
        job = row.to_job()

        assert job.id == 'J-2'
        assert job.status == JobStatus.IN_PROGRESS
        assert job.stage_durations == {'print': 1.5}
        assert job.predecessor_ids == ['J-1']
        assert job.assigned_user_id == 'op-1'

    @pytest.mark.unit
    @pytest.mark.parametrize('raw,expected', [
        ('completed', JobStatus.DONE),
        ('Scheduled', JobStatus.SCHEDULED),
        ('archived', JobStatus.UNSCHEDULED),
        (None, JobStatus.UNSCHEDULED),
    ])
    def test_status_normalization(self, raw, expected):
        assert JobStatus.normalize(raw) == expected

    @pytest.mark.unit
    def test_job_repr(self, job_factory):
        row = job_factory(id='J-3')
        assert 'J-3' in repr(row)


class TestJobAuditEventModel:

    @pytest.mark.unit
    def test_details_round_trip(self, models, db):
        JobAuditEvent = models['JobAuditEvent']
        event = JobAuditEvent(job_id='J-1', action='schedule',
                              details_json='{"fromStage": "mix_ink", "toStage": "print"}')
        db.session.add(event)
        db.session.commit()

        data = event.to_dict()
        assert data['details'] == {'fromStage': 'mix_ink', 'toStage': 'print'}
        assert isinstance(event.created_at, datetime)


class TestOrganizationSettingModel:

    @pytest.mark.unit
    def test_set_and_get(self, models, db):
        OrganizationSetting = models['OrganizationSetting']
        OrganizationSetting.set_setting('acme', 'production', {'productionRules': {'autoScheduling': False}})

        assert OrganizationSetting.get_setting('acme', 'production') == {
            'productionRules': {'autoScheduling': False}}
        assert OrganizationSetting.get_setting('acme', 'missing', default={}) == {}

    @pytest.mark.unit
    def test_update_existing(self, models, db):
        OrganizationSetting = models['OrganizationSetting']
        OrganizationSetting.set_setting('acme', 'company', {'name': 'Old'})
        OrganizationSetting.set_setting('acme', 'company', {'name': 'New'}, user='admin')

        assert OrganizationSetting.query.filter_by(org_id='acme').count() == 1
        assert OrganizationSetting.get_setting('acme', 'company') == {'name': 'New'}

    @pytest.mark.unit
    def test_org_document(self, org_settings_factory, models):
        document = org_settings_factory('acme', company={'name': 'Acme'}, automations={'statusChanges': []})

        assert document == {'company': {'name': 'Acme'}, 'automations': {'statusChanges': []}}
        assert models['OrganizationSetting'].org_ids() == ['acme']
