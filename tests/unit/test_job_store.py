"""
Unit tests for the SQLAlchemy job store and audit recorder.
"""
import pytest
from datetime import datetime

from app.error_handlers.exceptions import JobNotFoundException
from app.services.job_store import SqlAlchemyAuditRecorder, SqlAlchemyJobStore


@pytest.fixture
def store(db_session, models):
    return SqlAlchemyJobStore(db_session, models)


class TestSqlAlchemyJobStore:

    @pytest.mark.unit
    def test_move_job_records_stage_schedule(self, store, job_factory):
        job_factory(id='J-1', current_stage='mix_ink')
        start, end = datetime(2030, 1, 8, 9), datetime(2030, 1, 8, 10)

        store.move_job('J-1', 'print', start, end, 'press-1')

        job = store.fetch_jobs()[0]
        assert job.current_stage == 'print'
        assert job.equipment_id == 'press-1'
        assert job.scheduled_start == start
        assert job.status.value == 'scheduled'

    @pytest.mark.unit
    def test_move_without_window_unschedules(self, store, job_factory):
        row = job_factory(id='J-1', status='scheduled', equipment_id='press-1',
                          scheduled_start=datetime(2030, 1, 8, 9),
                          stage_schedules={'print': {'start': '2030-01-08T09:00:00'}})

        store.move_job('J-1', 'print', None, None, None)

        assert row.status == 'unscheduled'
        assert row.stage_schedules == {}

    @pytest.mark.unit
    def test_unschedule_other_stage_keeps_current_window(self, store, job_factory):
        row = job_factory(id='J-1', status='scheduled', current_stage='print',
                          equipment_id='press-1', scheduled_start=datetime(2030, 1, 8, 9),
                          stage_schedules={'mix_ink': {'start': 'x'}, 'print': {'start': 'y'}})

        store.unschedule_stage('J-1', 'mix_ink')

        assert row.stage_schedules == {'print': {'start': 'y'}}
        assert row.equipment_id == 'press-1'
        assert row.status == 'scheduled'

        store.unschedule_stage('J-1', 'print')
        assert row.equipment_id is None
        assert row.status == 'unscheduled'

    @pytest.mark.unit
    def test_update_status_normalizes(self, store, job_factory):
        row = job_factory(id='J-1', status='scheduled')
        store.update_status('J-1', 'in-progress')
        assert row.status == 'in_progress'

    @pytest.mark.unit
    def test_unknown_job(self, store, db):
        with pytest.raises(JobNotFoundException):
            store.update_status('nope', 'done')

    @pytest.mark.unit
    def test_fetch_filters_org_method_and_stage(self, store, job_factory):
        job_factory(id='A', decoration_method='screenPrinting', current_stage='print')
        job_factory(id='B', decoration_method='screen_printing', current_stage='mix_ink')
        job_factory(id='C', decoration_method='embroidery', current_stage='hoop')
        job_factory(id='D', org_id='other', decoration_method='screen_printing')

        assert sorted(j.id for j in store.fetch_jobs()) == ['A', 'B', 'C']
        assert sorted(j.id for j in store.fetch_jobs('Screen Printing')) == ['A', 'B']
        assert [j.id for j in store.fetch_jobs('screen_printing', 'print')] == ['A']
        assert store.org_ids() == ['default', 'other']

    @pytest.mark.unit
    def test_fetch_org_config(self, store, org_settings_factory):
        org_settings_factory('default', production={
            'equipment': [{'id': 'press-A', 'stageAssignments': []}],
            'productionRules': {'setupTimeBuffer': 5},
        })

        org = store.fetch_org_config()
        assert org.equipment[0]['id'] == 'press-A'
        assert org.rules.setup_time_buffer == 5


class TestSqlAlchemyAuditRecorder:

    @pytest.mark.unit
    def test_record_event(self, db_session, models):
        recorder = SqlAlchemyAuditRecorder(db_session, models, org_id='default', user_id='mgr-1')
        recorder.record_event('J-1', 'schedule', {'toStage': 'print', 'start': datetime(2030, 1, 8, 9)})

        event = models['JobAuditEvent'].query.one()
        assert event.user_id == 'mgr-1'
        assert event.details == {'toStage': 'print', 'start': '2030-01-08 09:00:00'}
