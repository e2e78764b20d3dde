"""
Unit tests for the production rule pipeline.

Tests cover:
- Blocking rules (batch size, buffer time, material, outsourcing)
- First blocking failure short-circuits the pipeline
- Setup buffer extension
- Advisory notices and their isolation from failures
- Reorder point, capacity, maintenance and cost advisories at their thresholds
"""
import pytest
from datetime import datetime, timedelta

from app.services.job_types import JobStatus, SchedulingIntent
from app.services.rule_pipeline import RulePipeline, qc_checkpoint_notice
from app.services.production_config import RuleConfiguration
from app.services.validation_types import RuleSeverity, RuleType


def at(hour, minute=0):
    return datetime(2030, 1, 7, hour, minute)


def intent(job_id='j1', start=None, equipment_id='press-1', stage='print'):
    return SchedulingIntent(job_id=job_id, equipment_id=equipment_id,
                            start_time=start or at(10), stage=stage)


@pytest.fixture
def pipeline():
    return RulePipeline()


class TestBatchSize:
    """Screen printing batches are 12..144 by default."""

    @pytest.mark.unit
    @pytest.mark.parametrize('quantity,valid', [(6, False), (12, True), (144, True), (200, False)])
    def test_batch_limits(self, pipeline, make_job, make_context, quantity, valid):
        job = make_job(total_quantity=quantity)
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert result.is_valid is valid
        if not valid:
            assert result.hard_violations[0].rule_type == RuleType.BATCH_SIZE

    @pytest.mark.unit
    def test_rejection_holds_only_the_first_failure(self, pipeline, make_job, make_context):
        job = make_job(total_quantity=6, material_status='pending')
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert len(result.violations) == 1
        assert result.violations[0].rule_type == RuleType.BATCH_SIZE
        assert result.end_extension_minutes == 0


class TestBufferTime:
    """Screen printing keeps a 15 minute gap between jobs on a lane."""

    def _neighbour(self, make_job):
        return make_job('other', status=JobStatus.SCHEDULED, equipment_id='press-1',
                        scheduled_start=at(10), scheduled_end=at(11))

    @pytest.mark.unit
    def test_inside_buffer_conflicts(self, pipeline, make_job, make_context):
        other = self._neighbour(make_job)
        job = make_job('j1', estimated_hours=50 / 60)
        result = pipeline.evaluate(job, intent(start=at(11, 10)), make_context([other, job]))

        assert result.is_valid is False
        violation = result.hard_violations[0]
        assert violation.rule_type == RuleType.BUFFER_TIME
        assert violation.details['conflicting_job_id'] == 'other'

    @pytest.mark.unit
    def test_outside_buffer_is_free(self, pipeline, make_job, make_context):
        other = self._neighbour(make_job)
        job = make_job('j1', estimated_hours=40 / 60)
        result = pipeline.evaluate(job, intent(start=at(11, 20)), make_context([other, job]))

        assert result.is_valid is True

    @pytest.mark.unit
    def test_other_equipment_ignored(self, pipeline, make_job, make_context):
        other = self._neighbour(make_job)
        job = make_job('j1')
        result = pipeline.evaluate(job, intent(start=at(10), equipment_id='press-2'),
                                   make_context([other, job]))

        assert result.is_valid is True

    @pytest.mark.unit
    def test_job_does_not_conflict_with_itself(self, pipeline, make_job, make_context):
        job = make_job('j1', status=JobStatus.SCHEDULED, equipment_id='press-1',
                       scheduled_start=at(10), scheduled_end=at(11))
        result = pipeline.evaluate(job, intent(start=at(10, 30)), make_context([job]))

        assert result.is_valid is True


class TestMaterialAndOutsourcing:

    @pytest.mark.unit
    def test_materials_not_ready(self, pipeline, make_job, make_context):
        job = make_job(material_status='pending')
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert result.hard_violations[0].rule_type == RuleType.MATERIAL

    @pytest.mark.unit
    def test_material_check_can_be_disabled(self, pipeline, make_job, make_context):
        settings = {'production': {'productionRules': {
            'materialRules': {'checkStockBeforeScheduling': False}}}}
        job = make_job(material_status=None)
        result = pipeline.evaluate(job, intent(), make_context([job], settings=settings))

        assert result.is_valid is True

    @pytest.mark.unit
    def test_outsourcing_lead_time(self, pipeline, make_job, make_context):
        settings = {'production': {'productionRules': {
            'outsourcingRules': {'autoOutsourcing': {'enabled': True, 'leadTimeBuffer': 2}}}}}
        job = make_job(due_date=at(8) + timedelta(hours=30))
        result = pipeline.evaluate(job, intent(), make_context([job], settings=settings))

        violation = result.hard_violations[0]
        assert violation.rule_type == RuleType.OUTSOURCING_LEAD_TIME
        assert 'Local Screen Shop' in violation.message

    @pytest.mark.unit
    def test_outsourcing_capacity(self, pipeline, make_job, make_context):
        settings = {'production': {'productionRules': {
            'outsourcingRules': {'autoOutsourcing': {'enabled': True, 'capacityThreshold': 50,
                                                     'leadTimeBuffer': 0}}}}}
        job = make_job(estimated_hours=8)
        # ink-station-1 has 10 minutes of daily capacity
        result = pipeline.evaluate(job, intent(equipment_id='ink-station-1', stage='mix_ink'),
                                   make_context([job], settings=settings))

        assert result.hard_violations[0].rule_type == RuleType.OUTSOURCING_CAPACITY

    @pytest.mark.unit
    def test_outsourcing_disabled_by_default(self, pipeline, make_job, make_context):
        job = make_job(due_date=at(12))
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert result.is_valid is True


class TestAdvisories:

    @pytest.mark.unit
    def test_setup_buffer_extends_end(self, pipeline, make_job, make_context):
        job = make_job()
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert result.end_extension_minutes == 15
        assert any(v.rule_type == RuleType.SETUP_BUFFER for v in result.soft_violations)

    @pytest.mark.unit
    def test_due_date_warning(self, pipeline, make_job, make_context):
        job = make_job(due_date=at(8) + timedelta(hours=20))
        result = pipeline.evaluate(job, intent(), make_context([job]))

        warning = next(v for v in result.violations if v.rule_type == RuleType.DUE_DATE_WARNING)
        assert warning.severity == RuleSeverity.SOFT
        assert warning.details['threshold_hours'] == 24

    @pytest.mark.unit
    def test_rush_priority_notice(self, pipeline, make_job, make_context):
        rush = make_job('rush', priority='high', equipment_id='press-1',
                        scheduled_start=at(14), scheduled_end=at(15),
                        due_date=at(8) + timedelta(days=3))
        job = make_job('j1', priority='low', due_date=at(8) + timedelta(days=10))
        result = pipeline.evaluate(job, intent(), make_context([rush, job]))

        assert any(v.rule_type == RuleType.RUSH_PRIORITY for v in result.violations)

    @pytest.mark.unit
    def test_failing_advisory_is_skipped(self, make_job, make_context):
        def broken(candidate):
            raise RuntimeError('boom')

        def fine(candidate):
            return None

        pipeline = RulePipeline(advisory_rules=[broken, fine])
        job = make_job()
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert result.is_valid is True

    @pytest.mark.unit
    def test_advisories_never_block(self, pipeline, make_job, make_context):
        job = make_job(due_date=at(8) - timedelta(hours=5), estimated_hours=12)
        result = pipeline.evaluate(job, intent(), make_context([job]))

        assert result.is_valid is True
        assert result.hard_violations == []


class TestQualityCheckpoint:

    @pytest.mark.unit
    def test_checklist_truncated_to_three_items(self):
        rules = RuleConfiguration({'qualityControl': {'qualityCheckpoints': {
            'screen_printing.print': {'enabled': True,
                                      'checklistItems': ['Registration', 'Colors', 'Cure', 'Count']},
        }}})
        notice = qc_checkpoint_notice(rules, 'screenPrinting', 'print')

        assert notice.rule_type == RuleType.QUALITY_CHECKPOINT
        assert notice.message == 'QC checklist: Registration; Colors; Cure (+1 more)'
        assert notice.details['checkpoint'] == 'screen_printing.print'

    @pytest.mark.unit
    def test_legacy_stage_key(self):
        rules = RuleConfiguration()
        notice = qc_checkpoint_notice(rules, 'embroidery', 'printing')
        assert notice.details['checkpoint'] == 'printing'
        assert notice.details['overflow'] == 0

    @pytest.mark.unit
    def test_disabled_checkpoint(self):
        rules = RuleConfiguration({'qualityControl': {'qualityCheckpoints': {
            'printing': {'enabled': False}}}})
        assert qc_checkpoint_notice(rules, 'dtg', 'printing') is None
        assert qc_checkpoint_notice(rules, 'dtg', None) is None


def rules(**groups):
    return {'production': {'productionRules': groups}}


def notices_of(result, rule_type):
    return [v for v in result.soft_violations if v.rule_type == rule_type]


class TestReorderPoint:

    @pytest.mark.unit
    def test_low_stock_status(self, pipeline, make_job, make_context):
        settings = rules(materialRules={'checkStockBeforeScheduling': False,
                                        'reorderPointWarnings': True, 'lowStockThreshold': 100})
        job = make_job(material_status='low_stock')
        result = pipeline.evaluate(job, intent(), make_context([job], settings=settings))

        assert result.is_valid is True
        notice = notices_of(result, RuleType.MATERIAL)[0]
        assert notice.severity == RuleSeverity.SOFT
        assert notice.details['trigger'] == 'low_stock'

    @pytest.mark.unit
    @pytest.mark.parametrize('quantity,warned', [(19, False), (20, True)])
    def test_quantity_threshold(self, pipeline, make_job, make_context, quantity, warned):
        settings = rules(materialRules={'reorderPointWarnings': True, 'lowStockThreshold': 20})
        job = make_job(total_quantity=quantity)
        result = pipeline.evaluate(job, intent(), make_context([job], settings=settings))

        assert bool(notices_of(result, RuleType.MATERIAL)) is warned

    @pytest.mark.unit
    def test_warnings_off(self, pipeline, make_job, make_context):
        settings = rules(materialRules={'checkStockBeforeScheduling': False,
                                        'reorderPointWarnings': False})
        job = make_job(material_status='low_stock')
        result = pipeline.evaluate(job, intent(), make_context([job], settings=settings))

        assert notices_of(result, RuleType.MATERIAL) == []


class TestCapacityAndMaintenance:
    """bench-9 is not a known lane, so it gets the 8 hour default capacity."""

    @pytest.mark.unit
    @pytest.mark.parametrize('hours,warned', [(3.75, False), (4, True)])
    def test_capacity_overload_threshold(self, pipeline, make_job, make_context, hours, warned):
        settings = rules(notificationRules={'capacityOverload': {'enabled': True,
                                                                 'thresholdPercentage': 50}})
        job = make_job(estimated_hours=hours)
        result = pipeline.evaluate(job, intent(equipment_id='bench-9'),
                                   make_context([job], settings=settings))

        assert bool(notices_of(result, RuleType.CAPACITY_OVERLOAD)) is warned

    @pytest.mark.unit
    def test_capacity_counts_same_day_neighbours(self, pipeline, make_job, make_context):
        settings = rules(notificationRules={'capacityOverload': {'enabled': True,
                                                                 'thresholdPercentage': 50}})
        earlier = make_job('earlier', status=JobStatus.SCHEDULED, equipment_id='bench-9',
                           scheduled_start=at(6), scheduled_end=at(8), estimated_hours=2)
        job = make_job('j1', estimated_hours=2)
        result = pipeline.evaluate(job, intent(equipment_id='bench-9'),
                                   make_context([earlier, job], settings=settings))

        assert notices_of(result, RuleType.CAPACITY_OVERLOAD)[0].details['utilization'] == 50.0

    @pytest.mark.unit
    @pytest.mark.parametrize('hours,warned', [
        (2, False),   # 7h of 10h, 3h to go
        (3, True),    # 8h of 10h, exactly at the 2h tolerance
        (6, True),    # 11h, crosses the interval
    ])
    def test_maintenance_interval(self, pipeline, make_job, make_context, hours, warned):
        settings = rules(notificationRules={'equipmentMaintenance': {
            'enabled': True, 'maintenanceIntervalHours': 10}})
        previous = make_job('previous', status=JobStatus.SCHEDULED, equipment_id='bench-9',
                            scheduled_start=datetime(2030, 1, 6, 8), scheduled_end=datetime(2030, 1, 6, 13),
                            estimated_hours=5)
        job = make_job('j1', estimated_hours=hours)
        result = pipeline.evaluate(job, intent(equipment_id='bench-9'),
                                   make_context([previous, job], settings=settings))

        assert bool(notices_of(result, RuleType.EQUIPMENT_MAINTENANCE)) is warned


class TestCostOptimization:

    def _suggestions(self, result):
        return [v.details['suggestion'] for v in notices_of(result, RuleType.COST_OPTIMIZATION)]

    @pytest.mark.unit
    @pytest.mark.parametrize('hours_left,suggested', [(48, True), (49, False)])
    def test_rush_surcharge_threshold(self, pipeline, make_job, make_context, hours_left, suggested):
        job = make_job(due_date=at(8) + timedelta(hours=hours_left))
        result = pipeline.evaluate(job, intent(), make_context([job], settings=rules()))

        assert ('rush_surcharge' in self._suggestions(result)) is suggested

    @pytest.mark.unit
    @pytest.mark.parametrize('quantity,suggested', [(23, True), (24, False)])
    def test_small_quantity_penalty(self, pipeline, make_job, make_context, quantity, suggested):
        settings = rules(costOptimization={'smallQuantityPenalty': {
            'enabled': True, 'minimumQuantity': 24, 'penaltyPercentage': 15}})
        job = make_job(total_quantity=quantity)
        result = pipeline.evaluate(job, intent(), make_context([job], settings=settings))

        assert ('small_quantity_penalty' in self._suggestions(result)) is suggested

    @pytest.mark.unit
    @pytest.mark.parametrize('hours,expected', [
        (5.6, ['utilization_high']),  # 56%
        (5.5, []),                    # 55%, edge of the band
        (4.5, []),                    # 45%, edge of the band
        (4.4, ['utilization_low']),   # 44%
    ])
    def test_utilization_dead_band(self, pipeline, make_job, make_context, hours, expected):
        settings = {'production': {
            'equipment': [{'id': 'cell-1', 'capacity': 600}],
            'productionRules': {'costOptimization': {'equipmentUtilizationTarget': 50}},
        }}
        job = make_job(estimated_hours=hours)
        result = pipeline.evaluate(job, intent(equipment_id='cell-1'),
                                   make_context([job], settings=settings))

        utilization = [s for s in self._suggestions(result) if s.startswith('utilization')]
        assert utilization == expected

    @pytest.mark.unit
    def test_utilization_target_given_as_text(self, pipeline, make_job, make_context):
        settings = {'production': {
            'equipment': [{'id': 'cell-1', 'capacity': 600}],
            'productionRules': {'costOptimization': {'equipmentUtilizationTarget': '50'}},
        }}
        job = make_job(estimated_hours=4.4)
        result = pipeline.evaluate(job, intent(equipment_id='cell-1'),
                                   make_context([job], settings=settings))

        assert 'utilization_low' in self._suggestions(result)
