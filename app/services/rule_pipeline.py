"""
Rule Pipeline
Validates a scheduling intent against an organization's production rules

Blocking rules run first, in order, and the first failure aborts the
pipeline. Advisory rules then annotate the result with non-blocking notices.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .job_types import Job, SchedulingContext, SchedulingIntent
from .lane_resolver import find_lane
from .slot_filter import duration_delta, intervals_overlap, job_interval, resolve_duration_hours
from .validation_types import RuleSeverity, RuleType, RuleViolation, ValidationResult

logger = logging.getLogger(__name__)

MATERIAL_READY_STATUSES = frozenset({'ready', 'in_stock', 'received'})
DEFAULT_DAILY_CAPACITY_HOURS = 8.0
MAINTENANCE_TOLERANCE_HOURS = 2.0
UTILIZATION_DEAD_BAND = 5
MAX_CHECKLIST_ITEMS = 3


@dataclass
class Candidate:
    """Everything a rule needs to judge one proposed placement"""
    job: Job
    stage: Optional[str]
    equipment_id: str
    start: datetime
    end: datetime
    ctx: SchedulingContext

    @property
    def rules(self):
        return self.ctx.org.rules

    @property
    def method(self) -> str:
        return self.job.decoration_method

    @property
    def now(self) -> datetime:
        return self.ctx.now or datetime.now()

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600

    def hours_until_due(self) -> Optional[float]:
        if self.job.due_date is None:
            return None
        return (self.job.due_date - self.now).total_seconds() / 3600

    def neighbours(self) -> List[Job]:
        """Other jobs already placed on the target equipment"""
        return [
            j for j in self.ctx.jobs
            if j.id != self.job.id and j.equipment_id == self.equipment_id
            and j.scheduled_start is not None
        ]

    def same_day_hours(self) -> float:
        day = self.start.date()
        hours = sum(
            resolve_duration_hours(j) for j in self.neighbours()
            if j.scheduled_start.date() == day
        )
        return hours + self.hours

    def daily_capacity_hours(self) -> float:
        lane = find_lane(self.equipment_id, self.ctx.org.equipment)
        if lane is None or not lane.capacity or lane.capacity <= 0:
            return DEFAULT_DAILY_CAPACITY_HOURS
        return lane.capacity / 60

    def utilization_percent(self) -> float:
        return self.same_day_hours() / self.daily_capacity_hours() * 100


def _hard(rule_type: RuleType, message: str, **details) -> RuleViolation:
    return RuleViolation(rule_type, message, RuleSeverity.HARD, details)


def _soft(rule_type: RuleType, message: str, **details) -> RuleViolation:
    return RuleViolation(rule_type, message, RuleSeverity.SOFT, details)


# Blocking rules

def check_batch_size(c: Candidate) -> Optional[RuleViolation]:
    batching = c.rules.batching_for(c.method)
    minimum = int(batching.get('minBatchSize') or 0)
    maximum = int(batching.get('maxBatchSize') or 0)
    qty = c.job.total_quantity or 0
    if minimum > 0 and qty < minimum:
        return _hard(RuleType.BATCH_SIZE,
                     f"Quantity {qty} is below the minimum batch size of {minimum}",
                     quantity=qty, min_batch_size=minimum)
    if maximum > 0 and qty > maximum:
        return _hard(RuleType.BATCH_SIZE,
                     f"Quantity {qty} exceeds the maximum batch size of {maximum}",
                     quantity=qty, max_batch_size=maximum)
    return None


def check_buffer_time(c: Candidate) -> Optional[RuleViolation]:
    buffer_minutes = c.rules.buffer_minutes(c.method)
    if buffer_minutes <= 0:
        return None
    pad = timedelta(minutes=buffer_minutes)
    window_start, window_end = c.start - pad, c.end + pad
    for other in c.neighbours():
        start, end = job_interval(other)
        if intervals_overlap(window_start, window_end, start, end):
            return _hard(RuleType.BUFFER_TIME,
                         f"Needs {buffer_minutes} min buffer from job {other.job_number or other.id} "
                         f"({start:%H:%M}-{end:%H:%M}) on {c.equipment_id}",
                         conflicting_job_id=other.id, buffer_minutes=buffer_minutes)
    return None


def check_material(c: Candidate) -> Optional[RuleViolation]:
    if not c.rules.material.get('checkStockBeforeScheduling'):
        return None
    status = (c.job.material_status or '').lower()
    if status not in MATERIAL_READY_STATUSES:
        return _hard(RuleType.MATERIAL,
                     f"Materials are not ready (status: {status or 'unknown'})",
                     material_status=status or None)
    return None


def _vendor_note(c: Candidate) -> str:
    vendors = c.rules.preferred_vendors(c.method)
    if not vendors:
        return 'No preferred vendors configured'
    return f"Consider outsourcing to: {', '.join(vendors)}"


def check_outsourcing_capacity(c: Candidate) -> Optional[RuleViolation]:
    auto = c.rules.outsourcing.get('autoOutsourcing') or {}
    threshold = float(auto.get('capacityThreshold') or 0)
    if not auto.get('enabled') or threshold <= 0:
        return None
    utilization = c.utilization_percent()
    if utilization >= threshold:
        return _hard(RuleType.OUTSOURCING_CAPACITY,
                     f"{c.equipment_id} would be at {round(utilization)}% of daily capacity "
                     f"(threshold {round(threshold)}%). {_vendor_note(c)}",
                     utilization=round(utilization, 1),
                     vendors=c.rules.preferred_vendors(c.method))
    return None


def check_outsourcing_lead_time(c: Candidate) -> Optional[RuleViolation]:
    auto = c.rules.outsourcing.get('autoOutsourcing') or {}
    buffer_days = float(auto.get('leadTimeBuffer') or 0)
    hours_left = c.hours_until_due()
    if not auto.get('enabled') or buffer_days <= 0 or hours_left is None:
        return None
    if hours_left < buffer_days * 24:
        return _hard(RuleType.OUTSOURCING_LEAD_TIME,
                     f"Only {max(round(hours_left), 0)}h until due, lead time buffer is "
                     f"{buffer_days:g} day(s). {_vendor_note(c)}",
                     hours_until_due=round(hours_left, 1),
                     vendors=c.rules.preferred_vendors(c.method))
    return None


# Advisory rules

def advise_reorder_point(c: Candidate) -> Optional[RuleViolation]:
    if not c.rules.material.get('reorderPointWarnings'):
        return None
    status = (c.job.material_status or '').lower()
    qty = c.job.total_quantity or 0
    threshold = c.rules.low_stock_threshold
    if status == 'low_stock':
        return _soft(RuleType.MATERIAL, "Materials are low on stock, reorder before production",
                     material_status=status, trigger='low_stock')
    if threshold > 0 and qty >= threshold:
        return _soft(RuleType.MATERIAL,
                     f"Quantity {qty} reaches the low stock threshold of {threshold}, check reorder points",
                     quantity=qty, low_stock_threshold=threshold, trigger='quantity')
    return None


def advise_due_date(c: Candidate) -> Optional[RuleViolation]:
    warnings = c.rules.notifications.get('dueDateWarnings') or {}
    hours_left = c.hours_until_due()
    if not warnings.get('enabled') or hours_left is None:
        return None
    matched = [h for h in warnings.get('warningHours') or [] if hours_left <= h]
    if not matched:
        return None
    if hours_left < 0:
        message = f"Job is past due by {round(-hours_left)}h"
    else:
        message = f"Job is due in {round(hours_left)}h (within {min(matched)}h warning)"
    return _soft(RuleType.DUE_DATE_WARNING, message, threshold_hours=min(matched))


def advise_capacity_overload(c: Candidate) -> Optional[RuleViolation]:
    overload = c.rules.notifications.get('capacityOverload') or {}
    threshold = float(overload.get('thresholdPercentage') or 0)
    if not overload.get('enabled') or threshold <= 0:
        return None
    utilization = c.utilization_percent()
    if utilization >= threshold:
        return _soft(RuleType.CAPACITY_OVERLOAD,
                     f"{c.equipment_id} at {round(utilization)}% of daily capacity",
                     utilization=round(utilization, 1))
    return None


def advise_maintenance(c: Candidate) -> Optional[RuleViolation]:
    maintenance = c.rules.notifications.get('equipmentMaintenance') or {}
    interval = float(maintenance.get('maintenanceIntervalHours') or 0)
    if not maintenance.get('enabled') or interval <= 0:
        return None
    before = sum(resolve_duration_hours(j) for j in c.neighbours())
    after = before + c.hours
    crossed = math.floor(after / interval) > math.floor(before / interval)
    until_next = interval - (after % interval)
    if crossed or until_next <= MAINTENANCE_TOLERANCE_HOURS:
        return _soft(RuleType.EQUIPMENT_MAINTENANCE,
                     f"{c.equipment_id} is due for maintenance "
                     f"({round(after)}h scheduled, interval {interval:g}h)",
                     scheduled_hours=round(after, 1))
    return None


def advise_rush_priority(c: Candidate) -> Optional[RuleViolation]:
    if not c.rules.rush_job_priority or (c.job.priority or '').lower() == 'high':
        return None
    for other in c.neighbours():
        if (other.priority or '').lower() != 'high' or other.due_date is None:
            continue
        if c.job.due_date is None or other.due_date < c.job.due_date:
            return _soft(RuleType.RUSH_PRIORITY,
                         f"High priority job {other.job_number or other.id} on {c.equipment_id} "
                         f"is due earlier",
                         rush_job_id=other.id)
    return None


def advise_cost(c: Candidate) -> List[RuleViolation]:
    cost = c.rules.cost
    notices = []

    rush = cost.get('rushJobSurcharge') or {}
    hours_left = c.hours_until_due()
    if rush.get('enabled') and hours_left is not None \
            and hours_left <= float(rush.get('rushThresholdHours') or 0):
        notices.append(_soft(RuleType.COST_OPTIMIZATION,
                             f"Rush job: consider a {rush.get('surchargePercentage')}% surcharge",
                             suggestion='rush_surcharge'))

    small = cost.get('smallQuantityPenalty') or {}
    minimum = int(small.get('minimumQuantity') or 0)
    if small.get('enabled') and (c.job.total_quantity or 0) < minimum:
        notices.append(_soft(RuleType.COST_OPTIMIZATION,
                             f"Quantity below {minimum}: consider a "
                             f"{small.get('penaltyPercentage')}% small order fee",
                             suggestion='small_quantity_penalty'))

    target = c.rules.utilization_target
    if target > 0:
        utilization = round(c.utilization_percent())
        if utilization > target + UTILIZATION_DEAD_BAND:
            notices.append(_soft(RuleType.COST_OPTIMIZATION,
                                 f"{c.equipment_id} utilization {utilization}% is above the "
                                 f"{target:g}% target",
                                 suggestion='utilization_high', utilization=utilization))
        elif utilization < target - UTILIZATION_DEAD_BAND:
            notices.append(_soft(RuleType.COST_OPTIMIZATION,
                                 f"{c.equipment_id} utilization {utilization}% is below the "
                                 f"{target:g}% target",
                                 suggestion='utilization_low', utilization=utilization))
    return notices


def qc_checkpoint_notice(rules, method: str, stage: Optional[str]) -> Optional[RuleViolation]:
    """QC checklist advisory for a method stage, or None when none is enabled"""
    if not stage:
        return None
    match = rules.qc_checkpoint(method, stage)
    if match is None:
        return None
    key, checkpoint = match
    items = list(checkpoint.get('checklistItems') or [])
    if not items:
        return None
    shown = items[:MAX_CHECKLIST_ITEMS]
    message = 'QC checklist: ' + '; '.join(shown)
    overflow = len(items) - len(shown)
    if overflow > 0:
        message += f' (+{overflow} more)'
    return _soft(RuleType.QUALITY_CHECKPOINT, message,
                 checkpoint=key, items=shown, overflow=overflow)


def advise_qc(c: Candidate) -> Optional[RuleViolation]:
    return qc_checkpoint_notice(c.rules, c.method, c.stage)


BLOCKING_RULES: List[Callable[[Candidate], Optional[RuleViolation]]] = [
    check_batch_size,
    check_buffer_time,
    check_material,
    check_outsourcing_capacity,
    check_outsourcing_lead_time,
]

ADVISORY_RULES = [
    advise_reorder_point,
    advise_due_date,
    advise_capacity_overload,
    advise_maintenance,
    advise_rush_priority,
    advise_cost,
    advise_qc,
]


class RulePipeline:
    """
    Ordered chain of production rule validators

    Usage:
        pipeline = RulePipeline()
        result = pipeline.evaluate(job, intent, ctx)
        if not result.is_valid:
            ...
    """

    def __init__(self, blocking_rules=None, advisory_rules=None):
        self.blocking_rules = list(blocking_rules if blocking_rules is not None else BLOCKING_RULES)
        self.advisory_rules = list(advisory_rules if advisory_rules is not None else ADVISORY_RULES)

    def build_candidate(self, job: Job, intent: SchedulingIntent,
                        ctx: SchedulingContext) -> Candidate:
        stage = intent.stage or ctx.selected_stage or job.current_stage
        start = intent.start_time
        return Candidate(
            job=job,
            stage=stage,
            equipment_id=intent.equipment_id,
            start=start,
            end=start + duration_delta(job, stage),
            ctx=ctx,
        )

    def evaluate(self, job: Job, intent: SchedulingIntent,
                 ctx: SchedulingContext) -> ValidationResult:
        """
        Run every rule for a proposed placement

        Args:
            job: The job being placed
            intent: Target equipment and start time
            ctx: Working set, organization configuration and actor

        Returns:
            ValidationResult; on a blocking failure it holds exactly that
            violation and no advisory notices
        """
        candidate = self.build_candidate(job, intent, ctx)
        result = ValidationResult(is_valid=True)

        for rule in self.blocking_rules:
            violation = rule(candidate)
            if violation is not None:
                result.add_violation(violation)
                logger.info(f"Job {job.id} rejected by {violation.rule_type.value}: {violation.message}")
                return result

        setup = candidate.rules.setup_time_buffer
        if setup > 0:
            result.end_extension_minutes = setup
            result.add_violation(_soft(RuleType.SETUP_BUFFER,
                                       f"{setup} min setup buffer added to end time",
                                       minutes=setup))

        for rule in self.advisory_rules:
            try:
                outcome = rule(candidate)
            except Exception as e:
                logger.warning(f"Advisory rule {rule.__name__} failed for job {job.id}: {e}", exc_info=True)
                continue
            if outcome is None:
                continue
            for notice in outcome if isinstance(outcome, list) else [outcome]:
                result.add_violation(notice)

        return result
