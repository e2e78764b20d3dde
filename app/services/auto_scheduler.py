"""
Auto-Scheduler
Places ready, unscheduled jobs back-to-back on a method stage's configured lane
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from app.error_handlers.exceptions import AppException
from .job_types import Actor, Job, JobStatus, PRIORITY_RANK, SchedulingContext, SchedulingIntent
from .lane_resolver import resolve_configured_lanes
from .normalization import normalize_key, normalize_method_id
from .slot_filter import duration_delta, job_interval

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(user_id='auto-scheduler', role='admin')


@dataclass
class AutoScheduleResult:
    """Outcome of one auto-scheduler invocation"""
    key: Tuple[str, str, str, str]
    lane_id: Optional[str] = None
    placed: List[Job] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'method': self.key[0],
            'stage': self.key[1],
            'date': self.key[2],
            'lane_id': self.lane_id,
            'placed': [j.to_dict() for j in self.placed],
            'rejected': self.rejected,
            'skipped_reason': self.skipped_reason,
        }


class AutoScheduler:
    """
    Opportunistic placement heuristic

    Process:
    1. Fire at most once per (method, stage, date, org) key
    2. Skip when the organization has auto-scheduling turned off
    3. Collect unscheduled jobs of the method the stage gate marks ready
       for the stage, earliest due date first, then priority
    4. Use the first lane explicitly configured for the method stage
    5. Start at the configured hour (or now, for today) past the lane's
       last job of the day plus the method's buffer
    6. Hand up to MAX_JOBS jobs to the engine back-to-back

    Args:
        engine: SchedulingEngine every placement is delegated to
        start_hour: First hour of the placement cursor
        max_jobs: Placements per invocation
        clock: Callable returning the current datetime
    """

    MAX_JOBS = 3
    START_HOUR = 9

    def __init__(self, engine, start_hour: int = START_HOUR, max_jobs: int = MAX_JOBS,
                 clock=datetime.now):
        self.engine = engine
        self.start_hour = start_hour
        self.max_jobs = max_jobs
        self.clock = clock
        self._fired = set()
        self._guard = threading.Lock()

    def reset(self) -> None:
        """Forget fired keys (start of a new day, configuration change)"""
        with self._guard:
            self._fired.clear()

    def _claim_key(self, key) -> bool:
        with self._guard:
            if key in self._fired:
                return False
            self._fired.add(key)
            return True

    def eligible_jobs(self, method: str, stage: str, ctx: SchedulingContext) -> List[Job]:
        """
        Unscheduled jobs of the method that are ready for the stage

        The stage gate is consulted fail-open: if it raises, the job is
        treated as ready and the engine re-validates on placement.
        """
        method_id = normalize_method_id(method)
        stage_id = normalize_key(stage)
        gate = self.engine.gate_for(ctx)
        eligible = []
        for job in ctx.jobs:
            if job.status != JobStatus.UNSCHEDULED:
                continue
            if normalize_method_id(job.decoration_method) != method_id:
                continue
            if job.current_stage and normalize_key(job.current_stage) != stage_id:
                continue
            try:
                ready = stage_id in gate.is_ready(job, ctx.jobs)
            except Exception as e:
                logger.warning(f"Stage gate failed for job {job.id}, treating as ready: {e}")
                ready = True
            if ready:
                eligible.append(job)

        eligible.sort(key=lambda j: (j.due_date or datetime.max, PRIORITY_RANK.get(j.priority, 1)))
        return eligible

    def start_cursor(self, day: date, lane_id: str, ctx: SchedulingContext,
                     buffer: timedelta) -> datetime:
        cursor = datetime.combine(day, time(self.start_hour))
        now = ctx.now or self.clock()
        if day == now.date() and now > cursor:
            cursor = now.replace(second=0, microsecond=0)

        ends = []
        for job in ctx.jobs:
            if job.equipment_id != lane_id:
                continue
            interval = job_interval(job)
            if interval is not None and interval[0].date() == day:
                ends.append(interval[1])
        if ends:
            cursor = max(cursor, max(ends) + buffer)
        return cursor

    def run(self, method: str, stage: str, day: date, org_id: str,
            ctx: SchedulingContext) -> AutoScheduleResult:
        """
        Auto-schedule one method stage for a day

        Args:
            method: Decoration method
            stage: Target stage id
            day: Calendar day to fill
            org_id: Organization the run belongs to
            ctx: Working set and configuration; placements mutate ctx.jobs

        Returns:
            AutoScheduleResult with placed jobs, rejections, or the skip reason
        """
        stage_id = normalize_key(stage)
        key = (normalize_method_id(method), stage_id, day.isoformat(), org_id)
        result = AutoScheduleResult(key=key)

        if not self._claim_key(key):
            result.skipped_reason = 'already_ran'
            return result

        rules = ctx.org.rules
        if not rules.auto_scheduling:
            result.skipped_reason = 'disabled'
            return result

        lanes = resolve_configured_lanes(method, stage_id, ctx.org.equipment)
        if not lanes:
            logger.info(f"Auto-schedule {key}: no lane configured for {method}/{stage_id}")
            result.skipped_reason = 'no_configured_lane'
            return result
        lane = lanes[0]
        result.lane_id = lane.id

        eligible = self.eligible_jobs(method, stage_id, ctx)
        if not eligible:
            result.skipped_reason = 'no_eligible_jobs'
            return result

        buffer = timedelta(minutes=rules.buffer_minutes(method))
        cursor = self.start_cursor(day, lane.id, ctx, buffer)

        for job in eligible:
            if len(result.placed) >= self.max_jobs:
                break
            intent = SchedulingIntent(
                job_id=job.id,
                equipment_id=lane.id,
                start_time=cursor,
                end_time=cursor + duration_delta(job, stage_id),
                stage=stage_id,
            )
            try:
                outcome = self.engine.schedule(intent, ctx)
            except AppException as e:
                logger.info(f"Auto-schedule skipped job {job.id}: {e.message}")
                result.rejected.append({'job_id': job.id, 'reason': e.message})
                continue
            if outcome is None:
                continue
            result.placed.append(outcome.job)
            cursor = outcome.job.scheduled_end + buffer

        logger.info(f"Auto-schedule {key}: placed {len(result.placed)} job(s) on {lane.id}")
        return result


def configured_stage_pairs(org_equipment: List[Dict[str, Any]]) -> List[Tuple[str, str]]:
    """Distinct (method, stage) pairs that have at least one configured lane"""
    pairs = []
    for entry in org_equipment or []:
        for assignment in entry.get('stageAssignments') or []:
            method_id = normalize_method_id(assignment.get('decorationMethod'))
            for stage in assignment.get('stageIds') or []:
                pair = (method_id, normalize_key(stage))
                if method_id and pair[1] and pair not in pairs:
                    pairs.append(pair)
    return pairs
