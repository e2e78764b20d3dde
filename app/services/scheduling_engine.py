"""
Scheduling Engine - production job transactions
Validates and applies schedule, unschedule, stage and status changes
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import timedelta
from typing import Dict, FrozenSet, Optional

from app.error_handlers.exceptions import (
    AuthorizationException,
    CollaboratorUnavailableException,
    JobNotFoundException,
    SchedulingRejected,
)
from .job_types import (
    Effect,
    EffectKind,
    Job,
    JobStatus,
    SchedulingContext,
    SchedulingIntent,
    SchedulingOutcome,
)
from .rule_pipeline import RulePipeline, qc_checkpoint_notice
from .slot_filter import duration_delta
from .stage_gate import SequentialStageGate, StageDependencyGate
from .validation_types import RuleSeverity, RuleType, RuleViolation

logger = logging.getLogger(__name__)


# action -> (allowed source statuses, target status)
STATUS_TRANSITIONS: Dict[str, tuple] = {
    'start': (frozenset({JobStatus.SCHEDULED}), JobStatus.IN_PROGRESS),
    'mark_done': (frozenset({JobStatus.SCHEDULED, JobStatus.IN_PROGRESS}), JobStatus.DONE),
    'block': (frozenset({JobStatus.SCHEDULED, JobStatus.IN_PROGRESS}), JobStatus.BLOCKED),
    'unblock': (frozenset({JobStatus.BLOCKED}), JobStatus.SCHEDULED),
    'reopen': (frozenset({JobStatus.BLOCKED}), JobStatus.SCHEDULED),
}

LOCKED_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.BLOCKED, JobStatus.DONE})


def _iso(value):
    return value.isoformat() if value else None


def _rejected(rule_type: RuleType, message: str, **details) -> SchedulingRejected:
    violation = RuleViolation(rule_type, message, RuleSeverity.HARD, details)
    return SchedulingRejected(message, violations=[violation])


class SchedulingEngine:
    """
    Transactional entry point for every production job mutation

    Each operation:
    1. Checks the actor's permission
    2. Claims the job id (a duplicate while one is in flight returns None)
    3. Decides against the working set in the SchedulingContext
    4. Mutates the working copy and records the side effects to perform
    5. Runs the effects through the EffectRunner (failures are only logged)
    6. Releases the claim, including on rejection

    Args:
        pipeline: RulePipeline for schedule intents
        stage_gate: StageDependencyGate; defaults to a SequentialStageGate
                    over the organization's configured stages
        effect_runner: EffectRunner, or None to only return effects
    """

    def __init__(self, pipeline: Optional[RulePipeline] = None,
                 stage_gate: Optional[StageDependencyGate] = None,
                 effect_runner=None):
        self.pipeline = pipeline or RulePipeline()
        self.stage_gate = stage_gate
        self.effect_runner = effect_runner
        self._in_flight = set()
        self._guard = threading.Lock()

    # Concurrency guard

    @contextmanager
    def _claim(self, job_id: str):
        with self._guard:
            claimed = job_id not in self._in_flight
            if claimed:
                self._in_flight.add(job_id)
        try:
            yield claimed
        finally:
            if claimed:
                with self._guard:
                    self._in_flight.discard(job_id)

    def is_in_flight(self, job_id: str) -> bool:
        with self._guard:
            return job_id in self._in_flight

    # Helpers

    def gate_for(self, ctx: SchedulingContext) -> StageDependencyGate:
        return self.stage_gate or SequentialStageGate(ctx.org.methods)

    def _lookup(self, job_id: str, ctx: SchedulingContext) -> Job:
        job = ctx.find_job(job_id)
        if job is None:
            raise JobNotFoundException(job_id)
        return job

    def _commit_local(self, ctx: SchedulingContext, updated: Job) -> None:
        for index, job in enumerate(ctx.jobs):
            if job.id == updated.id:
                ctx.jobs[index] = updated
                return
        ctx.jobs.append(updated)

    def _finish(self, outcome: SchedulingOutcome, ctx: SchedulingContext) -> SchedulingOutcome:
        if outcome.changed:
            self._commit_local(ctx, outcome.job)
        runner = ctx.effect_runner or self.effect_runner
        if runner is not None and outcome.effects:
            runner.run(outcome.effects, ctx.org.settings)
        return outcome

    def _require_operator(self, job: Job, ctx: SchedulingContext) -> None:
        if not ctx.actor.can_operate(job):
            raise AuthorizationException(
                f'User {ctx.actor.user_id or "anonymous"} may not operate job {job.id}'
            )

    # Operations

    def schedule(self, intent: SchedulingIntent, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        """
        Place a job on a lane for a time window

        Args:
            intent: Target job, equipment, start time and stage
            ctx: Working set, organization configuration and actor

        Returns:
            SchedulingOutcome, or None when the job already has an operation in flight

        Raises:
            AuthorizationException: Actor may not schedule
            JobNotFoundException: Unknown job id
            SchedulingRejected: Job blocked/done, invalid stage, or a blocking rule failed
            CollaboratorUnavailableException: The stage gate raised
        """
        if not ctx.actor.can_schedule():
            raise AuthorizationException('Scheduling requires a manager or operator role')

        with self._claim(intent.job_id) as claimed:
            if not claimed:
                logger.info(f"Dropping duplicate schedule intent for job {intent.job_id}")
                return None
            outcome = self._decide_schedule(intent, ctx)
            return self._finish(outcome, ctx)

    def _decide_schedule(self, intent: SchedulingIntent, ctx: SchedulingContext) -> SchedulingOutcome:
        job = self._lookup(intent.job_id, ctx)
        if job.status in LOCKED_STATUSES:
            raise _rejected(RuleType.JOB_STATE, f'Job {job.id} is {job.status.value} and cannot be scheduled',
                            status=job.status.value)

        from_stage = job.current_stage
        to_stage = intent.stage or ctx.selected_stage or from_stage

        if from_stage and to_stage and from_stage != to_stage:
            try:
                available = self.gate_for(ctx).available_stages(job.copy(current_stage=to_stage), ctx.jobs)
            except Exception as e:
                logger.error(f"Stage gate failed for job {job.id}: {e}", exc_info=True)
                raise CollaboratorUnavailableException(
                    'Stage dependencies could not be checked', details={'job_id': job.id}
                ) from e
            if to_stage not in available:
                raise _rejected(RuleType.STAGE_TRANSITION,
                                f'Job {job.id} cannot move from {from_stage} to {to_stage}',
                                from_stage=from_stage, to_stage=to_stage,
                                available=sorted(available))

        intent = replace(intent, stage=to_stage)
        result = self.pipeline.evaluate(job, intent, ctx)
        if not result.is_valid:
            first = result.hard_violations[0]
            raise SchedulingRejected(first.message, violations=result.hard_violations)

        start = intent.start_time
        end = start + duration_delta(job, to_stage) + timedelta(minutes=result.end_extension_minutes)
        updated = job.copy(
            status=JobStatus.SCHEDULED,
            current_stage=to_stage,
            equipment_id=intent.equipment_id,
            scheduled_start=start,
            scheduled_end=end,
        )

        effects = [
            Effect(EffectKind.MOVE_JOB, {
                'job_id': job.id, 'stage': to_stage, 'start': start, 'end': end,
                'equipment_id': intent.equipment_id,
            }),
            Effect(EffectKind.AUDIT, {
                'job_id': job.id, 'action': 'schedule',
                'details': {
                    'fromStage': from_stage, 'toStage': to_stage,
                    'start': _iso(start), 'end': _iso(end),
                    'equipment_id': intent.equipment_id,
                    'requested_end': _iso(intent.end_time),
                },
            }),
            Effect(EffectKind.ANALYTICS, {
                'event': 'job_scheduled',
                'properties': {'job_id': job.id, 'stage': to_stage, 'equipment_id': intent.equipment_id},
            }),
        ]
        if from_stage != to_stage:
            effects.append(Effect(EffectKind.ANALYTICS, {
                'event': 'job_stage_changed',
                'properties': {'job_id': job.id, 'from': from_stage, 'to': to_stage},
            }))

        logger.info(f"Job {job.id} scheduled on {intent.equipment_id} {start:%Y-%m-%d %H:%M}-{end:%H:%M}")
        return SchedulingOutcome('schedule', updated, result.soft_violations, effects)

    def unschedule(self, job_id: str, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        """
        Clear the selected stage's equipment and window

        The job's own placement and status only change when the selected
        stage is its current stage.

        Returns:
            SchedulingOutcome, or None when the job already has an operation in flight
        """
        job = self._lookup(job_id, ctx)
        self._require_operator(job, ctx)

        with self._claim(job_id) as claimed:
            if not claimed:
                logger.info(f"Dropping duplicate unschedule for job {job_id}")
                return None
            job = self._lookup(job_id, ctx)
            if job.status in LOCKED_STATUSES:
                raise _rejected(RuleType.JOB_STATE,
                                f'Job {job.id} is {job.status.value} and cannot be unscheduled',
                                status=job.status.value)

            stage = ctx.selected_stage or job.current_stage
            if stage is None or stage == job.current_stage:
                updated = job.copy(status=JobStatus.UNSCHEDULED, equipment_id=None,
                                   scheduled_start=None, scheduled_end=None)
            else:
                # another stage's window; the current placement stays
                updated = job.copy()
            effects = [
                Effect(EffectKind.UNSCHEDULE_STAGE, {'job_id': job.id, 'stage': stage}),
                Effect(EffectKind.AUDIT, {
                    'job_id': job.id, 'action': 'unschedule',
                    'details': {'fromStage': stage, 'toStage': None},
                }),
                Effect(EffectKind.ANALYTICS, {
                    'event': 'job_status_changed',
                    'properties': {'job_id': job.id, 'from': job.status.value,
                                   'to': updated.status.value},
                }),
            ]
            return self._finish(SchedulingOutcome('unschedule', updated, [], effects), ctx)

    def advance_stage(self, job_id: str, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        """
        Move a job to its method's next stage and return it to the unscheduled pool

        At the last stage this is a no-op: the outcome has changed=False and
        carries no effects.
        """
        job = self._lookup(job_id, ctx)
        self._require_operator(job, ctx)

        with self._claim(job_id) as claimed:
            if not claimed:
                logger.info(f"Dropping duplicate stage advance for job {job_id}")
                return None
            job = self._lookup(job_id, ctx)
            stages = ctx.org.stages_for(job.decoration_method)
            if job.current_stage in stages:
                next_index = stages.index(job.current_stage) + 1
            else:
                next_index = 0 if job.current_stage is None else len(stages)
            if next_index >= len(stages):
                return SchedulingOutcome('advance_stage', job, [], [], changed=False)

            if job.status in LOCKED_STATUSES:
                raise _rejected(RuleType.JOB_STATE,
                                f'Job {job.id} is {job.status.value} and cannot change stage',
                                status=job.status.value)

            from_stage, to_stage = job.current_stage, stages[next_index]
            updated = job.copy(current_stage=to_stage, status=JobStatus.UNSCHEDULED,
                               equipment_id=None, scheduled_start=None, scheduled_end=None)
            notices = []
            qc = qc_checkpoint_notice(ctx.org.rules, job.decoration_method, from_stage)
            if qc is not None:
                notices.append(qc)
            effects = [
                Effect(EffectKind.MOVE_JOB, {
                    'job_id': job.id, 'stage': to_stage, 'start': None, 'end': None,
                    'equipment_id': None,
                }),
                Effect(EffectKind.AUDIT, {
                    'job_id': job.id, 'action': 'advance_stage',
                    'details': {'fromStage': from_stage, 'toStage': to_stage},
                }),
                Effect(EffectKind.ANALYTICS, {
                    'event': 'job_stage_changed',
                    'properties': {'job_id': job.id, 'from': from_stage, 'to': to_stage},
                }),
            ]
            return self._finish(SchedulingOutcome('advance_stage', updated, notices, effects), ctx)

    def _transition(self, action: str, job_id: str, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        allowed, target = STATUS_TRANSITIONS[action]
        job = self._lookup(job_id, ctx)
        self._require_operator(job, ctx)

        with self._claim(job_id) as claimed:
            if not claimed:
                logger.info(f"Dropping duplicate {action} for job {job_id}")
                return None
            job = self._lookup(job_id, ctx)
            if job.status not in allowed:
                raise _rejected(RuleType.JOB_STATE,
                                f'Cannot {action.replace("_", " ")} job {job.id} while {job.status.value}',
                                status=job.status.value, action=action)

            updated = job.copy(status=target)
            effects = [
                Effect(EffectKind.UPDATE_STATUS, {'job_id': job.id, 'status': target.value}),
                Effect(EffectKind.AUDIT, {
                    'job_id': job.id, 'action': action,
                    'details': {'stage': job.current_stage},
                }),
                Effect(EffectKind.ANALYTICS, {
                    'event': 'job_status_changed',
                    'properties': {'job_id': job.id, 'from': job.status.value, 'to': target.value},
                }),
            ]
            if target == JobStatus.DONE:
                effects.append(Effect(EffectKind.ANALYTICS, {
                    'event': 'job_done', 'properties': {'job_id': job.id},
                }))
            effects.append(Effect(EffectKind.STATUS_CHANGE, {
                'entityType': 'job',
                'entityId': job.id,
                'toStatus': target.value,
                'fromStatus': job.status.value,
                'payload': {'job': updated.to_dict()},
            }))
            return self._finish(SchedulingOutcome(action, updated, [], effects), ctx)

    def start(self, job_id: str, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        return self._transition('start', job_id, ctx)

    def mark_done(self, job_id: str, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        return self._transition('mark_done', job_id, ctx)

    def block_toggle(self, job_id: str, ctx: SchedulingContext,
                     block: Optional[bool] = None) -> Optional[SchedulingOutcome]:
        """Block or unblock a job; with block=None the current state is flipped"""
        if block is None:
            job = self._lookup(job_id, ctx)
            block = job.status != JobStatus.BLOCKED
        return self._transition('block' if block else 'unblock', job_id, ctx)

    def reopen(self, job_id: str, ctx: SchedulingContext) -> Optional[SchedulingOutcome]:
        return self._transition('reopen', job_id, ctx)
