"""
Services package for the production scheduling engine
"""

from .validation_types import (
    ValidationResult,
    RuleViolation,
    RuleType,
    RuleSeverity,
)
from .job_types import (
    Actor,
    Job,
    JobStatus,
    Lane,
    OrgConfig,
    SchedulingContext,
    SchedulingIntent,
    SchedulingOutcome,
    TimeSlot,
)
from .lane_resolver import resolve_lanes
from .slot_filter import slots_for_lane, build_hour_grid
from .stage_gate import StageDependencyGate, SequentialStageGate
from .rule_pipeline import RulePipeline
from .effects import EffectRunner
from .scheduling_engine import SchedulingEngine
from .auto_scheduler import AutoScheduler

__all__ = [
    # Validation types
    'ValidationResult',
    'RuleViolation',
    'RuleType',
    'RuleSeverity',
    # Domain types
    'Actor',
    'Job',
    'JobStatus',
    'Lane',
    'OrgConfig',
    'SchedulingContext',
    'SchedulingIntent',
    'SchedulingOutcome',
    'TimeSlot',
    # Services
    'resolve_lanes',
    'slots_for_lane',
    'build_hour_grid',
    'StageDependencyGate',
    'SequentialStageGate',
    'RulePipeline',
    'EffectRunner',
    'SchedulingEngine',
    'AutoScheduler',
]
