"""
Domain types for the production scheduling engine
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .normalization import lookup_by_method
from .production_config import DEFAULT_STAGES, RuleConfiguration


class JobStatus(str, Enum):
    """Lifecycle states of a production job"""
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"

    @classmethod
    def normalize(cls, raw: Optional[str]) -> 'JobStatus':
        """
        Map a stored status string onto a JobStatus

        Legacy spellings ('in-progress', 'completed') are accepted; anything
        unrecognized is treated as unscheduled.
        """
        if isinstance(raw, JobStatus):
            return raw
        value = (raw or '').strip().lower().replace('-', '_')
        if value == 'completed':
            return cls.DONE
        try:
            return cls(value)
        except ValueError:
            return cls.UNSCHEDULED


PRIORITY_RANK = {'high': 0, 'medium': 1, 'low': 2}


@dataclass
class Job:
    """Working copy of a production job for a single engine operation"""
    id: str
    decoration_method: str
    current_stage: Optional[str] = None
    status: JobStatus = JobStatus.UNSCHEDULED
    total_quantity: int = 0
    stage_durations: Dict[str, float] = field(default_factory=dict)
    estimated_hours: float = 0.0
    due_date: Optional[datetime] = None
    priority: str = 'medium'
    equipment_id: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    material_status: Optional[str] = None
    assigned_user_id: Optional[str] = None
    predecessor_ids: List[str] = field(default_factory=list)
    job_number: Optional[str] = None
    customer_name: Optional[str] = None
    description: Optional[str] = None

    def copy(self, **changes) -> 'Job':
        return replace(self, **changes)

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_start is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'job_number': self.job_number,
            'decoration_method': self.decoration_method,
            'current_stage': self.current_stage,
            'status': self.status.value,
            'total_quantity': self.total_quantity,
            'stage_durations': dict(self.stage_durations),
            'estimated_hours': self.estimated_hours,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'priority': self.priority,
            'equipment_id': self.equipment_id,
            'scheduled_start': self.scheduled_start.isoformat() if self.scheduled_start else None,
            'scheduled_end': self.scheduled_end.isoformat() if self.scheduled_end else None,
            'material_status': self.material_status,
            'assigned_user_id': self.assigned_user_id,
            'predecessor_ids': list(self.predecessor_ids),
            'customer_name': self.customer_name,
            'description': self.description,
        }


@dataclass(frozen=True)
class Lane:
    """A piece of equipment (or work cell) jobs can be placed on"""
    id: str
    name: str
    type: str = 'Work Cell'
    capacity: int = 100
    source: str = 'builtin'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'capacity': self.capacity,
            'source': self.source,
        }


@dataclass(frozen=True)
class TimeSlot:
    """Hour-aligned display window within the operating day"""
    hour: int
    label: str


@dataclass(frozen=True)
class SchedulingIntent:
    """A single request to place a job on a lane for a time window"""
    job_id: str
    equipment_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    stage: Optional[str] = None


MANAGER_ROLES = frozenset({'production_manager', 'manager', 'admin', 'owner'})
OPERATOR_ROLE = 'operator'


@dataclass(frozen=True)
class Actor:
    """The caller on whose behalf an operation runs"""
    user_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_manager(self) -> bool:
        return (self.role or '').lower() in MANAGER_ROLES

    @property
    def is_operator(self) -> bool:
        return (self.role or '').lower() == OPERATOR_ROLE

    def can_schedule(self) -> bool:
        return self.is_manager or self.is_operator

    def can_operate(self, job: Job) -> bool:
        """Managers operate any job; operators only the jobs assigned to them"""
        if self.is_manager:
            return True
        return self.is_operator and job.assigned_user_id is not None \
            and job.assigned_user_id == self.user_id


@dataclass
class OrgConfig:
    """Organization configuration snapshot passed into every engine call"""
    org_id: str = 'default'
    equipment: List[Dict[str, Any]] = field(default_factory=list)
    rules: Optional[RuleConfiguration] = None
    methods: Dict[str, List[str]] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.rules is None:
            self.rules = RuleConfiguration.from_settings(None)
        if not self.methods:
            self.methods = {k: list(v) for k, v in DEFAULT_STAGES.items()}

    def stages_for(self, method: str) -> List[str]:
        return list(lookup_by_method(self.methods, method, []) or [])


@dataclass
class SchedulingContext:
    """Explicit working set for one engine operation"""
    jobs: List[Job]
    org: OrgConfig
    actor: Actor
    selected_stage: Optional[str] = None
    now: Optional[datetime] = None
    effect_runner: Any = None

    def find_job(self, job_id: str) -> Optional[Job]:
        return next((j for j in self.jobs if j.id == job_id), None)


class EffectKind(str, Enum):
    """Side effects produced by an engine decision"""
    MOVE_JOB = "move_job"
    UNSCHEDULE_STAGE = "unschedule_stage"
    UPDATE_STATUS = "update_status"
    AUDIT = "audit"
    ANALYTICS = "analytics"
    STATUS_CHANGE = "status_change"


@dataclass(frozen=True)
class Effect:
    """A deferred side effect, executed after the decision is committed locally"""
    kind: EffectKind
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SchedulingOutcome:
    """Result of a successful engine operation"""
    action: str
    job: Job
    notices: List[Any] = field(default_factory=list)
    effects: List[Effect] = field(default_factory=list)
    changed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'action': self.action,
            'changed': self.changed,
            'job': self.job.to_dict(),
            'notices': [n.to_dict() for n in self.notices],
        }
