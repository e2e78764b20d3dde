"""
Validation types and data classes for production rule checking
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List
from enum import Enum


class RuleType(str, Enum):
    """Production rules evaluated by the rule pipeline"""
    BATCH_SIZE = "batch_size"
    BUFFER_TIME = "buffer_time"
    MATERIAL = "material"
    OUTSOURCING_CAPACITY = "outsourcing_capacity"
    OUTSOURCING_LEAD_TIME = "outsourcing_lead_time"
    DUE_DATE_WARNING = "due_date_warning"
    CAPACITY_OVERLOAD = "capacity_overload"
    EQUIPMENT_MAINTENANCE = "equipment_maintenance"
    SETUP_BUFFER = "setup_buffer"
    RUSH_PRIORITY = "rush_priority"
    COST_OPTIMIZATION = "cost_optimization"
    QUALITY_CHECKPOINT = "quality_checkpoint"
    STAGE_TRANSITION = "stage_transition"
    JOB_STATE = "job_state"


class RuleSeverity(str, Enum):
    """Severity levels for rule violations"""
    HARD = "hard"  # Blocks the operation
    SOFT = "soft"  # Advisory notice only


@dataclass
class RuleViolation:
    """Represents a single rule violation or advisory notice"""
    rule_type: RuleType
    message: str
    severity: RuleSeverity
    details: dict = field(default_factory=dict)

    def __str__(self):
        return f"[{self.severity.upper()}] {self.rule_type.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.rule_type.value,
            'severity': 'error' if self.severity == RuleSeverity.HARD else 'warning',
            'message': self.message,
            'details': self.details,
        }


@dataclass
class ValidationResult:
    """Result of running the rule pipeline against a scheduling intent"""
    is_valid: bool = True
    violations: List[RuleViolation] = field(default_factory=list)
    end_extension_minutes: int = 0

    @property
    def hard_violations(self) -> List[RuleViolation]:
        """Get only blocking violations"""
        return [v for v in self.violations if v.severity == RuleSeverity.HARD]

    @property
    def soft_violations(self) -> List[RuleViolation]:
        """Get only advisory notices"""
        return [v for v in self.violations if v.severity == RuleSeverity.SOFT]

    @property
    def has_hard_violations(self) -> bool:
        return len(self.hard_violations) > 0

    def add_violation(self, violation: RuleViolation):
        """Add a violation to the result"""
        self.violations.append(violation)
        if violation.severity == RuleSeverity.HARD:
            self.is_valid = False
