"""
Production configuration: decoration methods, stages, built-in equipment and
production rule defaults.

Organization settings are stored as a JSON document. The relevant parts are:

    {
        "production": {
            "methods": {"screen_printing": ["burn_screens", "mix_ink", "print"]},
            "equipment": [{"id": ..., "stageAssignments": [...]}],
            "productionRules": {...}
        },
        "automations": {...}
    }

Everything is optional; missing pieces fall back to the defaults below.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from .normalization import (
    lookup_by_method,
    normalize_key,
    normalize_method_id,
    qc_checkpoint_keys,
)

logger = logging.getLogger(__name__)


# Ordered stage lists per decoration method
DEFAULT_STAGES: Dict[str, List[str]] = {
    'screen_printing': ['burn_screens', 'mix_ink', 'print'],
    'embroidery': ['digitize', 'hoop', 'embroider'],
    'dtf': ['design_file', 'dtf_print', 'powder', 'cure'],
    'dtg': ['pretreat', 'dtg_print', 'dtg_cure'],
}

# Built-in lanes: method -> stage -> [(id, name, capacity, type)]
BUILTIN_EQUIPMENT: Dict[str, Dict[str, List[Tuple[str, str, int, str]]]] = {
    'screen_printing': {
        'burn_screens': [
            ('screen-room-1', 'Screen Room A', 20, 'Screen Station'),
            ('screen-room-2', 'Screen Room B', 20, 'Screen Station'),
        ],
        'mix_ink': [
            ('ink-station-1', 'Ink Station 1', 10, 'Ink Mixing'),
            ('ink-station-2', 'Ink Station 2', 10, 'Ink Mixing'),
        ],
        'print': [
            ('press-1', 'M&R Sportsman E', 840, 'Automatic Press'),
            ('press-2', 'M&R Gauntlet III', 720, 'Automatic Press'),
            ('press-3', 'Manual Press #1', 300, 'Manual Press'),
        ],
    },
    'embroidery': {
        'digitize': [
            ('digitize-1', 'Digitizing Station 1', 5, 'Digitizing'),
            ('digitize-2', 'Digitizing Station 2', 5, 'Digitizing'),
        ],
        'hoop': [
            ('hoop-station-1', 'Hooping Station', 50, 'Hooping'),
        ],
        'embroider': [
            ('emb-1', 'Brother PR-1050X', 200, '10-Head Machine'),
            ('emb-2', 'Tajima TMAR-1501', 180, '15-Head Machine'),
        ],
    },
    'dtf': {
        'design_file': [
            ('design-station-1', 'Design Station', 10, 'Design Work'),
        ],
        'dtf_print': [
            ('dtf-printer-1', 'Epson F570', 400, 'DTF Printer'),
        ],
        'powder': [
            ('powder-station-1', 'Powder Station', 200, 'Powder Application'),
        ],
        'cure': [
            ('cure-oven-1', 'Cure Oven', 100, 'Curing Oven'),
        ],
    },
    'dtg': {
        'pretreat': [
            ('pretreat-1', 'Pretreat Station', 500, 'Pretreatment'),
        ],
        'dtg_print': [
            ('dtg-1', 'Brother GTX', 300, 'DTG Printer'),
            ('dtg-2', 'Epson F2100', 250, 'DTG Printer'),
        ],
        'dtg_cure': [
            ('dtg-cure-1', 'DTG Cure Tunnel', 200, 'Curing'),
        ],
    },
}

DEFAULT_PRODUCTION_RULES: Dict[str, Any] = {
    'batchingRules': {
        'screenPrinting': {'minBatchSize': 12, 'maxBatchSize': 144, 'bufferTime': 15},
        'embroidery': {'minBatchSize': 6, 'maxBatchSize': 72, 'bufferTime': 10},
        'dtf': {'minBatchSize': 1, 'maxBatchSize': 50, 'bufferTime': 5},
        'dtg': {'minBatchSize': 1, 'maxBatchSize': 25, 'bufferTime': 5},
    },
    'qualityControl': {
        'artApprovalRequired': True,
        'sampleApprovalThreshold': 50,
        'qualityCheckpoints': {
            'art_prep': {'enabled': True, 'checklistItems': ['Colors match specifications', 'Artwork is print-ready']},
            'printing': {'enabled': True, 'checklistItems': ['Registration is correct', 'Colors are accurate']},
            'finishing': {'enabled': True, 'checklistItems': ['Quality check passed', 'Packaging complete']},
        },
    },
    'materialRules': {
        'checkStockBeforeScheduling': True,
        'reorderPointWarnings': True,
        'lowStockThreshold': 20,
    },
    'notificationRules': {
        'dueDateWarnings': {'enabled': True, 'warningHours': [24, 48, 72]},
        'equipmentMaintenance': {'enabled': True, 'maintenanceIntervalHours': 200},
        'capacityOverload': {'enabled': True, 'thresholdPercentage': 90},
    },
    'costOptimization': {
        'rushJobSurcharge': {'enabled': True, 'surchargePercentage': 25, 'rushThresholdHours': 48},
        'smallQuantityPenalty': {'enabled': False, 'minimumQuantity': 12, 'penaltyPercentage': 15},
        'equipmentUtilizationTarget': 85,
    },
    'outsourcingRules': {
        'autoOutsourcing': {'enabled': False, 'capacityThreshold': 95, 'leadTimeBuffer': 2},
        'preferredVendors': {
            'screenPrinting': ['Local Screen Shop', 'Quick Print Co.'],
            'embroidery': ['Stitch Masters', 'Thread Works'],
        },
    },
    'autoScheduling': True,
    'setupTimeBuffer': 15,
    'rushJobPriority': True,
}


def deep_merge(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively merge ``override`` over a copy of ``base``"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _num(value, default=0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class RuleConfiguration:
    """
    Read-only view over an organization's production rules

    Loaded rules are merged over DEFAULT_PRODUCTION_RULES group by group,
    so a partially-authored configuration keeps every default it does not
    override.
    """

    def __init__(self, raw: Optional[Dict[str, Any]] = None):
        self.raw = deep_merge(DEFAULT_PRODUCTION_RULES, raw)

    @classmethod
    def from_settings(cls, org_settings: Optional[Dict[str, Any]]) -> 'RuleConfiguration':
        production = (org_settings or {}).get('production') or {}
        return cls(production.get('productionRules'))

    def _group(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    # Flat flags

    @property
    def auto_scheduling(self) -> bool:
        return bool(self.raw.get('autoScheduling'))

    @property
    def setup_time_buffer(self) -> int:
        return int(_num(self.raw.get('setupTimeBuffer')))

    @property
    def rush_job_priority(self) -> bool:
        return bool(self.raw.get('rushJobPriority'))

    # Groups

    def batching_for(self, method: str) -> Dict[str, Any]:
        return lookup_by_method(self._group('batchingRules'), method, {}) or {}

    def buffer_minutes(self, method: str) -> int:
        return int(_num(self.batching_for(method).get('bufferTime')))

    @property
    def material(self) -> Dict[str, Any]:
        return self._group('materialRules')

    @property
    def notifications(self) -> Dict[str, Any]:
        return self._group('notificationRules')

    @property
    def cost(self) -> Dict[str, Any]:
        return self._group('costOptimization')

    @property
    def utilization_target(self) -> float:
        return _num(self.cost.get('equipmentUtilizationTarget'))

    @property
    def low_stock_threshold(self) -> int:
        return int(_num(self.material.get('lowStockThreshold')))

    @property
    def outsourcing(self) -> Dict[str, Any]:
        return self._group('outsourcingRules')

    def preferred_vendors(self, method: str) -> List[str]:
        vendors = self.outsourcing.get('preferredVendors') or {}
        return list(lookup_by_method(vendors, method, []) or [])

    def qc_checkpoint(self, method: str, stage: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Find the enabled QC checkpoint for a method stage

        Returns:
            (key, checkpoint) for the first enabled match, or None
        """
        checkpoints = self._group('qualityControl').get('qualityCheckpoints') or {}
        for key in qc_checkpoint_keys(method, stage):
            checkpoint = checkpoints.get(key)
            if checkpoint and checkpoint.get('enabled'):
                return key, checkpoint
        return None

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


def load_method_stages(org_settings: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    Ordered stage lists per decoration method

    Accepts either ``{"method": ["stage", ...]}`` or a list of
    ``{"id": ..., "stages": [{"id": ...}, ...]}`` entries. Methods and stages
    are canonicalized; configured methods override the defaults.
    """
    stages = {k: list(v) for k, v in DEFAULT_STAGES.items()}
    configured = ((org_settings or {}).get('production') or {}).get('methods')
    if not configured:
        return stages

    if isinstance(configured, dict):
        entries = [{'id': k, 'stages': v} for k, v in configured.items()]
    else:
        entries = configured

    for entry in entries:
        method_id = normalize_method_id(entry.get('id') or entry.get('name'))
        if not method_id:
            continue
        stage_ids = []
        for stage in entry.get('stages') or []:
            stage_id = normalize_key(stage.get('id') if isinstance(stage, dict) else stage)
            if stage_id:
                stage_ids.append(stage_id)
        if stage_ids:
            stages[method_id] = stage_ids
        else:
            logger.warning(f"Ignoring method {method_id!r} with no stages")
    return stages


def load_org_equipment(org_settings: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    equipment = ((org_settings or {}).get('production') or {}).get('equipment')
    return [e for e in (equipment or []) if isinstance(e, dict)]


def build_org_config(org_id: str, org_settings: Optional[Dict[str, Any]]):
    """Assemble an OrgConfig snapshot from a raw settings document"""
    from .job_types import OrgConfig

    settings = org_settings or {}
    return OrgConfig(
        org_id=org_id,
        equipment=load_org_equipment(settings),
        rules=RuleConfiguration.from_settings(settings),
        methods=load_method_stages(settings),
        settings=settings,
    )
