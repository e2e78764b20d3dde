"""
Lane Resolver
Maps (decoration method, stage) onto the equipment lanes a job can be placed on
"""
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .job_types import Lane
from .normalization import normalize_key, normalize_method_id, to_title
from .production_config import BUILTIN_EQUIPMENT

logger = logging.getLogger(__name__)

GENERIC_LANE_TYPE = 'Work Cell'
GENERIC_LANE_CAPACITY = 100


def _matches(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern)
    return lambda stage: bool(compiled.search(stage))


def _always(stage: str) -> bool:
    return True


# Ordered keyword routes for stages that are not in the built-in table.
# Each row is (method, predicate on the normalized stage id, built-in stage).
# The first matching row for the method wins.
HEURISTIC_ROUTES: List[Tuple[str, Callable[[str], bool], str]] = [
    ('screen_printing', _matches(r'burn|screen'), 'burn_screens'),
    ('screen_printing', _matches(r'mix|ink'), 'mix_ink'),
    ('screen_printing', _matches(r'print'), 'print'),
    ('screen_printing', _always, 'burn_screens'),
    ('dtf', _matches(r'design|art'), 'design_file'),
    ('dtf', _matches(r'(^|_)dtf(_|$)|print'), 'dtf_print'),
    ('dtf', _matches(r'powder'), 'powder'),
    ('dtf', _matches(r'cure|oven|bake'), 'cure'),
    ('dtg', _matches(r'pretreat|pre_treat'), 'pretreat'),
    ('dtg', _matches(r'print'), 'dtg_print'),
    ('dtg', _matches(r'cure|oven'), 'dtg_cure'),
]


def _builtin_lanes(method_id: str, stage_id: str, source: str = 'builtin') -> List[Lane]:
    rows = BUILTIN_EQUIPMENT.get(method_id, {}).get(stage_id, [])
    return [
        Lane(id=lane_id, name=name, capacity=capacity, type=lane_type, source=source)
        for lane_id, name, capacity, lane_type in rows
    ]


def _lane_from_config(entry: Dict[str, Any]) -> Lane:
    lane_type = entry.get('type') or GENERIC_LANE_TYPE
    try:
        capacity = int(entry.get('capacity') or GENERIC_LANE_CAPACITY)
    except (TypeError, ValueError):
        capacity = GENERIC_LANE_CAPACITY
    return Lane(
        id=str(entry.get('id')),
        name=entry.get('name') or to_title(lane_type),
        type=lane_type,
        capacity=capacity,
        source='configured',
    )


def _assigned_to(entry: Dict[str, Any], method_id: str, stage_id: str) -> bool:
    for assignment in entry.get('stageAssignments') or []:
        if normalize_method_id(assignment.get('decorationMethod')) != method_id:
            continue
        if stage_id in {normalize_key(s) for s in assignment.get('stageIds') or []}:
            return True
    return False


def resolve_configured_lanes(method: str, stage: str,
                             org_equipment: Optional[Iterable[Dict[str, Any]]]) -> List[Lane]:
    """
    Lanes the organization has explicitly assigned to a method stage

    Args:
        method: Decoration method in any spelling
        stage: Stage id
        org_equipment: Organization equipment configuration entries

    Returns:
        List of configured lanes (may be empty)
    """
    method_id = normalize_method_id(method)
    stage_id = normalize_key(stage)
    return [
        _lane_from_config(entry)
        for entry in org_equipment or []
        if entry.get('id') and _assigned_to(entry, method_id, stage_id)
    ]


def generic_lanes(method: str, stage: str) -> List[Lane]:
    method_id = normalize_method_id(method) or 'method'
    stage_id = normalize_key(stage) or 'stage'
    return [
        Lane(
            id=f'{method_id}-{stage_id}-{n}',
            name=f'{to_title(method_id)} {to_title(stage_id)} {n}',
            type=GENERIC_LANE_TYPE,
            capacity=GENERIC_LANE_CAPACITY,
            source='generic',
        )
        for n in (1, 2)
    ]


def resolve_lanes(method: str, stage: str,
                  org_equipment: Optional[Iterable[Dict[str, Any]]] = None) -> List[Lane]:
    """
    Resolve the equipment lanes for a decoration method stage

    Falls back in order: organization configuration, built-in table,
    keyword heuristics, two synthesized generic lanes. Never returns an
    empty list.

    Args:
        method: Decoration method in any spelling
        stage: Stage id
        org_equipment: Organization equipment configuration entries

    Returns:
        Non-empty list of Lane
    """
    configured = resolve_configured_lanes(method, stage, org_equipment)
    if configured:
        return configured

    method_id = normalize_method_id(method)
    stage_id = normalize_key(stage)

    builtin = _builtin_lanes(method_id, stage_id)
    if builtin:
        return builtin

    for route_method, predicate, builtin_stage in HEURISTIC_ROUTES:
        if route_method == method_id and predicate(stage_id):
            lanes = _builtin_lanes(method_id, builtin_stage, source='heuristic')
            if lanes:
                logger.debug(f"Stage {stage_id!r} of {method_id} routed to {builtin_stage} lanes")
                return lanes

    return generic_lanes(method_id, stage_id)


def find_lane(equipment_id: Optional[str],
              org_equipment: Optional[Iterable[Dict[str, Any]]] = None) -> Optional[Lane]:
    """Look up a lane by id in the organization configuration, then the built-in table"""
    if not equipment_id:
        return None
    for entry in org_equipment or []:
        if str(entry.get('id')) == equipment_id:
            return _lane_from_config(entry)
    for method_id, stages in BUILTIN_EQUIPMENT.items():
        for stage_id in stages:
            for lane in _builtin_lanes(method_id, stage_id):
                if lane.id == equipment_id:
                    return lane
    return None
