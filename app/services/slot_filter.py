"""
Slot Filter
Buckets jobs into hour slots of a lane for a given day
"""
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .job_types import Job, Lane, TimeSlot

DEFAULT_DAY_START_HOUR = 8
DEFAULT_DAY_END_HOUR = 18
VIRTUAL_UNSCHEDULED = 'unscheduled'


def _hour_label(hour: int) -> str:
    suffix = 'AM' if hour < 12 else 'PM'
    display = hour % 12 or 12
    return f'{display}:00 {suffix}'


def build_hour_grid(start_hour: int = DEFAULT_DAY_START_HOUR,
                    end_hour: int = DEFAULT_DAY_END_HOUR) -> List[TimeSlot]:
    """Hourly slots from start_hour up to (not including) end_hour"""
    return [TimeSlot(hour=h, label=_hour_label(h)) for h in range(start_hour, end_hour)]


def resolve_duration_hours(job: Job, stage: Optional[str] = None) -> float:
    """
    Duration of a job's window for a stage

    The stage's own duration wins when positive, then the job's estimate,
    then one hour, so a window is never zero-length.
    """
    stage = stage or job.current_stage
    stage_hours = (job.stage_durations or {}).get(stage) if stage else None
    if stage_hours and stage_hours > 0:
        return float(stage_hours)
    if job.estimated_hours and job.estimated_hours > 0:
        return float(job.estimated_hours)
    return 1.0


def duration_delta(job: Job, stage: Optional[str] = None) -> timedelta:
    return timedelta(minutes=round(resolve_duration_hours(job, stage) * 60))


def job_interval(job: Job, stage: Optional[str] = None) -> Optional[Tuple[datetime, datetime]]:
    """[start, end) of a scheduled job, or None if it has no start"""
    if job.scheduled_start is None:
        return None
    end = job.scheduled_end or job.scheduled_start + duration_delta(job, stage)
    return job.scheduled_start, end


def intervals_overlap(a_start: datetime, a_end: datetime,
                      b_start: datetime, b_end: datetime) -> bool:
    """Strict half-open overlap: touching endpoints do not conflict"""
    return a_start < b_end and a_end > b_start


def slots_for_lane(lane: Lane, jobs: Iterable[Job], day: date,
                   hour_grid: List[TimeSlot], stage: Optional[str] = None,
                   virtual_mode: Optional[str] = None) -> Dict[int, List[Job]]:
    """
    Jobs occupying each hour slot of a lane

    Args:
        lane: Lane being rendered
        jobs: Candidate jobs
        day: Calendar day of the grid
        hour_grid: Slots to fill (see build_hour_grid)
        stage: Selected stage, used to resolve durations of jobs without an end
        virtual_mode: 'unscheduled' to list every unscheduled job in the first slot

    Returns:
        OrderedDict of hour -> jobs, one key per slot
    """
    buckets: Dict[int, List[Job]] = OrderedDict((slot.hour, []) for slot in hour_grid)
    if not hour_grid:
        return buckets

    if virtual_mode == VIRTUAL_UNSCHEDULED:
        first_hour = hour_grid[0].hour
        buckets[first_hour] = [j for j in jobs if j.scheduled_start is None]
        return buckets

    placed = []
    for job in jobs:
        if job.equipment_id != lane.id:
            continue
        interval = job_interval(job, stage)
        if interval is not None:
            placed.append((job, interval))

    for slot in hour_grid:
        slot_start = datetime.combine(day, time(slot.hour))
        slot_end = slot_start + timedelta(hours=1)
        buckets[slot.hour] = [
            job for job, (start, end) in placed
            if intervals_overlap(start, end, slot_start, slot_end)
        ]
    return buckets


def lane_utilization(lane: Lane, jobs: Iterable[Job], hour_grid: List[TimeSlot],
                     day: Optional[date] = None) -> int:
    """
    Display utilization of a lane as a whole percentage

    Sum of estimated hours of the lane's jobs over the operating window length.
    """
    if not hour_grid:
        return 0
    hours = 0.0
    for job in jobs:
        if job.equipment_id != lane.id:
            continue
        if day is not None and (job.scheduled_start is None or job.scheduled_start.date() != day):
            continue
        hours += job.estimated_hours or 0
    return round(hours / len(hour_grid) * 100)
