"""
Unit tests for hour slots, durations and interval overlap.
"""
import pytest
from datetime import date, datetime, timedelta

from app.services.job_types import Lane
from app.services.slot_filter import (
    VIRTUAL_UNSCHEDULED,
    build_hour_grid,
    duration_delta,
    intervals_overlap,
    lane_utilization,
    resolve_duration_hours,
    slots_for_lane,
)

DAY = date(2030, 1, 7)
LANE = Lane(id='press-1', name='M&R Sportsman E', capacity=840)


def at(hour, minute=0):
    return datetime(2030, 1, 7, hour, minute)


class TestHourGrid:

    @pytest.mark.unit
    def test_default_operating_day(self):
        grid = build_hour_grid()
        assert [s.hour for s in grid] == list(range(8, 18))
        assert grid[0].label == '8:00 AM'
        assert grid[4].label == '12:00 PM'
        assert grid[-1].label == '5:00 PM'

    @pytest.mark.unit
    def test_custom_window(self):
        assert [s.hour for s in build_hour_grid(6, 9)] == [6, 7, 8]


class TestDuration:

    @pytest.mark.unit
    def test_stage_duration_wins(self, make_job):
        job = make_job(stage_durations={'print': 2.5}, estimated_hours=4)
        assert resolve_duration_hours(job, 'print') == 2.5

    @pytest.mark.unit
    def test_estimated_hours_fallback(self, make_job):
        job = make_job(stage_durations={'print': 0}, estimated_hours=3)
        assert resolve_duration_hours(job, 'print') == 3

    @pytest.mark.unit
    def test_never_zero_length(self, make_job):
        job = make_job(estimated_hours=0)
        assert resolve_duration_hours(job) == 1.0

    @pytest.mark.unit
    def test_rounded_to_whole_minutes(self, make_job):
        job = make_job(estimated_hours=1 / 3)
        assert duration_delta(job) == timedelta(minutes=20)


class TestOverlap:

    @pytest.mark.unit
    def test_touching_endpoints_do_not_conflict(self):
        assert intervals_overlap(at(9), at(10), at(10), at(11)) is False
        assert intervals_overlap(at(10), at(11), at(9), at(10)) is False

    @pytest.mark.unit
    def test_one_minute_overlap_conflicts_both_ways(self):
        assert intervals_overlap(at(9), at(10, 1), at(10), at(11)) is True
        assert intervals_overlap(at(10), at(11), at(9), at(10, 1)) is True


class TestSlotsForLane:

    @pytest.mark.unit
    def test_job_occupies_every_overlapped_hour(self, make_job):
        job = make_job('a', equipment_id='press-1', status='scheduled',
                       scheduled_start=at(10), scheduled_end=at(11, 30))
        other = make_job('b', equipment_id='press-2', scheduled_start=at(10), scheduled_end=at(11))

        buckets = slots_for_lane(LANE, [job, other], DAY, build_hour_grid())
        assert [j.id for j in buckets[10]] == ['a']
        assert [j.id for j in buckets[11]] == ['a']
        assert buckets[9] == [] and buckets[12] == []
        assert list(buckets.keys()) == list(range(8, 18))

    @pytest.mark.unit
    def test_missing_end_uses_duration(self, make_job):
        job = make_job('a', equipment_id='press-1', scheduled_start=at(14),
                       stage_durations={'print': 2})
        buckets = slots_for_lane(LANE, [job], DAY, build_hour_grid(), stage='print')
        assert [h for h, jobs in buckets.items() if jobs] == [14, 15]

    @pytest.mark.unit
    def test_other_day_not_shown(self, make_job):
        job = make_job('a', equipment_id='press-1', scheduled_start=at(10) + timedelta(days=1),
                       scheduled_end=at(11) + timedelta(days=1))
        buckets = slots_for_lane(LANE, [job], DAY, build_hour_grid())
        assert all(not jobs for jobs in buckets.values())

    @pytest.mark.unit
    def test_virtual_unscheduled_lane(self, make_job):
        waiting = make_job('a')
        placed = make_job('b', equipment_id='press-1', scheduled_start=at(9), scheduled_end=at(10))
        buckets = slots_for_lane(LANE, [waiting, placed], DAY, build_hour_grid(),
                                 virtual_mode=VIRTUAL_UNSCHEDULED)
        assert [j.id for j in buckets[8]] == ['a']
        assert all(not jobs for hour, jobs in buckets.items() if hour != 8)

    @pytest.mark.unit
    def test_lane_utilization(self, make_job):
        jobs = [
            make_job('a', equipment_id='press-1', scheduled_start=at(8), estimated_hours=2),
            make_job('b', equipment_id='press-1', scheduled_start=at(12), estimated_hours=3),
        ]
        assert lane_utilization(LANE, jobs, build_hour_grid(), DAY) == 50
