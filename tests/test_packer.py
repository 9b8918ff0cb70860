from datetime import datetime, time

from chronoplan.engine.context import build_scheduling_context
from chronoplan.engine.packer import blocked_intervals, merge_intervals, pack_with_ortools
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import UserPreferences, WorkingHours


class TestIntervals:
    """Tests for blocked-interval bookkeeping."""

    def test_merge_intervals(self):
        assert merge_intervals([(5, 8), (0, 2), (1, 3), (8, 9)]) == [(0, 3), (5, 9)]
        assert merge_intervals([]) == []

    def test_blocked_intervals_cover_off_hours_and_past(self, make_block, now):
        """Before 'now', off-hours and existing blocks are all unusable."""
        context = build_scheduling_context(SchedulingConstraints(existing_blocks=[make_block("e1", 12)]))
        origin = datetime.combine(now.date(), time())

        blocked = blocked_intervals(context, origin, now, 1)

        assert blocked == [(0, 540), (720, 780), (1020, 1440)]


class TestPacking:
    """Tests for CP-SAT packing."""

    def test_packs_around_existing_block(self, make_task, make_block, now):
        """Tasks start right after the existing block, back to back."""
        context = build_scheduling_context(SchedulingConstraints(existing_blocks=[make_block("e1", 9)]))
        tasks = [make_task("t1"), make_task("t2")]

        placements = pack_with_ortools(tasks, [60, 60], context, now, 1, time_limit_seconds=2.0)

        starts = {start.hour for _, start, _ in placements}
        assert starts == {10, 11}
        assert all(end > start for _, start, end in placements)

    def test_oversized_task_is_dropped(self, make_task, now):
        """A task longer than the working day is never placed."""
        context = build_scheduling_context(SchedulingConstraints(
            user_preferences=UserPreferences(working_hours=WorkingHours("09:00", "10:00"))
        ))

        placements = pack_with_ortools([make_task("t1", minutes=120)], [120], context, now, 1, time_limit_seconds=2.0)

        assert not placements

    def test_empty_input(self, constraints, now):
        context = build_scheduling_context(constraints)
        assert pack_with_ortools([], [], context, now, 1) is None
