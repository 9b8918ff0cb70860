from datetime import date, datetime, timedelta

import pytest

from chronoplan.engine.availability import interval_is_free, is_slot_available, times_overlap
from chronoplan.engine.classifiers import KeywordTaskClassifier
from chronoplan.engine.context import build_scheduling_context, resolve_goals
from chronoplan.engine.slots import expand_windows, generate_slots, generate_time_slots_for_day, slot_interval
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import (
    BlockType,
    ContextSwitching,
    EnergyLevel,
    Goal,
    GoalPriority,
    TimeSlot,
    UserPreferences,
    WorkingHours,
)
from chronoplan.utils.timeutils import parse_time

MONDAY = date(2026, 10, 19)


class TestTimeHelpers:
    """Tests for "HH:MM" parsing."""

    def test_parse_time(self):
        """Valid times convert to minutes after midnight."""
        assert parse_time("09:30") == 570
        assert parse_time("00:00") == 0
        assert parse_time("24:00") == 1440

    @pytest.mark.parametrize("value", ["25:00", "12:60", "noon", "", "24:30"])
    def test_parse_time_rejects_garbage(self, value):
        """Malformed times raise ValueError."""
        with pytest.raises(ValueError):
            parse_time(value)


class TestSlotGeneration:
    """Tests for the candidate slot grid."""

    def test_grid_spacing_and_bounds(self):
        """Slots start on the grid and never run past the window end."""
        slots = list(generate_slots(MONDAY, 60, parse_time("09:00"), parse_time("11:00"), 15))
        assert [s.start for s in slots] == ["09:00", "09:15", "09:30", "09:45", "10:00"]
        assert slots[-1].end == "11:00"

    def test_slot_metadata(self):
        """Each slot names its weekday and carries its date."""
        slot = next(generate_slots(MONDAY, 30, 540, 600, 15))
        assert slot.days == ["monday"]
        assert slot.slot_date == MONDAY

    def test_exact_fit_yields_one_slot(self):
        """A task exactly as long as the window gets exactly one slot."""
        slots = list(generate_slots(MONDAY, 60, 540, 600, 15))
        assert len(slots) == 1

    def test_window_shorter_than_duration_is_empty(self):
        """Degenerate windows produce no candidates."""
        assert list(generate_slots(MONDAY, 90, 540, 600, 15)) == []

    def test_not_before_skips_past_slots(self):
        """Slots starting before "now" are not offered."""
        now = datetime(2026, 10, 19, 9, 20)
        slots = list(generate_slots(MONDAY, 30, 540, 660, 15, not_before=now))
        assert slots[0].start == "09:30"

    def test_minimum_block_duration_widens_grid(self):
        """The grid uses max(15, minimum block duration)."""
        context = build_scheduling_context(SchedulingConstraints(
            user_preferences=UserPreferences(
                working_hours=WorkingHours("09:00", "11:00"),
                context_switching=ContextSwitching(minimum_block_duration=30),
            )
        ))
        assert slot_interval(context) == 30
        starts = [s.start for s in generate_time_slots_for_day(MONDAY, 60, context)]
        assert starts == ["09:00", "09:30", "10:00"]

    def test_window_expansion_respects_days(self):
        """Recurring windows expand only on the weekdays they name."""
        window = TimeSlot(start="14:00", end="15:00", days=["tuesday"])
        days = [MONDAY, MONDAY + timedelta(days=1)]
        slots = list(expand_windows([window], days, 60, 15))
        assert len(slots) == 1
        assert slots[0].slot_date == MONDAY + timedelta(days=1)


class TestAvailability:
    """Tests for the overlap guard."""

    def test_touching_intervals_do_not_overlap(self):
        """Strict overlap: back-to-back blocks are fine."""
        a = datetime(2026, 10, 19, 9)
        b = datetime(2026, 10, 19, 10)
        c = datetime(2026, 10, 19, 11)
        assert not times_overlap(a, b, b, c)
        assert times_overlap(a, c, b, c)

    def test_slot_against_schedule_and_existing(self, make_block):
        """A slot is unavailable if either block set overlaps it."""
        slot = TimeSlot(start="09:30", end="10:30", days=["monday"], slot_date=MONDAY)
        busy = [make_block("b1", 10)]
        assert not is_slot_available(slot, busy, [], MONDAY)
        assert not is_slot_available(slot, [], busy, MONDAY)
        assert is_slot_available(slot, [make_block("b2", 11)], [], MONDAY)

    def test_clearance_pads_both_sides(self, make_block):
        """Clearance treats nearby blocks as overlapping."""
        block = make_block("b1", 10)
        start = datetime(2026, 10, 19, 11, 15)
        end = start + timedelta(minutes=30)
        assert interval_is_free(start, end, [block])
        assert not interval_is_free(start, end, [block], clearance_minutes=30)


class TestContext:
    """Tests for context building."""

    def test_goals_sorted_by_priority_and_deduplicated(self):
        """Critical goals come first; duplicate ids keep the last definition."""
        goals = [
            Goal(id="g1", title="Low", domain_id="d", user_id="u", priority=GoalPriority.LOW),
            Goal(id="g2", title="Critical", domain_id="d", user_id="u", priority=GoalPriority.CRITICAL),
            Goal(id="g1", title="High", domain_id="d", user_id="u", priority=GoalPriority.HIGH),
        ]
        resolved = resolve_goals(goals)
        assert [g.id for g in resolved] == ["g2", "g1"]
        assert resolved[1].title == "High"


class TestKeywordClassifier:
    """Tests for keyword-based task classification."""

    classifier = KeywordTaskClassifier()

    def test_energy_requirement(self, make_task):
        """Keyword majorities decide the energy class."""
        assert self.classifier.energy_requirement(make_task("t1", "Design system architecture")) == EnergyLevel.HIGH
        assert self.classifier.energy_requirement(make_task("t2", "Reply to email")) == EnergyLevel.LOW
        assert self.classifier.energy_requirement(make_task("t3", "Write summary")) == EnergyLevel.MEDIUM

    def test_deep_work(self, make_task):
        """Deep-work keywords mark a task as deep work."""
        assert self.classifier.is_deep_work(make_task("t1", "Research competitors"))
        assert not self.classifier.is_deep_work(make_task("t2", "Write summary"))

    def test_block_type(self, make_task):
        """Block type follows the first matching keyword group."""
        assert self.classifier.block_type(make_task("t1", "Client call")) == BlockType.MEETING
        assert self.classifier.block_type(make_task("t2", "Admin paperwork")) == BlockType.ADMIN
        assert self.classifier.block_type(make_task("t3", "Write summary")) == BlockType.WORK
