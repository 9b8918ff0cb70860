from datetime import timedelta

import pytest

import chronoplan.engine.alternatives as alternatives_module
import chronoplan.engine.scheduler as scheduler_module
from chronoplan.engine.scheduler import AutoScheduler
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import (
    BlockType,
    Deadline,
    DeepWorkPreferences,
    EnergyManagement,
    EnergyProfile,
    Goal,
    GoalPriority,
    TimeSlot,
    UserPreferences,
    WorkingHours,
)
from chronoplan.models.results import ConflictSeverity, ConflictType


def no_overlaps(blocks):
    ordered = sorted(blocks, key=lambda b: b.start_time)
    return all(a.end_time <= b.start_time for a, b in zip(ordered, ordered[1:]))


def hours(start, end):
    return UserPreferences(working_hours=WorkingHours(start, end))


@pytest.fixture
def scheduler_with(settings, now):
    def factory(**overrides):
        return AutoScheduler(settings=settings.model_copy(update=overrides), clock=lambda: now)
    return factory


class TestSchedule:
    """Tests for AutoScheduler.schedule()."""

    def test_single_task_lands_first_thing(self, scheduler, constraints, make_task, now):
        """One task with a flat profile goes to 09:00 today."""
        result = scheduler.schedule([make_task("t1")], constraints)

        assert len(result.schedule) == 1
        block = result.schedule[0]
        assert block.start_time == now.replace(hour=9)
        assert block.end_time == now.replace(hour=10)
        assert block.task_id == "t1"
        assert block.id.startswith("auto-scheduled-t1")
        assert result.confidence > 0.3
        assert result.conflicts == []

    def test_urgent_task_wins_scarce_time(self, scheduler_with, make_task, now):
        """With room for one task, the one due soonest gets it and the other is a deadline risk."""
        scheduler = scheduler_with(scheduling_window_days=1)
        later = make_task("B", "Write blog post", due_date=now + timedelta(days=10))
        urgent = make_task("A", "Submit grant proposal", due_date=now + timedelta(hours=12))
        constraints = SchedulingConstraints(
            user_preferences=hours("09:00", "10:00"),
            deadlines=[Deadline(due_date=urgent.due_date, task_id="A"), Deadline(due_date=later.due_date, task_id="B")],
        )

        result = scheduler.schedule([later, urgent], constraints)

        assert [b.task_id for b in result.schedule] == ["A"]
        assert any(c.type == ConflictType.DEADLINE_RISK for c in result.conflicts)

    def test_schedule_never_overlaps(self, scheduler, make_task, make_block):
        """Main schedule and alternatives respect each other and existing blocks."""
        existing = [make_block("e1", 10), make_block("e2", 13, minutes=90)]
        constraints = SchedulingConstraints(existing_blocks=existing)
        tasks = [make_task(f"t{i}", minutes=45 + 15 * i) for i in range(6)]

        result = scheduler.schedule(tasks, constraints)

        assert no_overlaps(result.schedule + existing)
        for alternative in result.alternatives:
            assert no_overlaps(alternative.schedule + existing)

    def test_no_working_time_is_well_formed(self, scheduler, make_task):
        """Zero-length working hours give an empty schedule with conflicts, not an error."""
        constraints = SchedulingConstraints(user_preferences=hours("09:00", "09:00"))

        result = scheduler.schedule([make_task("t1"), make_task("t2")], constraints)

        assert result.schedule == []
        assert len(result.conflicts) == 2
        assert 0.0 <= result.confidence <= 1.0

    def test_invalid_working_hours_use_fallback(self, scheduler, make_task, now):
        """Every pass failing falls back to sequential placement."""
        constraints = SchedulingConstraints(user_preferences=hours("25:00", "17:00"))

        result = scheduler.schedule([make_task("t1"), make_task("t2", minutes=30)], constraints)

        assert result.confidence == pytest.approx(0.3)
        assert [b.id for b in result.schedule] == ["fallback-t1", "fallback-t2"]
        assert result.schedule[0].start_time == now.replace(hour=9)
        assert result.schedule[1].start_time == now.replace(hour=10, minute=15)
        assert [(a.name, a.confidence) for a in result.alternatives] == [
            ("Conservative", 0.8), ("Aggressive", 0.6), ("Energy-Optimized", 0.9),
        ]

    def test_failing_fallback_returns_error_schedule(self, scheduler, make_task, monkeypatch):
        """When the fallback itself fails the caller still gets a result."""
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(scheduler_module, "basic_fallback_schedule", broken)
        constraints = SchedulingConstraints(user_preferences=hours("25:00", "17:00"))

        result = scheduler.schedule([make_task("t1")], constraints)

        assert result.schedule == []
        assert result.confidence == 0.0
        assert len(result.conflicts) == 1
        assert result.conflicts[0].severity == ConflictSeverity.CRITICAL


class TestPasses:
    """Tests for individual optimization passes."""

    def test_goal_pass_batches_tasks(self, scheduler, make_task):
        """Tasks of one goal share a single focus session."""
        goal = Goal(id="g1", title="Launch", domain_id="work", user_id="user-1", priority=GoalPriority.HIGH)
        tasks = [make_task(f"t{i}", minutes=30, goal_id="g1") for i in range(3)]

        result = scheduler.run_pass("goal_alignment", tasks, SchedulingConstraints(goals=[goal]))

        assert len(result.schedule) == 1
        block = result.schedule[0]
        assert block.title == "Launch - Focus Session"
        assert block.type == BlockType.FOCUS
        assert block.task_ids == ["t0", "t1", "t2"]
        assert block.duration_minutes == 90

    def test_energy_pass_prefers_high_energy_window(self, scheduler, make_task, now):
        """High-energy tasks go to the declared high-energy window first."""
        constraints = SchedulingConstraints(user_preferences=UserPreferences(
            energy_management=EnergyManagement(high_energy_times=[TimeSlot("14:00", "15:00", ["monday"])])
        ))
        task = make_task("t1", "Design system architecture")

        result = scheduler.run_pass("energy_optimization", [task], constraints)

        assert result.schedule[0].start_time == now.replace(hour=14)

    def test_preference_pass_uses_deep_work_window(self, scheduler, make_task, now):
        """Deep work goes into the preferred deep-work window."""
        constraints = SchedulingConstraints(user_preferences=UserPreferences(
            deep_work_preferences=DeepWorkPreferences(preferred_times=[TimeSlot("13:00", "15:00")])
        ))
        task = make_task("t1", "Research competitors")

        result = scheduler.run_pass("user_preferences", [task], constraints)

        assert result.schedule[0].start_time == now.replace(hour=13)

    def test_unknown_pass(self, scheduler, constraints):
        """Unknown pass names raise KeyError."""
        with pytest.raises(KeyError):
            scheduler.run_pass("nope", [], constraints)


class TestAlternatives:
    """Tests for alternative schedules."""

    def test_alternative_names_and_confidence(self, scheduler, constraints, make_task):
        """Three alternatives in a fixed order with fixed confidences."""
        result = scheduler.schedule([make_task("t1")], constraints)

        assert [a.name for a in result.alternatives] == ["Conservative", "Aggressive", "Energy-Optimized"]
        assert [a.confidence for a in result.alternatives] == [0.8, 0.6, 0.9]

    def test_conservative_keeps_clearance_and_aggressive_packs(self, scheduler, make_task, make_block, now):
        """Conservative leaves 30 minutes after an existing block, Aggressive starts right after it."""
        constraints = SchedulingConstraints(existing_blocks=[make_block("e1", 9)])

        result = scheduler.schedule([make_task("t1")], constraints)
        by_name = {a.name: a for a in result.alternatives}

        assert by_name["Conservative"].schedule[0].start_time == now.replace(hour=10, minute=30)
        assert by_name["Aggressive"].schedule[0].start_time == now.replace(hour=10)

    def test_failing_alternative_is_empty(self, scheduler, constraints, make_task, monkeypatch):
        """One broken alternative does not take the others down."""
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(alternatives_module, "create_conservative_schedule", broken)

        result = scheduler.schedule([make_task("t1")], constraints)

        assert result.alternatives[0].schedule == []
        assert result.alternatives[1].schedule
        assert result.alternatives[2].schedule
        assert len(result.schedule) == 1


class TestAvailableSlots:
    """Tests for find_available_slots()."""

    def test_high_energy_slot_first(self, scheduler, now):
        """Slots are ranked by energy level."""
        constraints = SchedulingConstraints(energy_profile=EnergyProfile(hourly_profile={"14": 0.9}))

        slots = scheduler.find_available_slots(60, constraints)

        assert slots[0].start == "14:00"
        assert slots[0].slot_date == now.date()

    def test_busy_time_excluded_and_inputs_untouched(self, scheduler, make_block, now):
        """Existing blocks are skipped and the constraints are left as given."""
        existing = [make_block("e1", 9)]
        constraints = SchedulingConstraints(existing_blocks=existing)

        slots = scheduler.find_available_slots(60, constraints)

        today = [s for s in slots if s.slot_date == now.date()]
        assert today
        assert all(s.start >= "10:00" for s in today)
        assert constraints.existing_blocks == existing
        assert len(existing) == 1

    def test_slots_for_one_day_in_time_order(self, scheduler, constraints, now):
        """find_slots_for_day returns the day's grid in order."""
        slots = scheduler.find_slots_for_day(now.date(), 60, constraints)

        assert slots[0].start == "09:00"
        assert slots[-1].start == "16:00"
        assert len(slots) == 29


class TestOptimizeExisting:
    """Tests for optimize_existing()."""

    def test_overlaps_reported_without_moving(self, scheduler, constraints, make_block):
        """Overlaps become conflicts; blocks stay where they are by default."""
        blocks = [make_block("a", 9), make_block("b", 9, start_minute=30)]

        result = scheduler.optimize_existing(blocks, constraints)

        assert result.schedule == blocks
        overlaps = [c for c in result.conflicts if c.type == ConflictType.OVERLAP]
        assert len(overlaps) == 1

    def test_relocation_when_enabled(self, scheduler_with, make_block, now):
        """A focus block in a low-energy hour moves to a better neighbouring hour."""
        scheduler = scheduler_with(relocate_existing_blocks=True)
        constraints = SchedulingConstraints(energy_profile=EnergyProfile(hourly_profile={"9": 0.2, "10": 0.9}))
        block = make_block("f1", 9, type=BlockType.FOCUS)

        result = scheduler.optimize_existing([block], constraints)

        moved = result.schedule[0]
        assert moved.id == "f1"
        assert moved.start_time == now.replace(hour=10)
        assert moved.duration_minutes == 60
        assert not any(c.type == ConflictType.ENERGY_MISMATCH for c in result.conflicts)

    def test_mismatch_reported_when_relocation_disabled(self, scheduler, make_block):
        """Without relocation an energy mismatch is only reported."""
        constraints = SchedulingConstraints(energy_profile=EnergyProfile(hourly_profile={"9": 0.2}))
        block = make_block("f1", 9, type=BlockType.FOCUS)

        result = scheduler.optimize_existing([block], constraints)

        assert result.schedule == [block]
        assert [c.type for c in result.conflicts] == [ConflictType.ENERGY_MISMATCH]
