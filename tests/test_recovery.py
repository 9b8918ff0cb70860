from datetime import timedelta

import pytest

from chronoplan.engine.recovery import (
    can_compress,
    can_extend,
    compress_blocks,
    compression_recovery,
    critical_time_shortage,
    interleaving_recovery,
    max_compression,
    postponement_recovery,
    simplification_recovery,
    simplify_block,
)
from chronoplan.models.entities import BlockType
from chronoplan.models.results import ChangeType, EnergyImpact


class TestBlockBounds:
    """Tests for per-block compression, extension and simplification limits."""

    def test_compression_limits(self, make_block):
        assert not can_compress(make_block("a", 9, minutes=30))
        assert can_compress(make_block("a", 9, minutes=31))
        assert max_compression(make_block("a", 9, minutes=60)) == 15
        assert max_compression(make_block("a", 9, minutes=50)) == 12

    def test_extension_limits(self, make_block):
        assert can_extend(make_block("a", 9, minutes=119))
        assert not can_extend(make_block("a", 9, minutes=120))

    @pytest.mark.parametrize("minutes,expected", [(120, 72), (60, 36), (40, 30), (20, 20)])
    def test_simplify_duration(self, make_block, minutes, expected):
        """Simplified blocks keep max(60%, 30 min) and never grow."""
        assert simplify_block(make_block("a", 9, minutes=minutes)).duration_minutes == pytest.approx(expected)

    def test_simplify_turns_focus_into_work(self, make_block):
        simplified = simplify_block(make_block("a", 9, type=BlockType.FOCUS, description="Draft"))
        assert simplified.type == BlockType.WORK
        assert simplified.description == "Draft (Simplified - core essentials only)"
        assert simplified.start_time.hour == 9

    def test_compress_skips_started_blocks(self, make_block, now):
        """Blocks at or before 'now' are never compressed."""
        blocks = [make_block("past", 7, minutes=120), make_block("next", 9)]

        schedule, changes, recovered = compress_blocks(blocks, 30, lambda m: f"-{m}", now=now)

        assert schedule[0] == blocks[0]
        assert recovered == 15
        assert [c.original_block.id for c in changes] == ["next"]
        assert changes[0].reasoning == "-15"


class TestRecoveryTactics:
    """Tests for the missed-block recovery tactics."""

    def test_compression_recovery_is_capped(self, make_block):
        """At most 80% of the available time is recovered."""
        missed = [make_block("m", 8, minutes=120)]
        remaining = [make_block(f"r{i}", 10 + 2 * i, minutes=120) for i in range(3)]

        result = compression_recovery(missed, remaining, available_minutes=100)

        assert [b.duration_minutes for b in result.new_schedule] == [90, 90, 100]
        assert "recover 80 minutes" in result.reasoning
        assert result.confidence == pytest.approx(0.7)
        assert result.impact.energy_impact == EnergyImpact.NEGATIVE

    def test_postponement_without_slot_provider(self, make_block, now):
        missed = [make_block("m", 8, goal_ids=["g1"])]
        remaining = [make_block("r", 10)]

        result = postponement_recovery(missed, remaining, now)

        assert result.new_schedule == remaining
        assert result.changes[0].type == ChangeType.POSTPONED
        assert result.changes[0].new_block is None
        assert result.impact.goals_affected == ["g1"]
        assert len(result.impact.deadlines_risk) == 1

    def test_postponement_uses_slot_provider(self, make_block):
        missed = [make_block("m", 8)]
        result = postponement_recovery(missed, [], missed[0].start_time, lambda b: b)
        assert result.changes[0].new_block == missed[0]

    def test_simplification_recovery(self, make_block):
        remaining = [make_block("a", 10), make_block("b", 12, minutes=20)]

        result = simplification_recovery([make_block("m", 8)], remaining)

        assert [b.duration_minutes for b in result.new_schedule] == [36, 20]
        assert len(result.changes) == 1
        assert result.confidence == pytest.approx(0.9)

    def test_simplification_logs_only_shortened_blocks(self, make_block):
        """A short focus block becomes work but keeps its length, so it is not logged."""
        remaining = [make_block("f", 10, minutes=20, type=BlockType.FOCUS)]

        result = simplification_recovery([make_block("m", 8)], remaining)

        assert result.new_schedule[0].type == BlockType.WORK
        assert result.new_schedule[0].end_time == remaining[0].end_time
        assert result.changes == []

    def test_interleaving_extends_short_blocks(self, make_block):
        """Missed minutes are spread over blocks shorter than two hours, 30 at a time."""
        remaining = [make_block("long", 10, minutes=120), make_block("a", 13), make_block("b", 15)]

        result = interleaving_recovery([make_block("m", 8, minutes=45)], remaining)

        assert [b.duration_minutes for b in result.new_schedule] == [120, 90, 75]
        assert [c.type for c in result.changes] == [ChangeType.MOVED] * 2
        assert result.new_schedule[1].end_time == remaining[1].end_time + timedelta(minutes=30)
        assert result.confidence == pytest.approx(0.6)

    def test_critical_time_shortage(self, make_block):
        missed = [make_block("m1", 8), make_block("m2", 9)]

        result = critical_time_shortage(missed)

        assert result.new_schedule == []
        assert {c.type for c in result.changes} == {ChangeType.CANCELLED}
        assert result.confidence == 1.0
