"""Tests del cálculo de XP, nivel y racha (funciones puras, sin BD)."""

from datetime import date, timedelta

import pytest

from progression import (
    ProfileState, apply_completion, calculate_level, decay_streak, xp_progress, xp_threshold
)

D = date(2026, 3, 10)


# ═══════════════════════════════════════════════════════════════════════════
# Niveles
# ═══════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("total_xp", [100, 120, 299, 300, 301, 599, 600, 899, 900, 1500, 12345])
def test_level_is_the_band_containing_total_xp(total_xp):
    level = calculate_level(total_xp)
    assert 50 * level * (level + 1) <= total_xp < 50 * (level + 1) * (level + 2)


@pytest.mark.parametrize("total_xp", [0, 1, 60, 99])
def test_level_below_first_threshold_is_one(total_xp):
    assert calculate_level(total_xp) == 1


@pytest.mark.parametrize("total_xp,level", [(299, 1), (300, 2), (599, 2), (600, 3), (1000, 4)])
def test_level_boundaries(total_xp, level):
    assert calculate_level(total_xp) == level


def test_xp_threshold():
    assert xp_threshold(1) == 100
    assert xp_threshold(2) == 300
    assert xp_threshold(3) == 600


def test_xp_progress_level_one_starts_at_zero():
    assert xp_progress(0) == {"level": 1, "current": 0, "needed": 300, "percentage": 0.0}
    assert xp_progress(150)["percentage"] == 50.0


def test_xp_progress_inside_level_two():
    progress = xp_progress(450)
    assert progress["level"] == 2
    assert progress["current"] == 150
    assert progress["needed"] == 300
    assert progress["percentage"] == 50.0


# ═══════════════════════════════════════════════════════════════════════════
# apply_completion
# ═══════════════════════════════════════════════════════════════════════════


class TestApplyCompletion:
    def test_first_completion_starts_streak(self):
        state = apply_completion(ProfileState(), 60, D)
        assert state == ProfileState(total_xp=60, level=1, streak=1, last_active_date=D)

    def test_second_completion_same_day(self):
        """60 + 60 = 120 XP sigue siendo nivel 1 (300 > 120) y la racha no cambia."""
        state = apply_completion(ProfileState(), 60, D)
        state = apply_completion(state, 60, D)
        assert state.total_xp == 120
        assert state.level == 1
        assert state.streak == 1
        assert state.last_active_date == D

    def test_next_day_increments_streak_by_one(self):
        state = apply_completion(ProfileState(), 10, D)
        state = apply_completion(state, 10, D + timedelta(days=1))
        assert state.streak == 2
        assert state.last_active_date == D + timedelta(days=1)

    def test_level_up_across_threshold(self):
        state = ProfileState(total_xp=280, level=1, streak=3, last_active_date=D)
        state = apply_completion(state, 40, D)
        assert state.total_xp == 320
        assert state.level == 2

    def test_backdated_completion_only_adds_xp(self):
        state = ProfileState(total_xp=100, level=1, streak=4, last_active_date=D)
        state = apply_completion(state, 25, D - timedelta(days=3))
        assert state.total_xp == 125
        assert state.streak == 4
        assert state.last_active_date == D

    def test_zero_xp_still_counts_as_activity(self):
        state = apply_completion(ProfileState(), 0, D)
        assert state.total_xp == 0
        assert state.streak == 1

    def test_negative_xp_rejected(self):
        with pytest.raises(ValueError):
            apply_completion(ProfileState(), -5, D)

    @pytest.mark.parametrize("deltas", [[0], [5, 95], [100, 200, 300], [60] * 20])
    def test_level_always_derived_from_total(self, deltas):
        state = ProfileState()
        for i, delta in enumerate(deltas):
            state = apply_completion(state, delta, D + timedelta(days=i))
        assert state.total_xp == sum(deltas)
        assert state.level == calculate_level(sum(deltas))


# ═══════════════════════════════════════════════════════════════════════════
# decay_streak
# ═══════════════════════════════════════════════════════════════════════════


class TestDecayStreak:
    def test_same_day_keeps_streak(self):
        state = ProfileState(streak=5, last_active_date=D)
        assert decay_streak(state, D) == state

    def test_yesterday_keeps_streak(self):
        state = ProfileState(streak=5, last_active_date=D)
        assert decay_streak(state, D + timedelta(days=1)).streak == 5

    def test_two_days_later_resets(self):
        state = ProfileState(total_xp=300, level=2, streak=5, last_active_date=D)
        decayed = decay_streak(state, D + timedelta(days=2))
        assert decayed.streak == 0
        assert decayed.total_xp == 300
        assert decayed.last_active_date == D

    def test_completion_after_gap_restarts_at_one(self):
        state = ProfileState(total_xp=50, streak=7, last_active_date=D)
        later = D + timedelta(days=5)
        state = apply_completion(decay_streak(state, later), 10, later)
        assert state.streak == 1
