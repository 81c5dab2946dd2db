"""Tests del registro de completados: idempotencia, atomicidad, reintentos e importación."""

from datetime import date, timedelta

import pytest
from sqlalchemy.orm.exc import StaleDataError

import completions
from completions import (
    complete, complete_habit, completions_on, earned_xp_on, import_completions, is_done
)
from errors import Conflict, InvalidState, NotFound, StorageUnavailable
from habits import add_custom_habit, journey_habit_id, subscribe_journey, unsubscribe_journey
from models import HabitCompletion, TimeSlot
from profiles import get_profile_row, load_profile, local_today

DAY = date(2026, 3, 10)


@pytest.fixture
def rizq_seeker(user, db, journey_slug):
    journey = journey_slug("rizq-seeker")
    subscribe_journey(db, user.user_id, journey.id)
    return journey


@pytest.fixture
def barakah_id(rizq_seeker, dua_named):
    return journey_habit_id(rizq_seeker.id, dua_named("Barakah").id)


def test_complete_records_and_updates_profile(user, db, barakah_id):
    result = complete_habit(db, user.user_id, barakah_id, DAY)

    assert result.created is True
    assert result.due is True
    assert result.record.habit_id == barakah_id
    assert result.record.date == DAY
    assert result.record.xp_awarded == 15
    assert result.profile.total_xp == 15
    assert result.profile.level == 1
    assert result.profile.streak == 1
    assert result.profile.last_active_date == DAY
    assert is_done(db, user.user_id, barakah_id, DAY)


class TestIdempotence:
    def test_twice_same_day_awards_once(self, user, db, barakah_id):
        first = complete_habit(db, user.user_id, barakah_id, DAY)
        second = complete_habit(db, user.user_id, barakah_id, DAY)

        assert second.created is False
        assert second.record.id == first.record.id
        assert second.profile.total_xp == 15
        assert second.profile.streak == 1
        assert earned_xp_on(db, user.user_id, DAY) == 15
        assert db.query(HabitCompletion).count() == 1

    def test_same_habit_next_day_is_a_new_completion(self, user, db, barakah_id):
        complete_habit(db, user.user_id, barakah_id, DAY)
        result = complete_habit(db, user.user_id, barakah_id, DAY + timedelta(days=1))

        assert result.created is True
        assert result.profile.total_xp == 30
        assert result.profile.streak == 2

    def test_duplicate_caught_by_unique_constraint(self, user, db, barakah_id, monkeypatch):
        """Doble toque: la primera comprobación no ve el registro y el INSERT choca."""
        complete_habit(db, user.user_id, barakah_id, DAY)

        real_find = completions._find_record
        calls = {"n": 0}

        def blind_first_lookup(*args, **kwargs):
            calls["n"] += 1
            return None if calls["n"] == 1 else real_find(*args, **kwargs)

        monkeypatch.setattr(completions, "_find_record", blind_first_lookup)
        result = complete_habit(db, user.user_id, barakah_id, DAY)

        assert result.created is False
        assert get_profile_row(db, user.user_id).total_xp == 15
        assert db.query(HabitCompletion).count() == 1

    def test_recompletion_returns_stored_profile(self, user, db, barakah_id):
        """Re-completar un día antiguo no escribe nada: la racha se corrige al leer el perfil."""
        complete_habit(db, user.user_id, barakah_id, DAY)
        again = complete_habit(db, user.user_id, barakah_id, DAY)

        assert again.created is False
        assert again.profile.streak == 1
        assert again.profile.last_active_date == DAY
        assert load_profile(db, user.user_id, today=DAY + timedelta(days=5)).streak == 0


class TestSameDuaTwoWays:
    """Un dua cuenta una vez al día, llegue por un journey o por un hábito personalizado."""

    def test_custom_then_journey(self, user, db, journey_slug, dua_named):
        barakah = dua_named("Barakah")
        custom = add_custom_habit(db, user.user_id, barakah.id, TimeSlot.morning)
        first = complete_habit(db, user.user_id, custom.id, DAY)

        journey = journey_slug("rizq-seeker")
        subscribe_journey(db, user.user_id, journey.id)
        journey_habit = journey_habit_id(journey.id, barakah.id)
        second = complete_habit(db, user.user_id, journey_habit, DAY)

        assert second.created is False
        assert second.record.id == first.record.id
        assert second.record.habit_id == custom.id
        assert second.profile.total_xp == 15
        assert earned_xp_on(db, user.user_id, DAY) == 15
        assert is_done(db, user.user_id, journey_habit, DAY)
        assert db.query(HabitCompletion).count() == 1

    def test_two_journeys_with_the_same_dua(self, user, db, rizq_seeker, barakah_id, dua_named, make_journey):
        barakah = dua_named("Barakah")
        extra = make_journey("Morning Barakah", [(barakah, "morning", 1)], sort_order=99)
        subscribe_journey(db, user.user_id, extra.id)

        complete_habit(db, user.user_id, barakah_id, DAY)
        result = complete_habit(db, user.user_id, journey_habit_id(extra.id, barakah.id), DAY)

        assert result.created is False
        assert get_profile_row(db, user.user_id).total_xp == 15

    def test_other_dua_same_day_still_counts(self, user, db, rizq_seeker, barakah_id, dua_named):
        custom = add_custom_habit(db, user.user_id, dua_named("Prophet Yunus").id, TimeSlot.evening)
        complete_habit(db, user.user_id, barakah_id, DAY)
        result = complete_habit(db, user.user_id, custom.id, DAY)

        assert result.created is True
        assert result.profile.total_xp == 15 + 25


class TestFutureDates:
    def test_future_date_rejected(self, user, db, barakah_id):
        tomorrow = local_today("UTC") + timedelta(days=1)

        with pytest.raises(InvalidState):
            complete_habit(db, user.user_id, barakah_id, tomorrow)

        profile = get_profile_row(db, user.user_id)
        assert profile.streak == 0
        assert profile.last_active_date is None
        assert db.query(HabitCompletion).count() == 0

    def test_today_is_allowed(self, user, db, barakah_id):
        result = complete_habit(db, user.user_id, barakah_id, local_today("UTC"))
        assert result.created is True
        assert result.record.date == local_today("UTC")


class TestStreak:
    def test_multiple_habits_same_day_keep_streak(self, user, db, rizq_seeker, dua_named):
        for fragment in ("Barakah", "Leaving Home", "Sayyidul Istighfar"):
            result = complete_habit(db, user.user_id, journey_habit_id(rizq_seeker.id, dua_named(fragment).id), DAY)
        assert result.profile.streak == 1
        assert result.profile.total_xp == 15 + 15 + 40

    def test_gap_restarts_streak(self, user, db, barakah_id):
        complete_habit(db, user.user_id, barakah_id, DAY)
        complete_habit(db, user.user_id, barakah_id, DAY + timedelta(days=1))
        result = complete_habit(db, user.user_id, barakah_id, DAY + timedelta(days=4))

        assert result.profile.streak == 1
        assert result.profile.last_active_date == DAY + timedelta(days=4)

    def test_backdated_completion_adds_xp_only(self, user, db, rizq_seeker, barakah_id, dua_named):
        complete_habit(db, user.user_id, barakah_id, DAY)
        other = journey_habit_id(rizq_seeker.id, dua_named("Leaving Home").id)
        result = complete_habit(db, user.user_id, other, DAY - timedelta(days=2))

        assert result.created is True
        assert result.profile.total_xp == 30
        assert result.profile.streak == 1
        assert result.profile.last_active_date == DAY

    def test_level_up_flag(self, user, db, barakah_id):
        profile = get_profile_row(db, user.user_id)
        profile.total_xp = 290
        db.commit()

        result = complete_habit(db, user.user_id, barakah_id, DAY)
        assert result.leveled_up is True
        assert result.profile.level == 2


class TestNotDue:
    def test_unsubscribed_journey_habit_is_flagged(self, user, db, rizq_seeker, barakah_id):
        unsubscribe_journey(db, user.user_id, rizq_seeker.id)
        result = complete_habit(db, user.user_id, barakah_id, DAY)

        assert result.created is True
        assert result.due is False
        assert result.profile.total_xp == 15

    def test_unknown_habit(self, user, db):
        with pytest.raises(NotFound):
            complete_habit(db, user.user_id, "custom-999", DAY)
        with pytest.raises(NotFound):
            complete_habit(db, user.user_id, "not-a-habit", DAY)

    def test_unknown_user(self, catalog):
        with pytest.raises(NotFound):
            complete_habit(catalog, "nobody", "custom-1", DAY)


# ═══════════════════════════════════════════════════════════════════════════
# Atomicidad y concurrencia
# ═══════════════════════════════════════════════════════════════════════════


class TestAtomicity:
    def test_profile_failure_rolls_back_record(self, user, db, barakah_id, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("fallo al actualizar el perfil")

        monkeypatch.setattr(completions, "apply_completion", boom)
        with pytest.raises(RuntimeError):
            complete_habit(db, user.user_id, barakah_id, DAY)

        assert not is_done(db, user.user_id, barakah_id, DAY)
        assert get_profile_row(db, user.user_id).total_xp == 0

        # Reintentar después es seguro
        monkeypatch.undo()
        result = complete_habit(db, user.user_id, barakah_id, DAY)
        assert result.created is True
        assert result.profile.total_xp == 15

    def test_stale_profile_write_is_retried(self, user, db, barakah_id, monkeypatch):
        real_once = completions._complete_once
        calls = {"n": 0}

        def stale_then_ok(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("version mismatch")
            return real_once(*args, **kwargs)

        monkeypatch.setattr(completions, "_complete_once", stale_then_ok)
        result = complete_habit(db, user.user_id, barakah_id, DAY)

        assert calls["n"] == 2
        assert result.created is True
        assert result.profile.total_xp == 15

    def test_retries_exhausted(self, user, db, barakah_id, monkeypatch):
        def always_stale(*args, **kwargs):
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(completions, "_complete_once", always_stale)
        with pytest.raises(StorageUnavailable):
            complete_habit(db, user.user_id, barakah_id, DAY)
        assert not is_done(db, user.user_id, barakah_id, DAY)

    def test_negative_xp_rejected(self, user, db):
        with pytest.raises(ValueError):
            complete(db, user.user_id, "custom-1", DAY, -10)


def test_xp_frozen_at_completion_time(user, db, barakah_id, dua_named):
    complete_habit(db, user.user_id, barakah_id, DAY)
    dua = dua_named("Barakah")
    dua.xp_value = 100
    db.commit()

    assert earned_xp_on(db, user.user_id, DAY) == 15
    assert completions_on(db, user.user_id, DAY)[0].xp_awarded == 15


# ═══════════════════════════════════════════════════════════════════════════
# Importación masiva
# ═══════════════════════════════════════════════════════════════════════════


class TestImport:
    def test_import_does_not_touch_profile(self, user, db, barakah_id):
        imported = import_completions(db, user.user_id, [
            {"habit_id": barakah_id, "date": DAY - timedelta(days=1)},
            {"habit_id": barakah_id, "date": DAY - timedelta(days=2), "xp_awarded": 5},
        ])

        assert len(imported) == 2
        assert imported[0].xp_awarded == 15
        assert imported[1].xp_awarded == 5
        profile = get_profile_row(db, user.user_id)
        assert profile.total_xp == 0
        assert profile.streak == 0

    def test_import_existing_is_conflict(self, user, db, barakah_id):
        complete_habit(db, user.user_id, barakah_id, DAY)

        with pytest.raises(Conflict):
            import_completions(db, user.user_id, [
                {"habit_id": barakah_id, "date": DAY - timedelta(days=1)},
                {"habit_id": barakah_id, "date": DAY},
            ])
        assert db.query(HabitCompletion).count() == 1

    def test_import_repeated_in_batch_is_conflict(self, user, db, barakah_id):
        with pytest.raises(Conflict):
            import_completions(db, user.user_id, [
                {"habit_id": barakah_id, "date": DAY},
                {"habit_id": barakah_id, "date": DAY},
            ])
        assert db.query(HabitCompletion).count() == 0

    def test_import_unknown_habit_writes_nothing(self, user, db, barakah_id):
        with pytest.raises(NotFound):
            import_completions(db, user.user_id, [
                {"habit_id": barakah_id, "date": DAY},
                {"habit_id": "custom-404", "date": DAY},
            ])
        assert db.query(HabitCompletion).count() == 0

    def test_import_custom_habit(self, user, db, dua_named):
        habit = add_custom_habit(db, user.user_id, dua_named("Prophet Yunus").id, TimeSlot.anytime)
        import_completions(db, user.user_id, [{"habit_id": habit.id, "date": DAY}])
        assert is_done(db, user.user_id, habit.id, DAY)
