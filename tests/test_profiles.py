"""Tests del almacén de perfiles: alta, reseteo perezoso de racha y zona horaria."""

from datetime import date, datetime, timedelta

import pytest
import pytz

from completions import complete_habit
from errors import InvalidState, NotFound
from habits import add_custom_habit
from models import TimeSlot
from profiles import (
    DEFAULT_DISPLAY_NAME, get_profile_row, load_profile, local_today, sign_in, today_for, update_profile
)

DAY = date(2026, 3, 10)

# 12:00 UTC del 10/03: en Kiritimati (UTC+14) ya es 11/03
NOON_UTC = datetime(2026, 3, 10, 12, 0, tzinfo=pytz.utc)


def test_sign_in_creates_fresh_profile(catalog):
    profile = sign_in(catalog, "new-user", display_name="Yusuf", timezone="Asia/Karachi")

    assert profile.user_id == "new-user"
    assert profile.display_name == "Yusuf"
    assert profile.timezone == "Asia/Karachi"
    assert profile.streak == 0
    assert profile.total_xp == 0
    assert profile.level == 1
    assert profile.last_active_date is None
    assert profile.is_admin is False


def test_sign_in_defaults(catalog):
    profile = sign_in(catalog, "anon", display_name="   ")
    assert profile.display_name == DEFAULT_DISPLAY_NAME
    assert profile.timezone == "UTC"


def test_sign_in_twice_returns_existing(user, db):
    again = sign_in(db, user.user_id, display_name="Otro nombre")
    assert again.display_name == "Amina"
    assert again.created_at == user.created_at


def test_load_unknown_user(catalog):
    with pytest.raises(NotFound):
        load_profile(catalog, "nobody")


class TestStreakDecay:
    @pytest.fixture
    def active(self, user, db):
        profile = get_profile_row(db, user.user_id)
        profile.streak = 4
        profile.total_xp = 200
        profile.last_active_date = DAY
        db.commit()
        return profile

    def test_read_next_day_keeps_streak(self, active, db):
        assert load_profile(db, active.user_id, today=DAY + timedelta(days=1)).streak == 4

    def test_read_two_days_later_resets_and_persists(self, active, db, session_factory):
        profile = load_profile(db, active.user_id, today=DAY + timedelta(days=2))
        assert profile.streak == 0
        assert profile.total_xp == 200
        assert profile.last_active_date == DAY

        other = session_factory()
        try:
            assert get_profile_row(other, active.user_id).streak == 0
        finally:
            other.close()


def test_update_profile(user, db):
    profile = update_profile(db, user.user_id, display_name="Amina K.", timezone="Europe/London")
    assert profile.display_name == "Amina K."
    assert profile.timezone == "Europe/London"

    profile = update_profile(db, user.user_id, timezone="Asia/Dubai")
    assert profile.display_name == "Amina K."


def test_local_today_unknown_timezone_falls_back():
    assert isinstance(local_today("Not/AZone"), date)
    assert local_today("UTC") == local_today(None)


# ═══════════════════════════════════════════════════════════════════════════
# Cambio de día según la zona horaria del usuario
# ═══════════════════════════════════════════════════════════════════════════


class TestDayRollover:
    @pytest.mark.parametrize("tz_name, instant, expected", [
        ("UTC", NOON_UTC, date(2026, 3, 10)),
        ("Pacific/Kiritimati", NOON_UTC, date(2026, 3, 11)),
        ("America/Los_Angeles", datetime(2026, 3, 10, 5, 0, tzinfo=pytz.utc), date(2026, 3, 9)),
        ("Asia/Karachi", datetime(2026, 3, 10, 19, 30, tzinfo=pytz.utc), date(2026, 3, 11)),
    ])
    def test_local_today(self, freeze_now, tz_name, instant, expected):
        freeze_now(instant)
        assert local_today(tz_name) == expected

    def test_today_follows_profile_timezone(self, freeze_now, catalog):
        freeze_now(NOON_UTC)
        profile = sign_in(catalog, "kiri", timezone="Pacific/Kiritimati")
        assert today_for(profile) == date(2026, 3, 11)

        profile = update_profile(catalog, "kiri", timezone="UTC")
        assert today_for(profile) == date(2026, 3, 10)

    def test_complete_without_date_uses_local_day(self, freeze_now, catalog, dua_named):
        freeze_now(NOON_UTC)
        barakah = dua_named("Barakah")
        for user_id, tz_name, expected in [
            ("kiri", "Pacific/Kiritimati", date(2026, 3, 11)),
            ("london", "UTC", date(2026, 3, 10)),
        ]:
            sign_in(catalog, user_id, timezone=tz_name)
            habit = add_custom_habit(catalog, user_id, barakah.id, TimeSlot.morning)
            result = complete_habit(catalog, user_id, habit.id)

            assert result.record.date == expected
            assert result.profile.last_active_date == expected
            assert result.profile.streak == 1

    def test_future_is_relative_to_local_day(self, freeze_now, catalog, dua_named):
        freeze_now(NOON_UTC)
        barakah = dua_named("Barakah")
        sign_in(catalog, "kiri", timezone="Pacific/Kiritimati")
        sign_in(catalog, "utc", timezone="UTC")
        kiri_habit = add_custom_habit(catalog, "kiri", barakah.id, TimeSlot.morning)
        utc_habit = add_custom_habit(catalog, "utc", barakah.id, TimeSlot.morning)

        assert complete_habit(catalog, "kiri", kiri_habit.id, date(2026, 3, 11)).created is True
        with pytest.raises(InvalidState):
            complete_habit(catalog, "utc", utc_habit.id, date(2026, 3, 11))

    def test_streak_decay_uses_local_day(self, freeze_now, catalog):
        """Último día activo 09/03: en UTC es ayer, en Kiritimati ya es anteayer."""
        freeze_now(NOON_UTC)
        for user_id, tz_name in [("kiri", "Pacific/Kiritimati"), ("utc", "UTC")]:
            sign_in(catalog, user_id, timezone=tz_name)
            profile = get_profile_row(catalog, user_id)
            profile.streak = 3
            profile.last_active_date = date(2026, 3, 9)
        catalog.commit()

        assert load_profile(catalog, "utc").streak == 3
        assert load_profile(catalog, "kiri").streak == 0
