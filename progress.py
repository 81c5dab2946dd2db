"""
=============================================================================
PROGRESS.PY — Progreso Diario
=============================================================================
Junta los hábitos de hoy (habits.py) con los completados de hoy
(completions.py) en una sola vista para la app:

  total / completed        → cuentan HÁBITOS, no XP
  percentage               → completed / total * 100 (0 si no hay hábitos)
  earned_xp_today          → suma del XP de TODOS los completados del día,
                             aunque el hábito ya no esté en el conjunto
  all_completed            → completed == total y total > 0
  next_uncompleted_habit   → el primero pendiente (mañana → noche)

Un hábito está hecho si su DUA está completado ese día, da igual si se
marcó desde el journey o desde un hábito personalizado.

También: la vista agrupada por franja, la semana y el progreso por dua.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from completions import completions_on, completions_between
from database import storage_errors
from habits import GroupedHabits, Habit, resolve_habits
from models import HabitCompletion
from profiles import get_profile_row, today_for

logger = logging.getLogger("rizq.progress")


def _resolve_day(db: Session, user_id: str, on_date: Optional[date]):
    """(fecha, hábitos del día, completados del día)"""
    profile = get_profile_row(db, user_id)
    if on_date is None:
        on_date = today_for(profile)
    return on_date, resolve_habits(db, user_id, on_date), completions_on(db, user_id, on_date)


@dataclass
class DailyProgress:
    date: date
    total: int
    completed: int
    percentage: float
    earned_xp_today: int
    total_xp_available: int
    next_uncompleted_habit: Optional[Habit]
    habits: GroupedHabits = field(repr=False, default_factory=GroupedHabits)
    done_duas: set = field(repr=False, default_factory=set)

    @property
    def all_completed(self) -> bool:
        return self.total > 0 and self.completed == self.total

    def is_completed(self, habit: Habit) -> bool:
        return habit.dua_id in self.done_duas


def get_daily_progress(db: Session, user_id: str, on_date: Optional[date] = None) -> DailyProgress:
    on_date, grouped, records = _resolve_day(db, user_id, on_date)
    done_duas = {r.dua_id for r in records}

    due = grouped.all()
    completed = sum(1 for h in due if h.dua_id in done_duas)
    total = len(due)

    return DailyProgress(
        date=on_date,
        total=total,
        completed=completed,
        percentage=round(completed / total * 100, 1) if total > 0 else 0.0,
        earned_xp_today=sum(r.xp_awarded for r in records),
        total_xp_available=sum(h.xp_value for h in due),
        next_uncompleted_habit=next((h for h in due if h.dua_id not in done_duas), None),
        habits=grouped,
        done_duas=done_duas,
    )


# =============================================================================
# ===================== VISTA AGRUPADA ========================================
# =============================================================================

@dataclass
class HabitStatus:
    habit: Habit
    is_completed: bool


@dataclass
class GroupedProgress:
    date: date
    morning: list = field(default_factory=list)
    anytime: list = field(default_factory=list)
    evening: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.morning) + len(self.anytime) + len(self.evening)


def get_grouped_progress(db: Session, user_id: str, on_date: Optional[date] = None) -> GroupedProgress:
    """Los hábitos del día por franja, cada uno marcado como hecho o pendiente"""
    on_date, grouped, records = _resolve_day(db, user_id, on_date)
    done_duas = {r.dua_id for r in records}

    def annotate(habits: list) -> list:
        return [HabitStatus(habit=h, is_completed=h.dua_id in done_duas) for h in habits]

    return GroupedProgress(
        date=on_date,
        morning=annotate(grouped.morning),
        anytime=annotate(grouped.anytime),
        evening=annotate(grouped.evening),
    )


# =============================================================================
# ===================== SEMANA ================================================
# =============================================================================

@dataclass
class DayActivity:
    date: date
    completed: bool
    # completed → al menos un hábito completado ese día
    habits_completed: int
    xp_earned: int
    is_today: bool


def get_week_activity(db: Session, user_id: str, today: Optional[date] = None) -> list[DayActivity]:
    """Los últimos 7 días, del más antiguo a hoy"""
    profile = get_profile_row(db, user_id)
    if today is None:
        today = today_for(profile)
    start = today - timedelta(days=6)

    by_day = {}
    for record in completions_between(db, user_id, start, today):
        by_day.setdefault(record.date, []).append(record)

    days = []
    for i in range(7):
        day = start + timedelta(days=i)
        records = by_day.get(day, [])
        days.append(DayActivity(
            date=day,
            completed=len(records) > 0,
            habits_completed=len(records),
            xp_earned=sum(r.xp_awarded for r in records),
            is_today=day == today,
        ))
    return days


# =============================================================================
# ===================== PROGRESO POR DUA ======================================
# =============================================================================

@dataclass
class DuaProgress:
    dua_id: int
    completed_count: int
    last_completed: date
    completed_today: bool


@storage_errors
def get_dua_progress(db: Session, user_id: str, today: Optional[date] = None) -> list[DuaProgress]:
    """
    Cuántas veces ha completado el usuario cada dua y cuándo fue la última.
    Solo aparecen los duas completados al menos una vez (ordenados por id).
    """
    profile = get_profile_row(db, user_id)
    if today is None:
        today = today_for(profile)

    rows = db.query(
        HabitCompletion.dua_id,
        func.count(HabitCompletion.id),
        func.max(HabitCompletion.date),
    ).filter(
        HabitCompletion.user_id == user_id
    ).group_by(HabitCompletion.dua_id).order_by(HabitCompletion.dua_id).all()
    done_today = {r.dua_id for r in completions_on(db, user_id, today)}

    return [
        DuaProgress(
            dua_id=dua_id,
            completed_count=count,
            last_completed=last,
            completed_today=dua_id in done_today,
        )
        for dua_id, count, last in rows
    ]
