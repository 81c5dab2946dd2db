"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
Qué DATOS acepta y devuelve la API.

  Models (SQLAlchemy) → definen las TABLAS
  Schemas (Pydantic)  → definen la API

Aquí se validan en la frontera los campos "con forma de enum" (franja,
dificultad, zona horaria): dentro del motor ya llegan tipados.

Convención de nombres:
  XxxCreate   → para crear algo nuevo (POST)
  XxxUpdate   → para actualizar algo (PATCH)
  XxxResponse → lo que devuelve la API (GET)
"""

from datetime import date, datetime
from typing import Optional

import pytz
from pydantic import BaseModel, Field, field_validator

from models import TimeSlot, Difficulty, HabitSource


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if value not in pytz.all_timezones_set:
        raise ValueError(f"Zona horaria desconocida: {value}")
    return value


# =============================================================================
# ===================== PERFIL ================================================
# =============================================================================

class SignIn(BaseModel):
    """Datos opcionales del primer inicio de sesión (si no vienen en el token)"""
    display_name: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, value):
        return _check_timezone(value)


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, value):
        return _check_timezone(value)


class XpProgress(BaseModel):
    level: int
    current: int
    needed: int
    percentage: float


class ProfileResponse(BaseModel):
    user_id: str
    display_name: str
    timezone: str
    streak: int
    total_xp: int
    level: int
    last_active_date: Optional[date] = None
    is_admin: bool
    created_at: datetime
    xp_progress: Optional[XpProgress] = None
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== CATÁLOGO ==============================================
# =============================================================================

class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    model_config = {"from_attributes": True}


class DuaResponse(BaseModel):
    id: int
    title: str
    title_ar: Optional[str] = None
    arabic_text: str
    transliteration: Optional[str] = None
    translation: Optional[str] = None
    source: Optional[str] = None
    repetitions: int
    best_time: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    est_duration_sec: Optional[int] = None
    xp_value: int
    rizq_benefit: Optional[str] = None
    prophetic_context: Optional[str] = None
    category: Optional[CategoryResponse] = None
    model_config = {"from_attributes": True}


class JourneyResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    emoji: Optional[str] = None
    estimated_minutes: Optional[int] = None
    daily_xp: Optional[int] = None
    is_premium: bool
    is_featured: bool
    sort_order: int
    model_config = {"from_attributes": True}


class JourneyDuaResponse(BaseModel):
    dua_id: int
    time_slot: TimeSlot
    sort_order: int
    dua: DuaResponse
    model_config = {"from_attributes": True}


class JourneyDetailResponse(JourneyResponse):
    duas: list[JourneyDuaResponse]


# =============================================================================
# ===================== HÁBITOS ===============================================
# =============================================================================

class CustomHabitCreate(BaseModel):
    dua_id: int
    time_slot: TimeSlot = TimeSlot.anytime
    sort_order: Optional[int] = Field(default=None, ge=0)
    # sort_order → si se indica, el hábito se coloca en esa posición entre
    # los de los journeys; si no, va al final de su franja


class HabitResponse(BaseModel):
    id: str
    dua_id: int
    dua: DuaResponse
    time_slot: TimeSlot
    sort_order: int
    source: HabitSource
    journey_id: Optional[int] = None
    removable: bool
    is_completed: Optional[bool] = None
    model_config = {"from_attributes": True}


class GroupedHabitsResponse(BaseModel):
    date: date
    total: int
    morning: list[HabitResponse]
    anytime: list[HabitResponse]
    evening: list[HabitResponse]


class SubscriptionResponse(BaseModel):
    journey_id: int
    subscribed_at: datetime
    journey: JourneyResponse
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== COMPLETADOS ===========================================
# =============================================================================

class CompleteHabitRequest(BaseModel):
    on_date: Optional[date] = Field(default=None, alias="date")
    # "date" → fecha LOCAL del usuario; si no se envía, hoy en su zona horaria


class CompletionResponse(BaseModel):
    id: int
    habit_id: str
    dua_id: Optional[int] = None
    date: date
    completed_at: datetime
    xp_awarded: int
    model_config = {"from_attributes": True}


class CompleteHabitResponse(BaseModel):
    completion: CompletionResponse
    profile: ProfileResponse
    already_completed: bool
    due_today: bool
    leveled_up: bool


# =============================================================================
# ===================== PROGRESO ==============================================
# =============================================================================

class DailyProgressResponse(BaseModel):
    date: date
    total: int
    completed: int
    percentage: float
    earned_xp_today: int
    total_xp_available: int
    all_completed: bool
    next_uncompleted_habit: Optional[HabitResponse] = None


class DayActivityResponse(BaseModel):
    date: date
    completed: bool
    habits_completed: int
    xp_earned: int
    is_today: bool
    model_config = {"from_attributes": True}


class WeekActivityResponse(BaseModel):
    days: list[DayActivityResponse]
    active_days: int
    xp_earned: int


class DuaProgressResponse(BaseModel):
    dua_id: int
    completed_count: int
    last_completed: date
    completed_today: bool
    model_config = {"from_attributes": True}
