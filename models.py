"""
=============================================================================
MODELS.PY — Todos los Modelos (Tablas) de la Base de Datos
=============================================================================
Cada clase aquí = una tabla en la base de datos.

Dos mundos:

  CATÁLOGO (solo lectura para el motor)
  ├── categories
  ├── duas ──→ category
  └── journeys ──→ journey_duas[] ──→ dua

  USUARIO
  USER_PROFILE
  ├── journey_subscriptions[] ──→ journey
  ├── custom_habits[] ──→ dua
  └── habit_completions[]

El "hábito" (Habit) NO es una tabla: se calcula cada día a partir de las
suscripciones y los hábitos personalizados (ver habits.py).
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, Text, Date, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from database import Base
import enum


# =============================================================================
# ===================== ENUMS (Tipos predefinidos) ============================
# =============================================================================

class TimeSlot(str, enum.Enum):
    """Franja del día en la que se recita (estructura de las oraciones)"""
    morning = "morning"    # Después de Fajr
    anytime = "anytime"    # Durante el día
    evening = "evening"    # Después de Maghrib


# Orden de práctica: mañana → cualquier momento → noche
SLOT_ORDER = [TimeSlot.morning, TimeSlot.anytime, TimeSlot.evening]


class Difficulty(str, enum.Enum):
    beginner = "Beginner"
    intermediate = "Intermediate"
    advanced = "Advanced"


class HabitSource(str, enum.Enum):
    """De dónde viene un hábito del día"""
    journey = "journey"    # Heredado de una suscripción a un journey
    custom = "custom"      # Añadido a mano desde la biblioteca


# =============================================================================
# ===================== CATÁLOGO ==============================================
# =============================================================================

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    duas = relationship("Dua", back_populates="category")


class Dua(Base):
    __tablename__ = "duas"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # ── Contenido ──
    title = Column(String(200), nullable=False)
    title_ar = Column(String(200), nullable=True)
    arabic_text = Column(Text, nullable=False)
    transliteration = Column(Text, nullable=True)
    translation = Column(Text, nullable=True)
    source = Column(String(200), nullable=True)
    # source → cita ("Sahih Muslim 2723", "Quran 2:255"...)

    # ── Práctica ──
    repetitions = Column(Integer, default=1, nullable=False)
    best_time = Column(String(200), nullable=True)
    # best_time → texto libre ("After Fajr, upon waking")
    difficulty = Column(String(20), nullable=True)
    # difficulty → Difficulty o NULL
    est_duration_sec = Column(Integer, nullable=True)
    xp_value = Column(Integer, default=0, nullable=False)

    # ── Contexto ──
    rizq_benefit = Column(Text, nullable=True)
    prophetic_context = Column(Text, nullable=True)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    __table_args__ = (
        CheckConstraint("xp_value >= 0", name="ck_dua_xp_positive"),
    )

    category = relationship("Category", back_populates="duas")


class Journey(Base):
    __tablename__ = "journeys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    emoji = Column(String(200), default="📿")
    # emoji → carácter o ruta de icono ('/images/icons/...png')

    estimated_minutes = Column(Integer, default=15)
    daily_xp = Column(Integer, default=0)
    # daily_xp → informativo (suma del XP de sus duas)
    is_premium = Column(Boolean, default=False)
    is_featured = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)

    duas = relationship("JourneyDua", back_populates="journey", cascade="all, delete-orphan",
                        order_by="JourneyDua.sort_order")


class JourneyDua(Base):
    __tablename__ = "journey_duas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    journey_id = Column(Integer, ForeignKey("journeys.id"), nullable=False)
    dua_id = Column(Integer, ForeignKey("duas.id"), nullable=False)
    time_slot = Column(String(20), nullable=False, default=TimeSlot.anytime.value)
    sort_order = Column(Integer, default=0, nullable=False)

    # ── Un dua aparece como mucho una vez por journey ──
    __table_args__ = (
        UniqueConstraint("journey_id", "dua_id", name="uq_journey_dua"),
    )

    journey = relationship("Journey", back_populates="duas")
    dua = relationship("Dua")


# =============================================================================
# ===================== PERFIL DE USUARIO =====================================
# =============================================================================

class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String(128), primary_key=True)
    # user_id → identificador opaco del proveedor de autenticación externo

    display_name = Column(String(100), default="Traveler")
    timezone = Column(String(50), default="UTC")
    # timezone → de aquí sale el "hoy" del usuario

    # ── Gamificación ──
    streak = Column(Integer, default=0, nullable=False)
    total_xp = Column(Integer, default=0, nullable=False)
    level = Column(Integer, default=1, nullable=False)
    # level → SIEMPRE derivado de total_xp (progression.calculate_level)
    last_active_date = Column(Date, nullable=True)

    is_admin = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # ── Concurrencia optimista ──
    version = Column(Integer, nullable=False)
    # Cada UPDATE comprueba la versión leída. Si otra petición escribió antes,
    # SQLAlchemy lanza StaleDataError y la operación se repite.

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("streak >= 0", name="ck_profile_streak"),
        CheckConstraint("total_xp >= 0", name="ck_profile_xp"),
        CheckConstraint("level >= 1", name="ck_profile_level"),
    )

    subscriptions = relationship("JourneySubscription", back_populates="user", cascade="all, delete-orphan")
    custom_habits = relationship("CustomHabit", back_populates="user", cascade="all, delete-orphan")
    completions = relationship("HabitCompletion", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== SUSCRIPCIONES Y HÁBITOS ===============================
# =============================================================================

class JourneySubscription(Base):
    __tablename__ = "journey_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), ForeignKey("user_profiles.user_id"), nullable=False)
    journey_id = Column(Integer, ForeignKey("journeys.id"), nullable=False)
    subscribed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "journey_id", name="uq_user_journey"),
    )

    user = relationship("UserProfile", back_populates="subscriptions")
    journey = relationship("Journey")


class CustomHabit(Base):
    __tablename__ = "custom_habits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), ForeignKey("user_profiles.user_id"), nullable=False)
    dua_id = Column(Integer, ForeignKey("duas.id"), nullable=False)

    time_slot = Column(String(20), nullable=False, default=TimeSlot.anytime.value)
    sort_order = Column(Integer, default=0, nullable=False)
    explicit_order = Column(Boolean, default=False)
    # explicit_order → el usuario fijó la posición; si no, va detrás de los
    # hábitos de journeys de su franja

    archived = Column(Boolean, default=False)
    # archived → quitado de "hoy" pero no borrado: conserva el historial y
    # sus completados siguen siendo válidos

    added_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "dua_id", name="uq_user_custom_dua"),
    )

    user = relationship("UserProfile", back_populates="custom_habits")
    dua = relationship("Dua")


# =============================================================================
# ===================== COMPLETADOS ===========================================
# =============================================================================
# Un registro por (usuario, hábito, día). El XP se congela al completar:
# si luego cambia el xp_value del dua, lo ya ganado no cambia.

class HabitCompletion(Base):
    __tablename__ = "habit_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), ForeignKey("user_profiles.user_id"), nullable=False)
    habit_id = Column(String(64), nullable=False)
    # habit_id → "journey-<journey_id>-<dua_id>" o "custom-<id>" con el que se marcó
    dua_id = Column(Integer, ForeignKey("duas.id"), nullable=False)
    # dua_id → lo que cuenta: un dua se completa una vez al día, venga de donde venga

    date = Column(Date, nullable=False)
    completed_at = Column(DateTime, default=datetime.utcnow)
    xp_awarded = Column(Integer, default=0, nullable=False)

    # ── Restricción única: el mismo dua dos veces el mismo día no duplica ──
    # (aunque llegue por un journey y por un hábito personalizado)
    __table_args__ = (
        UniqueConstraint("user_id", "dua_id", "date", name="uq_user_dua_date"),
    )

    user = relationship("UserProfile", back_populates="completions")
