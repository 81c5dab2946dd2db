"""
=============================================================================
HABITS.PY — Resolución de Hábitos del Día
=============================================================================
Un "hábito" es la unidad de práctica de hoy. Sale de dos fuentes:

  1. JOURNEYS → cada JourneyDua de cada journey al que el usuario está
     suscrito. ID: "journey-<journey_id>-<dua_id>". No se puede quitar uno
     suelto: se quitan todos dando de baja la suscripción.
  2. PERSONALIZADOS → duas añadidos a mano desde la biblioteca.
     ID: "custom-<id>". Se pueden quitar (se archivan, no se borran).

Reglas de fusión:
  - Un dua aparece UNA sola vez al día.
  - Si llega por varios journeys, gana el journey de menor (orden, nombre).
  - Si llega por journey y además es personalizado, cuenta como de journey.

Dentro de cada franja (mañana / cualquier momento / noche):
  - primero los de journeys, por su sort_order
  - después los personalizados, por su sort_order
  - salvo los personalizados con orden explícito, que se colocan por ese
    orden entre los de journeys (a igualdad, el de journey va antes)
"""

import math
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from database import storage_errors
from errors import NotFound, InvalidState
from models import (
    CustomHabit, Dua, Journey, JourneyDua, JourneySubscription,
    TimeSlot, HabitSource, SLOT_ORDER
)
from profiles import get_profile_row

logger = logging.getLogger("rizq.habits")


# =============================================================================
# ===================== TIPOS =================================================
# =============================================================================

@dataclass
class Habit:
    id: str
    dua: Dua
    time_slot: TimeSlot
    sort_order: int
    source: HabitSource
    journey_id: Optional[int] = None
    removable: bool = False
    added_at: Optional[datetime] = None
    sort_key: tuple = field(default=(0,), repr=False)

    @property
    def dua_id(self) -> int:
        return self.dua.id

    @property
    def xp_value(self) -> int:
        return self.dua.xp_value


@dataclass
class GroupedHabits:
    morning: list = field(default_factory=list)
    anytime: list = field(default_factory=list)
    evening: list = field(default_factory=list)

    def slot(self, time_slot: TimeSlot) -> list:
        return getattr(self, TimeSlot(time_slot).value)

    def all(self) -> list:
        """Todos los hábitos en orden de práctica (mañana → noche)"""
        return [h for slot in SLOT_ORDER for h in self.slot(slot)]

    @property
    def total(self) -> int:
        return len(self.morning) + len(self.anytime) + len(self.evening)

    def ids(self) -> set:
        return {h.id for h in self.all()}


# =============================================================================
# ===================== IDs DE HÁBITO =========================================
# =============================================================================

def journey_habit_id(journey_id: int, dua_id: int) -> str:
    return f"journey-{journey_id}-{dua_id}"


def custom_habit_id(custom_id: int) -> str:
    return f"custom-{custom_id}"


def parse_habit_id(habit_id: str) -> tuple:
    """
    "journey-3-12" → (HabitSource.journey, (3, 12))
    "custom-7"     → (HabitSource.custom, (7,))
    Cualquier otra cosa → NotFound (ese hábito no puede existir).
    """
    parts = (habit_id or "").split("-")
    try:
        if parts[0] == HabitSource.journey.value and len(parts) == 3:
            return HabitSource.journey, (int(parts[1]), int(parts[2]))
        if parts[0] == HabitSource.custom.value and len(parts) == 2:
            return HabitSource.custom, (int(parts[1]),)
    except ValueError:
        pass
    raise NotFound(f"Hábito '{habit_id}' no encontrado")


def _journey_habit(journey_dua: JourneyDua, rank: int = 0) -> Habit:
    return Habit(
        id=journey_habit_id(journey_dua.journey_id, journey_dua.dua_id),
        dua=journey_dua.dua,
        time_slot=TimeSlot(journey_dua.time_slot),
        sort_order=journey_dua.sort_order,
        source=HabitSource.journey,
        journey_id=journey_dua.journey_id,
        removable=False,
        sort_key=(journey_dua.sort_order, 0, rank),
    )


def _custom_habit(custom: CustomHabit) -> Habit:
    if custom.explicit_order:
        sort_key = (custom.sort_order, 1, custom.id)
    else:
        sort_key = (math.inf, 1, custom.sort_order, custom.id)
    return Habit(
        id=custom_habit_id(custom.id),
        dua=custom.dua,
        time_slot=TimeSlot(custom.time_slot),
        sort_order=custom.sort_order,
        source=HabitSource.custom,
        removable=True,
        added_at=custom.added_at,
        sort_key=sort_key,
    )


# =============================================================================
# ===================== RESOLVER ==============================================
# =============================================================================

def _active_subscriptions(db: Session, user_id: str) -> list[JourneySubscription]:
    return db.query(JourneySubscription).join(Journey).options(
        joinedload(JourneySubscription.journey)
        .joinedload(Journey.duas)
        .joinedload(JourneyDua.dua)
    ).filter(
        JourneySubscription.user_id == user_id
    ).order_by(Journey.sort_order, Journey.name).all()


@storage_errors
def resolve_habits(db: Session, user_id: str, on_date: Optional[date] = None) -> GroupedHabits:
    """
    Hábitos que tocan hoy, agrupados por franja.

    Todos los hábitos son diarios: on_date no cambia el conjunto, solo se
    acepta para que el contrato sea el mismo que el del progreso diario.
    Sin suscripciones ni personalizados → grupos vacíos (no es un error).
    """
    get_profile_row(db, user_id)

    habits = []
    seen_duas = set()

    for rank, subscription in enumerate(_active_subscriptions(db, user_id)):
        for journey_dua in subscription.journey.duas:
            if journey_dua.dua_id in seen_duas:
                continue
            seen_duas.add(journey_dua.dua_id)
            habits.append(_journey_habit(journey_dua, rank))

    customs = db.query(CustomHabit).options(joinedload(CustomHabit.dua)).filter(
        CustomHabit.user_id == user_id,
        CustomHabit.archived == False
    ).order_by(CustomHabit.sort_order, CustomHabit.id).all()

    for custom in customs:
        if custom.dua_id in seen_duas:
            continue
        seen_duas.add(custom.dua_id)
        habits.append(_custom_habit(custom))

    grouped = GroupedHabits()
    for habit in sorted(habits, key=lambda h: h.sort_key):
        grouped.slot(habit.time_slot).append(habit)
    return grouped


@storage_errors
def find_habit(db: Session, user_id: str, habit_id: str) -> tuple:
    """
    Busca cualquier hábito que el usuario pueda referenciar, aunque hoy no
    le toque (journey al que ya no está suscrito, personalizado archivado...).

    Retorna (habit, due) donde due indica si está en el conjunto de hoy.
    NotFound solo si el hábito no existe en absoluto.
    """
    source, ids = parse_habit_id(habit_id)

    if source == HabitSource.journey:
        journey_id, dua_id = ids
        journey_dua = db.query(JourneyDua).options(joinedload(JourneyDua.dua)).filter(
            JourneyDua.journey_id == journey_id,
            JourneyDua.dua_id == dua_id
        ).first()
        if not journey_dua:
            raise NotFound(f"Hábito '{habit_id}' no encontrado")
        habit = _journey_habit(journey_dua)
    else:
        custom = db.query(CustomHabit).options(joinedload(CustomHabit.dua)).filter(
            CustomHabit.id == ids[0],
            CustomHabit.user_id == user_id
        ).first()
        if not custom:
            raise NotFound(f"Hábito '{habit_id}' no encontrado")
        habit = _custom_habit(custom)

    due = habit.id in resolve_habits(db, user_id).ids()
    return habit, due


# =============================================================================
# ===================== HÁBITOS PERSONALIZADOS ================================
# =============================================================================

@storage_errors
def add_custom_habit(db: Session, user_id: str, dua_id: int, time_slot: TimeSlot,
                     sort_order: Optional[int] = None) -> Habit:
    """
    Añade un dua de la biblioteca a la práctica diaria.

    Si el usuario ya lo tenía, se devuelve el mismo hábito (si estaba
    archivado se reactiva con la nueva franja). Si el dua ya llega por un
    journey, se guarda igualmente pero no aparece duplicado en el día.
    """
    get_profile_row(db, user_id)
    dua = db.query(Dua).filter(Dua.id == dua_id).first()
    if not dua:
        raise NotFound("Dua no encontrado")
    time_slot = TimeSlot(time_slot)

    custom = db.query(CustomHabit).filter(
        CustomHabit.user_id == user_id,
        CustomHabit.dua_id == dua_id
    ).first()

    if custom and not custom.archived:
        return _custom_habit(custom)

    if sort_order is None:
        max_order = db.query(func.max(CustomHabit.sort_order)).filter(
            CustomHabit.user_id == user_id,
            CustomHabit.explicit_order == False
        ).scalar()
        order, explicit = (max_order + 1 if max_order is not None else 0), False
    else:
        order, explicit = sort_order, True

    if custom:
        custom.archived = False
        custom.time_slot = time_slot.value
        custom.sort_order = order
        custom.explicit_order = explicit
        custom.added_at = datetime.utcnow()
    else:
        custom = CustomHabit(
            user_id=user_id,
            dua_id=dua_id,
            time_slot=time_slot.value,
            sort_order=order,
            explicit_order=explicit,
        )
        db.add(custom)

    try:
        db.commit()
    except IntegrityError:
        # Otra petición lo añadió a la vez: nos quedamos con esa
        db.rollback()
        custom = db.query(CustomHabit).filter(
            CustomHabit.user_id == user_id,
            CustomHabit.dua_id == dua_id
        ).one()

    logger.info(f"➕ Hábito personalizado: dua {dua_id} en {time_slot.value} (user: {user_id})")
    return _custom_habit(custom)


@storage_errors
def remove_custom_habit(db: Session, user_id: str, habit_id: str) -> Habit:
    """Archiva un hábito personalizado. Los de journeys no se quitan sueltos."""
    get_profile_row(db, user_id)
    source, ids = parse_habit_id(habit_id)
    if source == HabitSource.journey:
        raise InvalidState("Los hábitos de un journey se quitan dando de baja la suscripción")

    custom = db.query(CustomHabit).options(joinedload(CustomHabit.dua)).filter(
        CustomHabit.id == ids[0],
        CustomHabit.user_id == user_id,
        CustomHabit.archived == False
    ).first()
    if not custom:
        raise NotFound(f"Hábito '{habit_id}' no encontrado")

    custom.archived = True
    db.commit()

    logger.info(f"🗑️ Hábito personalizado archivado: {habit_id} (user: {user_id})")
    return _custom_habit(custom)


# =============================================================================
# ===================== SUSCRIPCIONES =========================================
# =============================================================================

@storage_errors
def list_subscriptions(db: Session, user_id: str) -> list[JourneySubscription]:
    get_profile_row(db, user_id)
    return _active_subscriptions(db, user_id)


@storage_errors
def subscribe_journey(db: Session, user_id: str, journey_id: int) -> JourneySubscription:
    """Suscribe al usuario a un journey. Repetirlo no hace nada."""
    get_profile_row(db, user_id)
    journey = db.query(Journey).filter(Journey.id == journey_id).first()
    if not journey:
        raise NotFound("Journey no encontrado")

    subscription = db.query(JourneySubscription).filter(
        JourneySubscription.user_id == user_id,
        JourneySubscription.journey_id == journey_id
    ).first()
    if subscription:
        return subscription

    subscription = JourneySubscription(user_id=user_id, journey_id=journey_id)
    db.add(subscription)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        subscription = db.query(JourneySubscription).filter(
            JourneySubscription.user_id == user_id,
            JourneySubscription.journey_id == journey_id
        ).one()

    logger.info(f"🧭 Suscripción a '{journey.name}' (user: {user_id})")
    return subscription


@storage_errors
def unsubscribe_journey(db: Session, user_id: str, journey_id: int):
    """Da de baja la suscripción; sus hábitos desaparecen del día"""
    get_profile_row(db, user_id)
    subscription = db.query(JourneySubscription).filter(
        JourneySubscription.user_id == user_id,
        JourneySubscription.journey_id == journey_id
    ).first()
    if not subscription:
        raise NotFound("Suscripción no encontrada")

    db.delete(subscription)
    db.commit()
    logger.info(f"🚪 Baja del journey {journey_id} (user: {user_id})")
