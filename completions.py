"""
=============================================================================
COMPLETIONS.PY — Registro de Hábitos Completados
=============================================================================
Un HabitCompletion por (usuario, DUA, día). El mismo dua puede aparecer como
hábito de un journey y como hábito personalizado: marcarlo por cualquiera
de los dos caminos cuenta como el mismo completado.

complete() es IDEMPOTENTE:
  - Si ya existe el registro → se devuelve tal cual, sin volver a dar XP.
  - Si no → se inserta (con el XP de ese momento) y se actualiza el perfil
    (XP, nivel, racha) EN LA MISMA TRANSACCIÓN. Si el perfil falla, el
    registro también se deshace, y repetir la llamada es seguro.

Doble toque casi simultáneo: lo para la restricción única de la tabla
(IntegrityError → camino idempotente), no un lock en la aplicación.

Dos hábitos distintos a la vez para el mismo usuario: los dos escriben el
perfil. La columna version del perfil detecta la escritura perdida
(StaleDataError) y la operación se repite desde cero.

complete_habit() no acepta días futuros: el "hoy" es la fecha local del
usuario y la racha no puede adelantarse.
"""

import os
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from database import storage_errors
from errors import Conflict, InvalidState, StorageUnavailable
from habits import Habit, find_habit
from models import HabitCompletion, UserProfile
from profiles import get_profile_row, today_for
from progression import ProfileState, apply_completion, decay_streak

logger = logging.getLogger("rizq.completions")

PROFILE_WRITE_RETRIES = int(os.getenv("PROFILE_WRITE_RETRIES", "3"))


@dataclass
class CompletionResult:
    record: HabitCompletion
    profile: UserProfile
    created: bool
    # created=False → ya estaba completado (re-completado idempotente)
    due: bool = True
    # due=False → el hábito existe pero hoy no le toca; se permite y se marca
    habit: Optional[Habit] = None
    leveled_up: bool = False


# =============================================================================
# ===================== CONSULTAS =============================================
# =============================================================================

def _find_record(db: Session, user_id: str, dua_id: int, on_date: date) -> Optional[HabitCompletion]:
    return db.query(HabitCompletion).filter(
        HabitCompletion.user_id == user_id,
        HabitCompletion.dua_id == dua_id,
        HabitCompletion.date == on_date
    ).first()


@storage_errors
def is_dua_done(db: Session, user_id: str, dua_id: int, on_date: date) -> bool:
    return _find_record(db, user_id, dua_id, on_date) is not None


@storage_errors
def is_done(db: Session, user_id: str, habit_id: str, on_date: date) -> bool:
    """¿Está hecho el dua de este hábito ese día? (por cualquier camino)"""
    habit, _ = find_habit(db, user_id, habit_id)
    return is_dua_done(db, user_id, habit.dua_id, on_date)


@storage_errors
def completions_on(db: Session, user_id: str, on_date: date) -> list[HabitCompletion]:
    """Todos los completados del día (estén o no en el conjunto de hoy)"""
    return db.query(HabitCompletion).filter(
        HabitCompletion.user_id == user_id,
        HabitCompletion.date == on_date
    ).order_by(HabitCompletion.completed_at, HabitCompletion.id).all()


@storage_errors
def completions_between(db: Session, user_id: str, start: date, end: date) -> list[HabitCompletion]:
    """Completados en [start, end], ambos incluidos"""
    return db.query(HabitCompletion).filter(
        HabitCompletion.user_id == user_id,
        HabitCompletion.date >= start,
        HabitCompletion.date <= end
    ).all()


@storage_errors
def earned_xp_on(db: Session, user_id: str, on_date: date) -> int:
    total = db.query(func.coalesce(func.sum(HabitCompletion.xp_awarded), 0)).filter(
        HabitCompletion.user_id == user_id,
        HabitCompletion.date == on_date
    ).scalar()
    return int(total or 0)


# =============================================================================
# ===================== COMPLETAR =============================================
# =============================================================================

def _complete_once(db: Session, user_id: str, habit_id: str, dua_id: int, on_date: date,
                   xp_value: int) -> CompletionResult:
    """Un intento: registro + perfil en una transacción"""
    profile = get_profile_row(db, user_id, for_update=True)

    record = HabitCompletion(
        user_id=user_id,
        habit_id=habit_id,
        dua_id=dua_id,
        date=on_date,
        completed_at=datetime.utcnow(),
        xp_awarded=xp_value,
    )
    db.add(record)
    db.flush()
    # flush → si el dua ya está completado ese día, IntegrityError aquí

    # Reseteo perezoso de la racha antes de aplicar el completado
    state = decay_streak(ProfileState.from_profile(profile), on_date)
    new_state = apply_completion(state, xp_value, on_date)
    new_state.write_to(profile)

    db.commit()
    return CompletionResult(
        record=record,
        profile=profile,
        created=True,
        leveled_up=new_state.level > state.level,
    )


def _already_done(db: Session, user_id: str, record: HabitCompletion) -> CompletionResult:
    # El perfil se devuelve tal cual está guardado, sin reseteo de racha:
    # re-completar no escribe nada. GET /profile aplica el reseteo al leer.
    return CompletionResult(record=record, profile=get_profile_row(db, user_id), created=False)


@storage_errors
def complete(db: Session, user_id: str, habit_id: str, on_date: date, xp_value: int,
             dua_id: Optional[int] = None) -> CompletionResult:
    """
    Marca el dua de un hábito como completado en on_date (fecha local del
    usuario) y aplica XP/nivel/racha al perfil.

    habit_id solo queda apuntado en el registro: la unicidad es por dua.
    Sin dua_id se busca el del hábito.
    """
    if xp_value < 0:
        raise ValueError("xp_value no puede ser negativo")
    if dua_id is None:
        dua_id = find_habit(db, user_id, habit_id)[0].dua_id

    existing = _find_record(db, user_id, dua_id, on_date)
    if existing:
        logger.info(f"🔁 Dua {dua_id} ya completado el {on_date} como {existing.habit_id} (user: {user_id})")
        return _already_done(db, user_id, existing)

    for attempt in range(1, PROFILE_WRITE_RETRIES + 1):
        try:
            result = _complete_once(db, user_id, habit_id, dua_id, on_date, xp_value)
        except IntegrityError:
            db.rollback()
            existing = _find_record(db, user_id, dua_id, on_date)
            if existing is None:
                raise
            logger.info(f"🔁 Completado duplicado resuelto por la restricción única: {habit_id} (user: {user_id})")
            return _already_done(db, user_id, existing)
        except StaleDataError:
            db.rollback()
            logger.warning(f"⚠️ Perfil de {user_id} modificado a la vez, reintento {attempt}/{PROFILE_WRITE_RETRIES}")
            continue
        except Exception:
            # Registro y perfil van juntos: si falla algo, no queda nada
            db.rollback()
            raise

        profile = result.profile
        logger.info(
            f"✅ {habit_id} completado (+{xp_value} XP) → XP {profile.total_xp}, "
            f"nivel {profile.level}, racha {profile.streak} (user: {user_id})"
        )
        if result.leveled_up:
            logger.info(f"🎉 {user_id} sube a nivel {profile.level}")
        return result

    raise StorageUnavailable("El perfil está ocupado, inténtelo de nuevo")


@storage_errors
def complete_habit(db: Session, user_id: str, habit_id: str, on_date: Optional[date] = None) -> CompletionResult:
    """
    Completa un hábito por su ID con el XP ACTUAL de su dua.

    Si el hábito existe pero hoy no le toca (journey dado de baja,
    personalizado archivado), se completa igual y se marca due=False.
    Un día posterior al hoy local del usuario → InvalidState.
    """
    profile = get_profile_row(db, user_id)
    today = today_for(profile)
    if on_date is None:
        on_date = today
    elif on_date > today:
        raise InvalidState(f"No se puede completar un día futuro ({on_date}); hoy es {today}")

    habit, due = find_habit(db, user_id, habit_id)
    if not due:
        logger.warning(f"⚠️ {habit_id} completado fuera del conjunto de hoy (user: {user_id})")

    result = complete(db, user_id, habit.id, on_date, habit.xp_value, dua_id=habit.dua_id)
    result.due = due
    result.habit = habit
    return result


# =============================================================================
# ===================== IMPORTACIÓN MASIVA ====================================
# =============================================================================

@storage_errors
def import_completions(db: Session, user_id: str, records: list[dict]) -> list[HabitCompletion]:
    """
    Importa completados históricos (herramienta de migración).

    NO es idempotente: si algún (dua, día) ya existe, o está repetido en
    el lote, lanza Conflict y no se escribe nada. No toca el perfil.

    records: [{"habit_id": "custom-3", "date": date(...), "xp_awarded": 25}, ...]
    """
    get_profile_row(db, user_id)

    # Validar todo antes de añadir nada a la sesión
    validated = []
    for r in records:
        habit, _ = find_habit(db, user_id, r["habit_id"])
        xp_awarded = r.get("xp_awarded", habit.xp_value)
        if xp_awarded < 0:
            raise ValueError("xp_awarded no puede ser negativo")
        validated.append((habit, xp_awarded, r))

    keys = [(habit.dua_id, r["date"]) for habit, _, r in validated]
    if len(set(keys)) != len(keys):
        raise Conflict("El lote contiene completados repetidos")

    clashes = [
        f"{habit.id}@{r['date']}" for habit, _, r in validated
        if _find_record(db, user_id, habit.dua_id, r["date"]) is not None
    ]
    if clashes:
        raise Conflict(f"Ya existen completados para: {', '.join(clashes)}")

    imported = []
    for habit, xp_awarded, r in validated:
        record = HabitCompletion(
            user_id=user_id,
            habit_id=habit.id,
            dua_id=habit.dua_id,
            date=r["date"],
            completed_at=r.get("completed_at") or datetime.utcnow(),
            xp_awarded=xp_awarded,
        )
        db.add(record)
        imported.append(record)

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Ya existe un completado para alguno de los registros") from e

    logger.info(f"📥 {len(imported)} completados importados (user: {user_id})")
    return imported
