"""
=============================================================================
PROFILES.PY — Almacén de Perfiles
=============================================================================
Un perfil por usuario. Se crea en el primer inicio de sesión y lo modifican
solo dos caminos:
  - completions.complete() → XP, nivel, racha (vía progression.py)
  - load_profile()         → reseteo perezoso de la racha al leer

El "hoy" de un usuario es SU fecha local (zona horaria guardada en el
perfil), nunca la fecha del servidor.
"""

import os
import logging
from datetime import date, datetime
from typing import Optional

import pytz
from sqlalchemy.orm import Session

from database import storage_errors
from errors import NotFound
from models import UserProfile
from progression import ProfileState, decay_streak

logger = logging.getLogger("rizq.profiles")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
DEFAULT_DISPLAY_NAME = "Traveler"


def local_today(tz_name: Optional[str] = None) -> date:
    """Fecha de hoy en la zona horaria indicada (o la por defecto)"""
    try:
        tz = pytz.timezone(tz_name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"⚠️ Zona horaria desconocida '{tz_name}', usando {DEFAULT_TIMEZONE}")
        tz = pytz.timezone(DEFAULT_TIMEZONE)
    return datetime.now(tz).date()


def today_for(profile: UserProfile) -> date:
    return local_today(profile.timezone)


def get_profile_row(db: Session, user_id: str, for_update: bool = False) -> UserProfile:
    """Fila del perfil SIN corrección de racha. NotFound si no existe."""
    query = db.query(UserProfile).filter(UserProfile.user_id == user_id)
    if for_update:
        # En PostgreSQL bloquea la fila hasta el commit; SQLite lo ignora
        # y la columna version detecta la escritura perdida.
        query = query.with_for_update()
    profile = query.first()
    if profile is None:
        raise NotFound("Usuario no encontrado")
    return profile


@storage_errors
def sign_in(db: Session, user_id: str, display_name: Optional[str] = None,
            timezone: Optional[str] = None) -> UserProfile:
    """
    Primer inicio de sesión: crea el perfil si no existe.
    Si ya existe, lo devuelve (con la racha corregida).
    """
    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    if profile is not None:
        return load_profile(db, user_id)

    profile = UserProfile(
        user_id=user_id,
        display_name=(display_name or "").strip() or DEFAULT_DISPLAY_NAME,
        timezone=timezone or DEFAULT_TIMEZONE,
        streak=0,
        total_xp=0,
        level=1,
        last_active_date=None,
    )
    db.add(profile)
    db.commit()

    logger.info(f"👤 Nuevo perfil: {profile.display_name} ({user_id})")
    return profile


@storage_errors
def load_profile(db: Session, user_id: str, today: Optional[date] = None) -> UserProfile:
    """
    Carga el perfil aplicando el reseteo perezoso de la racha.
    Si la racha se rompió, el 0 se guarda inmediatamente.
    """
    profile = get_profile_row(db, user_id)
    if today is None:
        today = today_for(profile)

    state = ProfileState.from_profile(profile)
    decayed = decay_streak(state, today)
    if decayed != state:
        decayed.write_to(profile)
        db.commit()
        logger.info(f"💔 Racha rota para {user_id} (último día activo: {state.last_active_date}, racha era {state.streak})")
    return profile


@storage_errors
def update_profile(db: Session, user_id: str, display_name: Optional[str] = None,
                   timezone: Optional[str] = None) -> UserProfile:
    """Actualiza nombre y/o zona horaria"""
    profile = get_profile_row(db, user_id)
    if display_name is not None:
        profile.display_name = display_name.strip() or DEFAULT_DISPLAY_NAME
    if timezone is not None:
        profile.timezone = timezone
    db.commit()
    return load_profile(db, user_id)
