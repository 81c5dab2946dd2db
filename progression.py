"""
=============================================================================
PROGRESSION.PY — Calculadora de Progresión (XP, Nivel, Racha)
=============================================================================
Funciones PURAS: reciben un estado y devuelven otro nuevo. No tocan la BD.
Guardar el resultado es responsabilidad de quien llama (completions.py,
profiles.py).

Curva de niveles (cuadrática):
  umbral(L) = 50 * L * (L + 1)
  nivel = el mayor L ≥ 1 con umbral(L) <= XP total (1 si no hay ninguno)

    XP total     nivel
    0 – 299        1
    300 – 599      2
    600 – 999      3
    1000 – 1499    4

El nivel se recalcula SIEMPRE desde el XP total. Nunca se suma +1 al nivel
directamente, así es imposible que se desincronice.

Rachas:
  - Completar el mismo día que el último activo → la racha no cambia
  - Completar el día siguiente → racha + 1
  - Otro caso (primer día, o tras un hueco) → racha + 1 sobre un perfil que
    ya pasó por decay_streak (ver abajo), así que el hueco deja la racha en 1
  - La racha se pone a 0 al LEER el perfil si el último día activo no es hoy
    ni ayer (decay_streak). No hay tareas programadas.
"""

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Optional

LEVEL_XP_FACTOR = 50


@dataclass(frozen=True)
class ProfileState:
    """Foto inmutable de la parte "gamificada" de un perfil"""
    total_xp: int = 0
    level: int = 1
    streak: int = 0
    last_active_date: Optional[date] = None

    @classmethod
    def from_profile(cls, profile) -> "ProfileState":
        return cls(
            total_xp=profile.total_xp or 0,
            level=profile.level or 1,
            streak=profile.streak or 0,
            last_active_date=profile.last_active_date,
        )

    def write_to(self, profile):
        """Copia el estado sobre una fila UserProfile (sin commit)"""
        profile.total_xp = self.total_xp
        profile.level = self.level
        profile.streak = self.streak
        profile.last_active_date = self.last_active_date
        return profile


# =============================================================================
# ===================== NIVELES ===============================================
# =============================================================================

def xp_threshold(level: int) -> int:
    """XP total necesario para el umbral del nivel L"""
    return LEVEL_XP_FACTOR * level * (level + 1)


def calculate_level(total_xp: int) -> int:
    """Mayor L ≥ 1 tal que 50·L·(L+1) <= total_xp; 1 si ninguno lo cumple"""
    level = 1
    while xp_threshold(level + 1) <= total_xp:
        level += 1
    return level


def xp_progress(total_xp: int) -> dict:
    """
    Progreso dentro del nivel actual (para la barra de XP).

    Retorna:
      {"level": 1, "current": 120, "needed": 300, "percentage": 40.0}
    """
    level = calculate_level(total_xp)
    floor = xp_threshold(level) if level > 1 else 0
    ceiling = xp_threshold(level + 1)
    current = total_xp - floor
    needed = ceiling - floor
    return {
        "level": level,
        "current": current,
        "needed": needed,
        "percentage": min(round(current / needed * 100, 1), 100.0),
    }


# =============================================================================
# ===================== COMPLETAR UN HÁBITO ===================================
# =============================================================================

def apply_completion(profile: ProfileState, xp_delta: int, completion_date: date) -> ProfileState:
    """
    Nuevo estado del perfil tras completar un hábito.

    completion_date es la fecha LOCAL del usuario.
    Un completado con fecha anterior al último día activo (registro atrasado)
    solo suma XP: ni la racha ni last_active_date retroceden.
    """
    if xp_delta < 0:
        raise ValueError("xp_delta no puede ser negativo")

    new_total_xp = profile.total_xp + xp_delta
    new_level = calculate_level(new_total_xp)

    last_active = profile.last_active_date
    if last_active is not None and completion_date < last_active:
        return replace(profile, total_xp=new_total_xp, level=new_level)

    if last_active == completion_date:
        streak = profile.streak
    else:
        # Día consecutivo, primer día o tras un hueco (ya reseteado por decay)
        streak = profile.streak + 1

    return ProfileState(
        total_xp=new_total_xp,
        level=new_level,
        streak=streak,
        last_active_date=completion_date,
    )


def decay_streak(profile: ProfileState, today: date) -> ProfileState:
    """
    Corrección perezosa al leer: si el último día activo no es hoy ni ayer,
    la racha se rompió y vuelve a 0.
    """
    if profile.streak == 0:
        return profile
    last_active = profile.last_active_date
    if last_active is None or last_active < today - timedelta(days=1):
        return replace(profile, streak=0)
    return profile
