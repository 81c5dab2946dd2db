"""
=============================================================================
ERRORS.PY — Tipos de Error del Motor
=============================================================================
Todos los errores son por petición: ninguno es fatal para el proceso.

  NotFound           → usuario, hábito, dua o journey inexistente (404)
  Conflict           → se intenta romper la unicidad de HabitCompletion por
                       un camino NO idempotente (ej: importación masiva) (409)
  InvalidState       → operación que no tiene sentido en el estado actual,
                       ej: borrar un hábito que viene de un journey (422)
  StorageUnavailable → la BD no responde; se reintenta con backoff (503)

El re-completado idempotente NO es un error: se trata como éxito.
"""

import os
import time
import logging
from functools import wraps

logger = logging.getLogger("rizq.errors")

STORAGE_RETRY_ATTEMPTS = int(os.getenv("STORAGE_RETRY_ATTEMPTS", "3"))
STORAGE_RETRY_DELAY = float(os.getenv("STORAGE_RETRY_DELAY", "0.2"))


class RizqError(Exception):
    """Base de todos los errores del motor. `detail` se muestra al usuario."""
    status_code = 400
    default_detail = "Error en la petición"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(RizqError):
    status_code = 404
    default_detail = "Recurso no encontrado"


class Conflict(RizqError):
    status_code = 409
    default_detail = "El registro ya existe"


class InvalidState(RizqError):
    status_code = 422
    default_detail = "Operación no permitida en el estado actual"


class StorageUnavailable(RizqError):
    status_code = 503
    default_detail = "Almacenamiento no disponible, inténtelo de nuevo"


def retry_on_storage_error(retries: int = None, delay: float = None):
    """
    Reintenta la función si lanza StorageUnavailable.

    Espera delay, 2*delay, 4*delay... entre intentos. Si se agotan los
    intentos, el error se propaga al llamador (la API responde 503).
    Solo tiene sentido sobre operaciones seguras de repetir: completar un
    hábito lo es porque el segundo intento cae en el camino idempotente.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempts = retries if retries is not None else STORAGE_RETRY_ATTEMPTS
            wait = delay if delay is not None else STORAGE_RETRY_DELAY
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except StorageUnavailable:
                    if attempt == attempts:
                        logger.error(f"❌ {func.__name__}: almacenamiento no disponible tras {attempts} intentos")
                        raise
                    logger.warning(f"⚠️ {func.__name__}: intento {attempt} fallido, reintentando en {wait:.2f}s")
                    time.sleep(wait)
                    wait *= 2
        return wrapper
    return decorator
