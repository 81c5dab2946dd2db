"""
=============================================================================
MAIN.PY — La API de RIZQ
=============================================================================
Este archivo define TODOS los endpoints de la API REST. La lógica vive en
los módulos del motor; aquí solo se traduce HTTP ↔ motor.

Organización por secciones:
  1. PROFILE      → Primer inicio, perfil, nombre y zona horaria
  2. PROGRESS     → Progreso del día, actividad de la semana y por dua
  3. HABITS       → Hábitos del día, completar, personalizados
  4. JOURNEYS     → Suscripciones a journeys
  5. CATALOG      → Biblioteca de duas y journeys (solo lectura)

La identidad llega en "Authorization: Bearer <jwt>" (ver auth.py).
"""

import os
import logging
import traceback
from datetime import datetime, date
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db, init_db, SessionLocal
from errors import RizqError, StorageUnavailable, retry_on_storage_error, STORAGE_RETRY_DELAY
from schemas import (
    SignIn, ProfileUpdate, ProfileResponse, XpProgress,
    CategoryResponse, DuaResponse, JourneyResponse, JourneyDetailResponse,
    CustomHabitCreate, HabitResponse, GroupedHabitsResponse, SubscriptionResponse,
    CompleteHabitRequest, CompletionResponse, CompleteHabitResponse,
    DailyProgressResponse, DayActivityResponse, WeekActivityResponse, DuaProgressResponse,
)
from auth import Identity, get_identity
from catalog import list_categories, list_duas, get_dua, list_journeys, get_journey, seed_catalog
from habits import (
    add_custom_habit, remove_custom_habit,
    list_subscriptions, subscribe_journey, unsubscribe_journey
)
from completions import complete_habit
from progress import get_daily_progress, get_grouped_progress, get_week_activity, get_dua_progress
from profiles import sign_in, load_profile, update_profile
from progression import xp_progress

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("rizq.api")

SEED_CATALOG = os.getenv("SEED_CATALOG", "1") == "1"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Arranque:
      1. Inicializar BD (crear tablas)
      2. Seed del catálogo (categorías, duas, journeys) si SEED_CATALOG=1
    """
    logger.info("🚀 Arrancando RIZQ API...")

    init_db()
    logger.info("✅ Base de datos inicializada")

    if SEED_CATALOG:
        db = SessionLocal()
        try:
            seed_catalog(db)
        finally:
            db.close()

    logger.info("🎉 RIZQ API operativa")

    yield  # ← La aplicación está corriendo

    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="RIZQ API",
    description="Práctica diaria de duas: hábitos, completados, XP, niveles y rachas",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS → permite que la app web haga peticiones a esta API
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# ERROR HANDLERS
# ─────────────────────────────────────────────────────────────────────────────
# Errores del motor → su código HTTP (404, 409, 422, 503).
# Cualquier otro error no manejado → 500 con el detalle en JSON.

@app.exception_handler(RizqError)
async def rizq_exception_handler(request: Request, exc: RizqError):
    headers = None
    if isinstance(exc, StorageUnavailable):
        headers = {"Retry-After": str(max(1, round(STORAGE_RETRY_DELAY)))}
    logger.warning(f"⚠️ {type(exc).__name__} en {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": type(exc).__name__},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados y devuelve detalles útiles"""
    error_msg = str(exc)
    error_trace = traceback.format_exc()
    logger.error(f"❌ Error no manejado en {request.url}: {error_msg}\n{error_trace}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": error_msg,
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# ─────────────────────────────────────────────────────────────────────────────
# HELPERS DE RESPUESTA
# ─────────────────────────────────────────────────────────────────────────────

def _profile_out(profile) -> ProfileResponse:
    out = ProfileResponse.model_validate(profile)
    out.xp_progress = XpProgress(**xp_progress(profile.total_xp))
    return out


def _habit_out(habit, is_completed: Optional[bool] = None) -> HabitResponse:
    out = HabitResponse.model_validate(habit)
    out.is_completed = is_completed
    return out


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check():
    """Verifica que la API está viva"""
    return {
        "status": "ok",
        "app": "RIZQ",
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: PROFILE ====================================
# =============================================================================

@app.post("/profile/sign-in", response_model=ProfileResponse, tags=["Profile"])
@retry_on_storage_error()
def profile_sign_in(
    data: Optional[SignIn] = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db)
):
    """
    Primer inicio de sesión: crea el perfil (racha 0, XP 0, nivel 1).
    Si ya existe, lo devuelve. El nombre y la zona horaria salen del cuerpo
    o, si no vienen, de los claims del token.
    """
    data = data or SignIn()
    profile = sign_in(
        db, identity.user_id,
        display_name=data.display_name or identity.display_name,
        timezone=data.timezone or identity.timezone,
    )
    return _profile_out(profile)


@app.get("/profile", response_model=ProfileResponse, tags=["Profile"])
@retry_on_storage_error()
def get_profile(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Perfil con la racha ya corregida y el progreso dentro del nivel"""
    return _profile_out(load_profile(db, identity.user_id))


@app.patch("/profile", response_model=ProfileResponse, tags=["Profile"])
@retry_on_storage_error()
def patch_profile(data: ProfileUpdate, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Actualiza nombre y/o zona horaria"""
    profile = update_profile(db, identity.user_id, display_name=data.display_name, timezone=data.timezone)
    return _profile_out(profile)


# =============================================================================
# ===================== SECCIÓN 2: PROGRESS ===================================
# =============================================================================

@app.get("/progress/daily", response_model=DailyProgressResponse, tags=["Progress"])
def daily_progress(
    on_date: Optional[date] = Query(default=None, alias="date"),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db)
):
    """Cuántos hábitos de hoy están hechos, XP ganado y el siguiente pendiente"""
    progress = get_daily_progress(db, identity.user_id, on_date)
    next_habit = progress.next_uncompleted_habit
    return DailyProgressResponse(
        date=progress.date,
        total=progress.total,
        completed=progress.completed,
        percentage=progress.percentage,
        earned_xp_today=progress.earned_xp_today,
        total_xp_available=progress.total_xp_available,
        all_completed=progress.all_completed,
        next_uncompleted_habit=_habit_out(next_habit, is_completed=False) if next_habit else None,
    )


@app.get("/activity/week", response_model=WeekActivityResponse, tags=["Progress"])
def week_activity(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Los últimos 7 días (del más antiguo a hoy)"""
    days = get_week_activity(db, identity.user_id)
    return WeekActivityResponse(
        days=[DayActivityResponse.model_validate(d) for d in days],
        active_days=sum(1 for d in days if d.completed),
        xp_earned=sum(d.xp_earned for d in days),
    )


@app.get("/progress/duas", response_model=list[DuaProgressResponse], tags=["Progress"])
def dua_progress(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Veces completado y último día de cada dua practicado"""
    return [DuaProgressResponse.model_validate(p) for p in get_dua_progress(db, identity.user_id)]


# =============================================================================
# ===================== SECCIÓN 3: HABITS =====================================
# =============================================================================

@app.get("/habits/grouped", response_model=GroupedHabitsResponse, tags=["Habits"])
def grouped_habits(
    on_date: Optional[date] = Query(default=None, alias="date"),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db)
):
    """Hábitos de hoy por franja, cada uno marcado como hecho o pendiente"""
    grouped = get_grouped_progress(db, identity.user_id, on_date)

    def out(statuses):
        return [_habit_out(s.habit, s.is_completed) for s in statuses]

    return GroupedHabitsResponse(
        date=grouped.date,
        total=grouped.total,
        morning=out(grouped.morning),
        anytime=out(grouped.anytime),
        evening=out(grouped.evening),
    )


@app.post("/habits/{habit_id}/complete", response_model=CompleteHabitResponse, tags=["Habits"])
@retry_on_storage_error()
def mark_habit_complete(
    habit_id: str,
    data: Optional[CompleteHabitRequest] = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db)
):
    """
    Marca un hábito como completado.

    Repetirlo el mismo día devuelve el mismo registro y no da XP otra vez
    (already_completed=true). Por eso es seguro reintentarlo.
    """
    on_date = data.on_date if data else None
    result = complete_habit(db, identity.user_id, habit_id, on_date)
    return CompleteHabitResponse(
        completion=CompletionResponse.model_validate(result.record),
        profile=_profile_out(result.profile),
        already_completed=not result.created,
        due_today=result.due,
        leveled_up=result.leveled_up,
    )


@app.post("/habits/custom", response_model=HabitResponse, tags=["Habits"])
@retry_on_storage_error()
def create_custom_habit(data: CustomHabitCreate, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Añade un dua de la biblioteca a la práctica diaria"""
    habit = add_custom_habit(db, identity.user_id, data.dua_id, data.time_slot, data.sort_order)
    return _habit_out(habit)


@app.delete("/habits/custom/{habit_id}", tags=["Habits"])
@retry_on_storage_error()
def delete_custom_habit(habit_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Quita un hábito personalizado (los completados ya hechos se conservan)"""
    habit = remove_custom_habit(db, identity.user_id, habit_id)
    return {"message": f"Hábito '{habit.dua.title}' quitado", "habit_id": habit.id}


# =============================================================================
# ===================== SECCIÓN 4: JOURNEYS ===================================
# =============================================================================

@app.get("/journeys/subscriptions", response_model=list[SubscriptionResponse], tags=["Journeys"])
def my_subscriptions(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return list_subscriptions(db, identity.user_id)


@app.post("/journeys/{journey_id}/subscription", response_model=SubscriptionResponse, tags=["Journeys"])
@retry_on_storage_error()
def subscribe(journey_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Suscribe al journey: sus duas pasan a ser hábitos diarios"""
    return subscribe_journey(db, identity.user_id, journey_id)


@app.delete("/journeys/{journey_id}/subscription", tags=["Journeys"])
@retry_on_storage_error()
def unsubscribe(journey_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Baja del journey: sus hábitos dejan de aparecer (el historial se queda)"""
    unsubscribe_journey(db, identity.user_id, journey_id)
    return {"message": "Suscripción cancelada", "journey_id": journey_id}


# =============================================================================
# ===================== SECCIÓN 5: CATALOG ====================================
# =============================================================================
# Lectura pública del catálogo: no requiere token.

@app.get("/catalog/categories", response_model=list[CategoryResponse], tags=["Catalog"])
def categories(db: Session = Depends(get_db)):
    return list_categories(db)


@app.get("/catalog/duas", response_model=list[DuaResponse], tags=["Catalog"])
def duas(category: Optional[str] = None, db: Session = Depends(get_db)):
    """Biblioteca de duas (filtro opcional por slug de categoría)"""
    return list_duas(db, category)


@app.get("/catalog/duas/{dua_id}", response_model=DuaResponse, tags=["Catalog"])
def dua_detail(dua_id: int, db: Session = Depends(get_db)):
    return get_dua(db, dua_id)


@app.get("/catalog/journeys", response_model=list[JourneyResponse], tags=["Catalog"])
def journeys(featured: bool = False, db: Session = Depends(get_db)):
    return list_journeys(db, featured_only=featured)


@app.get("/catalog/journeys/{journey_id}", response_model=JourneyDetailResponse, tags=["Catalog"])
def journey_detail(journey_id: int, db: Session = Depends(get_db)):
    """Journey con sus duas, en orden y con su franja"""
    return get_journey(db, journey_id)
