"""Fixtures compartidos: BD SQLite en memoria, catálogo sembrado y cliente de la API."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token
from catalog import seed_catalog
from database import get_db, init_db
import profiles
from main import app
from models import Dua, Journey, JourneyDua
from profiles import sign_in


# ── Base de datos ───────────────────────────────────────────────────────

@pytest.fixture
def engine():
    """Una BD nueva por test (StaticPool → todas las sesiones comparten la conexión)"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    seed_catalog(db)
    return db


@pytest.fixture
def user(catalog):
    return sign_in(catalog, "user-1", display_name="Amina", timezone="UTC")


# ── Helpers de catálogo ─────────────────────────────────────────────────

@pytest.fixture
def dua_named(db):
    def _find(fragment: str) -> Dua:
        return next(d for d in db.query(Dua).order_by(Dua.id).all() if fragment in d.title)
    return _find


@pytest.fixture
def journey_slug(db):
    def _find(slug: str) -> Journey:
        return db.query(Journey).filter(Journey.slug == slug).one()
    return _find


@pytest.fixture
def make_journey(db):
    """Crea un journey de prueba: items = [(dua, "morning", 1), ...]"""
    def _make(name: str, items: list, sort_order: int = 0) -> Journey:
        journey = Journey(name=name, slug=name.lower().replace(" ", "-"), sort_order=sort_order)
        for dua, slot, order in items:
            journey.duas.append(JourneyDua(dua_id=dua.id, time_slot=slot, sort_order=order))
        db.add(journey)
        db.commit()
        return journey
    return _make


# ── API ─────────────────────────────────────────────────────────────────

@pytest.fixture
def client(catalog, session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "api-user", name: str = None, tz: str = None) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, name=name, tz=tz)}"}
    return _headers


# ── Reloj ───────────────────────────────────────────────────────────────

@pytest.fixture
def freeze_now(monkeypatch):
    """Fija el "ahora" que ve profiles.py: freeze_now(datetime(..., tzinfo=pytz.utc))"""
    def _freeze(instant: datetime):
        class FrozenDatetime(datetime):
            @classmethod
            def now(cls, tz=None):
                return instant.astimezone(tz) if tz else instant.replace(tzinfo=None)

        monkeypatch.setattr(profiles, "datetime", FrozenDatetime)
    return _freeze
