"""
=============================================================================
DATABASE.PY — Configuración de la Base de Datos
=============================================================================
Un único adaptador de almacenamiento para todo el motor de práctica diaria.

En DESARROLLO: SQLite (un archivo rizq.db)
En PRODUCCIÓN: PostgreSQL (variable de entorno DATABASE_URL)

Nada de la lógica de negocio sabe qué motor hay debajo: todos los módulos
reciben una Session y hablan con ella. Si algún día conviven dos backends
(migración), se elige aquí por configuración, nunca en la lógica.
"""

import os
import logging
from functools import wraps

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import sessionmaker, declarative_base

from errors import StorageUnavailable

logger = logging.getLogger("rizq.database")

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rizq.db")

# Los proveedores dan la URL con "postgres://" pero SQLAlchemy necesita
# "postgresql+psycopg://" para usar psycopg (v3) como driver.
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

# ─────────────────────────────────────────────────────────────────────────────
# ENGINE
# ─────────────────────────────────────────────────────────────────────────────
# connect_args={"check_same_thread": False} → solo para SQLite, que por defecto
# no permite usar una conexión desde varios hilos.

engine_args = {}
if DATABASE_URL.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, **engine_args)

# ─────────────────────────────────────────────────────────────────────────────
# SESSION
# ─────────────────────────────────────────────────────────────────────────────
# expire_on_commit=False → los objetos siguen legibles tras el commit
# (las respuestas de la API se construyen después de confirmar la transacción).

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# ─────────────────────────────────────────────────────────────────────────────
# BASE
# ─────────────────────────────────────────────────────────────────────────────

Base = declarative_base()


def get_db():
    """
    Dependencia de FastAPI: abre una sesión por petición y la cierra al final.

      @app.get("/algo")
      def mi_endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Crea todas las tablas si no existen.
    Se llama una vez al arrancar (y en los tests con su propio engine).
    """
    # Importar los modelos registra sus tablas en Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# ─────────────────────────────────────────────────────────────────────────────
# ERRORES DE ALMACENAMIENTO
# ─────────────────────────────────────────────────────────────────────────────

def storage_errors(func):
    """
    Traduce los fallos del driver (conexión caída, timeout, BD bloqueada...)
    a StorageUnavailable, que es reintentable.

    IntegrityError NO se traduce: es una violación de restricción y la
    gestiona quien la provoca (ej: la unicidad de HabitCompletion).
    """
    @wraps(func)
    def wrapper(db, *args, **kwargs):
        try:
            return func(db, *args, **kwargs)
        except IntegrityError:
            raise
        except DBAPIError as e:
            db.rollback()
            logger.error(f"💥 Almacenamiento no disponible en {func.__name__}: {e}")
            raise StorageUnavailable() from e
    return wrapper
