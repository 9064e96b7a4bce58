"""Configuración de la conexión a la base de datos usando SQLAlchemy."""

import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, exc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from game_service.config import Settings
from game_service.errors import InternalError

logger = logging.getLogger(__name__)

# Los modelos de tabla (User, Score, ...) heredan de esta clase.
Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """
    Crea el motor (Engine) de SQLAlchemy a partir de la configuración y verifica la conexión.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: si la base de datos no está disponible al inicio.
    """
    url = settings.database_url
    kwargs = {"echo": settings.db_echo, "pool_pre_ping": True}

    if url.startswith("sqlite"):
        # SQLite en memoria: una sola conexión compartida por todos los hilos
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    try:
        with engine.connect():
            logger.info("Database connection established.")
    except exc.SQLAlchemyError as e:
        logger.error(f"Could not connect to the database: {e}", exc_info=True)
        raise
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Cada petición web usa su propia sesión creada por esta fábrica."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Crea las tablas si no existen."""
    # Importa los modelos para registrarlos en Base.metadata
    from game_service import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified/created.")


# --- Función de Dependencia para FastAPI ---
def get_db(request: Request) -> Iterator[Session]:
    """
    Generador de dependencia de FastAPI para obtener una sesión de base de datos.
    Asegura que la sesión se cierre correctamente después de cada petición.
    """
    session_factory = getattr(request.app.state, "session_factory", None)
    if session_factory is None:
        logger.error("Database session factory is not initialised.")
        raise InternalError()

    db = session_factory()
    try:
        yield db
    except exc.SQLAlchemyError as e:
        logger.error(f"Database error during request: {e}", exc_info=True)
        db.rollback()
        raise InternalError()
    finally:
        db.close()
