"""Configuración del servicio: se carga una sola vez al arrancar y se pasa a create_app()."""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

REQUIRED_VARS = ["DATABASE_URL", "JWT_SECRET_KEY"]


def _as_bool(value: Optional[str]) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Configuración inmutable del proceso. Nunca se lee el entorno fuera de aquí."""
    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    host: str = "0.0.0.0"
    port: int = 5000
    leaderboard_max_limit: int = 100
    max_score: int = 1_000_000_000
    strict_token_check: bool = False
    db_echo: bool = False
    log_level: str = "INFO"

    def __repr__(self) -> str:
        # El secreto no debe aparecer en logs ni trazas
        return (
            f"Settings(database_url={self.database_url!r}, jwt_secret_key='***', "
            f"port={self.port}, strict_token_check={self.strict_token_check})"
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Carga variables de entorno (y el archivo .env si existe) y verifica que las esenciales existan.

    Raises:
        EnvironmentError: si falta DATABASE_URL o JWT_SECRET_KEY.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    missing = [var for var in REQUIRED_VARS if not environ.get(var)]
    if missing:
        msg = f"Missing required environment variables: {', '.join(missing)}"
        logger.critical(msg)
        raise EnvironmentError(msg)

    try:
        return Settings(
            database_url=environ["DATABASE_URL"],
            jwt_secret_key=environ["JWT_SECRET_KEY"],
            access_token_expire_minutes=int(environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60)),
            host=environ.get("HOST", "0.0.0.0"),
            port=int(environ.get("PORT", 5000)),
            leaderboard_max_limit=int(environ.get("LEADERBOARD_MAX_LIMIT", 100)),
            max_score=int(environ.get("MAX_SCORE", 1_000_000_000)),
            strict_token_check=_as_bool(environ.get("STRICT_TOKEN_CHECK")),
            db_echo=_as_bool(environ.get("DB_ECHO")),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )
    except ValueError as e:
        msg = f"Invalid numeric configuration value: {e}"
        logger.critical(msg)
        raise EnvironmentError(msg) from e
