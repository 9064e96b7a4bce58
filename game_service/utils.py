"""Funciones de utilidad del servicio: hash de contraseñas y emisión/verificación de tokens JWT."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from game_service.config import Settings
from game_service.errors import TokenInvalid
from game_service.schemas import IdentityClaim

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica una contraseña plana contra un hash almacenado."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        # Hash corrupto o con formato desconocido
        logger.warning(f"Password verification could not run: {e}")
        return False


def get_password_hash(password: str) -> str:
    """Genera el hash de una contraseña plana usando bcrypt (sal aleatoria incluida)."""
    return pwd_context.hash(password)


# --- Utilidades para Tokens JWT ---

class TokenService:
    """
    Emite y verifica tokens firmados con la identidad del usuario.

    No consulta la base de datos: la confianza depende solo de la firma y de la
    expiración, por lo que un token emitido sigue siendo válido hasta que expire.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_minutes: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            expire_minutes=settings.access_token_expire_minutes,
        )

    def __repr__(self) -> str:
        return f"TokenService(algorithm={self.algorithm!r}, expire_minutes={self.expire_minutes})"

    def issue(self, claim: IdentityClaim) -> str:
        """
        Genera un token JWT con la identidad y una marca de tiempo de expiración absoluta.

        Args:
            claim: Identidad a incluir en el token ({id, username}).

        Returns:
            String del JWT codificado.
        """
        now = self._clock()
        to_encode = {
            "user": {"id": claim.id, "username": claim.username},
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=self.expire_minutes)).timestamp()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> IdentityClaim:
        """
        Decodifica y valida un token JWT.

        Raises:
            TokenInvalid: firma incorrecta, token malformado, expirado o sin identidad.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False, "require_exp": True},
            )
        except JWTError as e:
            raise TokenInvalid(str(e)) from e

        user = payload.get("user")
        if not isinstance(user, dict):
            raise TokenInvalid("Token payload has no user claim")
        try:
            return IdentityClaim(id=user.get("id"), username=user.get("username"))
        except ValueError as e:
            raise TokenInvalid("Token user claim is incomplete") from e
