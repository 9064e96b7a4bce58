"""Capa de datos: almacenes de usuarios (credenciales) y de puntuaciones (ranking)."""

import logging
import re
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from game_service.errors import Conflict, ValidationError
from game_service.models import DEFAULT_AVATAR, Achievement, Score, User
from game_service.utils import get_password_hash, verify_password

logger = logging.getLogger(__name__)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 6
# Columnas String(255) en users
EMAIL_MAX_LENGTH = 255
AVATAR_MAX_LENGTH = 255
EMAIL_PATTERN = re.compile(r".+@.+\..+")

DEFAULT_LIMIT = 10
DEFAULT_OFFSET = 0


_DUMMY_HASH: Optional[str] = None


def _dummy_hash() -> str:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = get_password_hash("not-a-real-password")
    return _DUMMY_HASH


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _validate_password(password: Optional[str]) -> Optional[str]:
    if not password:
        return "Password is required."
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters long."
    # bcrypt no admite el byte NUL
    if "\x00" in password:
        return "Password cannot contain NUL characters."
    return None


class UserStore:
    """Persistencia de usuarios. Calcula el hash de la contraseña antes de escribir."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    def find_by_username(self, username: str) -> Optional[User]:
        return self.db.execute(
            select(User).where(User.username == username.strip())
        ).scalar_one_or_none()

    def validate(
        self,
        username: Optional[str],
        email: Optional[str],
        password: Optional[str],
        avatar: Optional[str] = None,
    ) -> Dict[str, str]:
        """Devuelve un mensaje por cada campo que no cumple sus restricciones."""
        errors = {}

        username = (username or "").strip()
        if not username:
            errors["username"] = "Username is required."
        elif len(username) < USERNAME_MIN_LENGTH:
            errors["username"] = f"Username must be at least {USERNAME_MIN_LENGTH} characters long."
        elif len(username) > USERNAME_MAX_LENGTH:
            errors["username"] = f"Username cannot be longer than {USERNAME_MAX_LENGTH} characters."

        email = normalize_email(email or "")
        if not email:
            errors["email"] = "Email is required."
        elif len(email) > EMAIL_MAX_LENGTH:
            errors["email"] = f"Email cannot be longer than {EMAIL_MAX_LENGTH} characters."
        elif not EMAIL_PATTERN.fullmatch(email):
            errors["email"] = "Please provide a valid email address."

        password_error = _validate_password(password)
        if password_error:
            errors["password"] = password_error

        if avatar and len(avatar) > AVATAR_MAX_LENGTH:
            errors["avatar"] = f"Avatar cannot be longer than {AVATAR_MAX_LENGTH} characters."

        return errors

    def create(self, username: str, email: str, password: str, avatar: Optional[str] = None) -> User:
        """
        Crea el usuario con la contraseña hasheada.

        Raises:
            ValidationError: algún campo no cumple sus restricciones.
            Conflict: el username o el email ya existen.
        """
        errors = self.validate(username, email, password, avatar)
        if errors:
            raise ValidationError(errors=errors)

        new_user = User(
            username=username.strip(),
            email=normalize_email(email),
            hashed_password=get_password_hash(password),
            avatar=avatar or DEFAULT_AVATAR,
        )
        try:
            self.db.add(new_user)
            self.db.commit()
        except IntegrityError:
            # Otra petición registró el mismo username/email entre la búsqueda y el insert
            self.db.rollback()
            logger.warning(f"Registration conflict on insert for username: {new_user.username}")
            raise Conflict("Username or email is already registered.")
        self.db.refresh(new_user)
        return new_user

    def set_password(self, user: User, password: str) -> User:
        """Cambia la contraseña; el hash se recalcula solo en este caso."""
        password_error = _validate_password(password)
        if password_error:
            raise ValidationError(errors={"password": password_error})
        user.hashed_password = get_password_hash(password)
        self.db.commit()
        return user

    def verify_password(self, user: Optional[User], candidate_password: str) -> bool:
        """
        Compara contra el hash guardado. Sin usuario se compara contra un hash ficticio
        para que un email inexistente cueste lo mismo que una contraseña incorrecta.
        """
        if user is None:
            verify_password(candidate_password, _dummy_hash())
            return False
        return verify_password(candidate_password, user.hashed_password)

    def update_highest_score(self, user_id: int, candidate_score: int) -> bool:
        """
        Escritura condicional atómica: solo sube highest_score si candidate_score es mayor.
        Devuelve True si la fila cambió.
        """
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.highest_score < candidate_score)
            .values(highest_score=candidate_score)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0

    def unlock_achievement(self, user_id: int, achievement_id: str) -> Achievement:
        """Registra un logro; si ya estaba desbloqueado devuelve el existente."""
        existing = self.db.execute(
            select(Achievement).where(
                Achievement.user_id == user_id,
                Achievement.achievement_id == achievement_id,
            )
        ).scalar_one_or_none()
        if existing:
            return existing

        achievement = Achievement(user_id=user_id, achievement_id=achievement_id)
        try:
            self.db.add(achievement)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.db.execute(
                select(Achievement).where(
                    Achievement.user_id == user_id,
                    Achievement.achievement_id == achievement_id,
                )
            ).scalar_one()
        self.db.refresh(achievement)
        return achievement


# --- Ranking ---

def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_pagination(limit=None, offset=None, max_limit: int = 100) -> Tuple[int, int]:
    """
    Convierte los parámetros de paginación en enteros seguros.
    limit ausente, no numérico o <= 0 -> 10 (acotado a max_limit); offset inválido o negativo -> 0.
    """
    parsed_limit = _to_int(limit, DEFAULT_LIMIT)
    if parsed_limit <= 0:
        parsed_limit = DEFAULT_LIMIT
    parsed_limit = min(parsed_limit, max_limit)

    parsed_offset = _to_int(offset, DEFAULT_OFFSET)
    if parsed_offset < 0:
        parsed_offset = DEFAULT_OFFSET

    return parsed_limit, parsed_offset


class ScoreStore:
    """Persistencia de puntuaciones. Las puntuaciones no se modifican ni se borran."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, user_id: int, username: str, score: int) -> Score:
        new_score = Score(user_id=user_id, username=username, score=score)
        self.db.add(new_score)
        self.db.commit()
        self.db.refresh(new_score)
        return new_score

    def top_scores(self, limit: int = DEFAULT_LIMIT, offset: int = DEFAULT_OFFSET, with_users: bool = False) -> List[Score]:
        """Puntuación descendente; a igual puntuación, la más antigua primero."""
        query = select(Score).order_by(
            Score.score.desc(),
            Score.created_at.asc(),
            Score.id.asc(),
        ).offset(offset).limit(limit)

        if with_users:
            query = query.options(joinedload(Score.user))

        return list(self.db.execute(query).scalars().all())
