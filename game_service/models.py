"""Define los modelos de las tablas 'users', 'achievements' y 'scores' usando SQLAlchemy ORM."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from game_service.db import Base

DEFAULT_AVATAR = "default_avatar_placeholder.png"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Modelo SQLAlchemy que representa la tabla 'users'.
    Almacena la información de autenticación y el récord personal del jugador.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    username = Column(String(30), unique=True, index=True, nullable=False)

    # Se guarda siempre en minúsculas y sin espacios
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Hash bcrypt; nunca la contraseña en texto plano
    hashed_password = Column(String(255), nullable=False)

    avatar = Column(String(255), nullable=False, default=DEFAULT_AVATAR)

    # Solo aumenta (ver UserStore.update_highest_score)
    highest_score = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    achievements = relationship(
        "Achievement",
        back_populates="user",
        order_by=lambda: [Achievement.unlocked_at, Achievement.id],
        cascade="all, delete-orphan",
    )


class Achievement(Base):
    """Logro desbloqueado por un usuario (ej. 'level1_cleared', 'streak_5')."""
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    achievement_id = Column(String(100), nullable=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="achievements")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )


class Score(Base):
    """
    Entrada del ranking. Inmutable una vez creada.
    `username` es una copia desnormalizada tomada al momento del envío.
    """
    __tablename__ = "scores"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    username = Column(String(30), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User")

    # Índice compuesto para las consultas del ranking
    __table_args__ = (
        Index("idx_scores_ranking", "score", "created_at"),
    )
