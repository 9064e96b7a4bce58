"""Modelos Pydantic (schemas) para validación de datos de entrada/salida del servicio."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

# --- Schemas de Entrada ---

class RegisterRequest(BaseModel):
    """Datos de registro. La obligatoriedad se comprueba en el handler (400 con mensaje propio)."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    avatar: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ScoreSubmission(BaseModel):
    """Un número o un string numérico entero; el techo (MAX_SCORE) se aplica en el handler."""
    score: Optional[int] = Field(None, ge=0, description="Puntuación obtenida en la partida")

    @field_validator("score", mode="before")
    @classmethod
    def reject_booleans(cls, value):
        if isinstance(value, bool):
            raise ValueError("Score must be an integer.")
        return value


# --- Schemas de Usuario ---

class UserResponse(BaseModel):
    """Proyección segura del usuario (excluye la contraseña)."""
    id: int
    username: str
    email: str
    avatar: str

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(BaseModel):
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    message: str
    token: str
    user: UserResponse


# --- Schemas de Puntuación ---

def as_utc(value: datetime) -> datetime:
    """SQLite y MySQL devuelven fechas sin zona; se guardan siempre en UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScoreResponse(BaseModel):
    id: int
    # En el ORM `user` es la relación; el id está en `user_id`
    user: int = Field(validation_alias=AliasChoices("user_id", "user"))
    username: str
    score: int
    created_at: datetime = Field(
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> datetime:
        return as_utc(value)


class ScoreCreatedResponse(BaseModel):
    message: str
    score: ScoreResponse


class LeaderboardUser(BaseModel):
    id: int
    username: str
    avatar: str

    model_config = ConfigDict(from_attributes=True)


class LeaderboardEntry(BaseModel):
    """Fila del ranking con el usuario propietario ya resuelto (username y avatar)."""
    id: int
    user: Optional[LeaderboardUser] = None
    username: str
    score: int
    created_at: datetime = Field(
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> datetime:
        return as_utc(value)


# --- Schemas de Token ---

class IdentityClaim(BaseModel):
    """Payload de identidad firmado dentro del token."""
    id: int
    username: str


class ErrorResponse(BaseModel):
    message: str
    errors: Optional[Dict[str, str]] = None


LeaderboardResponse = List[LeaderboardEntry]
