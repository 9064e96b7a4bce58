"""Taxonomía de errores de la API y manejadores de excepciones para FastAPI."""

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Error con código HTTP y mensaje seguro para el cliente."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error."

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class BadRequest(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request."


class Conflict(APIError):
    # Igual que el servicio original: conflicto de unicidad como 400
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Resource already exists."


class ValidationError(APIError):
    """Uno o más campos no cumplen sus restricciones; `errors` lleva un mensaje por campo."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation error."


class Unauthenticated(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required."


class InternalError(APIError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error."


class TokenInvalid(Exception):
    """Firma incorrecta, token malformado o expirado."""


# --- Manejadores de Excepciones ---

async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = {}
    for error in exc.errors():
        # loc = ("body", "score") -> "score"; un JSON inválido queda como "body"
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(loc) or "body"
        errors.setdefault(field, error.get("msg", "Invalid value."))
    logger.warning(f"Request validation failed on {request.url.path}: {list(errors)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationError(errors=errors).to_dict(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
