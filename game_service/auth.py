"""Dependencia de seguridad: valida el token Bearer e inyecta la identidad en la petición."""

import logging

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from game_service.db import get_db
from game_service.errors import InternalError, TokenInvalid, Unauthenticated
from game_service.schemas import IdentityClaim
from game_service.stores import UserStore

logger = logging.getLogger(__name__)


def parse_bearer_header(header: str) -> str:
    """Exige exactamente 'Bearer <token>'. Devuelve el token."""
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise Unauthenticated('Invalid token format. Expected "Bearer <token>".')
    return parts[1]


def require_identity(request: Request, db: Session = Depends(get_db)) -> IdentityClaim:
    """
    Dependencia de FastAPI para las rutas protegidas.
    Si el token no es válido la petición se rechaza (401) antes de llegar al handler.
    """
    header = request.headers.get("Authorization")
    if not header:
        logger.warning(f"Missing Authorization header on {request.url.path}")
        raise Unauthenticated("No token, authorization denied.")

    token = parse_bearer_header(header)

    try:
        identity = request.app.state.token_service.verify(token)
    except TokenInvalid as e:
        logger.warning(f"Token verification failed on {request.url.path}: {e}")
        raise Unauthenticated("Token is not valid.")

    if request.app.state.settings.strict_token_check:
        try:
            user = UserStore(db).get(identity.id)
        except SQLAlchemyError as e:
            logger.error(f"Database error while checking token owner {identity.id}: {e}", exc_info=True)
            raise InternalError()
        if user is None:
            logger.warning(f"Token owner {identity.id} no longer exists.")
            raise Unauthenticated("User for this token was not found.")

    request.state.identity = identity
    return identity
