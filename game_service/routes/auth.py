import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from game_service import schemas
from game_service.db import get_db
from game_service.errors import APIError, BadRequest, Conflict, InternalError, Unauthenticated
from game_service.stores import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

# Mismo mensaje para email desconocido y contraseña incorrecta
INVALID_CREDENTIALS = "Invalid credentials."


def _is_blank(value) -> bool:
    return not value or not value.strip()


@router.post("/register", response_model=schemas.RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(payload: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """
    Registers a new user. The password is hashed by the store before it is saved
    and is never part of the response.
    """
    if _is_blank(payload.username) or _is_blank(payload.email) or _is_blank(payload.password):
        raise BadRequest("Username, email and password are required.")

    logger.info(f"Registration attempt for username: {payload.username.strip()}")
    store = UserStore(db)
    try:
        if store.find_by_email(payload.email):
            logger.warning("Registration failed: email already registered.")
            raise Conflict("An account with this email already exists.")

        if store.find_by_username(payload.username):
            logger.warning(f"Registration failed: username {payload.username.strip()} already taken.")
            raise Conflict("This username is already taken.")

        new_user = store.create(payload.username, payload.email, payload.password, payload.avatar)
    except APIError:
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during registration: {e}", exc_info=True)
        raise InternalError("Server error during registration.")

    logger.info(f"User created with ID: {new_user.id}")
    return {
        "message": "User registered successfully! Please log in.",
        "user": schemas.UserResponse.model_validate(new_user),
    }


@router.post("/login", response_model=schemas.LoginResponse)
def login(payload: schemas.LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Authenticates a user by email and password and returns a signed token
    valid for the configured lifetime.
    """
    if _is_blank(payload.email) or not payload.password:
        raise BadRequest("Please provide both email and password.")

    store = UserStore(db)
    try:
        user = store.find_by_email(payload.email)
        if not store.verify_password(user, payload.password):
            logger.warning("Login failed: invalid credentials.")
            raise Unauthenticated(INVALID_CREDENTIALS)
    except APIError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error during login: {e}", exc_info=True)
        raise InternalError("Server error during login.")

    token = request.app.state.token_service.issue(
        schemas.IdentityClaim(id=user.id, username=user.username)
    )
    logger.info(f"Login successful for user_id: {user.id}")

    return {
        "message": "Login successful!",
        "token": token,
        "user": schemas.UserResponse.model_validate(user),
    }
