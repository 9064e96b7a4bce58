import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from game_service import schemas
from game_service.auth import require_identity
from game_service.db import get_db
from game_service.errors import BadRequest, InternalError, ValidationError
from game_service.stores import ScoreStore, UserStore, parse_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scores", tags=["Scores"])


@router.post("", response_model=schemas.ScoreCreatedResponse, status_code=status.HTTP_201_CREATED)
def submit_score(
    payload: schemas.ScoreSubmission,
    request: Request,
    identity: schemas.IdentityClaim = Depends(require_identity),
    db: Session = Depends(get_db),
):
    """
    Records a score for the authenticated user and raises their personal best
    when the new score beats it.
    """
    if payload.score is None:
        raise BadRequest("Score is required.")

    max_score = request.app.state.settings.max_score
    if payload.score > max_score:
        raise ValidationError(errors={"score": f"Score cannot be greater than {max_score}."})

    try:
        new_score = ScoreStore(db).append(identity.id, identity.username, payload.score)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while saving score for user_id {identity.id}: {e}", exc_info=True)
        raise InternalError("Server error while submitting the score.")

    # La respuesta se arma antes del rollback, que expiraría new_score
    saved_score = schemas.ScoreResponse.model_validate(new_score)
    logger.info(f"Score {saved_score.score} saved for user_id: {identity.id}")

    # El récord personal es secundario: un fallo aquí no anula la puntuación guardada
    try:
        if UserStore(db).update_highest_score(identity.id, saved_score.score):
            logger.info(f"New highest score {saved_score.score} for user_id: {identity.id}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not update highest score for user_id {identity.id}: {e}", exc_info=True)

    return {
        "message": "Score submitted successfully!",
        "score": saved_score,
    }


@router.get("/leaderboard", response_model=List[schemas.LeaderboardEntry])
def leaderboard(
    request: Request,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Public leaderboard: highest score first, older entries first on ties.
    Invalid pagination values fall back to the defaults.
    """
    parsed_limit, parsed_offset = parse_pagination(
        limit, offset, max_limit=request.app.state.settings.leaderboard_max_limit
    )
    try:
        top_scores = ScoreStore(db).top_scores(parsed_limit, parsed_offset, with_users=True)
        return [schemas.LeaderboardEntry.model_validate(entry) for entry in top_scores]
    except SQLAlchemyError as e:
        logger.error(f"Database error while reading the leaderboard: {e}", exc_info=True)
        raise InternalError("Server error while fetching the leaderboard.")
