import logging

from fastapi import HTTPException, status

from app.services.errors import (
    ChainCorruptionError,
    ConfigurationError,
    IllegalStateTransitionError,
    NotFoundError,
    StoryError,
    ValidationFailedError,
)


logger = logging.getLogger(__name__)


def to_http(e: StoryError) -> HTTPException:
    """Мапим бизнес-ошибки в HTTP."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationFailedError):
        return HTTPException(
            status_code=422,
            detail={"message": "Validation failed", "errors": e.errors},
        )
    if isinstance(e, IllegalStateTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (ChainCorruptionError, ConfigurationError)):
        # подробности уже в логе сервиса
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    logger.error("Unmapped story error: %r", e)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
