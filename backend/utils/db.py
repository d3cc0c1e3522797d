from typing import Optional

from sqlalchemy.exc import IntegrityError, DBAPIError
from core.errors import AppError, InternalError
import logging

logger = logging.getLogger(__name__)


async def safe_commit(session, integrity_error: Optional[AppError] = None, server_error_message: str = "Internal server error"):
    """Commit, rolling back and raising a domain error on failure.

    Unique/foreign-key violations raise `integrity_error` when given;
    everything else becomes an InternalError.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if integrity_error is not None:
            raise integrity_error from e
        logger.error(f"Integrity error on commit: {e}")
        raise InternalError(server_error_message) from e
    except DBAPIError as e:
        await session.rollback()
        logger.error(f"Database error on commit: {e}")
        raise InternalError(server_error_message) from e
