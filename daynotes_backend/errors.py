"""
Error taxonomy shared by the stores, the HTTP layer and the bot.

Each class carries the HTTP status the API answers with; the stores raise
them and never return sentinel values.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DaynotesError(Exception):
    status_code = 500
    detail = "Internal server error."

    def __init__(self, detail=None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class BadRequest(DaynotesError):
    status_code = 400
    detail = "Bad request."


class Unauthorized(DaynotesError):
    status_code = 401
    detail = "Could not validate credentials."


class NotFound(DaynotesError):
    status_code = 404
    detail = "Note not found."


class Conflict(DaynotesError):
    status_code = 409
    detail = "Already exists."


class Malformed(DaynotesError):
    """Raised when an uploaded snapshot fails validation. Nothing was written."""
    status_code = 422
    detail = "Malformed snapshot."


class StorageError(DaynotesError):
    """Storage access failed. The message is generic; details go to the log."""


class ConfigurationError(Exception):
    """Missing or invalid configuration at startup."""


@contextmanager
def storage_errors(operation):
    """Turn SQLAlchemy failures into StorageError, logging the real cause."""
    try:
        yield
    except SQLAlchemyError:
        logger.exception("Storage failure during %s", operation)
        raise StorageError() from None
