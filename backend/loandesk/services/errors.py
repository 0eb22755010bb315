"""Exception taxonomy shared by the quotation and loan services."""

import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Base exception for quotation/loan engine errors."""


class ValidationError(EngineError):
    """Input is malformed or out of range. Raised before any state change."""

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        super().__init__(message)
        self.field_errors = field_errors or {}


class NotFoundError(EngineError):
    """A referenced entity (or stage name) does not exist."""


class TransientStorageError(EngineError):
    """Persistence failed for infrastructure reasons; the caller may retry."""


class PolicyUnavailable(EngineError):
    """Policy could not be read. Callers substitute the default thresholds."""


@asynccontextmanager
async def storage_errors(operation: str):
    """Re-raise SQLAlchemy failures inside the block as TransientStorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Storage failure during %s: %s", operation, e)
        raise TransientStorageError(f"{operation} failed") from e
