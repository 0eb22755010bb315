"""Error capture for failed API requests.

Each failure is classified by the engine error taxonomy (validation, not
found, storage) and tagged with the quotation, loan or notification the
request path addressed, then written to the log and to ``error_logs`` on a
session of its own. Capture never raises.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from loandesk.models.error_log import ErrorCategory, ErrorLog, ErrorSeverity
from loandesk.services.errors import NotFoundError, TransientStorageError, ValidationError

logger = logging.getLogger("loandesk.errors")

_CATEGORIES = (
    (ValidationError, ErrorCategory.VALIDATION),
    (NotFoundError, ErrorCategory.NOT_FOUND),
    (TransientStorageError, ErrorCategory.STORAGE),
    (SQLAlchemyError, ErrorCategory.STORAGE),
)

# /api/<segment>/<id>/...
_ENTITIES = {
    "quotations": "quotation",
    "loans": "loan",
    "notifications": "notification",
    "policy": "policy",
}


@dataclass
class RequestContext:
    method: str
    path: str
    status_code: int
    duration_ms: Optional[float] = None
    user_id: Optional[int] = None


def categorize(exc: Optional[BaseException], status_code: int) -> ErrorCategory:
    for error_cls, category in _CATEGORIES:
        if isinstance(exc, error_cls):
            return category
    if 400 <= status_code < 500:
        return ErrorCategory.REQUEST
    return ErrorCategory.INTERNAL


def severity_of(category: ErrorCategory, status_code: int) -> ErrorSeverity:
    if category is ErrorCategory.INTERNAL:
        return ErrorSeverity.CRITICAL
    if status_code >= 500:
        return ErrorSeverity.ERROR
    return ErrorSeverity.WARNING


def entity_from_path(path: str) -> tuple[Optional[str], Optional[str]]:
    """('loan', '42') for /api/loans/42/stage; (None, None) outside the API."""
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2 or parts[0] != "api" or parts[1] not in _ENTITIES:
        return None, None
    entity_id = parts[2] if len(parts) > 2 and parts[2].isdigit() else None
    return _ENTITIES[parts[1]], entity_id


def _printable(value: object, limit: int) -> str:
    text = "".join(ch if ch >= " " or ch in "\n\t" else " " for ch in str(value))
    return text[:limit]


def _origin(exc: BaseException) -> Optional[str]:
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return None
    last = frames[-1]
    return _printable(f"{last.filename}:{last.name}:{last.lineno}", 300)


def build_entry(exc: Optional[BaseException], ctx: RequestContext) -> ErrorLog:
    category = categorize(exc, ctx.status_code)
    entity_type, entity_id = entity_from_path(ctx.path)
    if exc is None:
        error_type, message, trace, origin = "HTTPError", f"HTTP {ctx.status_code}", None, None
    else:
        error_type = type(exc).__name__
        message = str(exc) or error_type
        origin = _origin(exc)
        trace = None
        if category in (ErrorCategory.STORAGE, ErrorCategory.INTERNAL):
            trace = _printable("".join(traceback.format_exception(exc)), 10000)

    return ErrorLog(
        category=category,
        severity=severity_of(category, ctx.status_code),
        error_type=error_type,
        message=_printable(message, 2000),
        field_errors=getattr(exc, "field_errors", None) or None,
        traceback=trace,
        origin=origin,
        method=ctx.method,
        path=_printable(ctx.path, 500),
        status_code=ctx.status_code,
        duration_ms=ctx.duration_ms,
        user_id=ctx.user_id,
        entity_type=entity_type,
        entity_id=entity_id,
    )


async def capture(exc: Optional[BaseException], ctx: RequestContext) -> Optional[ErrorLog]:
    """Log one failed request and persist it. Returns the stored row, or None."""
    from loandesk.database import async_session

    entry = build_entry(exc, ctx)
    level = logging.WARNING if entry.severity is ErrorSeverity.WARNING else logging.ERROR
    logger.log(
        level,
        "%s %s -> %d %s: %s",
        ctx.method, ctx.path, ctx.status_code, entry.error_type, entry.message,
        extra={
            "category": entry.category.value,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "user_id": entry.user_id,
        },
    )

    try:
        async with async_session() as db:
            db.add(entry)
            await db.commit()
        return entry
    except (SQLAlchemyError, OSError) as db_err:
        logger.warning("Could not persist error log for %s %s: %s", ctx.method, ctx.path, db_err)
        return None
