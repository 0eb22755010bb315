"""Audit trail emission. Write-only: nothing in the engine reads it back."""

import logging
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.models.audit import AuditLog
from loandesk.services.actor import Actor

logger = logging.getLogger(__name__)


async def record_audit(
    db: AsyncSession,
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: int | str,
    changes: dict[str, Any] | None = None,
) -> AuditLog:
    """Add an audit row to the caller's unit of work."""
    entry = AuditLog(
        user_id=actor.uid,
        user_name=actor.name,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        changes=to_jsonable_python(changes) if changes is not None else None,
    )
    db.add(entry)
    await db.flush()
    logger.debug("audit %s %s/%s by %s", action, entity_type, entity_id, actor.name)
    return entry
