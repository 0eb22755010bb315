"""Sequential, year-scoped document numbers: Q-2026-00001, L-2026-00042.

Each allocation is one short transaction on a connection from the counter
pool (``database.counter_engine``), separate from the request session. The
counter row is bumped with a single conditional UPDATE ... RETURNING, so
concurrent allocators are serialised by the database row lock and can never
read the same count. The first allocation for a domain inserts the row; a racing
insert loses on the primary key and retries into the UPDATE path.

If storage keeps failing, a timestamp-based number is returned instead. Its
serial part starts with ``T`` and is 16 digits long, so it cannot be mistaken
for (or collide with) a five-digit sequence number.
"""

import asyncio
import logging
import secrets
from datetime import datetime

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from loandesk import database
from loandesk.config import settings
from loandesk.database import utcnow
from loandesk.models.sequence import SequenceCounter

logger = logging.getLogger(__name__)

QUOTATIONS = "quotations"
LOANS = "loans"

DOMAIN_PREFIXES = {
    QUOTATIONS: "Q",
    LOANS: "L",
}

SEQUENCE_WIDTH = 5


def format_number(prefix: str, year: int, count: int) -> str:
    return f"{prefix}-{year}-{count:0{SEQUENCE_WIDTH}d}"


def fallback_number(prefix: str, year: int, now: datetime | None = None) -> str:
    """Non-sequential identifier used when the counter cannot be reached."""
    moment = now or utcnow()
    millis = int(moment.timestamp() * 1000)
    return f"{prefix}-{year}-T{millis:013d}{secrets.randbelow(1000):03d}"


def is_fallback_number(number: str) -> bool:
    parts = number.split("-")
    return len(parts) == 3 and parts[2].startswith("T")


def counter_target(bind: AsyncEngine | None) -> AsyncEngine:
    if bind is None or bind is database.engine:
        return database.counter_engine
    return bind


async def _allocate(session: AsyncSession, domain: str, year: int) -> int:
    """Bump the counter for *domain* and return the new count."""
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.domain == domain)
        .values(
            count=case(
                (SequenceCounter.year == year, SequenceCounter.count + 1),
                else_=1,
            ),
            year=year,
            updated_at=utcnow(),
        )
        .returning(SequenceCounter.count)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    count = result.scalar_one_or_none()
    if count is not None:
        return count

    # First allocation ever for this domain
    session.add(SequenceCounter(domain=domain, year=year, count=1, updated_at=utcnow()))
    await session.flush()
    return 1


async def next_number(
    domain: str,
    *,
    bind: AsyncEngine | None = None,
    now: datetime | None = None,
) -> str:
    """Allocate the next number for *domain* ("quotations" or "loans").

    *bind* selects the engine the counter lives in; the application engine
    (or None) maps to the dedicated counter pool. Never raises for storage
    problems: after ``settings.sequence_max_attempts`` failed attempts the
    fallback format is returned.
    """
    try:
        prefix = DOMAIN_PREFIXES[domain]
    except KeyError:
        raise ValueError(f"Unknown sequence domain: {domain!r}") from None

    year = (now or utcnow()).year
    target = counter_target(bind)
    attempts = settings.sequence_max_attempts
    backoff = settings.sequence_retry_backoff_ms / 1000

    for attempt in range(1, attempts + 1):
        try:
            async with AsyncSession(target, expire_on_commit=False) as session:
                async with session.begin():
                    count = await _allocate(session, domain, year)
            return format_number(prefix, year, count)
        except IntegrityError:
            # Lost the first-insert race; the row exists now.
            logger.debug("Counter %s created concurrently, retrying (attempt %d)", domain, attempt)
        except SQLAlchemyError as e:
            logger.warning(
                "Sequence allocation for %s failed (attempt %d/%d): %s",
                domain, attempt, attempts, e,
            )
        if attempt < attempts and backoff:
            await asyncio.sleep(backoff * attempt)

    number = fallback_number(prefix, year, now)
    logger.warning("Sequence counter %s unavailable, issued fallback number %s", domain, number)
    return number
