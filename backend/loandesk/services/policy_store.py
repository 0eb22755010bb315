"""Policy Store: currently effective high-value thresholds and top-up window.

Reads are never cached: a policy edit applies to the next classification.
When the row is missing or cannot be read, system defaults are used.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.config import settings
from loandesk.database import utcnow
from loandesk.models.policy import (
    PolicyConfig,
    DEFAULT_HIGH_VALUE_LOAN_AMOUNT,
    DEFAULT_MIN_INTEREST_RATE,
    DEFAULT_MAX_TENURE,
)
from loandesk.services.actor import Actor
from loandesk.services.audit import record_audit
from loandesk.services.errors import PolicyUnavailable, TransientStorageError, storage_errors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyThresholds:
    loan_amount: float = DEFAULT_HIGH_VALUE_LOAN_AMOUNT
    min_interest_rate: float = DEFAULT_MIN_INTEREST_RATE
    max_tenure: int = DEFAULT_MAX_TENURE


DEFAULT_THRESHOLDS = PolicyThresholds()


async def _load_policy(db: AsyncSession) -> PolicyConfig | None:
    """Read the policy row inside a savepoint.

    A failed read rolls back only the savepoint, so the caller's transaction
    stays usable (PostgreSQL aborts the whole transaction otherwise).
    """
    try:
        async with db.begin_nested():
            result = await db.execute(select(PolicyConfig).order_by(PolicyConfig.id).limit(1))
            return result.scalar_one_or_none()
    except SQLAlchemyError as e:
        raise PolicyUnavailable(str(e)) from e


async def get_policy_thresholds(db: AsyncSession) -> PolicyThresholds:
    try:
        policy = await _load_policy(db)
    except PolicyUnavailable as e:
        logger.warning("Policy store unavailable, using default thresholds: %s", e)
        return DEFAULT_THRESHOLDS

    if policy is None:
        return DEFAULT_THRESHOLDS
    return PolicyThresholds(
        loan_amount=float(policy.high_value_loan_amount),
        min_interest_rate=float(policy.high_value_min_interest_rate),
        max_tenure=int(policy.high_value_max_tenure),
    )


async def get_top_up_eligibility_months(db: AsyncSession) -> int:
    try:
        policy = await _load_policy(db)
    except PolicyUnavailable as e:
        logger.warning("Policy store unavailable, using default top-up window: %s", e)
        return settings.default_top_up_eligibility_months

    if policy is None:
        return settings.default_top_up_eligibility_months
    return int(policy.top_up_eligibility_months)


async def get_policy(db: AsyncSession) -> PolicyConfig:
    """Return the policy row, creating it with defaults on first access."""
    try:
        policy = await _load_policy(db)
    except PolicyUnavailable as e:
        raise TransientStorageError(f"load policy failed: {e}") from e

    if policy is None:
        async with storage_errors("create default policy"):
            policy = PolicyConfig(
                top_up_eligibility_months=settings.default_top_up_eligibility_months,
            )
            db.add(policy)
            await db.flush()
    return policy


async def update_policy(db: AsyncSession, changes: dict[str, Any], actor: Actor) -> PolicyConfig:
    """Apply an administrator's edit.

    *changes* uses the flat column names; ``high_value_thresholds`` may also be
    passed as a nested ``{loan_amount, min_interest_rate, max_tenure}`` dict.
    """
    flat = dict(changes)
    thresholds = flat.pop("high_value_thresholds", None)
    if thresholds:
        if "loan_amount" in thresholds:
            flat["high_value_loan_amount"] = thresholds["loan_amount"]
        if "min_interest_rate" in thresholds:
            flat["high_value_min_interest_rate"] = thresholds["min_interest_rate"]
        if "max_tenure" in thresholds:
            flat["high_value_max_tenure"] = thresholds["max_tenure"]

    policy = await get_policy(db)
    async with storage_errors("update policy"):
        for field, value in flat.items():
            setattr(policy, field, value)
        policy.updated_by = str(actor.uid) if actor.uid is not None else actor.name
        policy.updated_at = utcnow()
        await db.flush()
        await record_audit(db, actor, "updated_policy", "policy", policy.id, changes)

    logger.info("Policy %s updated by %s: %s", policy.id, actor.name, sorted(flat))
    return policy
