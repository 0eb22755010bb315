"""Quotation engine.

Ties together the EMI calculator, the high-value classifier and the sequence
generator. ``emi``, ``is_high_value`` and ``high_value_reasons`` are derived
from (loan_amount, interest_rate, tenure) and are recomputed together
whenever any of the three changes; callers cannot set them directly.
"""

import logging
from typing import Any, Mapping

import pydantic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.config import settings
from loandesk.database import utcnow
from loandesk.models.notification import NotificationType, RelatedType
from loandesk.models.quotation import Quotation, QuotationStatus
from loandesk.models.user import OVERSIGHT_ROLES
from loandesk.schemas import QuotationCreate, QuotationUpdate
from loandesk.services import sequence_generator
from loandesk.services.actor import Actor
from loandesk.services.audit import record_audit
from loandesk.services.emi_calculator import calculate_emi
from loandesk.services.errors import NotFoundError, ValidationError, storage_errors
from loandesk.services.high_value import HighValueResult, check_high_value
from loandesk.services.notifications import format_inr, notify_roles

logger = logging.getLogger(__name__)

TERM_FIELDS = ("loan_amount", "interest_rate", "tenure")


def coerce_input(schema: type[pydantic.BaseModel], data: Any) -> Any:
    """Accept either a schema instance or a mapping; map pydantic errors to ValidationError."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as e:
        field_errors = {
            ".".join(str(p) for p in err["loc"]) or "__root__": err["msg"]
            for err in e.errors()
        }
        raise ValidationError("Validation error", field_errors) from e


async def _notify_high_value(db: AsyncSession, quotation: Quotation) -> None:
    """Alert every admin and managing director. Never raises."""
    try:
        await notify_roles(
            db,
            OVERSIGHT_ROLES,
            NotificationType.HIGH_VALUE_QUOTATION,
            title="High-Value Quotation Created",
            message=(
                f"{quotation.agent_name} created a high-value quotation "
                f"{quotation.quotation_number} for {format_inr(quotation.loan_amount)}"
            ),
            related_id=quotation.id,
            related_type=RelatedType.QUOTATION,
        )
    except Exception:
        logger.exception("High-value notification for quotation %s failed", quotation.id)


def _apply_derived(quotation: Quotation, emi: int, verdict: HighValueResult) -> None:
    quotation.emi = emi
    quotation.is_high_value = verdict.is_high_value
    quotation.high_value_reasons = list(verdict.reasons)


async def create_quotation(
    db: AsyncSession,
    data: QuotationCreate | Mapping[str, Any],
    actor: Actor,
) -> Quotation:
    payload = coerce_input(QuotationCreate, data)

    emi = calculate_emi(payload.loan_amount, payload.interest_rate, payload.tenure)
    verdict = await check_high_value(db, payload.loan_amount, payload.interest_rate, payload.tenure)
    quotation_number = await sequence_generator.next_number(
        sequence_generator.QUOTATIONS, bind=db.bind,
    )

    now = utcnow()
    quotation = Quotation(
        quotation_number=quotation_number,
        client_id=payload.client_id,
        client_name=payload.client_name,
        agent_id=actor.uid,
        agent_name=actor.name,
        loan_type=payload.loan_type,
        loan_amount=payload.loan_amount,
        interest_rate=payload.interest_rate,
        tenure=payload.tenure,
        processing_fee=payload.processing_fee,
        notes=payload.notes,
        status=QuotationStatus.DRAFT,
        created_at=now,
        updated_at=now,
    )
    _apply_derived(quotation, emi, verdict)

    async with storage_errors("create quotation"):
        db.add(quotation)
        await db.flush()
        await record_audit(db, actor, "created_quotation", "quotation", quotation.id)

    logger.info(
        "Created quotation %s (emi=%s, high_value=%s %s)",
        quotation.quotation_number, emi, verdict.is_high_value, verdict.reasons,
        extra={"entity_type": "quotation", "entity_id": quotation.id,
               "number": quotation.quotation_number, "user_id": actor.uid},
    )

    if quotation.is_high_value:
        await _notify_high_value(db, quotation)
    return quotation


async def get_quotation(db: AsyncSession, quotation_id: int) -> Quotation:
    async with storage_errors("load quotation"):
        result = await db.execute(select(Quotation).where(Quotation.id == quotation_id))
        quotation = result.scalar_one_or_none()
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found")
    return quotation


async def list_quotations(
    db: AsyncSession,
    *,
    status: QuotationStatus | None = None,
    agent_id: int | None = None,
    is_high_value: bool | None = None,
    limit: int | None = None,
) -> list[Quotation]:
    query = select(Quotation).order_by(Quotation.created_at.desc(), Quotation.id.desc())
    if status is not None:
        query = query.where(Quotation.status == status)
    if agent_id is not None:
        query = query.where(Quotation.agent_id == agent_id)
    if is_high_value is not None:
        query = query.where(Quotation.is_high_value.is_(is_high_value))
    query = query.limit(limit or settings.list_limit)

    async with storage_errors("list quotations"):
        result = await db.execute(query)
        return list(result.scalars().all())


def _apply_status(quotation: Quotation, status: QuotationStatus) -> None:
    quotation.status = status
    if status == QuotationStatus.SENT:
        quotation.sent_at = utcnow()


async def update_quotation(
    db: AsyncSession,
    quotation_id: int,
    data: QuotationUpdate | Mapping[str, Any],
    actor: Actor,
) -> Quotation:
    """Merge a partial update.

    Touching any of the loan terms recomputes EMI and the high-value
    classification from the merged terms; otherwise both stay as they were.
    """
    payload = coerce_input(QuotationUpdate, data)
    changes = payload.model_dump(exclude_unset=True)

    quotation = await get_quotation(db, quotation_id)
    was_high_value = quotation.is_high_value

    merged_terms = {name: changes.get(name, getattr(quotation, name)) for name in TERM_FIELDS}
    terms_touched = any(name in changes for name in TERM_FIELDS)
    if terms_touched:
        emi = calculate_emi(
            merged_terms["loan_amount"], merged_terms["interest_rate"], merged_terms["tenure"],
        )
        verdict = await check_high_value(
            db, merged_terms["loan_amount"], merged_terms["interest_rate"], merged_terms["tenure"],
        )

    async with storage_errors("update quotation"):
        for field, value in changes.items():
            if field == "status":
                _apply_status(quotation, value)
            else:
                setattr(quotation, field, value)
        if terms_touched:
            _apply_derived(quotation, emi, verdict)
        quotation.updated_at = utcnow()
        await db.flush()
        await record_audit(db, actor, "updated_quotation", "quotation", quotation.id, changes)

    if quotation.is_high_value and not was_high_value:
        await _notify_high_value(db, quotation)
    return quotation


async def update_quotation_status(
    db: AsyncSession,
    quotation_id: int,
    status: QuotationStatus | str,
    actor: Actor,
) -> Quotation:
    try:
        status = QuotationStatus(status)
    except ValueError:
        raise ValidationError("Invalid status", {"status": f"Unknown status {status!r}"}) from None

    quotation = await get_quotation(db, quotation_id)
    async with storage_errors("update quotation status"):
        _apply_status(quotation, status)
        quotation.updated_at = utcnow()
        await db.flush()
        await record_audit(
            db, actor, "updated_quotation_status", "quotation", quotation.id,
            {"status": status.value},
        )
    return quotation


async def delete_quotation(db: AsyncSession, quotation_id: int, actor: Actor) -> None:
    quotation = await get_quotation(db, quotation_id)
    async with storage_errors("delete quotation"):
        await db.delete(quotation)
        await db.flush()
        await record_audit(db, actor, "deleted_quotation", "quotation", quotation_id)
    logger.info("Quotation %s deleted by %s", quotation_id, actor.name)
