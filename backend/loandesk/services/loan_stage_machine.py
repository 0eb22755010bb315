"""Loan stage machine and loan lifecycle operations.

A loan always carries the six canonical stages. Stages may be ticked or
unticked in any order (corrections are allowed); ``current_stage`` is never
set directly but derived by scanning in canonical order and taking the last
completed stage, or the first stage when nothing is complete.

Disbursement is tracked separately from the stages: paying out money does
not tick any paperwork milestone and vice versa.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.config import settings
from loandesk.database import utcnow
from loandesk.models.loan import (
    Loan,
    LoanStage,
    LoanStageRecord,
    LoanStatus,
    STAGE_LABELS,
    STAGE_ORDER,
)
from loandesk.models.quotation import Quotation
from loandesk.schemas import LoanCreate
from loandesk.services import sequence_generator
from loandesk.services.actor import Actor
from loandesk.services.audit import record_audit
from loandesk.services.emi_calculator import calculate_emi
from loandesk.services.errors import NotFoundError, ValidationError, storage_errors
from loandesk.services.policy_store import get_top_up_eligibility_months
from loandesk.services.quotation_engine import coerce_input

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def initial_stages() -> list[LoanStageRecord]:
    return [
        LoanStageRecord(
            stage=stage,
            position=position,
            label=STAGE_LABELS[stage],
            completed=False,
            documents=[],
        )
        for position, stage in enumerate(STAGE_ORDER)
    ]


def derive_current_stage(stages: Iterable[Any]) -> LoanStage:
    """Last completed stage in canonical order, else the first stage.

    *stages* may arrive in any order; anything with ``stage`` and
    ``completed`` attributes works.
    """
    completed = {LoanStage(s.stage) for s in stages if s.completed}
    current = STAGE_ORDER[0]
    for stage in STAGE_ORDER:
        if stage in completed:
            current = stage
    return current


def parse_stage(stage: LoanStage | str) -> LoanStage:
    try:
        return LoanStage(stage)
    except ValueError:
        raise NotFoundError(f"Unknown loan stage {stage!r}") from None


def top_up_date(start: datetime, months: int) -> datetime:
    """Calendar-month offset; Jan 31 + 1 month lands on the last day of February."""
    return start + relativedelta(months=months)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_loan(db: AsyncSession, loan_id: int, *, for_update: bool = False) -> Loan:
    query = select(Loan).where(Loan.id == loan_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    async with storage_errors("load loan"):
        result = await db.execute(query)
        loan = result.scalar_one_or_none()
    if loan is None:
        raise NotFoundError(f"Loan {loan_id} not found")
    return loan


async def list_loans(
    db: AsyncSession,
    *,
    status: LoanStatus | None = None,
    agent_id: int | None = None,
    client_id: str | None = None,
    limit: int | None = None,
) -> list[Loan]:
    query = select(Loan).order_by(Loan.created_at.desc(), Loan.id.desc())
    if status is not None:
        query = query.where(Loan.status == status)
    if agent_id is not None:
        query = query.where(Loan.agent_id == agent_id)
    if client_id is not None:
        query = query.where(Loan.client_id == client_id)
    query = query.limit(limit or settings.list_limit)

    async with storage_errors("list loans"):
        result = await db.execute(query)
        return list(result.scalars().all())


async def list_top_up_eligible(db: AsyncSession, now: datetime | None = None) -> list[Loan]:
    """Active, seasoned loans whose holders have not been offered a top-up yet.

    The boundary is inclusive: a loan that becomes eligible exactly at *now*
    is returned. The flag is left alone; see mark_top_up_notified.
    """
    now = now or utcnow()
    query = (
        select(Loan)
        .where(
            Loan.status == LoanStatus.ACTIVE,
            Loan.top_up_eligible_date <= now,
            Loan.top_up_notified.is_(False),
        )
        .order_by(Loan.top_up_eligible_date, Loan.id)
    )
    async with storage_errors("list top-up eligible loans"):
        result = await db.execute(query)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_loan(
    db: AsyncSession,
    data: LoanCreate | Mapping[str, Any],
    actor: Actor,
    *,
    now: datetime | None = None,
) -> Loan:
    payload = coerce_input(LoanCreate, data)
    emi = calculate_emi(payload.loan_amount, payload.interest_rate, payload.tenure)

    if payload.quotation_id is not None:
        async with storage_errors("load quotation"):
            exists = await db.scalar(
                select(Quotation.id).where(Quotation.id == payload.quotation_id)
            )
        if exists is None:
            raise NotFoundError(f"Quotation {payload.quotation_id} not found")

    now = now or utcnow()
    months = await get_top_up_eligibility_months(db)
    loan_number = await sequence_generator.next_number(
        sequence_generator.LOANS, bind=db.bind, now=now,
    )

    loan = Loan(
        loan_number=loan_number,
        client_id=payload.client_id,
        client_name=payload.client_name,
        agent_id=actor.uid,
        agent_name=actor.name,
        loan_type=payload.loan_type,
        loan_amount=payload.loan_amount,
        approved_amount=payload.approved_amount,
        interest_rate=payload.interest_rate,
        tenure=payload.tenure,
        emi=emi,
        quotation_id=payload.quotation_id,
        current_stage=STAGE_ORDER[0],
        stages=initial_stages(),
        status=LoanStatus.ACTIVE,
        top_up_eligible_date=top_up_date(now, months),
        top_up_notified=False,
        created_at=now,
        updated_at=now,
    )

    async with storage_errors("create loan"):
        db.add(loan)
        await db.flush()
        await record_audit(db, actor, "created_loan", "loan", loan.id)

    logger.info(
        "Created loan %s (emi=%s, top-up from %s)",
        loan.loan_number, emi, loan.top_up_eligible_date.date(),
        extra={"entity_type": "loan", "entity_id": loan.id,
               "number": loan.loan_number, "user_id": actor.uid},
    )
    return loan


async def update_stage(
    db: AsyncSession,
    loan_id: int,
    stage: LoanStage | str,
    completed: bool,
    remarks: str | None = None,
    *,
    actor: Actor,
) -> Loan:
    """Tick or untick one stage and recompute the current stage."""
    target = parse_stage(stage)
    loan = await get_loan(db, loan_id, for_update=True)

    record = next((s for s in loan.stages if s.stage == target), None)
    if record is None:
        raise NotFoundError(f"Loan {loan_id} has no stage {target.value}")

    now = utcnow()
    async with storage_errors("update loan stage"):
        record.completed = completed
        record.completed_at = now if completed else None
        if remarks is not None:
            record.remarks = remarks

        previous = loan.current_stage
        loan.current_stage = derive_current_stage(loan.stages)
        loan.updated_at = now
        await db.flush()
        await record_audit(
            db, actor, "updated_loan_stage", "loan", loan.id,
            {"stage": target.value, "completed": completed, "remarks": remarks},
        )

    if loan.current_stage != previous:
        logger.info("Loan %s moved %s -> %s", loan.loan_number, previous.value,
                    loan.current_stage.value)
    return loan


async def attach_stage_document(
    db: AsyncSession,
    loan_id: int,
    stage: LoanStage | str,
    name: str,
    url: str,
    *,
    actor: Actor,
) -> Loan:
    target = parse_stage(stage)
    loan = await get_loan(db, loan_id, for_update=True)
    record = next((s for s in loan.stages if s.stage == target), None)
    if record is None:
        raise NotFoundError(f"Loan {loan_id} has no stage {target.value}")

    now = utcnow()
    document = {"name": name, "url": url, "uploaded_at": now.isoformat()}
    async with storage_errors("attach stage document"):
        # Reassign so the JSON column is flagged dirty
        record.documents = [*(record.documents or []), document]
        loan.updated_at = now
        await db.flush()
        await record_audit(
            db, actor, "attached_stage_document", "loan", loan.id,
            {"stage": target.value, "document": document},
        )
    return loan


async def disburse(
    db: AsyncSession,
    loan_id: int,
    amount: float | None = None,
    *,
    actor: Actor,
) -> Loan:
    """Record the payout. Stages and status are left untouched."""
    if amount is not None and not amount > 0:
        raise ValidationError(
            "Invalid disbursement", {"disbursement_amount": "Disbursement amount must be positive"}
        )

    loan = await get_loan(db, loan_id, for_update=True)
    now = utcnow()
    async with storage_errors("disburse loan"):
        loan.disbursement_date = now
        loan.disbursement_amount = amount if amount is not None else loan.loan_amount
        if loan.top_up_eligible_date is None or loan.top_up_eligible_date < now:
            loan.top_up_eligible_date = now
        loan.updated_at = now
        await db.flush()
        await record_audit(
            db, actor, "disbursed_loan", "loan", loan.id,
            {"disbursement_amount": loan.disbursement_amount},
        )

    logger.info("Loan %s disbursed: %s", loan.loan_number, loan.disbursement_amount)
    return loan


async def mark_top_up_notified(db: AsyncSession, loan_id: int, *, actor: Actor) -> Loan:
    """Called by whoever acted on list_top_up_eligible once the offer went out."""
    loan = await get_loan(db, loan_id, for_update=True)
    async with storage_errors("mark top-up notified"):
        loan.top_up_notified = True
        loan.updated_at = utcnow()
        await db.flush()
        await record_audit(db, actor, "marked_top_up_notified", "loan", loan.id)
    return loan
