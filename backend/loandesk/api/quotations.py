"""Quotation endpoints for agents and administrators."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.auth_utils import get_current_actor, require_roles
from loandesk.database import get_db
from loandesk.models.quotation import QuotationStatus
from loandesk.models.user import UserRole
from loandesk.schemas import (
    PaymentSummaryResponse,
    QuotationCreate,
    QuotationResponse,
    QuotationStatusUpdate,
    QuotationUpdate,
)
from loandesk.services import quotation_engine
from loandesk.services.actor import Actor
from loandesk.services.emi_calculator import payment_summary

router = APIRouter()


@router.get("", response_model=list[QuotationResponse])
async def list_quotations(
    status_filter: Optional[QuotationStatus] = Query(None, alias="status"),
    agent_id: Optional[int] = None,
    is_high_value: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await quotation_engine.list_quotations(
        db, status=status_filter, agent_id=agent_id, is_high_value=is_high_value, limit=limit,
    )


@router.post("", response_model=QuotationResponse, status_code=status.HTTP_201_CREATED)
async def create_quotation(
    data: QuotationCreate,
    actor: Actor = Depends(require_roles(UserRole.AGENT, UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return await quotation_engine.create_quotation(db, data, actor)


@router.get("/{quotation_id}", response_model=QuotationResponse)
async def get_quotation(
    quotation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await quotation_engine.get_quotation(db, quotation_id)


@router.get("/{quotation_id}/payment-summary", response_model=PaymentSummaryResponse)
async def get_payment_summary(
    quotation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """EMI with total payable and total interest, as printed on the quotation."""
    quotation = await quotation_engine.get_quotation(db, quotation_id)
    return payment_summary(quotation.loan_amount, quotation.interest_rate, quotation.tenure)


@router.patch("/{quotation_id}", response_model=QuotationResponse)
async def update_quotation(
    quotation_id: int,
    data: QuotationUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await quotation_engine.update_quotation(db, quotation_id, data, actor)


@router.patch("/{quotation_id}/status", response_model=QuotationResponse)
async def update_quotation_status(
    quotation_id: int,
    data: QuotationStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await quotation_engine.update_quotation_status(db, quotation_id, data.status, actor)


@router.delete("/{quotation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quotation(
    quotation_id: int,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await quotation_engine.delete_quotation(db, quotation_id, actor)
