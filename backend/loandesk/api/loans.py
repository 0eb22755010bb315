"""Loan endpoints: creation, stage tracking, disbursement and top-up follow-up."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.auth_utils import get_current_actor, require_roles
from loandesk.database import get_db
from loandesk.models.loan import LoanStage, LoanStatus
from loandesk.models.user import UserRole
from loandesk.schemas import (
    LoanCreate,
    LoanDisburseRequest,
    LoanResponse,
    LoanStageUpdate,
    StageDocumentCreate,
)
from loandesk.services import loan_stage_machine
from loandesk.services.actor import Actor

router = APIRouter()


@router.get("", response_model=list[LoanResponse])
async def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    agent_id: Optional[int] = None,
    client_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.list_loans(
        db, status=status_filter, agent_id=agent_id, client_id=client_id, limit=limit,
    )


@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    data: LoanCreate,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.create_loan(db, data, actor)


# Declared before /{loan_id} so the literal path wins
@router.get("/top-up-eligible", response_model=list[LoanResponse])
async def list_top_up_eligible(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.list_top_up_eligible(db)


@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(
    loan_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.get_loan(db, loan_id)


@router.patch("/{loan_id}/stage", response_model=LoanResponse)
async def update_loan_stage(
    loan_id: int,
    data: LoanStageUpdate,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.AGENT)),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.update_stage(
        db, loan_id, data.stage, data.completed, data.remarks, actor=actor,
    )


@router.post("/{loan_id}/stages/{stage}/documents", response_model=LoanResponse)
async def attach_stage_document(
    loan_id: int,
    stage: LoanStage,
    data: StageDocumentCreate,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.AGENT)),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.attach_stage_document(
        db, loan_id, stage, data.name, data.url, actor=actor,
    )


@router.patch("/{loan_id}/disburse", response_model=LoanResponse)
async def disburse_loan(
    loan_id: int,
    data: Optional[LoanDisburseRequest] = None,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    amount = data.disbursement_amount if data else None
    return await loan_stage_machine.disburse(db, loan_id, amount, actor=actor)


@router.post("/{loan_id}/top-up-notified", response_model=LoanResponse)
async def mark_top_up_notified(
    loan_id: int,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.MD)),
    db: AsyncSession = Depends(get_db),
):
    return await loan_stage_machine.mark_top_up_notified(db, loan_id, actor=actor)
