"""Policy configuration endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.auth_utils import get_current_actor, require_roles
from loandesk.database import get_db
from loandesk.models.user import UserRole
from loandesk.schemas import PolicyResponse, PolicyThresholdsSchema, PolicyUpdate
from loandesk.services import policy_store
from loandesk.services.actor import Actor

router = APIRouter()


@router.get("", response_model=PolicyResponse)
async def get_policy(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return PolicyResponse.model_validate(await policy_store.get_policy(db))


@router.patch("", response_model=PolicyResponse)
async def update_policy(
    data: PolicyUpdate,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.MD)),
    db: AsyncSession = Depends(get_db),
):
    policy = await policy_store.update_policy(db, data.model_dump(exclude_unset=True), actor)
    return PolicyResponse.model_validate(policy)


@router.get("/high-value-thresholds", response_model=PolicyThresholdsSchema)
async def get_high_value_thresholds(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Thresholds in force, falling back to the defaults when no policy is stored."""
    thresholds = await policy_store.get_policy_thresholds(db)
    return PolicyThresholdsSchema(
        loan_amount=thresholds.loan_amount,
        min_interest_rate=thresholds.min_interest_rate,
        max_tenure=thresholds.max_tenure,
    )
