"""High-value classification of loan terms against policy thresholds.

Every rule is evaluated (no short-circuit) and reasons are reported in a fixed
order: amount, rate, tenure.
"""

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.models.quotation import HighValueReason
from loandesk.services.policy_store import PolicyThresholds, get_policy_thresholds


@dataclass(frozen=True)
class HighValueResult:
    is_high_value: bool
    reasons: list[str] = field(default_factory=list)


def classify(
    loan_amount: float,
    interest_rate: float,
    tenure: int,
    thresholds: PolicyThresholds,
) -> HighValueResult:
    reasons: list[str] = []

    if loan_amount > thresholds.loan_amount:
        reasons.append(HighValueReason.AMOUNT_EXCEEDS_THRESHOLD.value)

    if interest_rate < thresholds.min_interest_rate:
        reasons.append(HighValueReason.LOW_INTEREST_RATE.value)

    if tenure > thresholds.max_tenure:
        reasons.append(HighValueReason.LONG_TENURE.value)

    return HighValueResult(is_high_value=bool(reasons), reasons=reasons)


async def check_high_value(
    db: AsyncSession,
    loan_amount: float,
    interest_rate: float,
    tenure: int,
) -> HighValueResult:
    """Classify against the thresholds in force right now."""
    thresholds = await get_policy_thresholds(db)
    return classify(loan_amount, interest_rate, tenure, thresholds)
