"""Policy configuration: high-value thresholds and top-up timing."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from loandesk.database import Base, UTCDateTime, utcnow

DEFAULT_HIGH_VALUE_LOAN_AMOUNT = 1_000_000
DEFAULT_MIN_INTEREST_RATE = 12
DEFAULT_MAX_TENURE = 60
DEFAULT_TOP_UP_ELIGIBILITY_MONTHS = 12


class PolicyConfig(Base):
    """Single-row table; administrators edit it, nothing deletes it."""
    __tablename__ = "policy_config"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # High-value quotation thresholds
    high_value_loan_amount: Mapped[float] = mapped_column(
        Numeric(14, 2, asdecimal=False), default=DEFAULT_HIGH_VALUE_LOAN_AMOUNT, nullable=False,
    )
    high_value_min_interest_rate: Mapped[float] = mapped_column(
        Numeric(5, 2, asdecimal=False), default=DEFAULT_MIN_INTEREST_RATE, nullable=False,
    )
    high_value_max_tenure: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_MAX_TENURE, nullable=False,
    )

    # Top-up configuration
    top_up_eligibility_months: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_TOP_UP_ELIGIBILITY_MONTHS, nullable=False,
    )

    # Delivery channel switches read by the notification collaborators
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sms_notifications: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    updated_by: Mapped[str] = mapped_column(String(64), default="system", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
