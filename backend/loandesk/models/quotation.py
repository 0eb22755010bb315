"""Quotation model: a proposed loan offer with derived EMI and risk flags."""

import enum
from datetime import datetime

from sqlalchemy import String, Numeric, Integer, Enum, Text, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from loandesk.database import Base, UTCDateTime, utcnow
from loandesk.models.loan import LoanType


class QuotationStatus(str, enum.Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class HighValueReason(str, enum.Enum):
    AMOUNT_EXCEEDS_THRESHOLD = "amount_exceeds_threshold"
    LOW_INTEREST_RATE = "low_interest_rate"
    LONG_TENURE = "long_tenure"


class Quotation(Base):
    __tablename__ = "quotations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    quotation_number: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False
    )

    # Client and agent
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    agent_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    agent_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Terms
    loan_type: Mapped[LoanType] = mapped_column(Enum(LoanType), nullable=False)
    loan_amount: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False)
    interest_rate: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    tenure: Mapped[int] = mapped_column(Integer, nullable=False)
    processing_fee: Mapped[float | None] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=True
    )

    # Derived from the terms; always recomputed together
    emi: Mapped[int] = mapped_column(Integer, nullable=False)
    is_high_value: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    high_value_reasons: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    status: Mapped[QuotationStatus] = mapped_column(
        Enum(QuotationStatus), default=QuotationStatus.DRAFT, nullable=False, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    pdf_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
