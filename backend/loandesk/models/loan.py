"""Loan and loan-stage models."""

import enum
from datetime import datetime

from sqlalchemy import (
    String, Numeric, Integer, Enum, ForeignKey, Text, Boolean, JSON, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loandesk.database import Base, UTCDateTime, utcnow


class LoanType(str, enum.Enum):
    PERSONAL = "personal"
    BUSINESS = "business"
    VEHICLE = "vehicle"
    HOME = "home"
    OTHER = "other"


class LoanStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    DEFAULTED = "defaulted"


class LoanStage(str, enum.Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    DOCUMENT_VERIFICATION = "document_verification"
    CREDIT_APPRAISAL = "credit_appraisal"
    SANCTION = "sanction"
    AGREEMENT_SIGNED = "agreement_signed"
    DISBURSEMENT_READY = "disbursement_ready"


# Canonical order; enum definition order is the source of truth.
STAGE_ORDER: tuple[LoanStage, ...] = tuple(LoanStage)

STAGE_LABELS: dict[LoanStage, str] = {
    LoanStage.APPLICATION_SUBMITTED: "Application Submitted",
    LoanStage.DOCUMENT_VERIFICATION: "Document Verification",
    LoanStage.CREDIT_APPRAISAL: "Credit Appraisal",
    LoanStage.SANCTION: "Sanction",
    LoanStage.AGREEMENT_SIGNED: "Agreement Signed",
    LoanStage.DISBURSEMENT_READY: "Disbursement Ready",
}


class Loan(Base):
    __tablename__ = "loans"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    loan_number: Mapped[str] = mapped_column(
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
    approved_amount: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )
    interest_rate: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    tenure: Mapped[int] = mapped_column(Integer, nullable=False)
    emi: Mapped[int] = mapped_column(Integer, nullable=False)

    quotation_id: Mapped[int | None] = mapped_column(
        ForeignKey("quotations.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Progress tracking
    current_stage: Mapped[LoanStage] = mapped_column(
        Enum(LoanStage), default=LoanStage.APPLICATION_SUBMITTED, nullable=False
    )

    # Disbursement
    disbursement_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    disbursement_amount: Mapped[float | None] = mapped_column(
        Numeric(14, 2, asdecimal=False), nullable=True
    )

    # Top-up eligibility
    top_up_eligible_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, index=True
    )
    top_up_notified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[LoanStatus] = mapped_column(
        Enum(LoanStatus), default=LoanStatus.ACTIVE, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    stages: Mapped[list["LoanStageRecord"]] = relationship(
        back_populates="loan",
        order_by="LoanStageRecord.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class LoanStageRecord(Base):
    """One milestone of a loan; a loan always owns all six, in canonical order."""
    __tablename__ = "loan_stages"
    __table_args__ = (UniqueConstraint("loan_id", "stage", name="uq_loan_stage"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    loan_id: Mapped[int] = mapped_column(
        ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage: Mapped[LoanStage] = mapped_column(Enum(LoanStage), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"name": ..., "url": ..., "uploaded_at": iso8601}]
    documents: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    loan: Mapped[Loan] = relationship(back_populates="stages")
