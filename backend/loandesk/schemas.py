"""Pydantic schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from loandesk.models.loan import LoanStage, LoanStatus, LoanType
from loandesk.models.notification import NotificationType, RelatedType
from loandesk.models.quotation import QuotationStatus

# Upper bounds of the NUMERIC(14, 2) and NUMERIC(12, 2) columns
MAX_AMOUNT = 999_999_999_999.99
MAX_FEE = 9_999_999_999.99

_CENTS = Decimal("0.01")


def to_column_scale(value: Optional[float], *, positive: bool = False) -> Optional[float]:
    """Round half-up to the two decimals stored by the amount and rate columns.

    EMI and the high-value checks run on this value, so they agree with what
    is read back from the database.
    """
    if value is None:
        return None
    scaled = float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))
    if positive and scaled <= 0:
        raise ValueError("must be at least 0.01")
    return scaled


# ── Quotations ────────────────────────────────────────

class QuotationCreate(BaseModel):
    client_id: str = Field(min_length=1, max_length=64)
    client_name: str = Field(min_length=1, max_length=200)
    loan_type: LoanType
    loan_amount: float = Field(gt=0, le=MAX_AMOUNT, allow_inf_nan=False)
    interest_rate: float = Field(ge=0, le=100, allow_inf_nan=False)
    tenure: int = Field(gt=0)
    processing_fee: Optional[float] = Field(None, ge=0, le=MAX_FEE, allow_inf_nan=False)
    notes: Optional[str] = None

    @field_validator("loan_amount")
    @classmethod
    def _amount_scale(cls, value: float) -> float:
        return to_column_scale(value, positive=True)

    @field_validator("interest_rate", "processing_fee")
    @classmethod
    def _rate_and_fee_scale(cls, value: Optional[float]) -> Optional[float]:
        return to_column_scale(value)


_NOT_NULL_ON_UPDATE = (
    "client_id", "client_name", "loan_type", "loan_amount", "interest_rate", "tenure", "status",
)


class QuotationUpdate(BaseModel):
    """Partial update. Derived fields (emi, high-value flag) are not accepted."""
    client_id: Optional[str] = Field(None, min_length=1, max_length=64)
    client_name: Optional[str] = Field(None, min_length=1, max_length=200)
    loan_type: Optional[LoanType] = None
    loan_amount: Optional[float] = Field(None, gt=0, le=MAX_AMOUNT, allow_inf_nan=False)
    interest_rate: Optional[float] = Field(None, ge=0, le=100, allow_inf_nan=False)
    tenure: Optional[int] = Field(None, gt=0)
    processing_fee: Optional[float] = Field(None, ge=0, le=MAX_FEE, allow_inf_nan=False)
    notes: Optional[str] = None
    status: Optional[QuotationStatus] = None

    @field_validator("loan_amount")
    @classmethod
    def _amount_scale(cls, value: Optional[float]) -> Optional[float]:
        return to_column_scale(value, positive=True)

    @field_validator("interest_rate", "processing_fee")
    @classmethod
    def _rate_and_fee_scale(cls, value: Optional[float]) -> Optional[float]:
        return to_column_scale(value)

    @model_validator(mode="after")
    def _no_explicit_nulls(self) -> "QuotationUpdate":
        for name in _NOT_NULL_ON_UPDATE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class QuotationStatusUpdate(BaseModel):
    status: QuotationStatus


class QuotationResponse(BaseModel):
    id: int
    quotation_number: str
    client_id: str
    client_name: str
    agent_id: Optional[int] = None
    agent_name: str
    loan_type: LoanType
    loan_amount: float
    interest_rate: float
    tenure: int
    processing_fee: Optional[float] = None
    emi: int
    is_high_value: bool
    high_value_reasons: list[str] = []
    status: QuotationStatus
    notes: Optional[str] = None
    pdf_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    sent_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentSummaryResponse(BaseModel):
    emi: int
    total_payable: int
    total_interest: float


# ── Loans ─────────────────────────────────────────────

class LoanCreate(BaseModel):
    client_id: str = Field(min_length=1, max_length=64)
    client_name: str = Field(min_length=1, max_length=200)
    loan_type: LoanType
    loan_amount: float = Field(gt=0, le=MAX_AMOUNT, allow_inf_nan=False)
    approved_amount: Optional[float] = Field(None, gt=0, le=MAX_AMOUNT, allow_inf_nan=False)
    interest_rate: float = Field(ge=0, le=100, allow_inf_nan=False)
    tenure: int = Field(gt=0)
    quotation_id: Optional[int] = None

    @field_validator("loan_amount", "approved_amount")
    @classmethod
    def _amount_scale(cls, value: Optional[float]) -> Optional[float]:
        return to_column_scale(value, positive=True)

    @field_validator("interest_rate")
    @classmethod
    def _rate_scale(cls, value: float) -> float:
        return to_column_scale(value)


class LoanStageUpdate(BaseModel):
    stage: LoanStage
    completed: bool
    remarks: Optional[str] = None


class LoanDisburseRequest(BaseModel):
    disbursement_amount: Optional[float] = Field(None, gt=0, le=MAX_AMOUNT, allow_inf_nan=False)

    @field_validator("disbursement_amount")
    @classmethod
    def _amount_scale(cls, value: Optional[float]) -> Optional[float]:
        return to_column_scale(value, positive=True)


class StageDocumentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=1000)


class StageDocument(BaseModel):
    name: str
    url: str
    uploaded_at: datetime


class LoanStageResponse(BaseModel):
    stage: LoanStage
    label: str
    completed: bool
    completed_at: Optional[datetime] = None
    remarks: Optional[str] = None
    documents: list[StageDocument] = []

    model_config = {"from_attributes": True}


class LoanResponse(BaseModel):
    id: int
    loan_number: str
    client_id: str
    client_name: str
    agent_id: Optional[int] = None
    agent_name: str
    loan_type: LoanType
    loan_amount: float
    approved_amount: Optional[float] = None
    interest_rate: float
    tenure: int
    emi: int
    quotation_id: Optional[int] = None
    current_stage: LoanStage
    stages: list[LoanStageResponse]
    disbursement_date: Optional[datetime] = None
    disbursement_amount: Optional[float] = None
    top_up_eligible_date: Optional[datetime] = None
    top_up_notified: bool
    status: LoanStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ── Policy ────────────────────────────────────────────

class PolicyThresholdsSchema(BaseModel):
    loan_amount: float = Field(ge=0)
    min_interest_rate: float = Field(ge=0)
    max_tenure: int = Field(ge=0)


class PolicyThresholdsUpdate(BaseModel):
    loan_amount: Optional[float] = Field(None, ge=0, le=MAX_AMOUNT, allow_inf_nan=False)
    min_interest_rate: Optional[float] = Field(None, ge=0, le=100, allow_inf_nan=False)
    max_tenure: Optional[int] = Field(None, ge=0)

    @field_validator("loan_amount", "min_interest_rate")
    @classmethod
    def _threshold_scale(cls, value: Optional[float]) -> Optional[float]:
        return to_column_scale(value)


class PolicyUpdate(BaseModel):
    high_value_thresholds: Optional[PolicyThresholdsUpdate] = None
    top_up_eligibility_months: Optional[int] = Field(None, ge=0)
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None


class PolicyResponse(BaseModel):
    id: int
    high_value_thresholds: PolicyThresholdsSchema
    top_up_eligibility_months: int
    email_notifications: bool
    sms_notifications: bool
    updated_by: str
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _nest_thresholds(cls, data):
        if hasattr(data, "high_value_loan_amount"):
            return {
                "id": data.id,
                "high_value_thresholds": {
                    "loan_amount": data.high_value_loan_amount,
                    "min_interest_rate": data.high_value_min_interest_rate,
                    "max_tenure": data.high_value_max_tenure,
                },
                "top_up_eligibility_months": data.top_up_eligibility_months,
                "email_notifications": data.email_notifications,
                "sms_notifications": data.sms_notifications,
                "updated_by": data.updated_by,
                "updated_at": data.updated_at,
            }
        return data


# ── Notifications ─────────────────────────────────────

class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    read: bool
    related_id: Optional[str] = None
    related_type: Optional[RelatedType] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    count: int
