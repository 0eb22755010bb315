"""SQLAlchemy models for the LoanDesk backend."""

from loandesk.models.user import User, UserRole, OVERSIGHT_ROLES
from loandesk.models.policy import PolicyConfig
from loandesk.models.sequence import SequenceCounter
from loandesk.models.loan import (
    Loan,
    LoanStageRecord,
    LoanStage,
    LoanStatus,
    LoanType,
    STAGE_ORDER,
    STAGE_LABELS,
)
from loandesk.models.quotation import Quotation, QuotationStatus, HighValueReason
from loandesk.models.notification import Notification, NotificationType, RelatedType
from loandesk.models.audit import AuditLog
from loandesk.models.error_log import ErrorCategory, ErrorLog, ErrorSeverity

__all__ = [
    "User",
    "UserRole",
    "OVERSIGHT_ROLES",
    "PolicyConfig",
    "SequenceCounter",
    "Loan",
    "LoanStageRecord",
    "LoanStage",
    "LoanStatus",
    "LoanType",
    "STAGE_ORDER",
    "STAGE_LABELS",
    "Quotation",
    "QuotationStatus",
    "HighValueReason",
    "Notification",
    "NotificationType",
    "RelatedType",
    "AuditLog",
    "ErrorCategory",
    "ErrorLog",
    "ErrorSeverity",
]
