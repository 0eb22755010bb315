"""Failed requests, classified by engine error category and tagged with the
quotation or loan they concerned."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from loandesk.database import Base, UTCDateTime, utcnow


class ErrorSeverity(str, enum.Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, enum.Enum):
    VALIDATION = "validation"    # engine ValidationError
    NOT_FOUND = "not_found"      # engine NotFoundError
    STORAGE = "storage"          # TransientStorageError or raw SQLAlchemy failure
    REQUEST = "request"          # other 4xx, e.g. schema rejection by FastAPI
    INTERNAL = "internal"        # anything unhandled


class ErrorLog(Base):
    __tablename__ = "error_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category: Mapped[ErrorCategory] = mapped_column(Enum(ErrorCategory), nullable=False, index=True)
    severity: Mapped[ErrorSeverity] = mapped_column(Enum(ErrorSeverity), nullable=False)
    error_type: Mapped[str] = mapped_column(String(120), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    field_errors: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    traceback: Mapped[str | None] = mapped_column(Text, nullable=True)
    origin: Mapped[str | None] = mapped_column(String(300), nullable=True)

    # Request
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    duration_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Entity addressed by the path, e.g. ("loan", "42")
    entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
