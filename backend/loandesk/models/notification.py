"""In-app notification records."""

import enum
from datetime import datetime

from sqlalchemy import String, Boolean, Enum, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from loandesk.database import Base, UTCDateTime, utcnow


class NotificationType(str, enum.Enum):
    TOP_UP = "top_up"
    HIGH_VALUE_QUOTATION = "high_value_quotation"
    LOAN_STAGE_UPDATE = "loan_stage_update"
    ATTENDANCE = "attendance"
    GENERAL = "general"


class RelatedType(str, enum.Enum):
    LOAN = "loan"
    QUOTATION = "quotation"
    CLIENT = "client"
    ATTENDANCE = "attendance"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    related_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_type: Mapped[RelatedType | None] = mapped_column(Enum(RelatedType), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
