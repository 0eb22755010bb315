"""Staff accounts used for attribution and notification fan-out."""

import enum
from datetime import datetime

from sqlalchemy import String, Boolean, Enum
from sqlalchemy.orm import Mapped, mapped_column

from loandesk.database import Base, UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MD = "md"
    AGENT = "agent"
    EMPLOYEE = "employee"


# Roles that receive high-value quotation alerts
OVERSIGHT_ROLES = (UserRole.ADMIN, UserRole.MD)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), default=UserRole.AGENT, nullable=False, index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
