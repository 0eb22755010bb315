"""Identity of whoever triggered a mutation, used for attribution only."""

from dataclasses import dataclass

from loandesk.models.user import UserRole


@dataclass(frozen=True)
class Actor:
    uid: int | None
    role: UserRole
    name: str

