"""
Session Module

Explicit session values handed out by authentication and passed into every
engine operation in place of a process-wide "current user".
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
import uuid

from .errors import PermissionDenied


class Role(Enum):
    """Who a session acts for"""
    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class Session:
    """Authenticated principal for one logical caller"""
    principal_id: str
    role: Role
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def for_user(cls, account_id: str) -> 'Session':
        return cls(principal_id=account_id, role=Role.USER)

    @classmethod
    def for_admin(cls, admin_id: str) -> 'Session':
        return cls(principal_id=admin_id, role=Role.ADMIN)


def require_user(session: Session) -> str:
    """Return the account id of a user session"""
    if session.role != Role.USER:
        raise PermissionDenied("Operation requires a user session")
    return session.principal_id


def require_admin(session: Session) -> str:
    """Return the admin id of an admin session"""
    if session.role != Role.ADMIN:
        raise PermissionDenied("Operation requires an admin session")
    return session.principal_id
