"""
auth/models.py -- Token payload dataclasses.

Pattern: Data class (pure data containers; the expiry check is the only
logic). The scope check is a free function in auth/scope.py. Payloads are
frozen so a verified payload can be handed to route handlers without anyone
mutating the claims they were authorized on.

Layer rule: no imports from api/ or identity/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class UserRole(str, Enum):
    """Role carried in the access token and used as the role-map key."""

    USER = "USER"
    ADMIN = "ADMIN"


REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class Payload:
    """Access token claims.

    permission is the raw delimited scope string ("user:read,post:*"); split
    it with auth.scope.split_scopes() rather than by hand.

    user is an optional snapshot of the user record at issue time. It is a
    convenience for clients and is never consulted for authorization.
    """

    id: str  # token id (jti)
    user_id: str
    username: str
    permission: str
    role: str
    instance_id: str
    role_id: str
    issued_at: datetime
    expires_at: datetime
    user: Optional[dict[str, Any]] = None
    metadata: Optional[Any] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """True while the token has not passed its expiry. No clock-skew leeway."""
        now = now or datetime.now(timezone.utc)
        return now <= self.expires_at


@dataclass(frozen=True)
class RefreshPayload:
    """Refresh token claims.

    linked_access_token_id is a back-reference only. The access token it
    names may already be expired or replaced; nothing here owns it.
    """

    id: str
    user_id: str
    linked_access_token_id: str
    issued_at: datetime
    expires_at: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now <= self.expires_at
