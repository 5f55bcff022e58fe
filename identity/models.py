"""
identity/models.py -- Domain dataclasses for users and permissions.

Pattern: Data class (pure data container, zero logic). Stores and usecases do
the work; these only own the shape. Same approach as auth/models.py.

id is None before a record is written. created_at / updated_at are ISO 8601
UTC strings set by the store on insert.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Gender(str, Enum):
    UNSPECIFIED = "GENDER_UNSPECIFIED"
    MALE = "MALE"
    FEMALE = "FEMALE"


class UserStatus(str, Enum):
    UNSPECIFIED = "USER_STATUS_UNSPECIFIED"
    ACTIVE = "USER_STATUS_ACTIVE"
    INACTIVE = "USER_STATUS_INACTIVE"


@dataclass
class User:
    """A registered identity.

    password holds the bcrypt hash, never plaintext. It is stripped from every
    API response (see api.models.UserOut).
    """

    fullname: str
    password: str
    id: Optional[int] = None
    username: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    profile_pic: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    place_of_birth: Optional[str] = None
    role_type: Optional[str] = None  # auth.models.UserRole value
    status: str = UserStatus.ACTIVE.value
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Permission:
    """A catalog entry. id is the natural key, "action:resource" by convention."""

    id: str
    action: Optional[str] = None
    resource_name: Optional[str] = None
    description: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class UserPermission:
    """A grant of one catalog permission to one user."""

    user_id: int
    permission_id: str
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


@dataclass
class UserSearchFilters:
    fullname: Optional[str] = None  # substring
    username: Optional[str] = None  # substring
    email: Optional[str] = None  # substring
    phone_number: Optional[str] = None  # substring
    gender: Optional[str] = None
    role_type: Optional[str] = None
    status: Optional[str] = None
    created_after: Optional[str] = None  # ISO 8601, inclusive
    created_before: Optional[str] = None  # ISO 8601, inclusive


@dataclass
class UserListParams:
    cursor: Optional[int] = None  # id to start after (exclusive)
    limit: Optional[int] = None
    filters: Optional[UserSearchFilters] = None
    sort_by: str = "id"  # "id" | "created_at" | "updated_at" | "fullname"
    sort_order: str = "asc"  # "asc" | "desc"


@dataclass
class PageInfo:
    has_next_page: bool
    count: int
    next_cursor: Optional[int] = None


@dataclass
class CursorPage:
    data: list = field(default_factory=list)
    page_info: PageInfo = field(default_factory=lambda: PageInfo(has_next_page=False, count=0))


def normalize_limit(limit: Optional[int]) -> int:
    """Clamp a requested page size to 1..MAX_PAGE_LIMIT, defaulting when unset."""
    if not limit:
        return DEFAULT_PAGE_LIMIT
    return min(max(1, limit), MAX_PAGE_LIMIT)
