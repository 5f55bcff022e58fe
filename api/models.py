"""
API request and response models for authcore REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in identity/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

Registration fields are all Optional on purpose: a missing field must reach
the usecase and come back as REQUIRED_FIELD with details.field, not as a
generic 422 from schema validation.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Payload, UserRole
from auth.scope import split_scopes
from identity.models import CursorPage, Gender, User, UserPermission, UserStatus

# bcrypt ignores input past 72 bytes.
_PASSWORD_MAX = 72

_PermissionId = Annotated[str, Field(min_length=1, max_length=255)]


def _dedupe(values: list) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        normalized = str(v).strip()
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


# ---------------------------------------------------------------------------
# Identity / auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/identity/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    fullname: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    username: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=50)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh. Falls back to the refresh cookie when omitted."""

    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Identity / auth -- responses
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public view of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    fullname: str
    username: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    profile_pic: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    place_of_birth: Optional[str] = None
    role_type: Optional[str] = None
    status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            fullname=user.fullname,
            username=user.username,
            phone_number=user.phone_number,
            email=user.email,
            profile_pic=user.profile_pic,
            address=user.address,
            gender=user.gender,
            date_of_birth=user.date_of_birth,
            place_of_birth=user.place_of_birth,
            role_type=user.role_type,
            status=user.status,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenPairResponse(BaseModel):
    """Response for login and refresh. The same tokens are also set as httpOnly cookies."""

    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: str


class RegisterResponse(TokenPairResponse):
    """Response for POST /api/v1/identity/register (201)."""

    user: UserOut


class MeResponse(BaseModel):
    """Identity claims of the caller's access token."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    role: str
    permissions: list[str]
    instance_id: str
    expires_at: str

    @classmethod
    def from_payload(cls, payload: Payload) -> "MeResponse":
        return cls(
            user_id=payload.user_id,
            username=payload.username,
            role=payload.role,
            permissions=split_scopes(payload.permission),
            instance_id=payload.instance_id,
            expires_at=payload.expires_at.isoformat(),
        )


# ---------------------------------------------------------------------------
# Users (admin)
# ---------------------------------------------------------------------------


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. Only fields present in the body are changed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    fullname: Optional[str] = Field(default=None, min_length=1, max_length=255)
    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    profile_pic: Optional[str] = Field(default=None, max_length=500)
    address: Optional[dict[str, Any]] = None
    gender: Optional[Gender] = None
    date_of_birth: Optional[str] = Field(default=None, max_length=32)
    place_of_birth: Optional[str] = Field(default=None, max_length=255)
    role_type: Optional[UserRole] = None
    status: Optional[UserStatus] = None

    def to_fields(self) -> dict[str, Any]:
        """Explicitly set fields only, enums flattened to their stored values."""
        return self.model_dump(exclude_unset=True, mode="json")


class PageInfoOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_next_page: bool
    count: int
    next_cursor: Optional[int] = None


class UserListResponse(BaseModel):
    """Response for GET /api/v1/users."""

    model_config = ConfigDict(frozen=True)

    data: list[UserOut]
    page_info: PageInfoOut

    @classmethod
    def from_page(cls, page: CursorPage) -> "UserListResponse":
        return cls(
            data=[UserOut.from_user(u) for u in page.data],
            page_info=PageInfoOut(
                has_next_page=page.page_info.has_next_page,
                count=page.page_info.count,
                next_cursor=page.page_info.next_cursor,
            ),
        )


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionGrantRequest(BaseModel):
    """Request body for POST /api/v1/permissions/assign and /revoke.

    Permission ids are stripped and de-duplicated in request order before the
    per-item length check runs.
    """

    user_id: int = Field(gt=0)
    permission_ids: list[_PermissionId] = Field(min_length=1, max_length=100)

    @field_validator("permission_ids", mode="before")
    @classmethod
    def normalize_ids(cls, values: list) -> list[str]:
        return _dedupe(values)


class UserPermissionOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    permission_id: str
    created_by: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_record(cls, record: UserPermission) -> "UserPermissionOut":
        return cls(
            id=record.id,
            user_id=record.user_id,
            permission_id=record.permission_id,
            created_by=record.created_by,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class UserPermissionListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    permissions: list[UserPermissionOut]


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
