"""
identity/sessions.py -- Session service: register, login and token refresh.

This is the service layer: it turns usecase Results into ServiceResults that
carry an HTTP-equivalent status, and it is the only place that mints tokens
for end users. Cookies are not written here; the route layer does that from
the returned token pair.

Every access token is paired with a refresh token whose linked_access_token_id
is the access token's jti.

Login reports an unknown email and a wrong password identically
(INVALID_CREDENTIALS) and spends the same bcrypt work on both
(auth.tokens.check_password).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from auth.models import UserRole
from auth.tokens import RefreshTokenVerificationFailed, TokenMaker, check_password
from core.database import DatabaseErrorCode
from core.result import (
    AppError,
    ErrorCode,
    ServiceResult,
    to_service_error,
    to_service_exception,
    to_service_success,
)
from identity.models import User
from identity.permissions import PermissionUsecase
from identity.transform import to_user_snapshot
from identity.users import UserUsecase

logger = logging.getLogger("authcore.identity")

DEFAULT_ACCESS_TOKEN_DURATION_MS = 15 * 60 * 1000
DEFAULT_REFRESH_TOKEN_DURATION_MS = 7 * 24 * 60 * 60 * 1000


def _invalid_credentials() -> AppError:
    return AppError(code=ErrorCode.INVALID_CREDENTIALS, message="Invalid email or password")


class SessionService:
    """Issues token pairs for registered users.

    Usage:
        sessions = SessionService(user_usecase, permission_usecase, maker)
        result = sessions.login("ada@example.com", "s3cret-pass")
        if result.ok:
            access, refresh = result.data["access_token"], result.data["refresh_token"]
    """

    def __init__(
        self,
        user_usecase: UserUsecase,
        permission_usecase: PermissionUsecase,
        maker: TokenMaker,
        access_token_duration_ms: int = DEFAULT_ACCESS_TOKEN_DURATION_MS,
        refresh_token_duration_ms: int = DEFAULT_REFRESH_TOKEN_DURATION_MS,
        instance_id: str = "default-instance",
    ) -> None:
        self.user_usecase = user_usecase
        self.permission_usecase = permission_usecase
        self.maker = maker
        self.access_token_duration_ms = access_token_duration_ms
        self.refresh_token_duration_ms = refresh_token_duration_ms
        self.instance_id = instance_id

    # ------------------------------------------------------------------
    # Token pairs
    # ------------------------------------------------------------------

    def issue_tokens(self, user: User, permission: str = "") -> dict[str, Any]:
        role = user.role_type or UserRole.USER.value
        access_token, access_payload = self.maker.create_token(
            user_id=str(user.id),
            username=user.username or "unknown",
            permission=permission,
            role=role,
            duration=self.access_token_duration_ms,
            instance_id=self.instance_id,
            role_id=role,
        )
        refresh_token, _ = self.maker.create_refresh_token(
            user_id=str(user.id),
            duration=self.refresh_token_duration_ms,
            linked_access_token_id=access_payload.id,
        )
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_at": access_payload.expires_at.isoformat(),
        }

    def _permission_string(self, user_id: int) -> tuple[Optional[str], Optional[AppError]]:
        result = self.permission_usecase.get_user_permissions(user_id)
        if not result.ok:
            return None, result.error
        return ",".join(up.permission_id for up in result.data), None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, data: dict[str, Any]) -> ServiceResult[dict[str, Any]]:
        """Create the user and hand back a first token pair with no permissions."""
        try:
            result = self.user_usecase.register_user(data)
            if not result.ok:
                return to_service_error(result.error)

            tokens = self.issue_tokens(result.data)
            return ServiceResult(
                ok=True,
                data={
                    "message": "User registered successfully",
                    "user": to_user_snapshot(result.data),
                    **tokens,
                },
                status=201,
            )
        except Exception as exc:
            logger.exception("Registration failed")
            return to_service_exception(exc, "Failed to register user")

    def login(self, email: str, password: str) -> ServiceResult[dict[str, Any]]:
        try:
            found = self.user_usecase.get_user_by_email(email)
            if not found.ok and found.error.code != DatabaseErrorCode.NOT_FOUND.value:
                return to_service_error(found.error)

            user = found.data if found.ok else None
            if not check_password(password, user.password if user else None):
                logger.info("Failed login attempt")
                return to_service_error(_invalid_credentials(), status=401)

            permission, error = self._permission_string(user.id)
            if error is not None:
                return to_service_error(error)

            tokens = self.issue_tokens(user, permission)
            logger.info("User id=%s logged in", user.id)
            return to_service_success({"message": "Login successful", **tokens})
        except Exception as exc:
            logger.exception("Login failed")
            return to_service_exception(exc)

    def refresh(self, refresh_token: Optional[str]) -> ServiceResult[dict[str, Any]]:
        """Exchange a valid refresh token for a new pair carrying current permissions."""
        if not refresh_token:
            return to_service_error(
                AppError(code=ErrorCode.UNAUTHORIZED, message="request unauthorized: failed to retrieve token"),
                status=401,
            )
        try:
            claim = self.maker.verify_refresh_token(refresh_token)
        except RefreshTokenVerificationFailed as exc:
            return to_service_error(AppError(code=ErrorCode.UNAUTHORIZED, message=str(exc)), status=401)

        try:
            found = self.user_usecase.get_user_by_id(int(claim.user_id))
            if not found.ok:
                return to_service_error(found.error, status=401)

            permission, error = self._permission_string(found.data.id)
            if error is not None:
                return to_service_error(error)

            return to_service_success({"message": "Token refreshed", **self.issue_tokens(found.data, permission)})
        except Exception as exc:
            logger.exception("Token refresh failed")
            return to_service_exception(exc)
