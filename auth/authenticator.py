"""
auth/authenticator.py -- Request authorization: token extraction, verification, scope.

Verdicts (ServiceResult, never an exception):
  no token found              -> 401 UNAUTHORIZED
  token present but rejected  -> 500 AUTHENTICATION_ERROR (expired, bad
                                 signature, malformed -- any failure)
  token valid, scope denied   -> 403 PERMISSION_DENIED
  otherwise                   -> ok, data = verified Payload

Only an absent token is 401. A token that fails verification is reported as
500 with the verifier's message so clients can tell "not logged in" from
"session broken" (e.g. "Token verification failed: token has expired").

Token sources, first match wins:
  1. Authorization: Bearer <token>
  2. Cookie named by access_token_cookie_key (default "access_token")

The request only needs a case-insensitive .headers mapping; Starlette's
Request qualifies, and so does any stand-in with the same attribute.

Layer rule: no imports from api/ or identity/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from starlette.requests import cookie_parser

from auth.models import Payload
from auth.scope import has_scope
from auth.tokens import TokenMaker
from core.result import AppError, ErrorCode, ServiceResult, to_service_success

logger = logging.getLogger("authcore.auth")

DEFAULT_ACCESS_TOKEN_COOKIE_KEY = "access_token"

_BEARER_PREFIX = "Bearer "


def _unauthorized() -> ServiceResult[Any]:
    return ServiceResult(
        ok=False,
        error=AppError(code=ErrorCode.UNAUTHORIZED, message="request unauthorized: failed to retrieve token"),
        status=401,
    )


def _permission_denied() -> ServiceResult[Any]:
    return ServiceResult(
        ok=False,
        error=AppError(code=ErrorCode.PERMISSION_DENIED, message="permission denied"),
        status=403,
    )


def _authentication_error(exc: Exception) -> ServiceResult[Any]:
    return ServiceResult(
        ok=False,
        error=AppError(code=ErrorCode.AUTHENTICATION_ERROR, message=str(exc) or "Authentication failed"),
        status=500,
    )


class Authenticator:
    """Decides whether a request may invoke an operation.

    Usage:
        authenticator = Authenticator(maker)
        result = authenticator.must_have_scope(request, {"USER": True}, "permission:assign")
        if not result.ok:
            raise HTTPException(result.status, detail=result.error.to_dict())
    """

    def __init__(self, maker: TokenMaker, access_token_cookie_key: str = DEFAULT_ACCESS_TOKEN_COOKIE_KEY) -> None:
        self.maker = maker
        self.access_token_cookie_key = access_token_cookie_key or DEFAULT_ACCESS_TOKEN_COOKIE_KEY

    # ------------------------------------------------------------------
    # Token extraction
    # ------------------------------------------------------------------

    def get_token(self, request: Any) -> Optional[str]:
        """Return the bearer token, else the access-token cookie, else None.

        A Bearer header always wins, even when empty: "Bearer " yields "" and
        the request is unauthorized rather than falling back to the cookie.
        """
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith(_BEARER_PREFIX):
            return auth_header[len(_BEARER_PREFIX) :]
        return self._token_from_cookie(request)

    def _token_from_cookie(self, request: Any) -> Optional[str]:
        cookie_header = request.headers.get("cookie")
        if not cookie_header:
            return None
        return cookie_parser(cookie_header).get(self.access_token_cookie_key) or None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def must_have_scope(
        self,
        request: Any,
        role_map: Optional[Mapping[str, bool]] = None,
        required_permissions: Optional[str] = None,
    ) -> ServiceResult[Payload]:
        """Authorize against a single delimited scope string ("a:b c:d" or "a:b,c:d")."""
        return self._authorize(request, role_map, required_permissions)

    def must_have_arr_scopes(
        self,
        request: Any,
        role_map: Optional[Mapping[str, bool]] = None,
        required_permissions: Optional[Sequence[str]] = None,
    ) -> ServiceResult[Payload]:
        """Authorize against a list of scopes. An empty list means no scope requirement."""
        joined = ",".join(required_permissions) if required_permissions else None
        return self._authorize(request, role_map, joined)

    def _authorize(
        self,
        request: Any,
        role_map: Optional[Mapping[str, bool]],
        required_permissions: Optional[str],
    ) -> ServiceResult[Payload]:
        token = self.get_token(request)
        if not token:
            return _unauthorized()

        try:
            claim = self.maker.verify_token(token)
        except Exception as exc:
            logger.info("Token rejected: %s", exc)
            return _authentication_error(exc)

        if not has_scope(claim, role_map, required_permissions):
            logger.info("Permission denied for user_id=%s (required=%r)", claim.user_id, required_permissions)
            return _permission_denied()

        return to_service_success(claim)
