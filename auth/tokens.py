"""
auth/tokens.py -- Token maker, password hashing, and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. One shared secret signs both access and refresh
       tokens; a refresh token is told apart by its type="refresh" claim, so a
       correctly signed access token is still rejected by verify_refresh_token().
       Every token gets a fresh uuid4 jti.

       Verification raises TokenVerificationFailed / RefreshTokenVerificationFailed
       with the underlying cause in the message ("... has expired", "Signature
       verification failed.", "invalid token structure"). The Authenticator
       turns those into result values; nothing above it sees the exception.

       Expiry is checked here, after the structure check, against wall-clock
       UTC with no leeway. jose's own exp check is disabled so the order of
       checks (signature, structure, expiry) is fixed and the messages are ours.

  Passwords: bcrypt directly (no passlib wrapper). check_password() runs bcrypt
       against a dummy hash when the user does not exist so response time does
       not reveal which emails are registered.

  SECRET_KEY: passed to TokenMaker explicitly by the composition root. Keys
       shorter than 32 characters are refused at construction.

Layer rule: no imports from api/ or identity/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from auth.models import REFRESH_TOKEN_TYPE, Payload, RefreshPayload

logger = logging.getLogger("authcore.auth")

_ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32


class TokenVerificationFailed(Exception):
    """Access token rejected: bad signature, malformed, or expired."""


class RefreshTokenVerificationFailed(Exception):
    """Refresh token rejected: bad signature, not a refresh token, or expired."""


def _epoch(moment: datetime) -> int:
    return int(moment.timestamp())


def _from_epoch(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value or 0), tz=timezone.utc)


# What _from_epoch raises for a non-numeric or out-of-range iat/exp claim.
_BAD_CLAIM_ERRORS = (ValueError, TypeError, OverflowError, OSError)


# ---------------------------------------------------------------------------
# Token maker
# ---------------------------------------------------------------------------


class TokenMaker:
    """Issues and verifies HS256 access and refresh tokens.

    Usage:
        maker = TokenMaker(settings.secret_key)
        token, payload = maker.create_token("42", "alice", "user:*", "USER", 15 * 60 * 1000, "default", "USER")
        payload = maker.verify_token(token)

    Durations are milliseconds. A zero or negative duration is not rejected;
    it produces a token that is already expired.
    """

    def __init__(self, secret_key: str) -> None:
        if not secret_key or len(secret_key) < MIN_SECRET_LENGTH:
            raise ValueError(f"Secret key must be at least {MIN_SECRET_LENGTH} characters long")
        self._secret_key = secret_key

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def create_token(
        self,
        user_id: str,
        username: str,
        permission: str,
        role: str,
        duration: int,
        instance_id: str,
        role_id: str,
        user: Optional[dict[str, Any]] = None,
        metadata: Optional[Any] = None,
    ) -> tuple[str, Payload]:
        """Sign an access token and return it with the payload it carries.

        The returned payload is built from the same values that were signed,
        so callers do not need to verify the token they just minted.
        """
        token_id = str(uuid.uuid4())
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(milliseconds=duration)
        role = role.value if hasattr(role, "value") else role

        claims: dict[str, Any] = {
            "jti": token_id,
            "sub": str(user_id),
            "username": username,
            "permission": permission,
            "role": role,
            "instanceID": instance_id,
            "roleID": role_id,
            "iat": _epoch(issued_at),
            "exp": _epoch(expires_at),
        }
        if user is not None:
            claims["user"] = user
        if metadata is not None:
            claims["metadata"] = metadata

        token = jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)
        payload = Payload(
            id=token_id,
            user_id=str(user_id),
            username=username,
            permission=permission,
            role=role,
            instance_id=instance_id,
            role_id=role_id,
            user=user,
            metadata=metadata,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        return token, payload

    def verify_token(self, token: str) -> Payload:
        """Verify signature, structure and expiry. Raises TokenVerificationFailed."""
        try:
            claims = self._decode(token)
            if not claims.get("jti") or not claims.get("sub"):
                raise TokenVerificationFailed("invalid token structure")

            payload = Payload(
                id=claims["jti"],
                user_id=claims["sub"],
                username=claims.get("username", ""),
                permission=claims.get("permission") or "",
                role=claims.get("role", ""),
                instance_id=claims.get("instanceID", ""),
                role_id=claims.get("roleID", ""),
                user=claims.get("user"),
                metadata=claims.get("metadata"),
                issued_at=_from_epoch(claims.get("iat")),
                expires_at=_from_epoch(claims.get("exp")),
            )
            if not payload.is_valid():
                raise TokenVerificationFailed("token has expired")
            return payload
        except _BAD_CLAIM_ERRORS as exc:
            raise TokenVerificationFailed("Token verification failed: invalid token structure") from exc
        except (JWTError, TokenVerificationFailed) as exc:
            raise TokenVerificationFailed(f"Token verification failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def create_refresh_token(
        self,
        user_id: str,
        duration: int,
        linked_access_token_id: str,
    ) -> tuple[str, RefreshPayload]:
        token_id = str(uuid.uuid4())
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(milliseconds=duration)

        token = jwt.encode(
            {
                "jti": token_id,
                "sub": str(user_id),
                "linkedAccessTokenID": linked_access_token_id,
                "iat": _epoch(issued_at),
                "exp": _epoch(expires_at),
                "type": REFRESH_TOKEN_TYPE,
            },
            self._secret_key,
            algorithm=_ALGORITHM,
        )
        payload = RefreshPayload(
            id=token_id,
            user_id=str(user_id),
            linked_access_token_id=linked_access_token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        return token, payload

    def verify_refresh_token(self, token: str) -> RefreshPayload:
        """Verify a refresh token. Access tokens fail with "invalid refresh token structure"."""
        try:
            claims = self._decode(token)
            if not claims.get("jti") or not claims.get("sub") or claims.get("type") != REFRESH_TOKEN_TYPE:
                raise RefreshTokenVerificationFailed("invalid refresh token structure")

            payload = RefreshPayload(
                id=claims["jti"],
                user_id=claims["sub"],
                linked_access_token_id=claims.get("linkedAccessTokenID", ""),
                issued_at=_from_epoch(claims.get("iat")),
                expires_at=_from_epoch(claims.get("exp")),
            )
            if not payload.is_valid():
                raise RefreshTokenVerificationFailed("refresh token has expired")
            return payload
        except _BAD_CLAIM_ERRORS as exc:
            raise RefreshTokenVerificationFailed("Refresh token verification failed: invalid refresh token structure") from exc
        except (JWTError, RefreshTokenVerificationFailed) as exc:
            raise RefreshTokenVerificationFailed(f"Refresh token verification failed: {exc}") from exc

    # ------------------------------------------------------------------

    def _decode(self, token: str) -> dict[str, Any]:
        return jwt.decode(
            token,
            self._secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes. The API layer caps password
    length well below that (Pydantic max_length).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("authcore_timing_dummy")


def check_password(plain: str, hashed: Optional[str]) -> bool:
    """Constant-work password check.

    hashed is None when the account lookup missed. bcrypt still runs, against
    _DUMMY_HASH, so an unknown email costs the same as a wrong password.
    """
    if hashed is None:
        verify_password(plain, _DUMMY_HASH)
        return False
    return verify_password(plain, hashed)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, key: str, token: str, max_age: int, secure: bool = False) -> None:
    """Write a token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    max_age: callers pass the token duration so cookie and token expire together.
    """
    response.set_cookie(
        key,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
