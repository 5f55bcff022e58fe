"""
identity/transform.py -- Mapping between registration input and stored records.

from_register_request() is the only validation registration gets beyond the
HTTP schema: each required field is checked in a fixed order and the first
missing one is reported as REQUIRED_FIELD with details={"field": <name>}.
Nothing is written to storage when it fails. The password is bcrypt-hashed
here so plaintext never reaches the store.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict
from typing import Any

from auth.models import UserRole
from auth.tokens import hash_password
from core.result import ErrorCode, Result, create_error, err, ok
from identity.models import User

# (field name, human label) in the order they are checked.
REQUIRED_REGISTRATION_FIELDS: tuple[tuple[str, str], ...] = (
    ("fullname", "Fullname"),
    ("password", "Password"),
    ("username", "Username"),
    ("email", "Email"),
    ("phone_number", "Phone number"),
)


def from_register_request(data: Mapping[str, Any]) -> Result[User]:
    for name, label in REQUIRED_REGISTRATION_FIELDS:
        if not data.get(name):
            return err(create_error(ErrorCode.REQUIRED_FIELD, f"{label} is required", {"field": name}))

    return ok(
        User(
            fullname=data["fullname"],
            username=data["username"],
            phone_number=data["phone_number"],
            email=data["email"],
            password=hash_password(data["password"]),
            role_type=UserRole.USER.value,
        )
    )


def to_user_snapshot(user: User) -> dict[str, Any]:
    """Public view of a user: every field except the password hash."""
    snapshot = asdict(user)
    snapshot.pop("password", None)
    return snapshot
