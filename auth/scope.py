"""
auth/scope.py -- Scope evaluation for verified access tokens.

A scope is "resource:action". A claimed scope may use wildcards:
  "post:*"  matches every required scope starting with "post:"
  "*:*"     matches everything

Decision order for has_scope():
  1. No role map configured          -> allowed.
  2. Required string None or ""      -> role_map[role] decides. A string
     that is non-empty but holds no scopes ("   ", ",") skips this step.
  3. Each required scope in order must match a claimed scope (exact or
     wildcard). The FIRST required scope without a match hands the whole
     decision to role_map[role]; later required scopes are not checked.
  4. Every required scope matched    -> allowed.

Step 3 is not "all scopes match OR role allowed": an allowed role masks
every requirement after the first miss, and a disallowed role denies even
if later scopes would have matched.

Pure functions, no I/O.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Optional

from auth.models import Payload

_SCOPE_SEPARATORS = re.compile(r"[\s,]+")

UNIVERSAL_SCOPE = "*:*"


def split_scopes(value: Optional[str]) -> list[str]:
    """Split a scope string on any run of whitespace and/or commas, dropping empties."""
    if not value:
        return []
    return [s for s in _SCOPE_SEPARATORS.split(value) if s]


def _role_allowed(role_map: Mapping[str, bool], role: str) -> bool:
    return role_map.get(role) is True


def _matches(required: str, claimed: list[str]) -> bool:
    if required in claimed:
        return True
    for scope in claimed:
        # "*:*" also ends with ":*", so it must be tested first.
        if scope == UNIVERSAL_SCOPE:
            return True
        if scope.endswith(":*") and required.startswith(scope[:-1]):
            return True
    return False


def has_scope(
    payload: Payload,
    role_map: Optional[Mapping[str, bool]] = None,
    required_permissions: Optional[str] = None,
) -> bool:
    if role_map is None:
        return True

    if not required_permissions:
        return _role_allowed(role_map, payload.role)

    # A non-empty string with no scopes in it ("   ", ",") has nothing left
    # unmatched, so it is allowed.
    claimed = split_scopes(payload.permission)
    for scope in split_scopes(required_permissions):
        if not _matches(scope, claimed):
            return _role_allowed(role_map, payload.role)
    return True
