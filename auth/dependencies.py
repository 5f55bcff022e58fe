"""
auth/dependencies.py -- FastAPI Depends() helpers for authorization.

require_scopes() builds a dependency around the Authenticator stored on
app.state. On success the route receives the verified Payload; on failure the
dependency raises HTTPException with the verdict's status (401/403/500) and a
{"code", "message"} detail, which api/main.py renders as an ErrorResponse.

get_current_payload() is the scope-free variant: any valid token passes.

Layer rule: no imports from api/ or identity/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Optional

from fastapi import HTTPException, Request

from auth.authenticator import Authenticator
from auth.models import Payload


def _raise_for(result) -> None:
    raise HTTPException(status_code=result.status, detail=result.error.to_dict())


def require_scopes(
    role_map: Optional[Mapping[str, bool]] = None,
    permissions: Optional[Sequence[str]] = None,
) -> Callable[[Request], Payload]:
    """Return a dependency enforcing role_map + permissions on the request.

    Use as a FastAPI dependency:
        @router.post("/permissions/assign")
        def assign(payload: Payload = Depends(require_scopes({"USER": True}, ["permission:assign"]))): ...
    """
    required = tuple(permissions or ())

    def dependency(request: Request) -> Payload:
        authenticator: Authenticator = request.app.state.authenticator
        result = authenticator.must_have_arr_scopes(request, role_map, required)
        if not result.ok:
            _raise_for(result)
        return result.data

    return dependency


def get_current_payload(request: Request) -> Payload:
    """Require a valid access token, no scope or role restriction.

    Use as a FastAPI dependency:
        @router.get("/auth/me")
        async def me(payload: Payload = Depends(get_current_payload)): ...
    """
    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.must_have_scope(request)
    if not result.ok:
        _raise_for(result)
    return result.data
