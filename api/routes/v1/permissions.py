"""
api/routes/v1/permissions.py -- Permission grant endpoints.

Routes:
  POST /api/v1/permissions/assign            -- grant ids to a user, creating missing catalog rows
  GET  /api/v1/permissions/users/{user_id}   -- list a user's grants
  POST /api/v1/permissions/revoke            -- remove grants from a user

Every route requires a valid access token. Role map {USER: true}: a USER
whose token lacks the route's scope is still let through (see auth/scope.py
for the fallback order); any other role needs the scope.

The caller's username is recorded as created_by on every grant.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.errors import raise_for_error
from api.models import PermissionGrantRequest, UserPermissionListResponse, UserPermissionOut
from auth.dependencies import require_scopes
from auth.models import Payload, UserRole
from identity.permissions import PermissionUsecase

# Auth policy: all routes guarded by require_scopes(_ROLE_MAP, [<scope>]).
_ROLE_MAP = {UserRole.USER.value: True}

router = APIRouter()


@router.post("/permissions/assign", response_model=list[UserPermissionOut], status_code=201)
def assign_permissions(
    request: Request,
    body: PermissionGrantRequest,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["permission:assign"])),
) -> list[UserPermissionOut]:
    usecase: PermissionUsecase = request.app.state.permission_usecase
    result = usecase.assign_permissions_to_user(body.user_id, payload.username, body.permission_ids)
    if not result.ok:
        raise_for_error(result.error)
    return [UserPermissionOut.from_record(r) for r in result.data]


@router.get("/permissions/users/{user_id}", response_model=UserPermissionListResponse)
def list_user_permissions(
    request: Request,
    user_id: int,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["permission:read"])),
) -> UserPermissionListResponse:
    usecase: PermissionUsecase = request.app.state.permission_usecase
    result = usecase.get_user_permissions(user_id)
    if not result.ok:
        raise_for_error(result.error)
    return UserPermissionListResponse(
        user_id=user_id,
        permissions=[UserPermissionOut.from_record(r) for r in result.data],
    )


@router.post("/permissions/revoke", response_model=list[UserPermissionOut])
def revoke_permissions(
    request: Request,
    body: PermissionGrantRequest,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["permission:revoke"])),
) -> list[UserPermissionOut]:
    usecase: PermissionUsecase = request.app.state.permission_usecase
    result = usecase.delete_user_permissions(body.user_id, body.permission_ids)
    if not result.ok:
        raise_for_error(result.error)
    return [UserPermissionOut.from_record(r) for r in result.data]
