"""
api/routes/v1/users.py -- User administration.

Routes:
  GET    /api/v1/users        -- cursor-paginated list with filters
  GET    /api/v1/users/{id}   -- one user
  PATCH  /api/v1/users/{id}   -- update profile, role or status
  DELETE /api/v1/users/{id}   -- delete a user (grants cascade)

Role map {ADMIN: true}: an ADMIN passes even without the scope; anyone else
needs user:read / user:update / user:delete in their token.

Guards:
  PATCH blocks an empty body (400 no_changes).
  DELETE blocks deleting your own account (400 self_deletion).
"""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.errors import raise_for_error
from api.models import UserListResponse, UserOut, UserPatch
from auth.dependencies import require_scopes
from auth.models import Payload, UserRole
from identity.models import UserListParams, UserSearchFilters
from identity.users import UserUsecase

_ROLE_MAP = {UserRole.ADMIN.value: True}

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    cursor: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    sort_by: Literal["id", "created_at", "updated_at", "fullname"] = "id",
    sort_order: Literal["asc", "desc"] = "asc",
    fullname: Optional[str] = Query(default=None, max_length=255),
    username: Optional[str] = Query(default=None, max_length=100),
    email: Optional[str] = Query(default=None, max_length=255),
    phone_number: Optional[str] = Query(default=None, max_length=50),
    gender: Optional[str] = None,
    role_type: Optional[str] = None,
    status: Optional[str] = None,
    created_after: Optional[str] = None,
    created_before: Optional[str] = None,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["user:read"])),
) -> UserListResponse:
    usecase: UserUsecase = request.app.state.user_usecase
    params = UserListParams(
        cursor=cursor,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        filters=UserSearchFilters(
            fullname=fullname,
            username=username,
            email=email,
            phone_number=phone_number,
            gender=gender,
            role_type=role_type,
            status=status,
            created_after=created_after,
            created_before=created_before,
        ),
    )
    result = usecase.list_users(params)
    if not result.ok:
        raise_for_error(result.error)
    return UserListResponse.from_page(result.data)


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(
    request: Request,
    user_id: int,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["user:read"])),
) -> UserOut:
    usecase: UserUsecase = request.app.state.user_usecase
    result = usecase.get_user_by_id(user_id)
    if not result.ok:
        raise_for_error(result.error)
    return UserOut.from_user(result.data)


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["user:update"])),
) -> UserOut:
    fields = body.to_fields()
    if not fields:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    usecase: UserUsecase = request.app.state.user_usecase
    result = usecase.update_user(user_id, fields)
    if not result.ok:
        raise_for_error(result.error)
    return UserOut.from_user(result.data)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    payload: Payload = Depends(require_scopes(_ROLE_MAP, ["user:delete"])),
) -> Response:
    if str(user_id) == payload.user_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    usecase: UserUsecase = request.app.state.user_usecase
    result = usecase.delete_user(user_id)
    if not result.ok:
        raise_for_error(result.error)
    return Response(status_code=204)
