"""
api/routes/v1/identity.py -- Public registration.

Routes:
  POST /api/v1/identity/register -- create an account; 201 with user + token pair

A missing required field is a 400 REQUIRED_FIELD with detail.field naming it.
A duplicate email or username is a 409 from the unique constraint (23505).
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.errors import raise_for_service
from api.models import RegisterRequest, RegisterResponse
from api.routes.v1.auth import token_response
from identity.sessions import SessionService

router = APIRouter()


@router.post("/identity/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    sessions: SessionService = request.app.state.sessions
    result = sessions.register(body.model_dump())
    if not result.ok:
        raise_for_service(result)
    return token_response(request, result.data, status_code=result.status, model=RegisterResponse)
