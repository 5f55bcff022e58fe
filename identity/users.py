"""
identity/users.py -- User usecase: registration and the thin CRUD around it.

Every method returns a Result. Store failures are re-wrapped with their code,
message and details intact (core.result.rewrap); nothing is reinterpreted.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from core.result import Result, ok, rewrap
from identity.models import CursorPage, User, UserListParams
from identity.store import UserStore
from identity.transform import from_register_request

logger = logging.getLogger("authcore.identity")


class UserUsecase:
    def __init__(self, user_store: UserStore) -> None:
        self.user_store = user_store

    def register_user(self, data: Mapping[str, Any]) -> Result[User]:
        """Validate required fields, hash the password, and create the user.

        A missing field returns REQUIRED_FIELD before any storage call.
        """
        transformed = from_register_request(data)
        if not transformed.ok:
            return transformed

        created = self.user_store.create(transformed.data)
        if not created.ok:
            return rewrap(created.error)

        logger.info("Registered user id=%s", created.data.id)
        return ok(created.data)

    def get_user_by_id(self, user_id: int) -> Result[User]:
        result = self.user_store.get(user_id)
        if not result.ok:
            return rewrap(result.error)
        return ok(result.data)

    def get_user_by_email(self, email: str) -> Result[User]:
        result = self.user_store.get_by_email(email)
        if not result.ok:
            return rewrap(result.error)
        return ok(result.data)

    def update_user(self, user_id: int, fields: dict[str, Any]) -> Result[User]:
        result = self.user_store.update(user_id, fields)
        if not result.ok:
            return rewrap(result.error)
        return ok(result.data)

    def delete_user(self, user_id: int) -> Result[User]:
        result = self.user_store.remove(user_id)
        if not result.ok:
            return rewrap(result.error)
        logger.info("Deleted user id=%s", user_id)
        return ok(result.data)

    def list_users(self, params: Optional[UserListParams] = None) -> Result[CursorPage]:
        result = self.user_store.list_users(params)
        if not result.ok:
            return rewrap(result.error)
        return ok(result.data)
