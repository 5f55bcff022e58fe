"""
identity/permissions.py -- Permission usecase: grant reconciliation and revocation.

assign_permissions_to_user() is the only multi-step write in the system:

  1. Look up the requested ids in the catalog (outside the transaction).
  2. Index the rows found by id; the first row wins on duplicates.
  3. Every requested id not in the index becomes a new catalog row, with
     action / resource_name taken from splitting the id on its first ":".
  4. Create those rows (skipped when none are missing).
  5. Build one grant row per requested id, all created_by=author.
  6. Insert the grants.

Steps 3-6 run in one transaction: if the grant insert fails, the catalog rows
created in step 4 are rolled back too. Because step 1 runs before the
transaction opens, a concurrent request can create the same permission in
between; step 4 then fails with a unique violation (23505) and the whole call
returns that error.

Requested ids are de-duplicated (first occurrence kept) so a single call never
tries to grant the same permission twice.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.engine import Connection

from core.database import TransactionWrapper
from core.result import Result, ok, rewrap
from identity.models import Permission, UserPermission
from identity.store import PermissionStore

logger = logging.getLogger("authcore.identity")


def index_permissions(found: Sequence[Permission]) -> dict[str, Permission]:
    """Map permission id -> row, keeping the first row seen for each id."""
    index: dict[str, Permission] = {}
    for permission in found:
        index.setdefault(permission.id, permission)
    return index


def split_permission_id(permission_id: str) -> tuple[str, str | None]:
    """Split "action:resource" on the first ":".

    Ids are not validated. An id without ":" is all action and has no
    resource_name; that row is stored as-is.
    """
    action, sep, resource_name = permission_id.partition(":")
    return action, (resource_name if sep else None)


def missing_permissions(permission_ids: Sequence[str], catalog: dict[str, Permission]) -> list[Permission]:
    missing: list[Permission] = []
    for permission_id in permission_ids:
        if permission_id not in catalog:
            action, resource_name = split_permission_id(permission_id)
            missing.append(Permission(id=permission_id, action=action, resource_name=resource_name))
    return missing


def build_grants(user_id: int, author: str, permission_ids: Sequence[str]) -> list[UserPermission]:
    return [UserPermission(user_id=user_id, permission_id=pid, created_by=author) for pid in permission_ids]


class PermissionUsecase:
    """Reads, reconciles and revokes user permission grants.

    Usage:
        usecase = PermissionUsecase(permission_store, create_transaction_wrapper(engine))
        result = usecase.assign_permissions_to_user(10, "admin", ["read:user", "create:post"])
    """

    def __init__(self, permission_store: PermissionStore, transaction: TransactionWrapper) -> None:
        self.permission_store = permission_store
        self.transaction = transaction

    def get_user_permissions(self, user_id: int) -> Result[list[UserPermission]]:
        result = self.permission_store.get_user_permissions(user_id)
        if not result.ok:
            return rewrap(result.error)
        return ok(result.data)

    def assign_permissions_to_user(
        self,
        user_id: int,
        author: str,
        permission_ids: Sequence[str],
    ) -> Result[list[UserPermission]]:
        requested = list(dict.fromkeys(permission_ids))

        found = self.permission_store.get_by_ids(requested)
        if not found.ok:
            return rewrap(found.error)
        catalog = index_permissions(found.data)

        def unit_of_work(conn: Connection) -> Result[list[UserPermission]]:
            missing = missing_permissions(requested, catalog)
            if missing:
                created = self.permission_store.create_many(missing, conn=conn)
                if not created.ok:
                    return rewrap(created.error)
                logger.info("Created %d catalog permission(s): %s", len(missing), [p.id for p in missing])

            assigned = self.permission_store.create_user_permissions_many(
                build_grants(user_id, author, requested), conn=conn
            )
            if not assigned.ok:
                return rewrap(assigned.error)
            return ok(assigned.data)

        result = self.transaction(unit_of_work)
        if result.ok:
            logger.info("Assigned %d permission(s) to user_id=%s by %s", len(result.data), user_id, author)
        return result

    def delete_user_permissions(self, user_id: int, permission_ids: Sequence[str]) -> Result[list[UserPermission]]:
        result = self.permission_store.delete_for_user(user_id, permission_ids)
        if not result.ok:
            return rewrap(result.error)
        logger.info("Revoked %d permission(s) from user_id=%s", len(result.data), user_id)
        return ok(result.data)
