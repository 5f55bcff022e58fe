"""
identity/store.py -- SQLAlchemy Core persistence for users and permissions.

Pattern: Repository + Data Mapper. UserStore and PermissionStore are the
repositories; the _row_to_* functions are the mappers. Usecase and route code
never touches SQL directly.

Result contract:
  Every public method returns a core.result.Result. SQLAlchemy errors are
  caught here and mapped with core.database.map_database_error(); nothing
  raised by the driver crosses this boundary.

Transactions:
  Every method takes an optional conn. Without it the method opens, commits
  and closes its own connection. With it the method runs on the caller's
  connection and leaves commit/rollback to the caller -- this is how the
  permission usecase runs catalog creation and assignment in one transaction
  (see core.database.create_transaction_wrapper).

Schema notes:
  permissions.id is the natural key ("action:resource").
  UNIQUE(user_id, permission_id) on user_permissions backs the usecase's own
  de-duplication against concurrent assignments.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    and_,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.database import DatabaseErrorCode, map_database_error, no_data, not_found, now_iso
from core.result import AppError, Result, err, ok
from identity.models import (
    CursorPage,
    PageInfo,
    Permission,
    User,
    UserListParams,
    UserPermission,
    normalize_limit,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("fullname", String(255), nullable=False),
    Column("username", String(100), unique=True),
    Column("phone_number", String(50), index=True),
    Column("email", String(255), unique=True),
    Column("profile_pic", String(500)),
    Column("address", JSON),
    Column("gender", String(30)),
    Column("date_of_birth", String(32)),
    Column("place_of_birth", String(255)),
    Column("role_type", String(30)),
    Column("status", String(40), nullable=False, server_default="USER_STATUS_ACTIVE"),
    Column("password", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", String(255), primary_key=True),
    Column("action", String(100)),
    Column("resource_name", String(255)),
    Column("description", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

user_permissions = Table(
    "user_permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", String(255), ForeignKey("permissions.id"), nullable=False),
    Column("created_by", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "permission_id", name="uq_user_permission"),
)

# Columns a caller may change through UserStore.update(). id and timestamps
# are owned by the store.
_USER_MUTABLE_FIELDS = frozenset(
    {
        "fullname",
        "username",
        "phone_number",
        "email",
        "profile_pic",
        "address",
        "gender",
        "date_of_birth",
        "place_of_birth",
        "role_type",
        "status",
        "password",
    }
)

_USER_SORT_COLUMNS = {
    "id": users.c.id,
    "created_at": users.c.created_at,
    "updated_at": users.c.updated_at,
    "fullname": users.c.fullname,
}


def create_schema(engine: Engine) -> None:
    """Create all identity tables if missing. Idempotent."""
    metadata.create_all(engine)


class _Store:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        create_schema(engine)

    @contextmanager
    def _connection(self, conn: Optional[Connection]) -> Iterator[Connection]:
        """Yield the caller's connection untouched, or a private one committed on success."""
        if conn is not None:
            yield conn
            return
        with self.engine.connect() as own:
            yield own
            own.commit()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore(_Store):
    """Repository for User records.

    Usage:
        store = UserStore(create_db_engine("sqlite:///authcore.db"))
        result = store.create(User(fullname="Ada", password=hash_password("pw"), email="ada@example.com"))
        if result.ok:
            print(result.data.id)
    """

    def create(self, user: User, conn: Optional[Connection] = None) -> Result[User]:
        now = now_iso()
        values = {name: getattr(user, name) for name in _USER_MUTABLE_FIELDS}
        values.update(created_at=now, updated_at=now)
        try:
            with self._connection(conn) as c:
                row = c.execute(users.insert().values(**values).returning(users)).fetchone()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if row is None:
            return err(no_data())
        return ok(_row_to_user(row))

    def get(self, user_id: int, conn: Optional[Connection] = None) -> Result[User]:
        try:
            with self._connection(conn) as c:
                row = c.execute(users.select().where(users.c.id == user_id)).fetchone()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if row is None:
            return err(not_found("User not found"))
        return ok(_row_to_user(row))

    def get_by_email(self, email: str, conn: Optional[Connection] = None) -> Result[User]:
        """Exact (case-sensitive) email lookup. NOT_FOUND when absent."""
        try:
            with self._connection(conn) as c:
                row = c.execute(users.select().where(users.c.email == email)).fetchone()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if row is None:
            return err(not_found("User not found"))
        return ok(_row_to_user(row))

    def update(self, user_id: int, fields: dict[str, Any], conn: Optional[Connection] = None) -> Result[User]:
        """Update mutable fields. Unknown keys fail with INVALID_PAYLOAD before any SQL runs."""
        unknown = set(fields) - _USER_MUTABLE_FIELDS
        if unknown:
            return err(
                AppError(
                    code=DatabaseErrorCode.INVALID_PAYLOAD,
                    message="Invalid payload provided",
                    details={"fields": sorted(unknown)},
                )
            )
        values = dict(fields, updated_at=now_iso())
        try:
            with self._connection(conn) as c:
                row = c.execute(
                    users.update().where(users.c.id == user_id).values(**values).returning(users)
                ).fetchone()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if row is None:
            return err(no_data("No data updated"))
        return ok(_row_to_user(row))

    def remove(self, user_id: int, conn: Optional[Connection] = None) -> Result[User]:
        try:
            with self._connection(conn) as c:
                row = c.execute(users.delete().where(users.c.id == user_id).returning(users)).fetchone()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if row is None:
            return err(no_data("No data deleted"))
        return ok(_row_to_user(row))

    def list_users(self, params: Optional[UserListParams] = None, conn: Optional[Connection] = None) -> Result[CursorPage]:
        """Cursor-paginated listing with optional filters.

        Fetches limit + 1 rows: the extra row only signals that another page
        exists and is dropped from the result. next_cursor is the id of the
        last returned row. The cursor is an id, so it is exact for sort_by="id"
        and approximate for the other sort keys.
        """
        params = params or UserListParams()
        limit = normalize_limit(params.limit)
        descending = params.sort_order == "desc"

        conditions = []
        if params.cursor is not None:
            conditions.append(users.c.id < params.cursor if descending else users.c.id > params.cursor)

        f = params.filters
        if f is not None:
            if f.fullname:
                conditions.append(users.c.fullname.like(f"%{f.fullname}%"))
            if f.username:
                conditions.append(users.c.username.like(f"%{f.username}%"))
            if f.email:
                conditions.append(users.c.email.like(f"%{f.email}%"))
            if f.phone_number:
                conditions.append(users.c.phone_number.like(f"%{f.phone_number}%"))
            if f.gender:
                conditions.append(users.c.gender == f.gender)
            if f.role_type:
                conditions.append(users.c.role_type == f.role_type)
            if f.status:
                conditions.append(users.c.status == f.status)
            if f.created_after:
                conditions.append(users.c.created_at >= f.created_after)
            if f.created_before:
                conditions.append(users.c.created_at <= f.created_before)

        order_col = _USER_SORT_COLUMNS.get(params.sort_by, users.c.id)
        query = users.select()
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(order_col.desc() if descending else order_col.asc()).limit(limit + 1)

        try:
            with self._connection(conn) as c:
                rows = c.execute(query).fetchall()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))

        has_next_page = len(rows) > limit
        page = [_row_to_user(r) for r in rows[:limit]]
        next_cursor = page[-1].id if has_next_page and page else None
        return ok(
            CursorPage(
                data=page,
                page_info=PageInfo(has_next_page=has_next_page, count=len(page), next_cursor=next_cursor),
            )
        )


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionStore(_Store):
    """Repository for the permission catalog and user grants."""

    def get_permission(self, permission_id: str, conn: Optional[Connection] = None) -> Result[Permission]:
        try:
            with self._connection(conn) as c:
                row = c.execute(permissions.select().where(permissions.c.id == permission_id)).fetchone()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if row is None:
            return err(not_found("Permission not found"))
        return ok(_row_to_permission(row))

    def get_by_ids(self, ids: Sequence[str], conn: Optional[Connection] = None) -> Result[list[Permission]]:
        """Batch catalog lookup. Missing ids are simply absent; no ordering guarantee."""
        if not ids:
            return ok([])
        try:
            with self._connection(conn) as c:
                rows = c.execute(permissions.select().where(permissions.c.id.in_(list(ids)))).fetchall()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        return ok([_row_to_permission(r) for r in rows])

    def create_many(self, records: Sequence[Permission], conn: Optional[Connection] = None) -> Result[list[Permission]]:
        if not records:
            return err(no_data())
        now = now_iso()
        rows = [
            {
                "id": p.id,
                "action": p.action,
                "resource_name": p.resource_name,
                "description": p.description,
                "created_at": now,
                "updated_at": now,
            }
            for p in records
        ]
        try:
            with self._connection(conn) as c:
                result = c.execute(permissions.insert().returning(permissions, sort_by_parameter_order=True), rows)
                created = result.fetchall()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if not created:
            return err(no_data())
        return ok([_row_to_permission(r) for r in created])

    def create_user_permissions_many(
        self,
        records: Sequence[UserPermission],
        conn: Optional[Connection] = None,
    ) -> Result[list[UserPermission]]:
        if not records:
            return err(no_data())
        now = now_iso()
        rows = [
            {
                "user_id": up.user_id,
                "permission_id": up.permission_id,
                "created_by": up.created_by,
                "created_at": now,
                "updated_at": now,
            }
            for up in records
        ]
        try:
            with self._connection(conn) as c:
                result = c.execute(
                    user_permissions.insert().returning(user_permissions, sort_by_parameter_order=True), rows
                )
                created = result.fetchall()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if not created:
            return err(no_data())
        return ok([_row_to_user_permission(r) for r in created])

    def get_user_permissions(self, user_id: int, conn: Optional[Connection] = None) -> Result[list[UserPermission]]:
        """All grants for a user, oldest first. Empty list when none."""
        try:
            with self._connection(conn) as c:
                rows = c.execute(
                    user_permissions.select()
                    .where(user_permissions.c.user_id == user_id)
                    .order_by(user_permissions.c.id)
                ).fetchall()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        return ok([_row_to_user_permission(r) for r in rows])

    def delete_for_user(
        self,
        user_id: int,
        permission_ids: Sequence[str],
        conn: Optional[Connection] = None,
    ) -> Result[list[UserPermission]]:
        """Revoke grants. NO_DATA when none of the ids were held by the user."""
        try:
            with self._connection(conn) as c:
                rows = c.execute(
                    user_permissions.delete()
                    .where(
                        (user_permissions.c.user_id == user_id)
                        & (user_permissions.c.permission_id.in_(list(permission_ids)))
                    )
                    .returning(user_permissions)
                ).fetchall()
        except SQLAlchemyError as exc:
            return err(map_database_error(exc))
        if not rows:
            return err(no_data("No data deleted"))
        return ok([_row_to_user_permission(r) for r in rows])


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        fullname=row.fullname,
        username=row.username,
        phone_number=row.phone_number,
        email=row.email,
        profile_pic=row.profile_pic,
        address=row.address,
        gender=row.gender,
        date_of_birth=row.date_of_birth,
        place_of_birth=row.place_of_birth,
        role_type=row.role_type,
        status=row.status,
        password=row.password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        action=row.action,
        resource_name=row.resource_name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_user_permission(row) -> UserPermission:
    return UserPermission(
        id=row.id,
        user_id=row.user_id,
        permission_id=row.permission_id,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
