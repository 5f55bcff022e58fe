"""
tests/test_permission_usecase.py -- Unit tests for identity/permissions.py.

Two styles:
  - MagicMock store + pass-through transaction, to pin exactly which store
    calls are made and with what rows.
  - Real in-memory SQLite store + real transaction wrapper, to prove that a
    failed grant insert also undoes the catalog rows created in the same call.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import create_user

from core.database import create_transaction_wrapper
from core.result import AppError, err, ok
from identity.models import Permission, UserPermission
from identity.permissions import PermissionUsecase, split_permission_id
from identity.store import PermissionStore, UserStore


def _passthrough(fn):
    return fn(MagicMock(name="conn"))


def _echo_grants(records, conn=None):
    return ok([UserPermission(id=i + 1, user_id=r.user_id, permission_id=r.permission_id, created_by=r.created_by) for i, r in enumerate(records)])


@pytest.fixture
def store() -> MagicMock:
    mock = MagicMock(spec=PermissionStore)
    mock.create_many.side_effect = lambda records, conn=None: ok(list(records))
    mock.create_user_permissions_many.side_effect = _echo_grants
    return mock


# ---------------------------------------------------------------------------
# Mocked store
# ---------------------------------------------------------------------------


class TestAssignWithMockStore:
    def test_existing_permissions_are_only_assigned(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok(
            [Permission(id="read:user", action="read", resource_name="user"), Permission(id="create:post")]
        )
        usecase = PermissionUsecase(store, _passthrough)

        result = usecase.assign_permissions_to_user(10, "admin", ["read:user", "create:post"])

        assert result.ok
        store.create_many.assert_not_called()
        store.create_user_permissions_many.assert_called_once()
        records = store.create_user_permissions_many.call_args.args[0]
        assert [(r.user_id, r.permission_id, r.created_by) for r in records] == [
            (10, "read:user", "admin"),
            (10, "create:post", "admin"),
        ]

    def test_missing_permission_is_created_before_assignment(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok([Permission(id="read:user")])
        calls: list[str] = []
        store.create_many.side_effect = lambda records, conn=None: calls.append("create") or ok(list(records))
        store.create_user_permissions_many.side_effect = lambda records, conn=None: calls.append("assign") or _echo_grants(records)
        usecase = PermissionUsecase(store, _passthrough)

        result = usecase.assign_permissions_to_user(10, "admin", ["read:user", "create:post"])

        assert result.ok
        assert calls == ["create", "assign"]
        created = store.create_many.call_args.args[0]
        assert created == [Permission(id="create:post", action="create", resource_name="post")]
        assert len(store.create_user_permissions_many.call_args.args[0]) == 2

    def test_store_calls_share_the_transaction_connection(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok([])
        conn = MagicMock(name="conn")
        usecase = PermissionUsecase(store, lambda fn: fn(conn))

        usecase.assign_permissions_to_user(1, "admin", ["a:b"])

        assert store.create_many.call_args.kwargs["conn"] is conn
        assert store.create_user_permissions_many.call_args.kwargs["conn"] is conn

    def test_duplicate_requested_ids_are_assigned_once(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok([])
        usecase = PermissionUsecase(store, _passthrough)

        usecase.assign_permissions_to_user(1, "admin", ["x:y", "a:b", "x:y"])

        assert [p.id for p in store.create_many.call_args.args[0]] == ["x:y", "a:b"]
        assert [r.permission_id for r in store.create_user_permissions_many.call_args.args[0]] == ["x:y", "a:b"]

    def test_duplicate_catalog_rows_do_not_create(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok([Permission(id="a:b", description="first"), Permission(id="a:b", description="second")])
        usecase = PermissionUsecase(store, _passthrough)

        assert usecase.assign_permissions_to_user(1, "admin", ["a:b"]).ok
        store.create_many.assert_not_called()

    def test_lookup_failure_is_returned_unchanged(self, store: MagicMock) -> None:
        failure = AppError(code="UNKNOWN_ERROR", message="An unknown error occurred", details={"detail": "x"})
        store.get_by_ids.return_value = err(failure)
        transaction = MagicMock()
        usecase = PermissionUsecase(store, transaction)

        result = usecase.assign_permissions_to_user(1, "admin", ["a:b"])

        assert result.error == failure
        transaction.assert_not_called()

    def test_create_failure_stops_before_assignment(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok([])
        store.create_many.side_effect = None
        store.create_many.return_value = err(AppError(code="23505", message="Unique constraint violation"))
        usecase = PermissionUsecase(store, _passthrough)

        result = usecase.assign_permissions_to_user(1, "admin", ["a:b"])

        assert result.error.code == "23505"
        store.create_user_permissions_many.assert_not_called()

    def test_assign_failure_is_returned(self, store: MagicMock) -> None:
        store.get_by_ids.return_value = ok([Permission(id="a:b")])
        store.create_user_permissions_many.side_effect = None
        store.create_user_permissions_many.return_value = err(AppError(code="23503", message="Foreign key constraint violation"))
        usecase = PermissionUsecase(store, _passthrough)

        assert usecase.assign_permissions_to_user(999, "admin", ["a:b"]).error.code == "23503"


class TestReadAndRevoke:
    def test_get_user_permissions(self, store: MagicMock) -> None:
        grants = [UserPermission(id=1, user_id=3, permission_id="a:b")]
        store.get_user_permissions.return_value = ok(grants)
        assert PermissionUsecase(store, _passthrough).get_user_permissions(3).data == grants

    def test_delete_user_permissions_no_data(self, store: MagicMock) -> None:
        store.delete_for_user.return_value = err(AppError(code="NO_DATA", message="No data deleted"))
        result = PermissionUsecase(store, _passthrough).delete_user_permissions(3, ["a:b"])
        assert result.error.code == "NO_DATA"
        store.delete_for_user.assert_called_once_with(3, ["a:b"])


class TestSplitPermissionId:
    @pytest.mark.parametrize(
        "pid,expected",
        [
            ("create:post", ("create", "post")),
            ("read:user:profile", ("read", "user:profile")),
            ("admin", ("admin", None)),
            (":orphan", ("", "orphan")),
        ],
    )
    def test_split(self, pid: str, expected) -> None:
        assert split_permission_id(pid) == expected


# ---------------------------------------------------------------------------
# Real SQLite store
# ---------------------------------------------------------------------------


class TestAssignWithSqlite:
    def test_assign_creates_missing_and_grants_all(
        self, engine, user_store: UserStore, permission_store: PermissionStore
    ) -> None:
        user = create_user(user_store, "bob@example.com")
        permission_store.create_many([Permission(id="read:user", action="read", resource_name="user")])
        usecase = PermissionUsecase(permission_store, create_transaction_wrapper(engine))

        result = usecase.assign_permissions_to_user(user.id, "admin", ["read:user", "create:post"])

        assert result.ok, result.error
        assert [g.permission_id for g in result.data] == ["read:user", "create:post"]
        assert permission_store.get_permission("create:post").data.resource_name == "post"
        assert len(usecase.get_user_permissions(user.id).data) == 2

    def test_failed_grant_rolls_back_created_permissions(self, engine, permission_store: PermissionStore) -> None:
        usecase = PermissionUsecase(permission_store, create_transaction_wrapper(engine))

        # No such user: the grant insert fails on the users foreign key.
        result = usecase.assign_permissions_to_user(4242, "admin", ["create:post"])

        assert not result.ok
        assert result.error.code == "23503"
        assert permission_store.get_permission("create:post").error.code == "NOT_FOUND"

    def test_regranting_an_existing_grant_is_unique_violation(
        self, engine, user_store: UserStore, permission_store: PermissionStore
    ) -> None:
        user = create_user(user_store, "carol@example.com")
        usecase = PermissionUsecase(permission_store, create_transaction_wrapper(engine))
        assert usecase.assign_permissions_to_user(user.id, "admin", ["read:user"]).ok

        again = usecase.assign_permissions_to_user(user.id, "admin", ["read:user", "create:post"])

        assert again.error.code == "23505"
        # create:post was created in the rolled-back transaction.
        assert permission_store.get_permission("create:post").error.code == "NOT_FOUND"
        assert [g.permission_id for g in usecase.get_user_permissions(user.id).data] == ["read:user"]

    def test_permission_created_concurrently_is_unique_violation(self, engine, user_store: UserStore) -> None:
        class StaleLookupStore(PermissionStore):
            # Lookup ran before another caller inserted the row.
            def get_by_ids(self, ids, conn=None):
                return ok([])

        store = StaleLookupStore(engine)
        user = create_user(user_store, "dave@example.com")
        store.create_many([Permission(id="read:user", action="read", resource_name="user")])
        usecase = PermissionUsecase(store, create_transaction_wrapper(engine))

        result = usecase.assign_permissions_to_user(user.id, "admin", ["create:post", "read:user"])

        assert result.error.code == "23505"
        assert store.get_user_permissions(user.id).data == []
        assert store.get_permission("create:post").error.code == "NOT_FOUND"
