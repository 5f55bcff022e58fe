"""
core/database.py -- Engine construction, storage error vocabulary, transactions.

Three things every store needs and none should re-implement:

  create_db_engine(): SQLAlchemy engine with the SQLite connection tweaks the
      stores rely on (cross-thread use, WAL, enforced foreign keys).

  map_database_error(): translates a raised SQLAlchemy/DBAPI error into an
      AppError with a stable code. Postgres drivers expose the SQLSTATE
      directly; SQLite only gives a message, so integrity failures are
      classified by message text onto the same SQLSTATE values.

  create_transaction_wrapper(): higher-order unit-of-work runner. The wrapped
      function receives the open Connection and returns a Result; a failed
      Result or a raised exception rolls the whole unit back.

Layer rule: core/ is the kernel. No imports from api/, auth/ or identity/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.result import AppError, Result

logger = logging.getLogger("authcore.database")

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Error vocabulary
# ---------------------------------------------------------------------------


class DatabaseErrorCode(str, Enum):
    """Postgres SQLSTATE codes plus the logical codes stores emit themselves."""

    UNIQUE_VIOLATION = "23505"
    FOREIGN_KEY_VIOLATION = "23503"
    NOT_NULL_VIOLATION = "23502"
    CHECK_VIOLATION = "23514"
    EXCLUSION_VIOLATION = "23P01"

    INVALID_TEXT_REPRESENTATION = "22P02"
    NUMERIC_VALUE_OUT_OF_RANGE = "22003"

    UNDEFINED_TABLE = "42P01"
    UNDEFINED_COLUMN = "42703"
    UNDEFINED_FUNCTION = "42883"
    DATATYPE_MISMATCH = "42804"

    STRING_TRUNCATION = "22001"

    INSUFFICIENT_PRIVILEGE = "42501"

    DEADLOCK_DETECTED = "40P01"
    SERIALIZATION_FAILURE = "40001"

    # Logical (non-SQL) codes
    NOT_FOUND = "NOT_FOUND"
    NO_DATA = "NO_DATA"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"


DATABASE_ERROR_MESSAGES: dict[str, str] = {
    DatabaseErrorCode.UNIQUE_VIOLATION.value: "Unique constraint violation",
    DatabaseErrorCode.FOREIGN_KEY_VIOLATION.value: "Foreign key constraint violation",
    DatabaseErrorCode.NOT_NULL_VIOLATION.value: "Not null constraint violation",
    DatabaseErrorCode.CHECK_VIOLATION.value: "Check constraint violation",
    DatabaseErrorCode.EXCLUSION_VIOLATION.value: "Exclusion constraint violation",
    DatabaseErrorCode.INVALID_TEXT_REPRESENTATION.value: "Invalid text representation",
    DatabaseErrorCode.NUMERIC_VALUE_OUT_OF_RANGE.value: "Numeric value out of range",
    DatabaseErrorCode.UNDEFINED_TABLE.value: "Undefined table",
    DatabaseErrorCode.UNDEFINED_COLUMN.value: "Undefined column",
    DatabaseErrorCode.UNDEFINED_FUNCTION.value: "Undefined function",
    DatabaseErrorCode.DATATYPE_MISMATCH.value: "Data type mismatch",
    DatabaseErrorCode.STRING_TRUNCATION.value: "String data right truncation",
    DatabaseErrorCode.INSUFFICIENT_PRIVILEGE.value: "Insufficient privilege",
    DatabaseErrorCode.DEADLOCK_DETECTED.value: "Deadlock detected",
    DatabaseErrorCode.SERIALIZATION_FAILURE.value: "Serialization failure",
    DatabaseErrorCode.NOT_FOUND.value: "Resource not found",
    DatabaseErrorCode.NO_DATA.value: "No data returned",
    DatabaseErrorCode.INVALID_PAYLOAD.value: "Invalid payload provided",
}

UNKNOWN_ERROR = "UNKNOWN_ERROR"

# SQLite reports integrity failures as "<KIND> constraint failed: <table.col>".
_SQLITE_INTEGRITY_PREFIXES: tuple[tuple[str, DatabaseErrorCode], ...] = (
    ("UNIQUE constraint failed", DatabaseErrorCode.UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", DatabaseErrorCode.FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", DatabaseErrorCode.NOT_NULL_VIOLATION),
    ("CHECK constraint failed", DatabaseErrorCode.CHECK_VIOLATION),
)


def _sqlstate(orig: Any) -> str | None:
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate.
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return str(code) if code else None


def _details(orig: Any) -> dict[str, Any]:
    diag = getattr(orig, "diag", None)
    detail = getattr(diag, "message_detail", None) if diag is not None else None
    if not detail:
        lines = str(orig).splitlines()
        detail = lines[0] if lines else ""
    return {"detail": detail}


def map_database_error(exc: BaseException) -> AppError:
    """Map a raised storage exception onto the stable error vocabulary.

    Unrecognised exceptions become UNKNOWN_ERROR rather than leaking the raw
    driver message as the code.
    """
    orig = getattr(exc, "orig", None) or exc
    code = _sqlstate(orig)
    if code is None and isinstance(exc, IntegrityError):
        text = str(orig)
        for prefix, mapped in _SQLITE_INTEGRITY_PREFIXES:
            if text.startswith(prefix):
                code = mapped.value
                break
    if code is None:
        logger.warning("Unmapped database error: %s", exc.__class__.__name__)
        return AppError(code=UNKNOWN_ERROR, message="An unknown error occurred", details=_details(orig))
    return AppError(
        code=code,
        message=DATABASE_ERROR_MESSAGES.get(code, "Unknown database error"),
        details=_details(orig),
    )


def not_found(message: str) -> AppError:
    return AppError(code=DatabaseErrorCode.NOT_FOUND, message=message)


def no_data(message: str = "No data returned") -> AppError:
    return AppError(code=DatabaseErrorCode.NO_DATA, message=message)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on each new SQLite connection.

    Both are per-connection settings in SQLite -- they are not inherited by
    new connections from the pool. foreign_keys is OFF by default, which
    would let user_permissions rows point at users that do not exist.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

TransactionWrapper = Callable[[Callable[[Connection], Result[T]]], Result[T]]


def create_transaction_wrapper(engine: Engine) -> TransactionWrapper:
    """Return run(fn): execute fn(conn) inside one all-or-nothing transaction.

    Usage:
        transaction = create_transaction_wrapper(engine)
        result = transaction(lambda conn: store.create_many(rows, conn=conn))

    Commit happens only when fn returns an ok Result. A failed Result rolls
    back and is returned unchanged; an exception rolls back and propagates.
    """

    def run(fn: Callable[[Connection], Result[T]]) -> Result[T]:
        with engine.connect() as conn:
            trans = conn.begin()
            try:
                result = fn(conn)
            except Exception:
                trans.rollback()
                raise
            if result.ok:
                trans.commit()
            else:
                logger.info("Rolling back transaction: %s", result.error.code if result.error else "unknown")
                trans.rollback()
            return result

    return run
