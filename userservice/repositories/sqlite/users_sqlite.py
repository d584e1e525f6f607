from __future__ import annotations

import functools
import logging
import os
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from ...domain.entities import User
from ..codec import UserRecord, format_timestamp, parse_timestamp, record_to_user, user_to_record
from ..deadline import Deadline
from ..errors import AlreadyExistsError, NotFoundError, StorageError, StorageTimeoutError
from ..users import UserRepo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds
# Number of SQLite VM instructions between deadline checks
PROGRESS_INTERVAL = 1000

_COLUMNS = "email, name, public_key, wrapped_private_key, wrapped_master_key, created_at, updated_at"

ConnectionFactory = Callable[[], sqlite3.Connection]


def open_sqlite(dsn: str, timeout: float) -> sqlite3.Connection:
    return sqlite3.connect(
        dsn, timeout=timeout, uri=dsn.startswith("file:"), check_same_thread=False
    )


def sqlite_connector(dsn: str, timeout: float = DEFAULT_TIMEOUT) -> ConnectionFactory:
    """Return a factory that opens new connections to ``dsn``.

    ``:memory:`` becomes a named shared-cache database so that every
    connection the factory opens sees the same data. For a file path the
    parent directory is created.
    """
    if dsn == ":memory:":
        dsn = f"file:userservice-{uuid.uuid4().hex}?mode=memory&cache=shared"
    elif not dsn.startswith("file:"):
        os.makedirs(os.path.dirname(os.path.abspath(dsn)), exist_ok=True)
    return functools.partial(open_sqlite, dsn, timeout)


class UsersRepoSqlite(UserRepo):
    """SQLite implementation of :class:`UserRepo`.

    Email is the primary key and the DER public key carries its own UNIQUE
    constraint, so the engine enforces both uniqueness invariants and no
    secondary index table is needed.

    Every thread gets its own connection from ``connect``. The deadline
    handler installed by one call therefore never affects a call running on
    another thread.

    Example:
        >>> repo = UsersRepoSqlite(sqlite_connector(":memory:"))
        >>> created = repo.create(user)
        >>> repo.get_by_email(created.email).name
        'Jon Doe'
    """

    def __init__(self, connect: ConnectionFactory, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._connect = connect
        self._timeout = float(timeout)
        self._local = threading.local()
        # Held for the repository's lifetime; keeps a shared in-memory database alive
        self._primary = self._connection()
        self._primary.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                email TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                public_key BLOB NOT NULL UNIQUE,
                wrapped_private_key BLOB NOT NULL,
                wrapped_master_key BLOB NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._primary.commit()

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
        return conn

    @contextmanager
    def _bounded(
        self, deadline: Deadline, operation: str, subject: str
    ) -> Iterator[sqlite3.Connection]:
        """Yield this thread's connection under ``deadline`` and translate driver errors.

        ``IntegrityError`` is re-raised untouched so callers can map it.
        """
        deadline.check(operation, subject)
        conn = self._connection()
        try:
            conn.set_progress_handler(lambda: 1 if deadline.expired else 0, PROGRESS_INTERVAL)
            yield conn
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.rollback()
            if isinstance(exc, sqlite3.IntegrityError):
                raise
            if deadline.expired:
                raise StorageTimeoutError(
                    "deadline exceeded", operation=operation, subject=subject
                ) from exc
            logger.warning(
                "SQLite call failed", extra={"operation": operation, "error": str(exc)}
            )
            raise StorageError(str(exc), operation=operation, subject=subject) from exc
        finally:
            conn.set_progress_handler(None, 0)

    def _fetch_one(
        self, where: str, param: object, deadline: Deadline, operation: str, subject: str
    ) -> User:
        with self._bounded(deadline, operation, subject) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM users WHERE {where} = ?", (param,)
            ).fetchone()
        if row is None:
            raise NotFoundError("no such user", operation=operation, subject=subject)
        return record_to_user(
            UserRecord(
                email=row[0],
                name=row[1],
                public_key_der=bytes(row[2]),
                wrapped_private_key=bytes(row[3]),
                wrapped_master_key=bytes(row[4]),
                created_at=parse_timestamp(row[5]),
                updated_at=parse_timestamp(row[6]),
            )
        )

    def get_by_pk(self, public_key_der: bytes, *, deadline: Optional[Deadline] = None) -> User:
        deadline = Deadline.earliest(deadline, self._timeout)
        return self._fetch_one(
            "public_key", bytes(public_key_der), deadline, "get_by_pk", public_key_der.hex()[:16]
        )

    def get_by_email(self, email: str, *, deadline: Optional[Deadline] = None) -> User:
        deadline = Deadline.earliest(deadline, self._timeout)
        return self._fetch_one("email", email, deadline, "get_by_email", email)

    def create(self, user: User, *, deadline: Optional[Deadline] = None) -> User:
        deadline = Deadline.earliest(deadline, self._timeout)
        stamped = user.with_timestamps(datetime.now(timezone.utc))
        record = user_to_record(stamped)
        try:
            with self._bounded(deadline, "create", user.email) as conn:
                conn.execute(
                    f"INSERT INTO users ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.email,
                        record.name,
                        record.public_key_der,
                        record.wrapped_private_key,
                        record.wrapped_master_key,
                        format_timestamp(record.created_at),
                        format_timestamp(record.updated_at),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise AlreadyExistsError(str(exc), operation="create", subject=user.email) from exc
        logger.info("User created", extra={"operation": "create", "email": user.email})
        return stamped

    def delete_by_email(self, email: str, *, deadline: Optional[Deadline] = None) -> None:
        deadline = Deadline.earliest(deadline, self._timeout)
        with self._bounded(deadline, "delete_by_email", email) as conn:
            cur = conn.execute("DELETE FROM users WHERE email = ?", (email,))
            conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("no such user", operation="delete_by_email", subject=email)
        logger.info("User deleted", extra={"operation": "delete_by_email", "email": email})
