from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from btccustody.persistence.sqlite.sqlite_connection import (
    create_sqlite_connection,
    ensure_custody_schema,
)
from btccustody.persistence.sqlite.tasks_repo import SqliteTasksRepo


class UnitOfWork:
    """One serialized sqlite transaction; commits on success, rolls back on any error."""

    def __init__(self, db_path: str, *, read_only: bool = False) -> None:
        self._db_path = db_path
        self.read_only = read_only
        self._conn: sqlite3.Connection | None = None
        self.tasks: SqliteTasksRepo

    def __enter__(self) -> UnitOfWork:
        conn = create_sqlite_connection(self._db_path)
        ensure_custody_schema(conn)
        if self.read_only:
            conn.execute("BEGIN")
        else:
            conn.execute("BEGIN IMMEDIATE")
        self._conn = conn
        self.tasks = SqliteTasksRepo(conn, read_only=self.read_only)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._conn is None:
            return
        try:
            if exc_type is None and not self.read_only:
                self._conn.commit()
            else:
                self._conn.rollback()
        finally:
            self._conn.close()
            self._conn = None


@dataclass(frozen=True)
class UnitOfWorkFactory:
    db_path: str
    read_only: bool = False

    def __call__(self, *, read_only: bool | None = None) -> UnitOfWork:
        return UnitOfWork(
            self.db_path,
            read_only=self.read_only if read_only is None else read_only,
        )
