from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator, Optional

BUSY_TIMEOUT_SEC = 30.0


@contextmanager
def connect(path: str, begin: str | None = "DEFERRED", timeout: float = BUSY_TIMEOUT_SEC) -> Iterator[sqlite3.Connection]:
    """Open a connection and run the body inside one explicit transaction.

    `begin` is the SQLite transaction mode ("DEFERRED" for readers, "IMMEDIATE"
    for writers), or None to run in autocommit mode (pragmas, schema).
    """
    conn = sqlite3.connect(path, timeout=timeout, isolation_level=None)
    try:
        if begin:
            conn.execute(f"BEGIN {begin}")
        try:
            yield conn
            if begin:
                conn.execute("COMMIT")
        except BaseException:
            if begin and conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
    finally:
        conn.close()


def execute(conn: sqlite3.Connection, sql: str, params: tuple = ()) -> None:
    conn.execute(sql, params)


def fetchone(conn: sqlite3.Connection, sql: str, params: tuple = ()) -> Optional[tuple]:
    return conn.execute(sql, params).fetchone()


def fetchall(conn: sqlite3.Connection, sql: str, params: tuple = ()) -> list[tuple]:
    return conn.execute(sql, params).fetchall()


def executemany(conn: sqlite3.Connection, sql: str, rows: Any) -> int:
    cur = conn.executemany(sql, rows)
    return cur.rowcount
