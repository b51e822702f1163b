from __future__ import annotations

import sqlite3
from typing import Iterable, List, Optional, Tuple

from .db import executemany, execute, fetchall, fetchone
from .models import CaptureRecord, SearchQuery
from .utils import as_iso, now_utc

SCHEMA = """
CREATE TABLE IF NOT EXISTS captures (
  url_key      TEXT NOT NULL,
  capture_ts   TEXT NOT NULL,
  file_name    TEXT NOT NULL,
  file_offset  INTEGER NOT NULL,
  original_url TEXT NOT NULL,
  digest       TEXT NOT NULL,
  mime_type    TEXT NOT NULL,
  http_status  TEXT NOT NULL,
  redirect_url TEXT NOT NULL,
  PRIMARY KEY (url_key, capture_ts, file_name, file_offset)
) WITHOUT ROWID;

CREATE TABLE IF NOT EXISTS batches (
  batch_id         TEXT PRIMARY KEY,
  source_name      TEXT,
  record_count     INTEGER NOT NULL,
  committed_at_utc TEXT NOT NULL
);
"""

SQL_INSERT = """
INSERT INTO captures (
  url_key, capture_ts, file_name, file_offset,
  original_url, digest, mime_type, http_status, redirect_url
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT DO NOTHING
"""

SQL_RECORD_BATCH = """
INSERT INTO batches (batch_id, source_name, record_count, committed_at_utc)
VALUES (?, ?, ?, ?)
ON CONFLICT (batch_id) DO NOTHING
"""

SQL_HAS_BATCH = "SELECT 1 FROM batches WHERE batch_id = ?"

SQL_COUNT_ALL = "SELECT COUNT(*) FROM captures"

SELECT_COLUMNS = """
SELECT url_key, original_url, capture_ts, digest, mime_type,
       http_status, redirect_url, file_name, file_offset
FROM captures
"""

ORDER_BY = " ORDER BY url_key, capture_ts, file_name, file_offset"


def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA)


def insert_records(conn: sqlite3.Connection, records: Iterable[CaptureRecord]) -> int:
    rows = (
        (
            r.url_key,
            r.capture_timestamp,
            r.file_name,
            r.file_offset,
            r.original_url,
            r.digest,
            r.mime_type,
            r.http_status_code,
            r.redirect_url,
        )
        for r in records
    )
    return executemany(conn, SQL_INSERT, rows)


def record_batch(conn: sqlite3.Connection, batch_id: str, source_name: str | None, record_count: int) -> None:
    execute(conn, SQL_RECORD_BATCH, (batch_id, source_name, record_count, as_iso(now_utc())))


def has_batch(conn: sqlite3.Connection, batch_id: str) -> bool:
    return fetchone(conn, SQL_HAS_BATCH, (batch_id,)) is not None


def count_all(conn: sqlite3.Connection) -> int:
    row = fetchone(conn, SQL_COUNT_ALL)
    return int(row[0]) if row else 0


def prefix_upper_bound(prefix: str) -> Optional[str]:
    """Smallest string greater than every string starting with `prefix`.

    BINARY collation over UTF-8 orders by code point, so bumping the last
    character is enough. None when no such bound exists.
    """
    while prefix:
        cp = ord(prefix[-1]) + 1
        if 0xD800 <= cp <= 0xDFFF:
            cp = 0xE000
        if cp <= 0x10FFFF:
            return prefix[:-1] + chr(cp)
        prefix = prefix[:-1]
    return None


def _where(query: SearchQuery) -> Tuple[str, tuple]:
    if not query.prefix:
        return (
            " WHERE url_key = ? AND capture_ts BETWEEN ? AND ?",
            (query.url, query.start_timestamp, query.end_timestamp),
        )
    upper = prefix_upper_bound(query.url)
    if upper is None:
        return (
            " WHERE url_key >= ? AND capture_ts BETWEEN ? AND ?",
            (query.url, query.start_timestamp, query.end_timestamp),
        )
    return (
        " WHERE url_key >= ? AND url_key < ? AND capture_ts BETWEEN ? AND ?",
        (query.url, upper, query.start_timestamp, query.end_timestamp),
    )


def count_matches(conn: sqlite3.Connection, query: SearchQuery) -> int:
    where, params = _where(query)
    row = fetchone(conn, "SELECT COUNT(*) FROM captures" + where, params)
    return int(row[0]) if row else 0


def select_page(conn: sqlite3.Connection, query: SearchQuery) -> List[CaptureRecord]:
    where, params = _where(query)
    sql = SELECT_COLUMNS + where + ORDER_BY + " LIMIT ? OFFSET ?"
    rows = fetchall(conn, sql, params + (query.page_size, query.offset))
    return [
        CaptureRecord(
            url_key=row[0],
            original_url=row[1],
            capture_timestamp=row[2],
            digest=row[3],
            mime_type=row[4],
            http_status_code=row[5],
            redirect_url=row[6],
            file_name=row[7],
            file_offset=int(row[8]),
        )
        for row in rows
    ]
