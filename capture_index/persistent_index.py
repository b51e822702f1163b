from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Sequence

from .db import connect
from .exceptions import IndexUnavailable, NoResults, StorageFault
from .logging_utils import get_logger, log_json
from .models import CaptureRecord, ResultSet, SearchQuery
from .source_base import DEFAULT_MAX_RECORDS, SearchResultSource
from .storage import count_all, count_matches, has_batch, init_schema, insert_records, record_batch, select_page

logger = get_logger(__name__)


class PersistentIndex(SearchResultSource):
    """Durable capture index stored in a SQLite database in WAL mode.

    Captures live in a WITHOUT ROWID table keyed by
    (url_key, capture_ts, file_name, file_offset), so lookups are ordered
    B-tree range scans. Each `insert_batch` is a single transaction; readers
    use their own connections and see either the whole batch or none of it.
    """

    def __init__(self, index_path: str | Path, db_name: str = "DB1", max_records: int = DEFAULT_MAX_RECORDS):
        self.max_records = max_records
        self.index_dir = Path(index_path)
        self.db_path = self.index_dir / f"{db_name}.sqlite3"
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            with connect(str(self.db_path), begin=None) as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=FULL")
                init_schema(conn)
        except (OSError, sqlite3.Error) as e:
            raise IndexUnavailable(f"Unable to open index at {self.db_path}", str(e)) from e
        logger.info("persistent index ready path=%s", self.db_path)

    def insert_batch(self, records: Sequence[CaptureRecord], batch_id: str | None = None, source_name: str | None = None) -> int:
        """Insert `records` in one transaction and return how many were new.

        Records already present (same url key, timestamp, file and offset) are
        ignored. When `batch_id` is given it is recorded in the same
        transaction, so `has_batch` is true exactly when the records are
        visible.
        """
        try:
            with connect(str(self.db_path), begin="IMMEDIATE") as conn:
                inserted = insert_records(conn, records)
                if batch_id is not None:
                    record_batch(conn, batch_id, source_name, len(records))
        except sqlite3.Error as e:
            raise StorageFault(f"Batch insert failed for {self.db_path}", str(e)) from e
        log_json(logger, logging.DEBUG, "batch_committed", batch_id=batch_id, records=len(records), inserted=inserted)
        return inserted

    def has_batch(self, batch_id: str) -> bool:
        try:
            with connect(str(self.db_path)) as conn:
                return has_batch(conn, batch_id)
        except sqlite3.Error as e:
            raise IndexUnavailable(f"Unable to read index at {self.db_path}", str(e)) from e

    def count(self) -> int:
        try:
            with connect(str(self.db_path)) as conn:
                return count_all(conn)
        except sqlite3.Error as e:
            raise IndexUnavailable(f"Unable to read index at {self.db_path}", str(e)) from e

    def search(self, query: SearchQuery) -> ResultSet:
        try:
            # count and page come from the same read snapshot
            with connect(str(self.db_path)) as conn:
                total = count_matches(conn, query)
                records = select_page(conn, query) if total > query.offset else []
        except sqlite3.Error as e:
            raise IndexUnavailable(f"Unable to read index at {self.db_path}", str(e)) from e

        if not records:
            raise NoResults(f"No results for {query.url}")

        return ResultSet(
            records=records,
            first_returned=query.offset,
            total_available=total,
            number_requested=query.page_size,
            start_timestamp=query.start_timestamp,
            end_timestamp=query.end_timestamp,
        )
