from __future__ import annotations

import heapq
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Iterable, List, Optional

from .exceptions import BadQuery, IndexUnavailable, NoResults
from .logging_utils import get_logger, log_json
from .models import ResultSet, SearchQuery
from .source_base import DEFAULT_MAX_RECORDS, SearchResultSource

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0


class CompositeSource(SearchResultSource):
    """Fan a query out to every member source and merge the answers.

    Members are queried concurrently. Each is asked for everything up to the
    end of the requested page; the sorted streams are merged by
    (url_key, timestamp) and the requested page is cut from the merge, so the
    order of member responses does not matter. Members that fail or miss the
    deadline are left out; only when every member fails is the composite
    unavailable.
    """

    def __init__(
        self,
        sources: Iterable[SearchResultSource] = (),
        max_records: int = DEFAULT_MAX_RECORDS,
        timeout: Optional[float] = DEFAULT_TIMEOUT_SEC,
        max_workers: Optional[int] = None,
    ):
        self.sources: List[SearchResultSource] = list(sources)
        self.max_records = max_records
        self.timeout = timeout
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._workers = 0
        self._pool_lock = threading.Lock()

    def add_source(self, source: SearchResultSource) -> None:
        self.sources.append(source)

    def _pool(self, members: int) -> ThreadPoolExecutor:
        # one worker per member, or members added later queue up and miss the deadline
        workers = self._max_workers or max(1, members)
        with self._pool_lock:
            if self._executor is None or self._workers < workers:
                # the old pool is dropped, not shut down; a concurrent lookup may still submit to it
                self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="composite")
                self._workers = workers
            return self._executor

    def search(self, query: SearchQuery) -> ResultSet:
        members = list(self.sources)
        if not members:
            raise IndexUnavailable("Composite source has no members")

        wide = query.leading_pages()
        pool = self._pool(len(members))
        futures: List[Future] = [pool.submit(src.search, wide) for src in members]
        done, _ = wait(futures, timeout=self.timeout)

        answers: List[ResultSet] = []
        failures = 0
        for src, fut in zip(members, futures):
            if fut not in done:
                fut.cancel()
                failures += 1
                log_json(logger, logging.WARNING, "source_timeout", source=repr(src), timeout=self.timeout)
                continue
            try:
                answers.append(fut.result())
            except NoResults:
                continue
            except BadQuery:
                raise
            except IndexUnavailable as e:
                failures += 1
                log_json(logger, logging.WARNING, "source_failed", source=repr(src), error=str(e))
            except Exception as e:
                failures += 1
                log_json(logger, logging.ERROR, "source_error", source=repr(src), error_type=type(e).__name__, error=str(e))

        if failures == len(members):
            raise IndexUnavailable("All index sources are unavailable", f"{failures} source(s) failed")

        total = sum(rs.total_available for rs in answers)
        merged = heapq.merge(*(rs.records for rs in answers), key=lambda r: r.sort_key)
        records = list(merged)[query.offset : query.offset + query.page_size]

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

    def shutdown(self) -> None:
        for src in self.sources:
            try:
                src.shutdown()
            except Exception as e:
                log_json(logger, logging.ERROR, "source_shutdown_failed", source=repr(src), error=str(e))
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
            self._workers = 0
