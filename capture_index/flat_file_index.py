from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, List

from .cdx import is_header, parse_line
from .exceptions import CdxFormatError, IndexUnavailable, NoResults
from .logging_utils import get_logger
from .models import CaptureRecord, ResultSet, SearchQuery
from .source_base import DEFAULT_MAX_RECORDS, SearchResultSource

logger = get_logger(__name__)


def _line_start_at_or_after(f: BinaryIO, pos: int) -> int:
    if pos == 0:
        return 0
    f.seek(pos - 1)
    f.readline()
    return f.tell()


def seek_first(f: BinaryIO, key: bytes, size: int) -> int:
    """Byte offset of the first line >= `key` in a byte-sorted file.

    Binary search over byte positions; each probe realigns to the next line
    start, which keeps the predicate monotonic.
    """
    lo, hi = 0, size
    while lo < hi:
        mid = (lo + hi) // 2
        f.seek(_line_start_at_or_after(f, mid))
        line = f.readline()
        if not line or line.rstrip(b"\r\n") >= key:
            hi = mid
        else:
            lo = mid + 1
    return _line_start_at_or_after(f, lo)


class FlatFileIndex(SearchResultSource):
    """Read-only index over one CDX file sorted in byte order (LC_ALL=C sort)."""

    def __init__(self, path: str | Path, max_records: int = DEFAULT_MAX_RECORDS):
        self.path = Path(path)
        self.max_records = max_records

    def __repr__(self) -> str:
        return f"FlatFileIndex({str(self.path)!r})"

    def search(self, query: SearchQuery) -> ResultSet:
        try:
            records, total = self._scan(query)
        except OSError as e:
            raise IndexUnavailable(f"Unable to read {self.path}", str(e)) from e
        except (CdxFormatError, UnicodeDecodeError) as e:
            raise IndexUnavailable(f"Corrupt index file {self.path}", str(e)) from e
        logger.debug("flat file scan path=%s url=%s total=%d", self.path, query.url, total)

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

    def _search_key(self, query: SearchQuery) -> bytes:
        if query.prefix:
            return query.url.encode("utf-8")
        return f"{query.url} {query.start_timestamp}".encode("utf-8")

    def _scan(self, query: SearchQuery) -> tuple[List[CaptureRecord], int]:
        page: List[CaptureRecord] = []
        total = 0
        first, last = query.offset, query.offset + query.page_size

        with self.path.open("rb") as f:
            size = f.seek(0, 2)
            f.seek(seek_first(f, self._search_key(query), size))
            for raw in f:
                line = raw.decode("utf-8")
                if not line.strip() or is_header(line):
                    continue
                rec = parse_line(line)
                if not query.matches_url(rec.url_key):
                    break
                if rec.capture_timestamp > query.end_timestamp and not query.prefix:
                    break
                if not query.in_range(rec.capture_timestamp):
                    continue
                if first <= total < last:
                    page.append(rec)
                total += 1
        return page, total
