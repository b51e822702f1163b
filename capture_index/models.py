from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Tuple

from .utils import EARLIEST_TIMESTAMP, LATEST_TIMESTAMP


@dataclass(frozen=True)
class CaptureRecord:
    url_key: str
    original_url: str
    capture_timestamp: str
    digest: str
    mime_type: str
    http_status_code: str
    redirect_url: str
    file_name: str
    file_offset: int

    @property
    def sort_key(self) -> Tuple[str, str]:
        return (self.url_key, self.capture_timestamp)


@dataclass(frozen=True)
class SearchQuery:
    url: str
    prefix: bool = False
    start_timestamp: str = EARLIEST_TIMESTAMP
    end_timestamp: str = LATEST_TIMESTAMP
    page_size: int = 100
    page_number: int = 1

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size

    def matches_url(self, url_key: str) -> bool:
        if self.prefix:
            return url_key.startswith(self.url)
        return url_key == self.url

    def in_range(self, timestamp: str) -> bool:
        return self.start_timestamp <= timestamp <= self.end_timestamp

    def leading_pages(self) -> "SearchQuery":
        """Page 1 of a query wide enough to cover everything up to the end of this page."""
        return replace(self, page_number=1, page_size=self.offset + self.page_size)


@dataclass
class ResultSet:
    records: List[CaptureRecord] = field(default_factory=list)
    first_returned: int = 0
    total_available: int = 0
    number_requested: int = 0
    start_timestamp: str = EARLIEST_TIMESTAMP
    end_timestamp: str = LATEST_TIMESTAMP

    @property
    def number_returned(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class MergeStats:
    scanned: int = 0
    merged: int = 0
    failed: int = 0
    skipped: int = 0
    records: int = 0
