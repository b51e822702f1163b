from __future__ import annotations

from abc import ABC, abstractmethod

from .exceptions import BadQuery
from .models import ResultSet, SearchQuery

DEFAULT_MAX_RECORDS = 1000


def validate_query(query: SearchQuery, max_records: int) -> None:
    if not query.url:
        raise BadQuery("Url is empty.")
    if query.page_size < 1:
        raise BadQuery("Hits per page must be positive")
    if query.page_size > max_records:
        raise BadQuery(f"Hits per page must be at most {max_records}")
    if query.page_number < 1:
        raise BadQuery("Page number must be positive")
    if query.start_timestamp > query.end_timestamp:
        raise BadQuery("Start timestamp is after end timestamp")


class SearchResultSource(ABC):
    max_records: int = DEFAULT_MAX_RECORDS

    def lookup(self, query: SearchQuery) -> ResultSet:
        """Validate `query` and run it.

        Raises BadQuery, NoResults or IndexUnavailable.
        """
        validate_query(query, self.max_records)
        return self.search(query)

    @abstractmethod
    def search(self, query: SearchQuery) -> ResultSet:
        """Run an already validated query against the backing store."""
        ...

    def shutdown(self) -> None:
        return None
