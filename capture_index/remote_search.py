"""Adapter for a NutchWAX-style full-text search service.

The service answers an OpenSearch RSS document: one `channel` holding
`item` elements whose capture fields live in the nutch namespace.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag
from lxml import etree

from .exceptions import BadQuery, IndexUnavailable, NoResults
from .http_client import HttpClient
from .logging_utils import get_logger, log_json
from .models import CaptureRecord, ResultSet, SearchQuery
from .source_base import DEFAULT_MAX_RECORDS, SearchResultSource
from .utils import TIMESTAMP_WIDTH, is_timestamp

logger = get_logger(__name__)

NUTCH_NS = "http://www.nutch.org/opensearchrss/1.0/"

NUTCH_ARCNAME = "arcname"
NUTCH_ARCOFFSET = "arcoffset"
NUTCH_ARCDATE = "tstamp"
NUTCH_ARCDATE_ALT = "arcdate"
NUTCH_DIGEST = "digest"
NUTCH_PRIMARY_TYPE = "primaryType"
NUTCH_SUB_TYPE = "subType"
NUTCH_CAPTURE_URL = "link"

SEARCH_RESULTS_TAG = "channel"
SEARCH_RESULT_TAG = "item"
OPENSEARCH_PREFIX = "opensearch"
FIRST_RESULT_TAG = "startIndex"
NUM_RESULTS_TAG = "totalResults"

DEFAULT_HTTP_CODE = "200"
DEFAULT_REDIRECT_URL = "-"
UNKNOWN_MIME_TYPE = "unk"


def _nutch_text(el: Tag, key: str) -> Optional[str]:
    for tag in el.find_all(key):
        if tag.namespace == NUTCH_NS:
            return tag.get_text().strip() or None
    return None


def _prefixed_text(el: Tag, key: str, prefix: Optional[str] = None, recursive: bool = True) -> Optional[str]:
    for tag in el.find_all(key, recursive=recursive):
        if (tag.prefix or None) == prefix:
            return tag.get_text().strip() or None
    return None


def _int_or(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class RemoteSearchAdapter(SearchResultSource):
    def __init__(
        self,
        search_url_base: str,
        max_records: int = DEFAULT_MAX_RECORDS,
        allow_prefix: bool = False,
        client: HttpClient | None = None,
    ):
        self.search_url_base = search_url_base
        self.max_records = max_records
        self.allow_prefix = allow_prefix
        self.client = client or HttpClient()
        logger.info("remote search adapter using base url %s", search_url_base)

    def __repr__(self) -> str:
        return f"RemoteSearchAdapter({self.search_url_base!r})"

    def request_params(self, query: SearchQuery) -> Dict[str, str]:
        if query.prefix and not self.allow_prefix:
            raise BadQuery("Unable to perform path prefix requests with this index type")
        term = "url" if query.prefix else "exacturl"
        hits = str(query.page_size)
        return {
            "query": f"date:{query.start_timestamp}-{query.end_timestamp} {term}:{query.url}",
            "hitsPerPage": hits,
            "start": str(query.offset),
            "dedupField": "site",
            # one url per query, so more per dup/site just means more versions
            "hitsPerDup": hits,
            "hitsPerSite": hits,
        }

    def search(self, query: SearchQuery) -> ResultSet:
        params = self.request_params(query)
        try:
            resp = self.client.get(self.search_url_base, params=params)
        except requests.RequestException as e:
            log_json(logger, logging.WARNING, "remote_search_failed", url=self.search_url_base, error=str(e))
            raise IndexUnavailable("Remote search service unavailable", str(e)) from e
        return self.parse_response(resp.content, query)

    def parse_response(self, content: bytes, query: SearchQuery) -> ResultSet:
        # bs4 parses in recover mode, so check well-formedness strictly first;
        # a truncated or garbled body must not read as a short page
        parser = etree.XMLParser(recover=False, resolve_entities=False, no_network=True)
        try:
            etree.fromstring(content, parser)
        except etree.XMLSyntaxError as e:
            log_json(logger, logging.WARNING, "remote_search_unparseable", url=self.search_url_base, error=str(e))
            raise IndexUnavailable("Unparseable search response", str(e)) from e
        soup = BeautifulSoup(content, "xml")

        channels = soup.find_all(SEARCH_RESULTS_TAG)
        if len(channels) != 1:
            raise NoResults(f"No results for {query.url}")
        channel = channels[0]

        items = channel.find_all(SEARCH_RESULT_TAG)
        if not items:
            raise NoResults(f"No results for {query.url}")

        records = sorted((self._item_to_record(item) for item in items), key=lambda r: r.sort_key)
        records = records[: query.page_size]

        first = _int_or(_prefixed_text(channel, FIRST_RESULT_TAG, OPENSEARCH_PREFIX, recursive=False), query.offset)
        total = _int_or(_prefixed_text(channel, NUM_RESULTS_TAG, OPENSEARCH_PREFIX, recursive=False), first + len(records))

        return ResultSet(
            records=records,
            first_returned=first,
            total_available=max(total, first + len(records)),
            number_requested=query.page_size,
            start_timestamp=query.start_timestamp,
            end_timestamp=query.end_timestamp,
        )

    def _item_to_record(self, item: Tag) -> CaptureRecord:
        file_name = _nutch_text(item, NUTCH_ARCNAME)
        if file_name is None:
            raise IndexUnavailable("Missing arcname field in search results")

        # newer services call it tstamp and send 17 digits; keep the first 14
        ts = _nutch_text(item, NUTCH_ARCDATE)
        if ts is None:
            ts = _nutch_text(item, NUTCH_ARCDATE_ALT)
        if ts is None:
            raise IndexUnavailable("Missing arcdate field in search results")
        if len(ts) == 17:
            ts = ts[:TIMESTAMP_WIDTH]
        if not is_timestamp(ts):
            raise IndexUnavailable(f"Bad arcdate {ts!r} in search results")

        raw_offset = _nutch_text(item, NUTCH_ARCOFFSET)
        try:
            offset = int(raw_offset) if raw_offset is not None else -1
        except ValueError:
            offset = -1
        if offset < 0:
            raise IndexUnavailable(f"Bad arcoffset {raw_offset!r} in search results")

        url = _prefixed_text(item, NUTCH_CAPTURE_URL)
        if url is None:
            raise IndexUnavailable("Missing link field in search results")

        primary = _nutch_text(item, NUTCH_PRIMARY_TYPE)
        sub = _nutch_text(item, NUTCH_SUB_TYPE)
        mime = f"{primary}/{sub}" if primary and sub else UNKNOWN_MIME_TYPE

        return CaptureRecord(
            url_key=url,
            original_url=url,
            capture_timestamp=ts,
            digest=_nutch_text(item, NUTCH_DIGEST) or "-",
            mime_type=mime,
            http_status_code=DEFAULT_HTTP_CODE,
            redirect_url=DEFAULT_REDIRECT_URL,
            file_name=file_name,
            file_offset=offset,
        )
