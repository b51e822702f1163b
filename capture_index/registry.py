from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .composite import CompositeSource
from .config import SOURCE_FLATFILE, SOURCE_PERSISTENT, SOURCE_REMOTE, Settings
from .exceptions import ConfigurationFault, IndexUnavailable
from .flat_file_index import FlatFileIndex
from .http_client import HttpClient, HttpConfig
from .merge_pipeline import MergePipeline
from .persistent_index import PersistentIndex
from .remote_search import RemoteSearchAdapter
from .source_base import SearchResultSource


@dataclass
class SourceBundle:
    source: SearchResultSource
    pipeline: Optional[MergePipeline] = None

    def shutdown(self) -> None:
        if self.pipeline is not None:
            self.pipeline.shutdown()
        self.source.shutdown()


def _flatfile(settings: Settings) -> SearchResultSource:
    if not settings.cdx_paths:
        raise ConfigurationFault("Missing property CAPIDX_CDX_PATHS")
    if len(settings.cdx_paths) == 1:
        return FlatFileIndex(settings.cdx_paths[0], max_records=settings.max_records)
    return CompositeSource(
        (FlatFileIndex(p, max_records=settings.max_records) for p in settings.cdx_paths),
        max_records=settings.max_records,
        timeout=settings.composite_timeout_sec,
    )


def _persistent(settings: Settings) -> SourceBundle:
    if not settings.index_path:
        raise ConfigurationFault("Missing property CAPIDX_INDEX_PATH")
    try:
        index = PersistentIndex(settings.index_path, settings.db_name, max_records=settings.max_records)
    except IndexUnavailable as e:
        raise ConfigurationFault(str(e)) from e

    pipeline = None
    if settings.incoming_path:
        pipeline = MergePipeline(
            index,
            settings.incoming_path,
            merged_dir=settings.merged_path or None,
            failed_dir=settings.failed_path or None,
            interval_seconds=settings.merge_interval_sec,
            retry_limit=settings.retry_limit,
        )
    return SourceBundle(source=index, pipeline=pipeline)


def _remote(settings: Settings) -> SearchResultSource:
    if not settings.search_url:
        raise ConfigurationFault("Missing property CAPIDX_SEARCH_URL")
    client = HttpClient(
        HttpConfig(
            user_agent=settings.user_agent,
            connect_timeout=settings.http_connect_timeout,
            read_timeout=settings.http_read_timeout,
        )
    )
    return RemoteSearchAdapter(
        settings.search_url,
        max_records=settings.max_records,
        allow_prefix=settings.allow_prefix,
        client=client,
    )


def build_source(settings: Settings) -> SourceBundle:
    """Build the configured source. A merge pipeline, if any, is built but not started."""
    if settings.source == SOURCE_PERSISTENT:
        return _persistent(settings)
    if settings.source == SOURCE_FLATFILE:
        return SourceBundle(source=_flatfile(settings))
    if settings.source == SOURCE_REMOTE:
        return SourceBundle(source=_remote(settings))
    raise ConfigurationFault(f"Unknown source {settings.source!r}")
