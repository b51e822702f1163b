from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from .exceptions import ConfigurationFault

SOURCE_PERSISTENT = "persistent"
SOURCE_FLATFILE = "flatfile"
SOURCE_REMOTE = "remote"
SOURCES = (SOURCE_PERSISTENT, SOURCE_FLATFILE, SOURCE_REMOTE)


def env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None else default


def _env_int(name: str, default: int | None, minimum: int | None = None) -> int | None:
    v = env(name)
    if v is None or not v.strip():
        return default
    try:
        n = int(v)
    except ValueError:
        raise ConfigurationFault(f"{name} must be an integer, got {v!r}") from None
    if minimum is not None and n < minimum:
        raise ConfigurationFault(f"{name} must be at least {minimum}, got {n}")
    return n


def _env_float(name: str, default: float) -> float:
    v = env(name)
    if v is None or not v.strip():
        return default
    try:
        x = float(v)
    except ValueError:
        raise ConfigurationFault(f"{name} must be a number, got {v!r}") from None
    if not x > 0:
        raise ConfigurationFault(f"{name} must be positive, got {v!r}")
    return x


def _env_bool(name: str, default: bool) -> bool:
    v = env(name)
    if v is None or not v.strip():
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    source: str = SOURCE_PERSISTENT
    log_level: str = "INFO"
    max_records: int = 1000

    # flatfile
    cdx_paths: Tuple[str, ...] = ()

    # persistent
    index_path: str = ""
    db_name: str = "DB1"
    incoming_path: str = ""
    merged_path: str = ""
    failed_path: str = ""
    merge_interval_sec: float = 10.0
    retry_limit: int | None = None

    # remote
    search_url: str = ""
    allow_prefix: bool = False
    user_agent: str = "capture-index/0.1"
    http_connect_timeout: float = 10.0
    http_read_timeout: float = 30.0

    # composite fan-out deadline
    composite_timeout_sec: float = 30.0


def load_settings() -> Settings:
    source = (env("CAPIDX_SOURCE", SOURCE_PERSISTENT) or SOURCE_PERSISTENT).strip().lower()
    if source not in SOURCES:
        raise ConfigurationFault(f"Unknown CAPIDX_SOURCE {source!r}, try one of: {', '.join(SOURCES)}")

    paths = tuple(p.strip() for p in (env("CAPIDX_CDX_PATHS", "") or "").split(",") if p.strip())

    return Settings(
        source=source,
        log_level=env("LOG_LEVEL", "INFO") or "INFO",
        max_records=_env_int("CAPIDX_MAX_RECORDS", 1000, minimum=1),
        cdx_paths=paths,
        index_path=env("CAPIDX_INDEX_PATH", "") or "",
        db_name=env("CAPIDX_DB_NAME", "DB1") or "DB1",
        incoming_path=env("CAPIDX_INCOMING_PATH", "") or "",
        merged_path=env("CAPIDX_MERGED_PATH", "") or "",
        failed_path=env("CAPIDX_FAILED_PATH", "") or "",
        merge_interval_sec=_env_float("CAPIDX_MERGE_INTERVAL_SEC", 10.0),
        retry_limit=_env_int("CAPIDX_RETRY_LIMIT", None, minimum=1),
        search_url=env("CAPIDX_SEARCH_URL", "") or "",
        allow_prefix=_env_bool("CAPIDX_ALLOW_PREFIX", False),
        user_agent=env("CAPIDX_USER_AGENT", "capture-index/0.1") or "capture-index/0.1",
        http_connect_timeout=_env_float("CAPIDX_HTTP_CONNECT_TIMEOUT", 10.0),
        http_read_timeout=_env_float("CAPIDX_HTTP_READ_TIMEOUT", 30.0),
        composite_timeout_sec=_env_float("CAPIDX_COMPOSITE_TIMEOUT_SEC", 30.0),
    )
