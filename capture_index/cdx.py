"""Space-delimited CDX lines, the format of batch files and flat-file indexes.

Field order:
  url_key timestamp original_url mime_type status_code digest redirect_url file_name offset
"""

from __future__ import annotations

from typing import Iterable, Iterator

from .exceptions import CdxFormatError
from .models import CaptureRecord
from .utils import is_timestamp

FIELD_COUNT = 9
HEADER_PREFIX = " CDX"


def is_header(line: str) -> bool:
    return line.startswith(HEADER_PREFIX)


def parse_line(line: str) -> CaptureRecord:
    parts = line.rstrip("\r\n").split(" ")
    if len(parts) != FIELD_COUNT:
        raise CdxFormatError(f"expected {FIELD_COUNT} fields, got {len(parts)}: {line.strip()[:200]!r}")

    url_key, timestamp, original, mime, status, digest, redirect, file_name, offset = parts
    if not url_key:
        raise CdxFormatError("empty url key")
    if not is_timestamp(timestamp):
        raise CdxFormatError(f"bad timestamp {timestamp!r}")
    try:
        file_offset = int(offset)
    except ValueError:
        raise CdxFormatError(f"bad offset {offset!r}") from None
    if file_offset < 0:
        raise CdxFormatError(f"negative offset {file_offset}")

    return CaptureRecord(
        url_key=url_key,
        original_url=original,
        capture_timestamp=timestamp,
        digest=digest,
        mime_type=mime,
        http_status_code=status,
        redirect_url=redirect,
        file_name=file_name,
        file_offset=file_offset,
    )


def format_line(rec: CaptureRecord) -> str:
    return " ".join(
        [
            rec.url_key,
            rec.capture_timestamp,
            rec.original_url,
            rec.mime_type,
            rec.http_status_code,
            rec.digest,
            rec.redirect_url,
            rec.file_name,
            str(rec.file_offset),
        ]
    )


def parse_lines(lines: Iterable[str]) -> Iterator[CaptureRecord]:
    """Yield records, skipping blank and header lines."""
    for line in lines:
        if not line.strip() or is_header(line):
            continue
        yield parse_line(line)
