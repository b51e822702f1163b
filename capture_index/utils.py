from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

from .exceptions import ConfigurationFault

TIMESTAMP_WIDTH = 14
EARLIEST_TIMESTAMP = "0" * TIMESTAMP_WIDTH
LATEST_TIMESTAMP = "99991231235959"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def sha256_file(path: Path, chunk_size: int = 1 << 16) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def is_timestamp(value: str) -> bool:
    return len(value) == TIMESTAMP_WIDTH and value.isdigit()


def pad_timestamp(value: str, fill: str = "0") -> str:
    """Extend a partial timestamp ("2006", "200603") to the full 14 digits."""
    value = value.strip()
    if len(value) >= TIMESTAMP_WIDTH:
        return value[:TIMESTAMP_WIDTH]
    return value + fill * (TIMESTAMP_WIDTH - len(value))


def ensure_dir(path: str | Path) -> Path:
    p = Path(path)
    if p.is_dir():
        return p
    if p.exists():
        raise ConfigurationFault(f"directory ({p.resolve()}) exists but is not a directory.")
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationFault(f"unable to create directory ({p.resolve()})", str(e)) from e
    return p
