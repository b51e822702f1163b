from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .cdx import parse_lines
from .exceptions import CdxFormatError, IndexUnavailable, StorageFault
from .logging_utils import get_logger, log_json
from .models import CaptureRecord, MergeStats
from .persistent_index import PersistentIndex
from .utils import ensure_dir, now_utc, sha256_file

logger = get_logger(__name__)

DEFAULT_INTERVAL_SEC = 10.0
JOB_ID = "merge_cycle"


def read_batch(path: Path) -> List[CaptureRecord]:
    """Parse a whole batch file. Any bad or out-of-order line fails the file."""
    records: List[CaptureRecord] = []
    prev: Optional[Tuple[str, str]] = None
    with path.open("r", encoding="utf-8") as f:
        try:
            for rec in parse_lines(f):
                if prev is not None and rec.sort_key < prev:
                    raise CdxFormatError(f"record {len(records) + 1} is out of order: {rec.url_key} {rec.capture_timestamp}")
                prev = rec.sort_key
                records.append(rec)
        except CdxFormatError as e:
            raise CdxFormatError(f"{path.name}: {e}") from e
    return records


class MergePipeline:
    """Background merge of CDX batch files from an incoming directory.

    Each cycle lists `incoming_dir`, parses every file and commits it to the
    index in one transaction. Merged files go to `merged_dir` (deleted when
    unset); failed files go to `failed_dir` (left in place and re-attempted
    when unset). Relocation happens only after the commit is durable, and the
    batch ledger makes a re-seen committed file a relocate-only no-op.
    """

    def __init__(
        self,
        index: PersistentIndex,
        incoming_dir: str | Path,
        merged_dir: str | Path | None = None,
        failed_dir: str | Path | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SEC,
        retry_limit: int | None = None,
    ):
        self.index = index
        self.incoming_dir = ensure_dir(incoming_dir)
        self.merged_dir = ensure_dir(merged_dir) if merged_dir else None
        self.failed_dir = ensure_dir(failed_dir) if failed_dir else None
        self.interval_seconds = interval_seconds
        self.retry_limit = retry_limit

        self._cycle_lock = threading.Lock()
        self._failures: Dict[str, Tuple[Tuple[int, int], int]] = {}
        self._scheduler: Optional[BackgroundScheduler] = None

    def pending_files(self) -> List[Path]:
        return sorted(p for p in self.incoming_dir.iterdir() if p.is_file() and not p.name.startswith("."))

    def run_cycle(self) -> MergeStats:
        stats = MergeStats()
        with self._cycle_lock:
            for path in self.pending_files():
                stats.scanned += 1
                if self._given_up(path):
                    stats.skipped += 1
                    continue
                self._process(path, stats)
        if stats.scanned:
            log_json(logger, logging.INFO, "merge_cycle_done", **stats.__dict__)
        return stats

    def _process(self, path: Path, stats: MergeStats) -> None:
        try:
            batch_id = sha256_file(path)
            if self.index.has_batch(batch_id):
                log_json(logger, logging.WARNING, "batch_already_merged", file=path.name, batch_id=batch_id)
                self._on_success(path)
                stats.skipped += 1
                return
            records = read_batch(path)
            self.index.insert_batch(records, batch_id=batch_id, source_name=path.name)
        except (CdxFormatError, UnicodeDecodeError, OSError, StorageFault, IndexUnavailable) as e:
            stats.failed += 1
            self._on_failure(path, e)
            return

        stats.merged += 1
        stats.records += len(records)
        log_json(logger, logging.INFO, "batch_merged", file=path.name, records=len(records), batch_id=batch_id)
        self._on_success(path)

    def _on_success(self, path: Path) -> None:
        self._failures.pop(path.name, None)
        try:
            if self.merged_dir is None:
                path.unlink()
            else:
                self._relocate(path, self.merged_dir)
        except OSError as e:
            # committed already; the ledger turns the next attempt into a relocate
            log_json(logger, logging.ERROR, "relocate_failed", file=path.name, error=str(e))

    def _on_failure(self, path: Path, error: Exception) -> None:
        if self.failed_dir is not None:
            log_json(logger, logging.ERROR, "batch_failed", file=path.name, error=str(error), moved_to=str(self.failed_dir))
            try:
                self._relocate(path, self.failed_dir)
            except OSError as e:
                log_json(logger, logging.ERROR, "relocate_failed", file=path.name, error=str(e))
            return

        attempts = self._record_failure(path)
        log_json(logger, logging.ERROR, "batch_failed", file=path.name, error=str(error), attempts=attempts)
        if self.retry_limit is not None and attempts >= self.retry_limit:
            log_json(logger, logging.ERROR, "batch_abandoned", file=path.name, attempts=attempts)

    def _signature(self, path: Path) -> Tuple[int, int]:
        try:
            st = path.stat()
        except OSError:
            return (-1, -1)
        return (st.st_size, st.st_mtime_ns)

    def _record_failure(self, path: Path) -> int:
        sig = self._signature(path)
        prev_sig, count = self._failures.get(path.name, (sig, 0))
        if prev_sig != sig:
            count = 0
        self._failures[path.name] = (sig, count + 1)
        return count + 1

    def _given_up(self, path: Path) -> bool:
        if self.retry_limit is None or path.name not in self._failures:
            return False
        sig, count = self._failures[path.name]
        if sig != self._signature(path):
            # replaced by the producer, try again
            del self._failures[path.name]
            return False
        return count >= self.retry_limit

    def _relocate(self, path: Path, target_dir: Path) -> Path:
        target = target_dir / path.name
        n = 0
        while target.exists():
            n += 1
            target = target_dir / f"{path.name}.{n}"
        shutil.move(str(path), str(target))
        return target

    def _scheduled_cycle(self) -> None:
        try:
            self.run_cycle()
        except Exception as e:
            log_json(logger, logging.ERROR, "merge_cycle_failed", error=str(e))

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self._scheduler is not None:
            return
        sched = BackgroundScheduler(timezone="UTC")
        sched.add_job(
            self._scheduled_cycle,
            IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=now_utc(),
        )
        sched.start()
        self._scheduler = sched
        log_json(
            logger,
            logging.INFO,
            "merge_pipeline_started",
            incoming=str(self.incoming_dir),
            merged=str(self.merged_dir) if self.merged_dir else None,
            failed=str(self.failed_dir) if self.failed_dir else None,
            interval_sec=self.interval_seconds,
        )

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        log_json(logger, logging.INFO, "merge_pipeline_stopped", incoming=str(self.incoming_dir))
