from __future__ import annotations

import argparse
import logging
import sys
import threading

from dotenv import load_dotenv

from .cdx import format_line
from .config import load_settings
from .exceptions import BadQuery, ConfigurationFault, IndexUnavailable, NoResults
from .logging_utils import configure_logging, get_logger, log_json
from .models import SearchQuery
from .persistent_index import PersistentIndex
from .registry import SourceBundle, build_source
from .utils import pad_timestamp


def cmd_query(bundle: SourceBundle, args) -> int:
    query = SearchQuery(
        url=args.url,
        prefix=args.prefix,
        start_timestamp=pad_timestamp(args.start, "0"),
        end_timestamp=pad_timestamp(args.end, "9"),
        page_size=args.size,
        page_number=args.page,
    )
    try:
        results = bundle.source.lookup(query)
    except NoResults as e:
        print(str(e), file=sys.stderr)
        return 1
    except (BadQuery, IndexUnavailable) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    for rec in results:
        print(format_line(rec))
    print(
        f"# first={results.first_returned} returned={results.number_returned} "
        f"total={results.total_available} requested={results.number_requested}",
        file=sys.stderr,
    )
    return 0


def cmd_merge(bundle: SourceBundle) -> int:
    if bundle.pipeline is None:
        print("ERROR: no merge pipeline configured (set CAPIDX_INCOMING_PATH)", file=sys.stderr)
        return 2
    stats = bundle.pipeline.run_cycle()
    print(f"scanned={stats.scanned} merged={stats.merged} failed={stats.failed} skipped={stats.skipped} records={stats.records}")
    return 0 if stats.failed == 0 else 1


def cmd_status(bundle: SourceBundle) -> int:
    if isinstance(bundle.source, PersistentIndex):
        try:
            print(f"index={bundle.source.db_path} records={bundle.source.count()}")
        except IndexUnavailable as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 2
    else:
        print(f"source={bundle.source!r}")
    if bundle.pipeline is not None:
        print(f"incoming={bundle.pipeline.incoming_dir} pending={len(bundle.pipeline.pending_files())}")
    return 0


def schedule_loop(bundle: SourceBundle, stop: threading.Event | None = None) -> int:
    """Run the merge pipeline on its interval until interrupted or `stop` is set."""
    logger = get_logger()
    pipeline = bundle.pipeline
    if pipeline is None:
        print("ERROR: no merge pipeline configured (set CAPIDX_INCOMING_PATH)", file=sys.stderr)
        return 2

    stop = stop or threading.Event()
    pipeline.start()
    try:
        while not stop.wait(1.0):
            pass
    except (KeyboardInterrupt, SystemExit):
        log_json(logger, logging.INFO, "scheduler_interrupted")
    finally:
        pipeline.shutdown()
    return 0


def main(argv=None) -> int:
    load_dotenv(override=False)
    try:
        settings = load_settings()
    except ConfigurationFault as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)

    parser = argparse.ArgumentParser(prog="capture-index")
    sub = parser.add_subparsers(dest="cmd", required=True)

    qp = sub.add_parser("query", help="Look up captures of a URL")
    qp.add_argument("url", type=str)
    qp.add_argument("--prefix", action="store_true", help="Match every url key starting with URL")
    qp.add_argument("--start", default="", help="Earliest timestamp (may be partial, e.g. 2006)")
    qp.add_argument("--end", default="", help="Latest timestamp (may be partial)")
    qp.add_argument("--page", type=int, default=1)
    qp.add_argument("--size", type=int, default=100)

    sub.add_parser("merge", help="Run one merge cycle over the incoming directory")
    sub.add_parser("status", help="Show index size and pending batches")
    sub.add_parser("schedule", help="Run merge cycles on an interval until interrupted")

    args = parser.parse_args(argv)

    try:
        bundle = build_source(settings)
    except ConfigurationFault as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    try:
        if args.cmd == "query":
            return cmd_query(bundle, args)
        if args.cmd == "merge":
            return cmd_merge(bundle)
        if args.cmd == "status":
            return cmd_status(bundle)
        if args.cmd == "schedule":
            return schedule_loop(bundle)
    finally:
        bundle.shutdown()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
