# ============================================================================
# mailfilter -- Command Line Tool (mailfilter/tools/mailfilter_cli.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   The "mailfilter" command. Two subcommands:
#
#     mailfilter extract ARCHIVE [QUERY] [--output-dir DIR]
#         Save the plain-text body of every matching message as
#         <date>-<subject>.txt
#
#     mailfilter count ARCHIVE [QUERY]
#         Print how many messages match
#
#   QUERY is optional; without it every message matches.
#
# EXIT STATUS:
#   0  success
#   1  the archive could not be read or is truncated, or an extracted
#      message could not be written
#   2  bad command line or bad QUERY (nothing was read)
#
# USAGE:
#   mailfilter count inbox.mbox 'from$="@example.com"'
#   mailfilter extract inbox.mbox 'subject=~/(?i)invoice/' --output-dir out
#   python -m mailfilter.tools.mailfilter_cli count inbox.mbox
# ============================================================================

from __future__ import annotations

import argparse
import sys
import time
from typing import List, Optional

from mailfilter.core.config import load_config, validate_config
from mailfilter.core.driver import CountConsumer, ExtractConsumer, run_archive
from mailfilter.core.exceptions import (
    FilterSyntaxError,
    OutputWriteError,
    UnexpectedEndOfStream,
)
from mailfilter.core.filter import parse
from mailfilter.monitoring.logger import RunSummaryEntry, get_app_logger, initialize_logging

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailfilter",
        description="Process mbox format files",
    )
    parser.add_argument(
        "--config-dir",
        default=".",
        help="Folder containing config/default_config.yaml (default: .)",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    extract = commands.add_parser("extract", help="Extract individual messages")
    extract.add_argument("file", help="mbox archive to read")
    extract.add_argument("filter", nargs="?", help="filter query (default: match all)")
    extract.add_argument(
        "--output-dir", "-o",
        help="Where to write extracted messages (default: output.directory)",
    )

    count = commands.add_parser("count", help="Count how many messages match")
    count.add_argument("file", help="mbox archive to read")
    count.add_argument("filter", nargs="?", help="filter query (default: match all)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        print("No command specified", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    config = load_config(args.config_dir)
    problems = validate_config(config)
    if problems:
        for problem in problems:
            print(f"[FAIL] {problem}", file=sys.stderr)
        return EXIT_USAGE

    initialize_logging(
        config.logging.log_dir,
        config.logging.level,
        config.logging.log_to_file,
        force=True,
    )
    log = get_app_logger("mailfilter.cli")

    # The query is compiled before the archive is touched
    try:
        flt = parse(args.filter)
    except FilterSyntaxError as e:
        print(f"[FAIL] {e}", file=sys.stderr)
        print(f"       Fix: {e.fix_suggestion}", file=sys.stderr)
        return EXIT_USAGE

    if args.command == "extract":
        if args.output_dir:
            config.output.directory = args.output_dir
        consumer = ExtractConsumer.from_config(config)
        print(f"Extracting envelopes...\nInput:\t{args.file}", file=sys.stderr)
    else:
        consumer = CountConsumer()
        print(f"Counting envelopes...\nInput:\t{args.file}", file=sys.stderr)
    if args.filter:
        print(f"Filter:\t{flt}", file=sys.stderr)

    started = time.perf_counter()
    error = None
    try:
        stats = run_archive(args.file, flt, consumer, config)
    except UnexpectedEndOfStream as e:
        error = str(e)
        print(f"[FAIL] {args.file}: {e}", file=sys.stderr)
        print(f"       Fix: {e.fix_suggestion}", file=sys.stderr)
        stats = None
    except OutputWriteError as e:
        error = str(e)
        print(f"[FAIL] {e}", file=sys.stderr)
        print(f"       Fix: {e.fix_suggestion}", file=sys.stderr)
        stats = None
    except OSError as e:
        error = str(e)
        print(f"[FAIL] Cannot read {args.file}: {e}", file=sys.stderr)
        stats = None

    elapsed_ms = (time.perf_counter() - started) * 1000
    log.info(
        "run_finished",
        **RunSummaryEntry.build(
            archive=args.file,
            command=args.command,
            seen=stats.seen if stats else 0,
            matched=stats.matched if stats else 0,
            elapsed_ms=elapsed_ms,
            query=str(flt) or None,
            error=error,
        ),
    )
    if stats is None:
        return EXIT_RUN_FAILED

    if args.command == "count":
        print(consumer.count)
    else:
        print(f"Saved {len(consumer.written)} of {stats.seen} messages", file=sys.stderr)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
