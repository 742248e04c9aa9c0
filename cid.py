#!/usr/bin/env python3
"""
cid - Cloud Image Download.

Keeps a local directory tree in sync with the latest cloud images published
by a set of mirror sites. Every file is verified against its published
checksum before it is recorded as synced.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from cloud_image_download import __version__
from cloud_image_download.config import RunOptions, Settings
from cloud_image_download.core.constants import DEFAULT_CONFIG_PATH
from cloud_image_download.errors import RunFatalError
from cloud_image_download.sync import HistoryStore, run_sync
from cloud_image_download.ui import format_summary, paint, use_color, Colors

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2
EXIT_CANCELLED = 130

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(verbose: int = 0, quiet: bool = False):
    """-q: errors only, default: warnings, -v: info, -vv: debug."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    # urllib3/aiohttp are noisy at debug level
    if level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cid",
        description="Download the latest cloud images and verify their checksums",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cid                                 # Sync every site of /etc/cid.toml
  cid --config ./cid.toml -v          # Other config, show progress
  cid ~/images/cid.sqlite             # Use another history database
  cid --verify-skipped                # Check files already on disk in place
  cid --history ubuntu-24.04.img      # Show what was downloaded and when
        """,
    )
    parser.add_argument("db_path", nargs="?", default=None,
                        help="History database (default: db_path from config, then ~/.cache/cid.sqlite)")
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH,
                        help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--concurrent-downloads", "-j", type=int, default=None, metavar="N",
                        help="Maximum simultaneous downloads")
    parser.add_argument("--verify-skipped", action="store_true",
                        help="Verify images already present at their destination instead of downloading them")
    parser.add_argument("--history", nargs="?", const="", default=None, metavar="NAME",
                        help="List the download history (optionally for one image name) and exit")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="More output (-v: progress, -vv: debug)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Only report errors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def show_history(options: RunOptions, name: str) -> int:
    with HistoryStore.open(options.db_path) as store:
        records = store.records(name or None)
    for record in records:
        print(f"{record.committed_date.isoformat()}  {record.checksum}  {record.name}")
    if not records:
        print("No history records.")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    color = use_color(sys.stdout)

    cancel_event = threading.Event()

    def handle_interrupt(signum, frame):
        if not cancel_event.is_set():
            print("\nCancelling, finishing in-flight work...", file=sys.stderr)
        cancel_event.set()

    try:
        settings = Settings.load(args.config)
        options = RunOptions.from_settings(
            settings,
            db_path=args.db_path,
            concurrent_downloads=args.concurrent_downloads,
            verify_existing=args.verify_skipped,
        )

        if args.history is not None:
            return show_history(options, args.history)

        original_handler = signal.signal(signal.SIGINT, handle_interrupt)
        try:
            summary = run_sync(settings, options, cancel_event=cancel_event)
        finally:
            signal.signal(signal.SIGINT, original_handler)

    except RunFatalError as e:
        print(paint(f"Fatal: {e}", Colors.RED + Colors.BOLD, use_color(sys.stderr)), file=sys.stderr)
        return EXIT_FATAL

    if not args.quiet or not summary.ok:
        print(format_summary(summary, color))

    if summary.cancelled:
        return EXIT_CANCELLED
    if summary.failed or summary.resolution_errors:
        return EXIT_FAILURES
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
