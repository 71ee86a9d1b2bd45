#!/usr/bin/env python3
"""
Unified CLI for the bib detection pipeline.

Usage:
    bibflow register <source>...     # Register photos and queue them
    bibflow worker                   # Run the processing worker
    bibflow worker --drain           # Process every due job, then exit
    bibflow serve                    # Launch the HTTP API (port 30001)
    bibflow detect <image>           # Detect bibs in a local image (not stored)
    bibflow process <photo_id>       # Process one photo now, bypassing the queue
    bibflow list                     # List registered photos, newest first
    bibflow status <photo_id>        # Show a photo's processing status
    bibflow cancel <photo_id>        # Cancel a pending/processing photo
    bibflow search <bib>             # Find processed photos by bib number
    bibflow stats                    # Photo, detection and queue counts
"""

import argparse
import logging
import sys

from cli.photos import add_photo_subparsers
from cli.worker import add_worker_subparsers
from logging_utils import add_logging_args, configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bibflow",
        description="Detect race bib numbers in uploaded photos",
    )
    add_logging_args(parser)
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_photo_subparsers(subparsers)
    add_worker_subparsers(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.verbose, args.quiet, args.log_file)

    cmd = getattr(args, "_cmd", None)
    if cmd is None:
        parser.print_help()
        return 1
    return cmd(args)


if __name__ == "__main__":
    sys.exit(main())
