"""Worker and serve command CLI parsing and control flow."""

from __future__ import annotations

import argparse
import logging
import signal

from config import API_HOST, API_PORT, WORKER_CONCURRENCY
from jobs import JobQueue, PhotoWorker
from processing import PhotoProcessingService, build_resources
from warnings_utils import suppress_ocr_runtime_warnings

logger = logging.getLogger(__name__)


def add_worker_subparsers(subparsers: argparse._SubParsersAction) -> None:
    worker_parser = subparsers.add_parser(
        "worker",
        help="Run the processing worker",
    )
    worker_parser.add_argument(
        "--concurrency", "-c",
        type=int,
        default=WORKER_CONCURRENCY,
        help=f"Photos processed at the same time (default: {WORKER_CONCURRENCY})",
    )
    worker_parser.add_argument(
        "--drain",
        action="store_true",
        help="Process every due job once, then exit",
    )
    worker_parser.set_defaults(_cmd=cmd_worker)

    serve_parser = subparsers.add_parser(
        "serve",
        help=f"Launch the HTTP API (port {API_PORT})",
    )
    serve_parser.add_argument("--host", default=API_HOST, help=f"Bind address (default: {API_HOST})")
    serve_parser.add_argument("--port", type=int, default=API_PORT, help=f"Port (default: {API_PORT})")
    serve_parser.set_defaults(_cmd=cmd_serve)


def cmd_worker(args: argparse.Namespace) -> int:
    if args.concurrency < 1:
        logger.error("--concurrency must be at least 1")
        return 1

    suppress_ocr_runtime_warnings()
    queue = JobQueue()
    with build_resources() as resources:
        worker = PhotoWorker(queue, PhotoProcessingService(resources), concurrency=args.concurrency)

        if args.drain:
            handled = worker.drain()
            logger.info("Handled %d job(s)", handled)
            return 0

        def _stop(signum, frame):
            logger.info("Received signal %d, finishing in-flight jobs", signum)
            worker.stop()

        signal.signal(signal.SIGTERM, _stop)
        try:
            worker.run()
        except KeyboardInterrupt:
            logger.info("Interrupted")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Launch the API web server."""
    from web import serve
    return serve(args.host, args.port)
