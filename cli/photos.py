"""Photo command CLI parsing and control flow."""

from __future__ import annotations

import argparse
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from tqdm import tqdm

from config import MIN_DETECTION_CONFIDENCE, MIN_OCR_CONFIDENCE
from detection import DetectionOptions
from errors import BibflowError
from jobs import JobQueue, submit_photos
from photo import ProcessingStatus
from processing import PhotoProcessingService, build_resources
from sources import read_local_image, scan_local_images

logger = logging.getLogger(__name__)


@contextmanager
def _service(use_ocr: bool = False) -> Iterator[PhotoProcessingService]:
    with build_resources(use_ocr=use_ocr) as resources:
        yield PhotoProcessingService(resources)


def add_photo_subparsers(subparsers: argparse._SubParsersAction) -> None:
    register_parser = subparsers.add_parser(
        "register",
        help="Register photos (URL, file or directory) and queue them for processing",
    )
    register_parser.add_argument(
        "sources",
        nargs="+",
        help="Photo URLs, image files or directories of images",
    )
    register_parser.add_argument("--race-id", help="Race the photos belong to")
    register_parser.add_argument("--uploader-id", help="Photographer who uploaded them")
    register_parser.set_defaults(_cmd=cmd_register)

    detect_parser = subparsers.add_parser(
        "detect",
        help="Detect bib numbers in a local image without storing anything",
    )
    detect_parser.add_argument("image", help="Image file path")
    detect_parser.add_argument(
        "--min-detection-confidence",
        type=float,
        default=MIN_DETECTION_CONFIDENCE,
        help="Minimum detector confidence (default: %(default)s)",
    )
    detect_parser.add_argument(
        "--min-ocr-confidence",
        type=float,
        default=MIN_OCR_CONFIDENCE,
        help="Minimum OCR confidence (default: %(default)s)",
    )
    detect_parser.add_argument(
        "--no-ocr",
        action="store_true",
        help="Trust detector labels only",
    )
    detect_parser.add_argument(
        "--no-enhance",
        action="store_true",
        help="Send the photo to the detector unmodified",
    )
    detect_parser.add_argument(
        "--no-ocr-fallback",
        action="store_true",
        help="Only run OCR on low-confidence candidates",
    )
    detect_parser.add_argument(
        "--full-image-ocr",
        action="store_true",
        help="Read the whole photo with OCR when the detector finds no usable bib",
    )
    detect_parser.add_argument(
        "--json",
        action="store_true",
        help="Print detections as JSON",
    )
    detect_parser.set_defaults(_cmd=cmd_detect)

    process_parser = subparsers.add_parser(
        "process",
        help="Process a registered photo now, bypassing the queue",
    )
    process_parser.add_argument("photo_id", help="Photo ID")
    process_parser.add_argument(
        "--retry",
        action="store_true",
        help="Allow a failed (not cancelled) photo to be processed again",
    )
    process_parser.set_defaults(_cmd=cmd_process)

    list_parser = subparsers.add_parser(
        "list",
        help="List registered photos, newest first",
    )
    list_parser.add_argument(
        "--status",
        choices=[s.value for s in ProcessingStatus],
        help="Only photos in this processing status",
    )
    list_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum photos to show (default: %(default)s)",
    )
    list_parser.set_defaults(_cmd=cmd_list)

    status_parser = subparsers.add_parser(
        "status",
        help="Show a photo's processing status",
    )
    status_parser.add_argument("photo_id", help="Photo ID")
    status_parser.set_defaults(_cmd=cmd_status)

    cancel_parser = subparsers.add_parser(
        "cancel",
        help="Cancel processing of a pending or processing photo",
    )
    cancel_parser.add_argument("photo_id", help="Photo ID")
    cancel_parser.set_defaults(_cmd=cmd_cancel)

    search_parser = subparsers.add_parser(
        "search",
        help="Find processed photos by bib number",
    )
    search_parser.add_argument("bib", help="Bib number")
    search_parser.add_argument("--race-id", help="Only photos from this race")
    search_parser.set_defaults(_cmd=cmd_search)

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show photo, detection and queue counts",
    )
    stats_parser.set_defaults(_cmd=cmd_stats)


def _expand_sources(sources: list[str]) -> list[str]:
    """Turn directories into their image files; URLs and files pass through."""
    refs: list[str] = []
    for source in sources:
        if Path(source).is_dir():
            refs.extend(str(p) for p in scan_local_images(source))
        else:
            refs.append(source)
    return refs


def cmd_register(args: argparse.Namespace) -> int:
    try:
        refs = _expand_sources(args.sources)
    except ValueError as e:
        logger.error("%s", e)
        return 1
    if not refs:
        logger.error("No images found")
        return 1

    queue = JobQueue()
    submitted = []
    with _service() as service:
        for ref in tqdm(refs, desc="Registering", unit="photo", disable=len(refs) < 2):
            submitted.extend(submit_photos(
                service, queue, [ref], race_id=args.race_id, uploader_id=args.uploader_id,
            ))

    for photo, job in submitted:
        logger.info("%s  job %-6d %s", photo.id, job.id, photo.storage_ref)
    logger.info("Registered %d photo(s)", len(submitted))
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    options = DetectionOptions(
        min_detection_confidence=args.min_detection_confidence,
        min_ocr_confidence=args.min_ocr_confidence,
        use_ocr=not args.no_ocr,
        enhance_image=not args.no_enhance,
        ocr_fallback=not args.no_ocr_fallback,
        full_image_ocr=args.full_image_ocr,
    )
    try:
        image_data = read_local_image(args.image)
    except OSError as e:
        logger.error("Cannot read %s: %s", args.image, e)
        return 1

    with _service(use_ocr=options.use_ocr) as service:
        try:
            detections = service.detect_bib_numbers(image_data, options)
        except BibflowError as e:
            logger.error("Detection failed: %s", e)
            return 1

    if args.json:
        print(json.dumps([d.to_dict() for d in detections], indent=2))
        return 0

    if not detections:
        logger.info("No bib numbers found")
        return 0
    logger.info("%-6s %-10s %-14s %s", "Bib", "Conf", "Method", "Box")
    for d in detections:
        box = d.bbox
        logger.info(
            "%-6s %-10.3f %-14s (%d, %d, %d, %d)",
            d.bib_number, d.confidence, d.method.value,
            box.x, box.y, box.width, box.height,
        )
    return 0


def cmd_process(args: argparse.Namespace) -> int:
    with _service(use_ocr=True) as service:
        try:
            detections = service.process_photo(args.photo_id, retry=args.retry)
        except BibflowError as e:
            logger.error("Processing photo %s failed: %s", args.photo_id, e)
            return 1
    bibs = ", ".join(d.bib_number for d in detections) or "(none)"
    logger.info("Photo %s completed, bibs: %s", args.photo_id, bibs)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    status = ProcessingStatus(args.status) if args.status else None
    with _service() as service:
        photos = service.list_photos(status, limit=args.limit)
    if not photos:
        logger.info("No photos")
        return 0
    for photo in photos:
        logger.info("%s  %-10s %s", photo.id, photo.processing_status.value, photo.storage_ref)
    logger.info("%d photo(s)", len(photos))
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    try:
        with _service() as service:
            status = service.get_processing_status(args.photo_id)
    except BibflowError as e:
        logger.error("%s", e)
        return 1
    logger.info("Status:       %s", status["status"])
    logger.info("Processed:    %s", status["is_processed"])
    logger.info("Processed at: %s", status["processed_at"] or "-")
    if status["error"]:
        logger.info("Error:        %s", status["error"])
    for job in JobQueue().jobs_for_photo(args.photo_id):
        logger.info(
            "Job %-6d    %s (attempts %d/%d)", job.id, job.state, job.attempts_made, job.max_attempts,
        )
    return 0


def cmd_cancel(args: argparse.Namespace) -> int:
    try:
        with _service() as service:
            service.cancel_processing(args.photo_id)
    except BibflowError as e:
        logger.error("%s", e)
        return 1
    logger.info("Cancelled photo %s", args.photo_id)
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    with _service() as service:
        matches = service.find_photos_by_bib(args.bib, race_id=args.race_id)
    if not matches:
        logger.info("No processed photos with bib %s", args.bib)
        return 0
    for match in matches:
        logger.info(
            "%s  %.3f  %-14s %s",
            match["id"], match["detection_confidence"], match["detection_method"],
            match["storage_ref"],
        )
    logger.info("%d photo(s) with bib %s", len(matches), args.bib)
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    with _service() as service:
        stats = service.get_stats()
    queue_stats = JobQueue().get_stats()

    logger.info("Photos:     %d", stats["total_photos"])
    for status, count in stats["by_status"].items():
        logger.info("  %-10s %d", status, count)
    logger.info("Detections: %d", stats["total_detections"])
    logger.info("Jobs:")
    for state, count in queue_stats.items():
        logger.info("  %-10s %d", state, count)
    return 0
