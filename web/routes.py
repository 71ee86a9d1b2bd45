"""Photo processing JSON API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from config import MIN_DETECTION_CONFIDENCE, MIN_OCR_CONFIDENCE
from detection import DetectionOptions
from jobs import JobQueue, enqueue_existing, submit_photo, submit_photos
from processing import PhotoProcessingService
from web.schemas import (
    DetectionOut,
    DetectionsResponse,
    JobOut,
    PhotoMatchOut,
    PhotoOut,
    PhotoSearchResponse,
    ProcessingStatusResponse,
    QueueStatsResponse,
    RegisterBatchRequest,
    RegisterPhotoRequest,
    StatsResponse,
    SubmittedBatchResponse,
    SubmittedPhotoResponse,
)

api_photos_router = APIRouter()


def get_service(request: Request) -> PhotoProcessingService:
    return request.app.state.service


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue


def _submitted(photo, job) -> SubmittedPhotoResponse:
    return SubmittedPhotoResponse(
        photo=PhotoOut.model_validate(photo.to_dict()),
        job=JobOut.model_validate(job.to_dict()),
    )


@api_photos_router.post('/api/photos', response_model=SubmittedPhotoResponse, status_code=201)
async def register_photo(
    request: RegisterPhotoRequest,
    service: PhotoProcessingService = Depends(get_service),
    queue: JobQueue = Depends(get_queue),
) -> SubmittedPhotoResponse:
    """Register an uploaded photo and queue it for bib detection."""
    photo, job = submit_photo(
        service, queue, request.storage_ref,
        race_id=request.race_id, uploader_id=request.uploader_id,
    )
    return _submitted(photo, job)


@api_photos_router.post('/api/photos/batch', response_model=SubmittedBatchResponse, status_code=201)
async def register_photos(
    request: RegisterBatchRequest,
    service: PhotoProcessingService = Depends(get_service),
    queue: JobQueue = Depends(get_queue),
) -> SubmittedBatchResponse:
    """Register a multi-file upload. Every photo gets an independent job."""
    submitted = submit_photos(
        service, queue, request.storage_refs,
        race_id=request.race_id, uploader_id=request.uploader_id,
    )
    return SubmittedBatchResponse(photos=[_submitted(photo, job) for photo, job in submitted])


@api_photos_router.get('/api/photos/search', response_model=PhotoSearchResponse)
async def search_photos(
    bib: str = Query(min_length=1),
    race_id: str | None = None,
    service: PhotoProcessingService = Depends(get_service),
) -> PhotoSearchResponse:
    """Processed photos containing a bib number, newest first."""
    matches = service.find_photos_by_bib(bib, race_id=race_id)
    return PhotoSearchResponse(
        bib_number=bib,
        race_id=race_id,
        photos=[PhotoMatchOut.model_validate(m) for m in matches],
    )


@api_photos_router.post('/api/photos/{photo_id}/process', response_model=JobOut, status_code=202)
async def process_photo(
    photo_id: str,
    service: PhotoProcessingService = Depends(get_service),
    queue: JobQueue = Depends(get_queue),
) -> JobOut:
    """Queue processing for an existing photo."""
    job = enqueue_existing(service, queue, photo_id)
    return JobOut.model_validate(job.to_dict())


@api_photos_router.get('/api/photos/{photo_id}/status', response_model=ProcessingStatusResponse)
async def get_processing_status(
    photo_id: str,
    service: PhotoProcessingService = Depends(get_service),
) -> ProcessingStatusResponse:
    return ProcessingStatusResponse.model_validate(service.get_processing_status(photo_id))


@api_photos_router.post(
    '/api/photos/{photo_id}/cancel-processing',
    response_model=ProcessingStatusResponse,
)
async def cancel_processing(
    photo_id: str,
    service: PhotoProcessingService = Depends(get_service),
) -> ProcessingStatusResponse:
    """Cancel a pending or processing photo. Completed and failed photos answer 409."""
    service.cancel_processing(photo_id)
    return ProcessingStatusResponse.model_validate(service.get_processing_status(photo_id))


@api_photos_router.get('/api/photos/{photo_id}/detections', response_model=DetectionsResponse)
async def get_detections(
    photo_id: str,
    service: PhotoProcessingService = Depends(get_service),
) -> DetectionsResponse:
    detections = service.get_detections(photo_id)
    return DetectionsResponse(
        detections=[DetectionOut.model_validate(d.to_dict()) for d in detections],
    )


@api_photos_router.post('/api/detect', response_model=DetectionsResponse)
async def detect(
    request: Request,
    min_detection_confidence: float = MIN_DETECTION_CONFIDENCE,
    min_ocr_confidence: float = MIN_OCR_CONFIDENCE,
    use_ocr: bool = True,
    enhance_image: bool = True,
    ocr_fallback: bool = True,
    full_image_ocr: bool = False,
    service: PhotoProcessingService = Depends(get_service),
) -> DetectionsResponse:
    """Detect bib numbers in the raw image bytes of the request body. Nothing is stored."""
    image_data = await request.body()
    if not image_data:
        raise HTTPException(status_code=400, detail='Request body must contain image bytes')

    options = DetectionOptions(
        min_detection_confidence=min_detection_confidence,
        min_ocr_confidence=min_ocr_confidence,
        use_ocr=use_ocr,
        enhance_image=enhance_image,
        ocr_fallback=ocr_fallback,
        full_image_ocr=full_image_ocr,
    )
    detections = await run_in_threadpool(service.detect_bib_numbers, image_data, options)
    return DetectionsResponse(
        detections=[DetectionOut.model_validate(d.to_dict()) for d in detections],
    )


@api_photos_router.get('/api/stats', response_model=StatsResponse)
async def get_stats(service: PhotoProcessingService = Depends(get_service)) -> StatsResponse:
    return StatsResponse.model_validate(service.get_stats())


@api_photos_router.get('/api/queue/stats', response_model=QueueStatsResponse)
async def get_queue_stats(queue: JobQueue = Depends(get_queue)) -> QueueStatsResponse:
    return QueueStatsResponse.model_validate(queue.get_stats())
