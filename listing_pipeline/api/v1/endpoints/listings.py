import logging

from fastapi import APIRouter, Depends, HTTPException

from listing_pipeline.api.deps import get_pipeline, require_actor_id
from listing_pipeline.schemas.common import ErrorResponse
from listing_pipeline.schemas.listing import ListingDraft, ListingPatch, ListingRecord
from listing_pipeline.services.errors import (
    ImageStagingError,
    JobFailedError,
    JobPollError,
    JobTimeoutError,
    PipelineError,
    SubmissionError,
)
from listing_pipeline.services.fallback import ListingNotFoundError
from listing_pipeline.services.pipeline import ListingPipeline

router = APIRouter()

log = logging.getLogger(__name__)


def _status_for(e: PipelineError) -> int:
    if isinstance(e, ListingNotFoundError):
        return 404
    if isinstance(e, JobFailedError):
        return 422
    if isinstance(e, JobTimeoutError):
        return 504
    if isinstance(e, (ImageStagingError, SubmissionError, JobPollError)):
        return 502
    return 500


def _raise_http(e: PipelineError) -> None:
    status = _status_for(e)
    details = [{"job_id": e.job_id}] if e.job_id else []
    body = ErrorResponse(code=e.code, message=e.message, details=details)
    raise HTTPException(status_code=status, detail=body.model_dump()) from e


@router.post("/listings", response_model=ListingRecord)
async def create_listing(
    draft: ListingDraft,
    actor_id: str = Depends(require_actor_id),
    pipeline: ListingPipeline = Depends(get_pipeline),
) -> ListingRecord:
    try:
        return await pipeline.create_listing(draft, actor_id)
    except PipelineError as e:
        log.warning("create listing failed for user=%s: %s", actor_id, e.code)
        _raise_http(e)


@router.patch("/listings/{listing_id}", response_model=ListingRecord)
async def update_listing(
    listing_id: str,
    patch: ListingPatch,
    actor_id: str = Depends(require_actor_id),
    pipeline: ListingPipeline = Depends(get_pipeline),
) -> ListingRecord:
    try:
        return await pipeline.update_listing(listing_id, patch, actor_id)
    except PipelineError as e:
        log.warning("update listing %s failed for user=%s: %s", listing_id, actor_id, e.code)
        _raise_http(e)
