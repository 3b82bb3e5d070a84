from __future__ import annotations

import logging
from typing import Any, Sequence

from listing_pipeline.schemas.jobs import CategoryResolution, JobHandle
from listing_pipeline.schemas.listing import PENDING_APPROVAL, ListingDraft, ListingPatch
from listing_pipeline.services.errors import SubmissionError
from listing_pipeline.services.http_client import HttpResult, ServiceHttpClient


log = logging.getLogger(__name__)


def build_create_payload(
    draft: ListingDraft,
    *,
    image_urls: Sequence[str],
    main_image_index: int,
    category: CategoryResolution,
    source: str,
) -> dict[str, Any]:
    """
    Body for POST /listings/create. Attributes go out as {key: [str, ...]} or null.
    `main_image_index` points into `image_urls`, not into the draft's sources.
    """
    return {
        "title": draft.title,
        "description": draft.description,
        "price": float(draft.price),
        "category": draft.category,
        "location": draft.location,
        "images": list(image_urls),
        "status": PENDING_APPROVAL,
        "urgency": draft.urgency or "medium",
        "condition": list(draft.condition),
        "attributes": {k: list(v) for k, v in draft.attributes.items()} or None,
        "category_id": category.category_id,
        "category_path": list(category.category_path) if category.category_path else None,
        "expires_at": draft.expires_at.isoformat() if draft.expires_at else None,
        "is_featured": draft.premium.is_featured,
        "is_urgent_premium": draft.premium.is_urgent_premium,
        "is_showcase": draft.premium.is_showcase,
        "geolocation": draft.geolocation,
        "metadata": {
            "source": source,
            "duration": draft.duration_days,
            "mainImageIndex": main_image_index,
        },
    }


def build_update_payload(
    patch: ListingPatch,
    *,
    image_urls: Sequence[str] | None,
    main_image_index: int | None,
    category: CategoryResolution | None,
    source: str,
) -> dict[str, Any]:
    body: dict[str, Any] = {}
    fields = patch.model_fields_set

    for name in ("title", "description", "location", "urgency", "geolocation", "status"):
        if name in fields:
            body[name] = getattr(patch, name)
    if "price" in fields and patch.price is not None:
        body["price"] = float(patch.price)
    if "condition" in fields:
        body["condition"] = list(patch.condition or [])
    if "attributes" in fields:
        body["attributes"] = {k: list(v) for k, v in (patch.attributes or {}).items()} or None
    if "expires_at" in fields:
        body["expires_at"] = patch.expires_at.isoformat() if patch.expires_at else None
    if patch.premium is not None:
        body.update(patch.premium.model_dump())

    if image_urls is not None:
        body["images"] = list(image_urls)
    if category is not None:
        body["category"] = patch.category
        body["category_id"] = category.category_id
        body["category_path"] = list(category.category_path) if category.category_path else None

    metadata: dict[str, Any] = {"source": source}
    if main_image_index is not None:
        metadata["mainImageIndex"] = main_image_index
    body["metadata"] = metadata
    return body


def _job_handle_or_raise(res: HttpResult, *, action: str) -> JobHandle:
    if not res.ok:
        msg = res.server_message() or f"Listing {action} failed: {res.error_message or 'request failed'}"
        raise SubmissionError(msg)
    if not res.detail.get("success"):
        raise SubmissionError(res.server_message() or f"Listing {action} failed")

    data = res.detail.get("data") or {}
    job_id = data.get("jobId") if isinstance(data, dict) else None
    if not job_id:
        raise SubmissionError(f"Listing {action} failed: response has no job id")
    return JobHandle(job_id=str(job_id), status=str(data.get("status") or "queued"))


class JobSubmitter:
    """
    Creates listing jobs on the async service. Submissions are not idempotent,
    so nothing here retries.
    """

    def __init__(self, http: ServiceHttpClient, *, job_service_url: str, timeout_seconds: float):
        self._http = http
        self._base = job_service_url.rstrip("/")
        self._timeout = timeout_seconds

    async def submit_create(self, payload: dict[str, Any], actor_id: str) -> JobHandle:
        res = await self._http.post_json(
            url=f"{self._base}/listings/create",
            headers={"x-user-id": actor_id},
            json_body=payload,
            timeout_seconds=self._timeout,
        )
        handle = _job_handle_or_raise(res, action="creation")
        log.info("listing creation job started job_id=%s status=%s", handle.job_id, handle.status)
        return handle

    async def submit_update(self, listing_id: str, payload: dict[str, Any], actor_id: str) -> JobHandle:
        res = await self._http.put_json(
            url=f"{self._base}/listings/{listing_id}",
            headers={"x-user-id": actor_id},
            json_body=payload,
            timeout_seconds=self._timeout,
        )
        handle = _job_handle_or_raise(res, action="update")
        log.info("listing update job started job_id=%s listing_id=%s", handle.job_id, listing_id)
        return handle

    async def cancel(self, job_id: str, actor_id: str) -> bool:
        """Best effort: returns False instead of raising when the service refuses."""
        res = await self._http.delete(
            url=f"{self._base}/listings/jobs/{job_id}",
            headers={"x-user-id": actor_id},
            timeout_seconds=self._timeout,
        )
        if not res.ok:
            log.warning("job cancel failed job_id=%s: %s", job_id, res.error_message)
        return res.ok
