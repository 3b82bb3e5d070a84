from __future__ import annotations

import logging
from typing import Sequence

from listing_pipeline.services.errors import ImageStagingError
from listing_pipeline.services.http_client import ServiceHttpClient
from listing_pipeline.services.images import ImagePayload


log = logging.getLogger(__name__)


class ImageStager:
    """
    Uploads every payload of one submission in a single multipart request
    and returns their stable URLs in input order.
    """

    def __init__(self, http: ServiceHttpClient, *, upload_service_url: str, timeout_seconds: float):
        self._http = http
        self._url = f"{upload_service_url.rstrip('/')}/upload/listings"
        self._timeout = timeout_seconds

    async def stage(self, payloads: Sequence[ImagePayload], actor_id: str) -> list[str]:
        if not payloads:
            return []

        log.info("staging %d images for user=%s", len(payloads), actor_id)
        res = await self._http.post_multipart(
            url=self._url,
            files=[p.as_multipart("images") for p in payloads],
            headers={"x-user-id": actor_id},
            timeout_seconds=self._timeout,
        )

        if not res.ok:
            msg = res.server_message() or res.error_message or "upload failed"
            raise ImageStagingError(f"Image upload failed: {msg}")
        if not res.detail.get("success"):
            raise ImageStagingError(f"Image upload failed: {res.server_message() or 'upload service rejected the images'}")

        data = res.detail.get("data") or {}
        images = data.get("images") if isinstance(data, dict) else None
        if not isinstance(images, list):
            raise ImageStagingError("Image upload failed: response has no image list")

        urls = [img.get("url") for img in images if isinstance(img, dict)]
        if len(urls) != len(payloads) or not all(isinstance(u, str) and u for u in urls):
            # a partial image set must never reach job submission
            raise ImageStagingError(
                f"Image upload failed: expected {len(payloads)} urls, got {len([u for u in urls if u])}"
            )

        log.info("staged %d images", len(urls))
        return urls
