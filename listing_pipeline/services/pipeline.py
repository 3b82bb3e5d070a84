from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_pipeline.core.config import PipelineConfig, Settings
from listing_pipeline.core.telemetry import get_tracer
from listing_pipeline.schemas.images import ImageSource
from listing_pipeline.schemas.jobs import CategoryResolution, JobHandle, ProgressEvent
from listing_pipeline.schemas.listing import ListingDraft, ListingPatch, ListingRecord
from listing_pipeline.services.availability import AvailabilityProber
from listing_pipeline.services.categories import CategoryResolver, TreeCategoryResolver
from listing_pipeline.services.fallback import DirectListingWriter, SqlListingWriter
from listing_pipeline.services.http_client import ServiceHttpClient
from listing_pipeline.services.images import NormalizedImageSet, merge_staged_urls, normalize_images, payloads_to_stage
from listing_pipeline.services.jobs import JobSubmitter, build_create_payload, build_update_payload
from listing_pipeline.services.polling import ProgressCallback, StatusPoller
from listing_pipeline.services.records import ResultResolver
from listing_pipeline.services.staging import ImageStager
from listing_pipeline.services.storage import LocalObjectStore


log = logging.getLogger(__name__)
tracer = get_tracer(__name__)

PipelineEvent = Union[ProgressEvent, ListingRecord]


class ListingPipeline:
    """
    Turns a listing draft into a persisted record.

    Async path: probe -> normalize images -> stage -> resolve category ->
    submit job -> poll -> read record. When the probe fails, the direct
    writer handles the whole operation and its result is returned as-is.

    Steps run strictly in order, one submission per call; nothing is shared
    between concurrent calls besides the HTTP connection pool.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        http: ServiceHttpClient,
        category_resolver: CategoryResolver,
        result_resolver: ResultResolver,
        fallback: DirectListingWriter,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.categories = category_resolver
        self.results = result_resolver
        self.fallback = fallback

        self.prober = AvailabilityProber(
            http, base_url=config.job_service_url, timeout_seconds=config.probe_timeout_seconds
        )
        self.stager = ImageStager(
            http, upload_service_url=config.upload_service_url, timeout_seconds=config.upload_timeout_seconds
        )
        self.submitter = JobSubmitter(
            http, job_service_url=config.job_service_url, timeout_seconds=config.submit_timeout_seconds
        )
        self.poller = StatusPoller(
            http,
            job_service_url=config.job_service_url,
            upload_service_url=config.upload_service_url,
            timeout_seconds=config.status_timeout_seconds,
            max_attempts=config.poll_max_attempts,
            poll_interval_seconds=config.poll_interval_seconds,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------

    async def create_listing(
        self,
        draft: ListingDraft,
        actor_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> ListingRecord:
        return await _drain(self.create_listing_events(draft, actor_id), on_progress)

    async def update_listing(
        self,
        listing_id: str,
        patch: ListingPatch,
        actor_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> ListingRecord:
        return await _drain(self.update_listing_events(listing_id, patch, actor_id), on_progress)

    async def create_listing_events(self, draft: ListingDraft, actor_id: str) -> AsyncIterator[PipelineEvent]:
        """
        Same flow as create_listing, exposed as a stream: one ProgressEvent per
        answered status check, then the ListingRecord as the final item.
        """
        if not await self._available():
            log.warning("async listing service unavailable; writing listing directly for user=%s", actor_id)
            yield await self.fallback.create(draft, actor_id)
            return

        images = _normalize(draft.images)
        image_urls = await self._stage_images(images, actor_id)
        category = await self._resolve_category(draft.category_path)

        payload = build_create_payload(
            draft,
            image_urls=image_urls,
            main_image_index=images.main_index(draft.main_image_index),
            category=category,
            source=self.config.submission_source,
        )
        with tracer.start_as_current_span("listing.submit"):
            handle = await self.submitter.submit_create(payload, actor_id)

        async with aclosing(self._job_events(handle, actor_id)) as events:
            async for ev in events:
                yield ev

    async def update_listing_events(
        self, listing_id: str, patch: ListingPatch, actor_id: str
    ) -> AsyncIterator[PipelineEvent]:
        if not await self._available():
            log.warning("async listing service unavailable; updating listing %s directly", listing_id)
            yield await self.fallback.update(listing_id, patch, actor_id)
            return

        image_urls, main_index = None, patch.main_image_index
        if patch.has_new_images:
            images = _normalize(patch.images or [])
            if images.images:
                image_urls = await self._stage_images(images, actor_id)
                if main_index is not None:
                    main_index = images.main_index(main_index)
            else:
                # an unusable replacement set must not wipe the current images
                log.warning("none of the %d new images for listing %s were usable; keeping current images", images.source_count, listing_id)
                main_index = None
        category = await self._resolve_category(patch.category_path) if patch.category_path is not None else None

        payload = build_update_payload(
            patch,
            image_urls=image_urls,
            main_image_index=main_index,
            category=category,
            source=self.config.submission_source,
        )
        with tracer.start_as_current_span("listing.submit_update"):
            handle = await self.submitter.submit_update(listing_id, payload, actor_id)

        async with aclosing(self._job_events(handle, actor_id, known_listing_id=listing_id)) as events:
            async for ev in events:
                yield ev

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    async def _available(self) -> bool:
        with tracer.start_as_current_span("listing.probe") as span:
            ok = await self.prober.probe()
            span.set_attribute("listing.async_available", ok)
            return ok

    async def _stage_images(self, normalized: NormalizedImageSet, actor_id: str) -> list[str]:
        payloads = payloads_to_stage(normalized.images)
        with tracer.start_as_current_span("listing.stage_images") as span:
            span.set_attribute("listing.image_count", len(payloads))
            staged = await self.stager.stage(payloads, actor_id)
        return merge_staged_urls(normalized.images, staged)

    async def _resolve_category(self, path: Sequence[str]) -> CategoryResolution:
        if not path:
            return CategoryResolution.empty()
        try:
            return await self.categories.resolve(path)
        except Exception:
            # ids are optional on the job payload; the category string still travels
            log.exception("category resolution failed for %r; submitting without ids", " > ".join(path))
            return CategoryResolution.empty()

    async def _job_events(
        self, handle: JobHandle, actor_id: str, known_listing_id: str | None = None
    ) -> AsyncIterator[PipelineEvent]:
        listing_id = None
        span = tracer.start_span("listing.poll", attributes={"listing.job_id": handle.job_id})
        try:
            async with aclosing(self.poller.watch(handle.job_id, actor_id, known_listing_id=known_listing_id)) as events:
                async for ev in events:
                    if ev.listing_id:
                        listing_id = ev.listing_id
                    yield ev
        except asyncio.CancelledError:
            log.warning("submission abandoned while polling job %s; asking the service to cancel it", handle.job_id)
            await asyncio.shield(self.submitter.cancel(handle.job_id, actor_id))
            raise
        finally:
            span.end()

        with tracer.start_as_current_span("listing.resolve_record"):
            record = await self.results.resolve(listing_id)
        yield record


def _normalize(sources: Sequence[ImageSource]) -> NormalizedImageSet:
    images = normalize_images(sources)
    if images.dropped:
        log.warning("%d of %d images could not be normalized and were dropped", images.dropped, images.source_count)
    return images


async def _drain(events: AsyncIterator[PipelineEvent], on_progress: ProgressCallback | None) -> ListingRecord:
    record: ListingRecord | None = None
    async with aclosing(events) as stream:
        async for ev in stream:
            if isinstance(ev, ListingRecord):
                record = ev
            elif on_progress is not None and ev.progress is not None:
                on_progress(ev.progress)
    if record is None:
        raise RuntimeError("listing pipeline finished without a record")
    return record


def load_category_resolver(path: str | None) -> CategoryResolver:
    """Category tree snapshot from a JSON file; without one every path resolves to no ids."""
    if not path:
        return TreeCategoryResolver([])
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    # either a bare list of roots or {"data": [...]} as the categories service returns it
    roots = raw.get("data", []) if isinstance(raw, dict) else raw
    return TreeCategoryResolver.from_dicts(roots)


def build_pipeline(
    s: Settings,
    *,
    http: ServiceHttpClient,
    session_factory: async_sessionmaker[AsyncSession],
    category_resolver: CategoryResolver | None = None,
) -> ListingPipeline:
    categories = category_resolver or load_category_resolver(s.category_tree_path)
    return ListingPipeline(
        PipelineConfig.from_settings(s),
        http=http,
        category_resolver=categories,
        result_resolver=ResultResolver(session_factory),
        fallback=SqlListingWriter(session_factory, LocalObjectStore(s.object_store_dir), categories),
    )
