from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_pipeline.models.listing import Listing, gen_listing_id
from listing_pipeline.schemas.images import UploadedImage
from listing_pipeline.schemas.jobs import CategoryResolution
from listing_pipeline.schemas.listing import PENDING_APPROVAL, ListingDraft, ListingPatch, ListingRecord
from listing_pipeline.services.categories import CategoryResolver
from listing_pipeline.services.errors import PipelineError
from listing_pipeline.services.images import NormalizedImageSet, normalize_images
from listing_pipeline.services.storage import LocalObjectStore


log = logging.getLogger(__name__)


class ListingNotFoundError(PipelineError):
    code = "LISTING_NOT_FOUND"


@runtime_checkable
class DirectListingWriter(Protocol):
    """
    Synchronous substitute for the job pipeline, used when the async service
    is down. Returns the same ListingRecord shape as a completed job would.
    """

    async def create(self, draft: ListingDraft, actor_id: str) -> ListingRecord:
        ...

    async def update(self, listing_id: str, patch: ListingPatch, actor_id: str) -> ListingRecord:
        ...


class SqlListingWriter:
    """
    Writes straight into the listings table. Images: uploaded URLs are kept,
    binary payloads go to the local object store. Files written for a write
    that does not commit are removed again.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: LocalObjectStore,
        category_resolver: CategoryResolver | None = None,
    ):
        self._sessions = session_factory
        self._store = store
        self._categories = category_resolver

    def _store_images(self, listing_id: str, images: NormalizedImageSet, written: list[str]) -> list[str]:
        urls: list[str] = []
        for position, img in enumerate(images.images):
            if isinstance(img, UploadedImage):
                urls.append(img.url)
            else:
                uri = self._store.put_listing_image(listing_id=listing_id, position=position, payload=img)
                written.append(uri)
                urls.append(uri)
        return urls

    def _discard(self, written: list[str]) -> None:
        for uri in written:
            try:
                self._store.delete(uri)
            except OSError as e:
                log.warning("could not remove orphaned image %s: %s", uri, e)

    async def _resolve_category(self, path: Sequence[str]) -> CategoryResolution:
        if self._categories is None or not path:
            return CategoryResolution.empty()
        return await self._categories.resolve(path)

    async def create(self, draft: ListingDraft, actor_id: str) -> ListingRecord:
        listing_id = gen_listing_id()
        category = await self._resolve_category(draft.category_path)
        images = normalize_images(draft.images)

        written: list[str] = []
        try:
            row = Listing(
                id=listing_id,
                user_id=actor_id,
                title=draft.title,
                description=draft.description,
                price=draft.price,
                category=draft.category,
                category_id=category.category_id,
                category_path=category.category_path,
                location=draft.location,
                images=self._store_images(listing_id, images, written),
                main_image_index=images.main_index(draft.main_image_index),
                attributes={k: list(v) for k, v in draft.attributes.items()} or None,
                condition=list(draft.condition),
                urgency=draft.urgency or "medium",
                geolocation=draft.geolocation,
                is_featured=draft.premium.is_featured,
                is_urgent_premium=draft.premium.is_urgent_premium,
                is_showcase=draft.premium.is_showcase,
                status=PENDING_APPROVAL,
                expires_at=draft.expires_at,
                created_by=actor_id,
                updated_by=actor_id,
            )

            async with self._sessions() as db:
                db.add(row)
                await db.commit()
                await db.refresh(row)
        except Exception:
            self._discard(written)
            raise

        log.info("listing %s written directly for user=%s", listing_id, actor_id)
        return ListingRecord.model_validate(row)

    async def update(self, listing_id: str, patch: ListingPatch, actor_id: str) -> ListingRecord:
        written: list[str] = []
        try:
            async with self._sessions() as db:
                row = (await db.execute(
                    select(Listing).where(Listing.id == listing_id, Listing.user_id == actor_id)
                )).scalar_one_or_none()
                if row is None:
                    raise ListingNotFoundError(f"Listing {listing_id} not found or access denied")

                fields = patch.model_fields_set
                for name in ("title", "description", "price", "location", "urgency", "status"):
                    if name in fields and getattr(patch, name) is not None:
                        setattr(row, name, getattr(patch, name))
                for name in ("geolocation", "expires_at"):
                    if name in fields:
                        setattr(row, name, getattr(patch, name))
                if "condition" in fields:
                    row.condition = list(patch.condition or [])
                if "attributes" in fields:
                    row.attributes = {k: list(v) for k, v in (patch.attributes or {}).items()} or None
                if patch.premium is not None:
                    row.is_featured = patch.premium.is_featured
                    row.is_urgent_premium = patch.premium.is_urgent_premium
                    row.is_showcase = patch.premium.is_showcase
                if patch.category_path is not None:
                    category = await self._resolve_category(patch.category_path)
                    row.category = patch.category or ""
                    row.category_id = category.category_id
                    row.category_path = category.category_path

                if patch.has_new_images:
                    images = normalize_images(patch.images or [])
                    if images.images:
                        row.images = self._store_images(listing_id, images, written)
                        if patch.main_image_index is not None:
                            row.main_image_index = images.main_index(patch.main_image_index)
                    else:
                        log.warning("none of the new images for listing %s were usable; keeping current images", listing_id)
                elif patch.main_image_index is not None:
                    row.main_image_index = patch.main_image_index

                row.updated_by = actor_id
                await db.commit()
                await db.refresh(row)
        except Exception:
            self._discard(written)
            raise

        log.info("listing %s updated directly by user=%s", listing_id, actor_id)
        return ListingRecord.model_validate(row)
