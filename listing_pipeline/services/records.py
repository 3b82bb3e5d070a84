from __future__ import annotations

import logging

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_pipeline.models.listing import Listing
from listing_pipeline.schemas.listing import ListingRecord


log = logging.getLogger(__name__)


class ResultResolver:
    """
    Reads the persisted listing once its job has completed. The job already
    succeeded server-side, so a failed, empty or unreadable read (replication
    lag, outage, a row the record model rejects) yields a degraded stub
    instead of an error.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def resolve(self, listing_id: str) -> ListingRecord:
        try:
            async with self._sessions() as db:
                row = (await db.execute(select(Listing).where(Listing.id == listing_id))).scalar_one_or_none()
                record = ListingRecord.model_validate(row) if row is not None else None
        except (SQLAlchemyError, OSError, ValidationError) as e:
            log.warning("could not read listing %s after job completion: %s: %s", listing_id, type(e).__name__, e)
            return ListingRecord.stub(listing_id)

        if record is None:
            log.warning("listing %s not visible yet after job completion; returning stub", listing_id)
            return ListingRecord.stub(listing_id)
        return record
