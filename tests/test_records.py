from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from listing_pipeline.services.records import ResultResolver

from fixtures_seed import insert_listing


@pytest.mark.asyncio
async def test_reads_persisted_listing(session_factory):
    await insert_listing(session_factory, "L1", attributes={"storage": ["128GB"]})

    record = await ResultResolver(session_factory).resolve("L1")

    assert record.id == "L1"
    assert record.title == "iPhone 13 arıyorum"
    assert record.price == Decimal("15000")
    assert record.category_path == [10, 42]
    assert record.images == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]
    assert record.attributes == {"storage": ["128GB"]}
    assert record.created_at is not None
    assert record.is_stub is False


@pytest.mark.asyncio
async def test_missing_listing_degrades_to_stub(session_factory):
    record = await ResultResolver(session_factory).resolve("L-missing")

    assert record.id == "L-missing"
    assert record.status == "pending_approval"
    assert record.is_stub is True


@pytest.mark.asyncio
async def test_database_error_degrades_to_stub():
    # schema never created: every read fails
    engine = create_async_engine("sqlite+aiosqlite://")
    try:
        factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        record = await ResultResolver(factory).resolve("L1")
    finally:
        await engine.dispose()

    assert record.id == "L1"
    assert record.is_stub is True


@pytest.mark.asyncio
async def test_unreadable_row_degrades_to_stub(session_factory):
    # category_path holds ids; a legacy writer stored names
    await insert_listing(session_factory, "L1", category_path=["Elektronik", "Telefon"])

    record = await ResultResolver(session_factory).resolve("L1")

    assert record.id == "L1"
    assert record.is_stub is True
    assert record.title is None
