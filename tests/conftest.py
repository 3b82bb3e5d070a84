import os

# must be set before listing_pipeline.core.config builds its settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("OTEL_SDK_DISABLED", "true")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from listing_pipeline.core.config import PipelineConfig
from listing_pipeline.models.base import Base
from listing_pipeline.models.listing import Listing  # noqa: F401
from listing_pipeline.services.categories import TreeCategoryResolver
from listing_pipeline.services.fallback import SqlListingWriter
from listing_pipeline.services.http_client import ServiceHttpClient
from listing_pipeline.services.pipeline import ListingPipeline
from listing_pipeline.services.records import ResultResolver
from listing_pipeline.services.storage import LocalObjectStore

from fixtures_seed import CATEGORY_TREE, JOBS, UPLOADS, ServiceStub


@pytest.fixture
async def async_engine():
    # one shared in-memory database per test
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def services() -> ServiceStub:
    return ServiceStub()


@pytest.fixture
async def http(services):
    client = ServiceHttpClient(timeout_seconds=5.0, transport=services.transport())
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def object_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(str(tmp_path / "objects"))


@pytest.fixture
def categories() -> TreeCategoryResolver:
    return TreeCategoryResolver.from_dicts(CATEGORY_TREE)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_pipeline(http, session_factory, object_store, categories, sleeps):
    """
    Pipeline wired to the scripted services and the in-memory database.
    Sleeping is recorded instead of waited out.
    """
    async def _record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def _make(*, max_attempts=5, fallback=None, result_resolver=None, category_resolver=None, sleep=None):
        config = PipelineConfig(
            job_service_url=JOBS,
            upload_service_url=UPLOADS,
            poll_max_attempts=max_attempts,
            poll_interval_seconds=5.0,
            submission_source="web",
        )
        cats = category_resolver or categories
        return ListingPipeline(
            config,
            http=http,
            category_resolver=cats,
            result_resolver=result_resolver or ResultResolver(session_factory),
            fallback=fallback or SqlListingWriter(session_factory, object_store, cats),
            sleep=sleep or _record_sleep,
        )

    return _make


@pytest.fixture
async def client(make_pipeline):
    """
    HTTP client against the API with the pipeline dependency overridden.
    """
    from listing_pipeline.api.deps import get_pipeline
    from listing_pipeline.main import app

    pipeline = make_pipeline()
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
