import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from listing_pipeline.schemas.images import UploadedImage
from listing_pipeline.schemas.jobs import CategoryResolution
from listing_pipeline.schemas.listing import ListingPatch, PremiumFeatures
from listing_pipeline.services.errors import SubmissionError
from listing_pipeline.services.jobs import JobSubmitter, build_create_payload, build_update_payload

from fixtures_seed import CREATE_URL, JOBS, job_started, job_url, make_draft


@pytest.fixture
def submitter(http) -> JobSubmitter:
    return JobSubmitter(http, job_service_url=JOBS, timeout_seconds=5.0)


def test_create_payload_shape():
    draft = make_draft(
        premium=PremiumFeatures(is_featured=True),
        expires_at=datetime(2026, 12, 1, tzinfo=timezone.utc),
        duration_days=30,
        main_image_index=1,
    )
    body = build_create_payload(
        draft,
        image_urls=["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"],
        main_image_index=1,
        category=CategoryResolution(category_id=42, category_path=[10, 42]),
        source="web",
    )

    assert body["title"] == "iPhone 13 arıyorum"
    assert body["price"] == 15000.0
    assert body["category"] == "Elektronik > Telefon"
    assert body["category_id"] == 42
    assert body["category_path"] == [10, 42]
    assert body["images"] == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]
    assert body["status"] == "pending_approval"
    assert body["urgency"] == "high"
    assert body["attributes"] == {"storage": ["128GB"], "color": ["black", "blue"]}
    assert body["is_featured"] is True
    assert body["is_showcase"] is False
    assert body["expires_at"] == "2026-12-01T00:00:00+00:00"
    assert body["metadata"] == {"source": "web", "duration": 30, "mainImageIndex": 1}
    # must survive the wire as-is
    json.dumps(body)


def test_create_payload_without_category_ids_or_attributes():
    draft = make_draft(attributes={}, images=[])
    body = build_create_payload(draft, image_urls=[], main_image_index=0, category=CategoryResolution.empty(), source="api")

    assert body["attributes"] is None
    assert body["category_id"] is None
    assert body["category_path"] is None
    assert body["images"] == []
    assert body["category"] == "Elektronik > Telefon"


def test_update_payload_only_carries_set_fields():
    patch = ListingPatch(title="Yeni baslik", price=Decimal("12500.50"))
    body = build_update_payload(patch, image_urls=None, main_image_index=None, category=None, source="web")

    assert body == {"title": "Yeni baslik", "price": 12500.5, "metadata": {"source": "web"}}


def test_update_payload_with_images_and_category():
    patch = ListingPatch(
        category_path="Elektronik > Telefon",
        images=[UploadedImage(url="https://cdn.test/a.jpg")],
        main_image_index=0,
    )
    body = build_update_payload(
        patch,
        image_urls=["https://cdn.test/a.jpg"],
        main_image_index=0,
        category=CategoryResolution(category_id=42, category_path=[10, 42]),
        source="web",
    )

    assert body["images"] == ["https://cdn.test/a.jpg"]
    assert body["category"] == "Elektronik > Telefon"
    assert body["category_id"] == 42
    assert body["metadata"] == {"source": "web", "mainImageIndex": 0}
    assert "title" not in body


@pytest.mark.asyncio
async def test_submit_create_returns_handle(submitter, services):
    services.on("POST", CREATE_URL, job_started("J1"))

    handle = await submitter.submit_create({"title": "x"}, "user-1")

    assert handle.job_id == "J1"
    assert handle.status == "processing"
    (req,) = services.requests_to("POST", CREATE_URL)
    assert req.headers["x-user-id"] == "user-1"
    assert json.loads(req.content) == {"title": "x"}


@pytest.mark.asyncio
async def test_submit_create_rejection_uses_server_message(submitter, services):
    services.on("POST", CREATE_URL, (400, {"success": False, "message": "Title is required"}))

    with pytest.raises(SubmissionError, match="Title is required"):
        await submitter.submit_create({}, "user-1")


@pytest.mark.asyncio
async def test_submit_create_without_job_id_fails(submitter, services):
    services.on("POST", CREATE_URL, (200, {"success": True, "data": {}}))

    with pytest.raises(SubmissionError, match="no job id"):
        await submitter.submit_create({}, "user-1")


@pytest.mark.asyncio
async def test_submit_create_is_not_retried(submitter, services):
    services.on("POST", CREATE_URL, httpx.ConnectError("connection refused"), job_started("J1"))

    with pytest.raises(SubmissionError):
        await submitter.submit_create({}, "user-1")
    assert services.count("POST", CREATE_URL) == 1


@pytest.mark.asyncio
async def test_submit_update_puts_to_listing(submitter, services):
    services.on("PUT", f"{JOBS}/listings/L1", job_started("J2"))

    handle = await submitter.submit_update("L1", {"title": "y"}, "user-1")

    assert handle.job_id == "J2"


@pytest.mark.asyncio
async def test_cancel_is_best_effort(submitter, services):
    services.on("DELETE", job_url("J1"), (200, {"success": True}))
    services.on("DELETE", job_url("J2"), (409, {"success": False, "message": "already completed"}))

    assert await submitter.cancel("J1", "user-1") is True
    assert await submitter.cancel("J2", "user-1") is False
