import httpx
import pytest

from listing_pipeline.services.errors import ImageStagingError
from listing_pipeline.services.images import ImagePayload
from listing_pipeline.services.staging import ImageStager

from fixtures_seed import UPLOAD_URL, UPLOADS, staged


def _payloads(*names: str) -> list[ImagePayload]:
    return [ImagePayload(filename=n, content_type="image/jpeg", data=f"bytes-{n}".encode()) for n in names]


@pytest.fixture
def stager(http) -> ImageStager:
    return ImageStager(http, upload_service_url=UPLOADS, timeout_seconds=5.0)


@pytest.mark.asyncio
async def test_no_payloads_means_no_upload(stager, services):
    assert await stager.stage([], "user-1") == []
    assert services.calls == []


@pytest.mark.asyncio
async def test_stage_uploads_all_images_in_one_request(stager, services):
    services.on("POST", UPLOAD_URL, staged("https://cdn.test/a.jpg", "https://cdn.test/b.jpg"))

    urls = await stager.stage(_payloads("a.jpg", "b.jpg"), "user-1")

    assert urls == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]
    (req,) = services.requests_to("POST", UPLOAD_URL)
    assert req.headers["x-user-id"] == "user-1"
    assert req.headers["content-type"].startswith("multipart/form-data")
    body = req.content
    assert body.count(b'name="images"') == 2
    assert body.index(b'filename="a.jpg"') < body.index(b'filename="b.jpg"')


@pytest.mark.asyncio
async def test_partial_upload_is_an_error(stager, services):
    services.on("POST", UPLOAD_URL, staged("https://cdn.test/a.jpg"))

    with pytest.raises(ImageStagingError, match="expected 2 urls, got 1"):
        await stager.stage(_payloads("a.jpg", "b.jpg"), "user-1")


@pytest.mark.asyncio
async def test_rejected_upload_carries_server_message(stager, services):
    services.on("POST", UPLOAD_URL, (200, {"success": False, "message": "File too large"}))

    with pytest.raises(ImageStagingError, match="File too large"):
        await stager.stage(_payloads("a.jpg"), "user-1")


@pytest.mark.asyncio
async def test_http_error_is_staging_error(stager, services):
    services.on("POST", UPLOAD_URL, (500, {"error": "disk full"}))

    with pytest.raises(ImageStagingError, match="disk full"):
        await stager.stage(_payloads("a.jpg"), "user-1")


@pytest.mark.asyncio
async def test_connection_error_is_staging_error(stager, services):
    services.on("POST", UPLOAD_URL, httpx.ConnectError("connection refused"))

    with pytest.raises(ImageStagingError):
        await stager.stage(_payloads("a.jpg"), "user-1")
    assert services.count("POST", UPLOAD_URL) == 1
