import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from listing_pipeline.api.v1.router import router as v1_router
from listing_pipeline.core.config import settings
from listing_pipeline.core.db import SessionLocal
from listing_pipeline.core.telemetry import setup_telemetry
from listing_pipeline.services.http_client import ServiceHttpClient
from listing_pipeline.services.pipeline import build_pipeline


log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level.upper())
    http = ServiceHttpClient(timeout_seconds=settings.submit_timeout_seconds)
    app.state.pipeline = build_pipeline(settings, http=http, session_factory=SessionLocal)
    log.info("listing pipeline ready: jobs=%s uploads=%s", settings.job_service_url, settings.upload_service_url)
    try:
        yield
    finally:
        await http.aclose()


app = FastAPI(title="Listing Pipeline API", version="0.1.0", lifespan=lifespan)

setup_telemetry(app)
app.include_router(v1_router)
