"""FastAPI application for the candidate-sync webhook service."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from candidate_sync.clients.crm_client import CRMClient
from candidate_sync.clients.postgres_client import PostgresClient
from candidate_sync.pipeline.pipeline import IngestPipeline
from candidate_sync.repository import CandidateRepository

from .config import get_settings
from .routes.health import router as health_router
from .routes.webhooks import router as webhooks_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize persistent clients at startup, clean up at shutdown."""
    settings = get_settings()

    logger.info("lifespan.startup")

    postgres = PostgresClient(settings.DATABASE_URL)
    await postgres.connect()
    if not await postgres.verify_connectivity():
        logger.warning("lifespan.postgres_connectivity_failed")

    # CRM side channel (optional)
    crm: CRMClient | None = None
    if settings.CRM_API_BASE_URL and settings.CRM_API_KEY:
        crm = CRMClient(base_url=settings.CRM_API_BASE_URL, api_key=settings.CRM_API_KEY)
        logger.info("lifespan.crm_ready")

    # Store on app.state for request handlers
    app.state.postgres = postgres
    app.state.crm = crm
    app.state.pipeline = IngestPipeline(
        CandidateRepository(postgres),
        crm_client=crm,
        debounce_window_seconds=settings.DEBOUNCE_WINDOW_SECONDS,
    )

    logger.info("lifespan.ready")
    yield

    # Shutdown
    logger.info("lifespan.shutdown")
    await postgres.close()
    if crm is not None:
        await crm.close()


app = FastAPI(
    title="candidate-sync",
    description="CRM webhook consumer: reconciles candidates, stage history and ownership",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(webhooks_router)
