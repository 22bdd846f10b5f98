import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from faxocr.core.settings import gemini_settings, pipeline_settings, storage_settings
from faxocr.pipeline.clients.extraction_client import ExtractionClient
from faxocr.pipeline.clients.gemini_client import GeminiVisionTransport
from faxocr.pipeline.orchestrator import JobOrchestrator
from faxocr.pipeline.processors.rasterizer import PageRasterizer
from faxocr.pipeline.reconciliation import ItemWorkingSet
from faxocr.pipeline.resilience import AdmissionQueue, RetryConfig
from faxocr.pipeline.storage.gateway import PersistenceGateway
from faxocr.pipeline.storage.handles import ImageHandleRegistry
from faxocr.pipeline.templates.store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    handles: ImageHandleRegistry
    gateway: PersistenceGateway
    templates: TemplateStore
    working_set: ItemWorkingSet
    rasterizer: PageRasterizer
    transport: GeminiVisionTransport
    admission: AdmissionQueue
    orchestrator: JobOrchestrator


def build_services() -> Services:
    """Wire the pipeline from environment settings."""
    storage_dir = storage_settings.storage_dir
    handles = ImageHandleRegistry()
    gateway = PersistenceGateway(storage_dir, handles)
    templates = TemplateStore(storage_dir)
    working_set = ItemWorkingSet(gateway, handles)
    rasterizer = PageRasterizer(
        max_dimension=pipeline_settings.RASTER_MAX_DIMENSION,
        quality=pipeline_settings.RASTER_QUALITY,
        max_pages=pipeline_settings.MAX_PDF_PAGES,
        max_workers=pipeline_settings.RASTER_WORKERS,
    )
    transport = GeminiVisionTransport(
        api_key=gemini_settings.GEMINI_API_KEY.get_secret_value(),
        model=gemini_settings.GEMINI_MODEL,
        base_url=gemini_settings.GEMINI_BASE_URL,
        timeout=gemini_settings.GEMINI_TIMEOUT_SECONDS,
        retry_config=RetryConfig(max_attempts=gemini_settings.GEMINI_MAX_ATTEMPTS),
    )
    admission = AdmissionQueue(pipeline_settings.EXTRACTION_CONCURRENCY)
    orchestrator = JobOrchestrator(
        gateway=gateway,
        working_set=working_set,
        rasterizer=rasterizer,
        extraction=ExtractionClient(transport, admission),
        templates=templates,
        handles=handles,
        resume_interrupted=pipeline_settings.RESUME_INTERRUPTED_JOBS,
    )
    return Services(
        handles=handles,
        gateway=gateway,
        templates=templates,
        working_set=working_set,
        rasterizer=rasterizer,
        transport=transport,
        admission=admission,
        orchestrator=orchestrator,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""

    logger.info("Initializing job pipeline...")
    services = build_services()
    await services.orchestrator.restore()

    app.state.services = services
    app.state.orchestrator = services.orchestrator
    app.state.working_set = services.working_set
    app.state.template_store = services.templates
    app.state.image_handles = services.handles
    app.state.admission = services.admission
    logger.info(
        "Job pipeline ready",
        extra={"service": "faxocr"},
    )

    yield

    logger.info("Shutting down job pipeline...")
    await services.orchestrator.shutdown()
    await services.transport.aclose()
    services.rasterizer.shutdown()
    logger.info("Job pipeline stopped")
