"""FastAPI dependency injection functions.

Services are built once in the lifespan and stored on ``app.state``.
"""

from fastapi import HTTPException, Request, status

from faxocr.pipeline.orchestrator import JobOrchestrator
from faxocr.pipeline.reconciliation import ItemWorkingSet
from faxocr.pipeline.storage.handles import ImageHandleRegistry
from faxocr.pipeline.templates.store import TemplateStore


def _from_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} unavailable",
        )
    return service


async def get_orchestrator(request: Request) -> JobOrchestrator:
    """Get job orchestrator from app state.

    Raises:
        HTTPException: 503 if the pipeline failed to start
    """
    return _from_state(request, "orchestrator", "Job pipeline")


async def get_working_set(request: Request) -> ItemWorkingSet:
    return _from_state(request, "working_set", "Item store")


async def get_template_store(request: Request) -> TemplateStore:
    return _from_state(request, "template_store", "Template store")


async def get_image_handles(request: Request) -> ImageHandleRegistry:
    return _from_state(request, "image_handles", "Image store")
