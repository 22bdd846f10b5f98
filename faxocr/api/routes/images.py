"""Serves page images by their process-local handle."""

from fastapi import APIRouter, Depends, Response

from faxocr.api.schemas import ProblemDetail
from faxocr.core.dependencies import get_image_handles
from faxocr.pipeline.core.exceptions import ResourceNotFoundError
from faxocr.pipeline.storage.handles import ImageHandleRegistry

router = APIRouter(prefix="/v1/images", tags=["images"])


@router.get(
    "/{handle}",
    response_class=Response,
    responses={404: {"description": "Unknown or released handle", "model": ProblemDetail}},
)
async def get_image(handle: str, handles: ImageHandleRegistry = Depends(get_image_handles)):
    """Serve the page image behind an item's ``source_image_url`` handle."""
    blob = handles.get(handle)
    if blob is None:
        raise ResourceNotFoundError("Image", handle)
    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={"Cache-Control": "private, max-age=3600"},
    )
