"""Extracted item review, correction and export endpoints."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response

from faxocr.api.schemas import (
    ItemDeleteResponse,
    ItemListResponse,
    ItemPayload,
    ItemUpdateResponse,
    ProblemDetail,
)
from faxocr.core.dependencies import get_template_store, get_working_set
from faxocr.pipeline.exporters.csv_export import CsvExport, export_fixed_csv
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem
from faxocr.pipeline.processors.schema_generator import validate_data
from faxocr.pipeline.reconciliation import ItemWorkingSet
from faxocr.pipeline.templates.store import TemplateStore

router = APIRouter(prefix="/v1/items", tags=["items"])
logger = logging.getLogger(__name__)

_ERRORS = {
    404: {"description": "Not Found", "model": ProblemDetail},
    422: {"description": "Validation Error", "model": ProblemDetail},
}


def csv_response(export: CsvExport) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("", response_model=ItemListResponse)
async def list_items(
    job_id: Optional[str] = Query(None, description="Only items of this job"),
    working_set: ItemWorkingSet = Depends(get_working_set),
):
    items = sorted(working_set.list_items(job_id), key=lambda i: i.seq)
    return ItemListResponse(items=items)


@router.get("/export.csv", response_class=Response)
async def export_items_csv(
    job_id: Optional[str] = Query(None),
    working_set: ItemWorkingSet = Depends(get_working_set),
):
    """Fixed-schema items as CSV, one row per distribution."""
    items = [
        i
        for i in sorted(working_set.list_items(job_id), key=lambda i: i.seq)
        if isinstance(i, OCRItem)
    ]
    export = export_fixed_csv(items)
    logger.info("CSV export: %d rows", export.row_count, extra={"job_id": job_id})
    return csv_response(export)


@router.delete("", response_model=ItemDeleteResponse)
async def delete_items(
    ids: list[str] = Query(..., description="Item ids to delete"),
    working_set: ItemWorkingSet = Depends(get_working_set),
):
    return ItemDeleteResponse(deleted=await working_set.delete_by_ids(ids))


@router.get("/{item_id}", response_model=ItemPayload, responses=_ERRORS)
async def get_item(item_id: str, working_set: ItemWorkingSet = Depends(get_working_set)):
    return working_set.get(item_id)


@router.patch("/{item_id}", response_model=ItemUpdateResponse, responses=_ERRORS)
async def update_item(
    item_id: str,
    patch: dict[str, Any] = Body(..., description="Fields to change"),
    working_set: ItemWorkingSet = Depends(get_working_set),
    templates: TemplateStore = Depends(get_template_store),
):
    """Apply a correction. Dynamic items are checked against their template.

    Template rule violations are reported, not rejected.
    """
    item = await working_set.update_item(item_id, patch)

    errors: list[str] = []
    if isinstance(item, DynamicOCRItem):
        template = await templates.get_template(item.template_id)
        if template is not None:
            _, errors = validate_data(item.data, template)
    return ItemUpdateResponse(item=item, errors=errors)
