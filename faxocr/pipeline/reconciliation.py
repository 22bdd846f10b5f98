"""In-memory working set of extracted items.

Owns two invariants:

* fixed items always satisfy ``calculated_total == sum(quantities)`` and
  ``is_correct == (calculated_total == reported_total)``; every patch is
  re-validated through ``OCRItem`` which recomputes both fields;
* every image handle attached to an item is released when that item leaves
  the working set (job delete, retry purge, page reprocess purge, bulk delete).

Every mutation is written through to the persistence gateway right away.
"""

import logging
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from faxocr.pipeline.core.exceptions import ResourceNotFoundError, ValidationError
from faxocr.pipeline.models.items import DynamicOCRItem, OCRItem, parse_item
from faxocr.pipeline.storage.gateway import PersistenceGateway
from faxocr.pipeline.storage.handles import ImageHandleRegistry

logger = logging.getLogger(__name__)

AnyItem = Union[OCRItem, DynamicOCRItem]

IMMUTABLE_FIELDS = frozenset(
    {"id", "kind", "seq", "job_id", "template_id", "page_number", "source_file"}
)
IGNORED_FIELDS = frozenset({"source_image_url", "calculated_total", "is_correct"})


class ItemWorkingSet:
    def __init__(self, gateway: PersistenceGateway, handles: ImageHandleRegistry):
        self.gateway = gateway
        self.handles = handles
        self._items: dict[str, AnyItem] = {}
        self._seq = 0

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def load(self, items: Iterable[AnyItem]) -> None:
        """Replace the working set with restored items (handles already attached)."""
        self.release_all()
        self._items = {}
        for item in items:
            self._items[item.id] = item
            self._seq = max(self._seq, item.seq)

    def get(self, item_id: str) -> AnyItem:
        item = self._items.get(item_id)
        if item is None:
            raise ResourceNotFoundError("Item", item_id)
        return item

    def list_items(self, job_id: Optional[str] = None) -> list[AnyItem]:
        if job_id is None:
            return list(self._items.values())
        return [i for i in self._items.values() if i.job_id == job_id]

    async def add_items(self, items: list[AnyItem]) -> None:
        for item in items:
            self._seq += 1
            item.seq = self._seq
            self._items[item.id] = item
        if items:
            await self.gateway.save_items(items)

    async def update_item(self, item_id: str, patch: dict[str, Any]) -> AnyItem:
        """Apply a field patch and persist the result.

        For dynamic items a ``data`` patch is merged key by key. For fixed items
        the derived totals are recomputed on every update.

        Raises:
            ResourceNotFoundError: Unknown item id
            ValidationError: Patch touches an immutable field or fails validation
        """
        current = self.get(item_id)

        blocked = sorted(k for k in patch if k in IMMUTABLE_FIELDS)
        if blocked:
            raise ValidationError(
                message=f"Field cannot be modified: {', '.join(blocked)}",
                field=blocked[0],
            )

        changes = {k: v for k, v in patch.items() if k not in IGNORED_FIELDS}
        if isinstance(current, DynamicOCRItem) and isinstance(changes.get("data"), dict):
            changes["data"] = {**current.data, **changes["data"]}

        payload = {**current.model_dump(exclude=set(IGNORED_FIELDS)), **changes}
        try:
            updated = parse_item(payload)
        except PydanticValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            field = ".".join(str(part) for part in first.get("loc", ()) if part != current.kind)
            raise ValidationError(
                message=first.get("msg", "Invalid item patch"),
                field=field or "item",
            ) from exc

        updated.source_image_url = current.source_image_url
        self._items[item_id] = updated
        await self.gateway.save_item(updated)

        if isinstance(updated, OCRItem) and isinstance(current, OCRItem):
            if updated.is_correct != current.is_correct:
                logger.info(
                    "Item verification changed: %s -> %s",
                    current.is_correct,
                    updated.is_correct,
                    extra={"item_id": item_id, "job_id": updated.job_id},
                )
        return updated

    def _evict(self, items: list[AnyItem]) -> list[str]:
        ids = []
        for item in items:
            self._items.pop(item.id, None)
            self.handles.release(item.source_image_url)
            item.source_image_url = None
            ids.append(item.id)
        return ids

    async def delete_by_job(self, job_id: str, persist: bool = True) -> int:
        """Remove a job's items. ``persist=False`` when storage was already cascaded."""
        removed = self._evict(self.list_items(job_id))
        if persist:
            await self.gateway.delete_items_by_job_id(job_id)
        return len(removed)

    async def delete_by_ids(self, item_ids: Iterable[str]) -> int:
        wanted = set(item_ids)
        removed = self._evict([i for i in self._items.values() if i.id in wanted])
        if wanted:
            await self.gateway.delete_items_by_ids(sorted(wanted))
        return len(removed)

    async def delete_by_page(self, job_id: str, page_number: int) -> int:
        targets = [
            i.id
            for i in self._items.values()
            if i.job_id == job_id and i.page_number == page_number
        ]
        if not targets:
            return 0
        return await self.delete_by_ids(targets)

    def release_all(self) -> None:
        for item in self._items.values():
            self.handles.release(item.source_image_url)
            item.source_image_url = None

    def clear(self) -> None:
        self.release_all()
        self._items = {}
