"""Template persistence, duplication and JSON import/export.

Templates live as one JSON file each under ``templates/`` in the storage
root, in their camelCase exchange form.
"""

import asyncio
import functools
import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from faxocr.pipeline.core.config import TEMPLATES_DIR
from faxocr.pipeline.core.exceptions import (
    PersistenceError,
    ResourceNotFoundError,
    TemplateValidationError,
)
from faxocr.pipeline.models.job import now_millis
from faxocr.pipeline.models.template import Template
from faxocr.pipeline.utils.io_utils import read_json, write_json

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


def export_template(template: Template) -> str:
    """Pretty-printed JSON (2-space indent, non-ASCII kept)."""
    return json.dumps(template.export_dict(), ensure_ascii=False, indent=2)


def parse_template_json(raw: Union[str, bytes]) -> Template:
    """Validate an exported template document.

    Raises:
        TemplateValidationError: Not JSON, missing id/name, fields not a list,
            or a field definition that does not validate
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise TemplateValidationError(f"インポートに失敗しました: JSONではありません ({exc})") from exc

    if (
        not isinstance(payload, dict)
        or not payload.get("id")
        or not payload.get("name")
        or not isinstance(payload.get("fields"), list)
    ):
        raise TemplateValidationError("インポートに失敗しました: 無効なテンプレート形式です")

    try:
        return Template.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "template"
        raise TemplateValidationError(
            f"インポートに失敗しました: {first.get('msg', 'invalid template')}",
            field=field,
        ) from exc


class TemplateStore:
    def __init__(self, root: Union[str, Path]):
        self.dir = Path(root) / TEMPLATES_DIR
        self._write_lock = asyncio.Lock()

    def _path(self, template_id: str) -> Path:
        if not _SAFE_ID.match(template_id) or template_id in {".", ".."}:
            raise TemplateValidationError(
                f"Invalid template id: {template_id!r}", field="id"
            )
        return self.dir / f"{template_id}.json"

    async def _run(self, operation: str, func: Callable[..., Any], *args) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args))
        except (OSError, ValueError, PydanticValidationError) as exc:
            raise PersistenceError(operation, exc) from exc

    def _read_sync(self, path: Path) -> Optional[Template]:
        if not path.exists():
            return None
        return Template.model_validate(read_json(path))

    def _list_sync(self) -> list[Template]:
        if not self.dir.exists():
            return []
        return [Template.model_validate(read_json(p)) for p in sorted(self.dir.glob("*.json"))]

    async def list_templates(self) -> list[Template]:
        templates = await self._run("list_templates", self._list_sync)
        return sorted(templates, key=lambda t: (t.created_at, t.id))

    async def get_template(self, template_id: str) -> Optional[Template]:
        return await self._run("get_template", self._read_sync, self._path(template_id))

    async def require_template(self, template_id: str) -> Template:
        template = await self.get_template(template_id)
        if template is None:
            raise ResourceNotFoundError("Template", template_id)
        return template

    async def save_template(self, template: Template) -> Template:
        """Persist a template, stamping ``updated_at`` and first ``created_at``."""
        now = now_millis()
        stamped = template.model_copy(
            update={"updated_at": now, "created_at": template.created_at or now}
        )
        path = self._path(stamped.id)
        async with self._write_lock:
            await self._run("save_template", write_json, path, stamped.export_dict())
        logger.info("Template saved", extra={"template_id": stamped.id})
        return stamped

    async def delete_template(self, template_id: str) -> None:
        path = self._path(template_id)
        async with self._write_lock:
            existed = await self._run("delete_template", self._unlink_sync, path)
        if not existed:
            raise ResourceNotFoundError("Template", template_id)

    @staticmethod
    def _unlink_sync(path: Path) -> bool:
        if not path.exists():
            return False
        path.unlink()
        return True

    async def duplicate_template(
        self, template_id: str, new_name: Optional[str] = None
    ) -> Template:
        original = await self.require_template(template_id)
        now = now_millis()
        copy = original.model_copy(
            update={
                "id": f"{original.id}-copy-{now}",
                "name": new_name or f"{original.name} (コピー)",
                "created_at": now,
                "updated_at": now,
            },
            deep=True,
        )
        return await self.save_template(copy)

    async def export_template(self, template_id: str) -> str:
        return export_template(await self.require_template(template_id))

    async def import_template(self, raw: Union[str, bytes]) -> Template:
        """Validate and store an exported template.

        On id collision the imported copy is renamed (``-imported-{millis}`` id
        suffix, ``(インポート)`` name suffix) instead of overwriting.

        Raises:
            TemplateValidationError: Before anything is written
        """
        template = parse_template_json(raw)
        self._path(template.id)

        if await self.get_template(template.id) is not None:
            original_id = template.id
            template = template.model_copy(
                update={
                    "id": f"{template.id}-imported-{now_millis()}",
                    "name": f"{template.name} (インポート)",
                }
            )
            logger.info(
                "Imported template id collided, renamed %s -> %s",
                original_id,
                template.id,
                extra={"template_id": template.id},
            )
        return await self.save_template(template)
