"""Process-local handles to page image bytes.

Items reference their page image through an opaque handle that resolves
to the bytes held in this registry. Handles are never persisted. They are
reissued whenever items are loaded from storage, and whoever removes an
item from the working set releases its handle.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from faxocr.pipeline.core.config import HANDLE_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageBlob:
    data: bytes
    content_type: str


class ImageHandleRegistry:
    """In-memory map from handle to image bytes."""

    def __init__(self):
        self._blobs: dict[str, ImageBlob] = {}

    def create(self, data: bytes, content_type: str) -> str:
        handle = f"{HANDLE_PREFIX}{uuid.uuid4().hex}"
        self._blobs[handle] = ImageBlob(data=data, content_type=content_type)
        return handle

    def get(self, handle: str) -> Optional[ImageBlob]:
        return self._blobs.get(handle)

    def release(self, handle: Optional[str]) -> bool:
        """Drop a handle. Returns False for unknown or empty handles."""
        if not handle:
            return False
        return self._blobs.pop(handle, None) is not None

    def release_all(self) -> int:
        count = len(self._blobs)
        self._blobs.clear()
        if count:
            logger.info("Released %d image handles", count)
        return count

    def __contains__(self, handle: object) -> bool:
        return handle in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
