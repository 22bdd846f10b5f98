"""Job records and the uploaded source document."""

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from faxocr.pipeline.core.config import MSG_QUEUED


def now_millis() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


class JobStatus(str, Enum):
    QUEUED = "queued"
    CONVERTING = "converting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.ERROR})


class Job(BaseModel):
    """Processing unit for one uploaded source document.

    ``processed_pages`` never exceeds ``total_pages`` once the page count is
    known. ``failed_pages`` holds 1-based page numbers whose extraction failed
    during the latest run.
    """

    id: str = Field(default_factory=new_id)
    file_name: str
    content_type: str
    status: JobStatus = JobStatus.QUEUED
    total_pages: int = 0
    processed_pages: int = 0
    progress_message: str = MSG_QUEUED
    error_message: Optional[str] = None
    added_at: int = Field(default_factory=now_millis)
    template_id: Optional[str] = None
    failed_pages: list[int] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_dynamic(self) -> bool:
        return self.template_id is not None


@dataclass(frozen=True)
class SourceDocument:
    """Uploaded bytes plus the declared content type."""

    file_name: str
    content_type: str
    data: bytes
