from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobHandle(BaseModel):
    job_id: str = Field(min_length=1)
    status: str = "queued"


class JobSnapshot(BaseModel):
    """
    Unified view of one status answer, whichever endpoint generation produced it.
    `status` keeps unknown strings as-is; anything non-terminal counts as in flight.
    """
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: str
    progress: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    source: str = "primary"  # "primary" | "legacy"

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.completed.value

    @property
    def is_failed(self) -> bool:
        return self.status == JobStatus.failed.value

    @property
    def listing_id(self) -> str | None:
        if not self.result:
            return None
        lid = self.result.get("listingId") or self.result.get("listing_id")
        if not lid and isinstance(self.result.get("listing"), dict):
            lid = self.result["listing"].get("id")
        return str(lid) if lid else None


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    attempt: int
    status: str
    progress: int | None = None
    listing_id: str | None = None  # only on the "completed" event


class CategoryResolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: int | None = None
    category_path: list[int] | None = None

    @classmethod
    def empty(cls) -> "CategoryResolution":
        return cls()
