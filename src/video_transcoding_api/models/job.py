from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field


class Status(str, Enum):
    queued = "queued"
    started = "started"
    finished = "finished"
    failed = "failed"
    canceled = "canceled"
    archived = "archived"

    @property
    def is_terminal(self) -> bool:
        return self not in (Status.queued, Status.started)


class JobSpec(BaseModel):
    """Generic description of a transcode job: one source, ordered presets."""

    source: str
    presets: Sequence[str] = Field(default_factory=list)


class StatusDetail(BaseModel):
    """Diagnostic fields reported by a backend.

    Every field except ``percent_complete`` is optional and stays ``None``
    unless the backend actually supplied a value for it.
    """

    model_config = ConfigDict(frozen=True)

    native_status: str | None = None
    percent_complete: str = "0"
    submitted: datetime | None = None
    start_time: datetime | None = None
    complete_time: datetime | None = None
    errored_time: datetime | None = None
    error_messages: Sequence[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class JobStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_name: str
    provider_job_id: str
    status: Status
    status_detail: StatusDetail = Field(default_factory=StatusDetail)


class TranscodeJob(BaseModel):
    id: str
    provider_name: str
    provider_job_id: str
    source: str
    presets: Sequence[str] = Field(default_factory=list)
    status: Status = Status.queued
    status_detail: StatusDetail = Field(default_factory=StatusDetail)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = ["JobSpec", "JobStatus", "Status", "StatusDetail", "TranscodeJob"]
