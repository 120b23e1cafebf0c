"""Job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import Field

from codereel.schemas.base import CamelModel


class JobStatus(str, Enum):
    QUEUED = "queued"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, Enum):
    VIDEO = "video"
    ANIMATION = "animation"
    AUDIO = "audio"


RenderVersion = Literal["v1", "v2"]


class SubmitJobOptions(CamelModel):
    title: str | None = Field(default=None, max_length=200)
    render_version: RenderVersion = "v2"


class SubmitJobRequest(CamelModel):
    owner_id: str
    script: str
    kind: JobKind = JobKind.VIDEO
    options: SubmitJobOptions = Field(default_factory=SubmitJobOptions)


class SubmitJobResponse(CamelModel):
    job_id: str
    status: JobStatus
    title: str
    credits_deducted: int
    remaining_credits: int


class JobStatusView(CamelModel):
    job_id: str
    kind: JobKind
    title: str
    status: JobStatus
    progress: int
    ready: bool
    result_ref: str | None = None
    duration: int | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class OwnerJobList(CamelModel):
    owner_id: str
    count: int
    jobs: list[JobStatusView]
