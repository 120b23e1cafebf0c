"""Push event, subscription message and webhook payload schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from codereel.schemas.base import CamelModel
from codereel.schemas.job import JobStatus


class ProgressEvent(CamelModel):
    type: Literal["progress"] = "progress"
    job_id: str
    progress: int
    status: JobStatus
    message: str | None = None
    timestamp: datetime


class CompletedEvent(CamelModel):
    type: Literal["completed"] = "completed"
    job_id: str
    result_ref: str
    duration: int | None = None
    timestamp: datetime


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    job_id: str
    error: str
    timestamp: datetime


JobEvent = ProgressEvent | CompletedEvent | ErrorEvent


class SubscriptionMessage(CamelModel):
    action: Literal["subscribe", "unsubscribe"]
    job_id: str = Field(min_length=1)


class SubscriptionAck(CamelModel):
    type: Literal["subscribed", "unsubscribed"]
    job_id: str


class WebhookPayload(CamelModel):
    """Body of the terminal-outcome webhook; field order is the serialization order."""

    job_id: str
    status: JobStatus
    result_ref: str | None = None
    duration: int | None = None
    error: str | None = None
    timestamp: datetime
