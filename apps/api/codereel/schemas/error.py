"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from codereel.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID"]
    message: str
    details: TransitionErrorDetails


class InsufficientCreditErrorDetails(BaseModel):
    required: int


class InsufficientCreditError(BaseModel):
    code: Literal["INSUFFICIENT_CREDIT"]
    message: str
    details: InsufficientCreditErrorDetails


class InvalidInputError(BaseModel):
    code: Literal["INVALID_INPUT"]
    message: str
    details: dict[str, Any] | None = None


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str
