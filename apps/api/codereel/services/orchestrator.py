"""Job orchestrator: admission, job creation and hand-off to the background queue."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from codereel.adapters.credits import CreditLedger
from codereel.core.logging_safety import safe_log_identifier
from codereel.errors import AdmissionError, ApiError, not_found_error
from codereel.repositories.memory import JobRecord
from codereel.schemas.job import (
    JobKind,
    JobStatus,
    JobStatusView,
    OwnerJobList,
    SubmitJobOptions,
    SubmitJobResponse,
)
from codereel.services.job_queue import JobQueue
from codereel.services.lifecycle import JobLifecycleManager

logger = logging.getLogger(__name__)

_TITLE_WORDS = 5


def derive_title(script: str, options: SubmitJobOptions) -> str:
    if options.title and options.title.strip():
        return options.title.strip()
    words = script.split()
    title = " ".join(words[:_TITLE_WORDS])
    return f"{title}..." if len(words) > _TITLE_WORDS else title


class JobOrchestrator:
    def __init__(
        self,
        *,
        lifecycle: JobLifecycleManager,
        ledger: CreditLedger,
        queue: JobQueue,
        costs: dict[JobKind, int],
    ) -> None:
        self._lifecycle = lifecycle
        self._ledger = ledger
        self._queue = queue
        self._costs = dict(costs)

    def cost_for(self, kind: JobKind) -> int:
        return self._costs[kind]

    async def submit(
        self,
        *,
        owner_id: str,
        script: str,
        kind: JobKind | str,
        options: SubmitJobOptions | dict[str, Any] | None = None,
    ) -> SubmitJobResponse:
        owner_id, script, job_kind, job_options = self._validate(owner_id, script, kind, options)
        safe_owner_id = safe_log_identifier(owner_id, prefix="oid")
        cost = self.cost_for(job_kind)

        remaining = await self._ledger.reserve_credit(owner_id, cost)
        if remaining is None:
            logger.info("job.rejected owner_id=%s kind=%s code=INSUFFICIENT_CREDIT", safe_owner_id, job_kind.value)
            raise AdmissionError(
                status_code=402,
                code="INSUFFICIENT_CREDIT",
                message=f"Insufficient credits for {job_kind.value} generation",
                details={"required": cost},
            )

        record = self._lifecycle.create_job(
            owner_id=owner_id,
            script=script,
            title=derive_title(script, job_options),
            kind=job_kind,
            options=job_options,
        )
        self._queue.enqueue(record.id)
        logger.info(
            "job.submitted job_id=%s owner_id=%s kind=%s cost=%s backlog=%s",
            record.id,
            safe_owner_id,
            job_kind.value,
            cost,
            self._queue.backlog,
        )

        return SubmitJobResponse(
            job_id=record.id,
            status=record.status,
            title=record.title,
            credits_deducted=cost,
            remaining_credits=remaining,
        )

    def get_status(self, job_id: str) -> JobStatusView:
        record = self._lifecycle.get_job(job_id)
        if record is None:
            raise not_found_error()
        return _status_view(record)

    def list_owner_jobs(self, owner_id: str) -> OwnerJobList:
        owner_id = (owner_id or "").strip()
        if not owner_id:
            raise ApiError(status_code=400, code="INVALID_INPUT", message="ownerId is required", details={"field": "ownerId"})
        views = [_status_view(record) for record in self._lifecycle.list_jobs(owner_id)]
        return OwnerJobList(owner_id=owner_id, count=len(views), jobs=views)

    @staticmethod
    def _validate(
        owner_id: str,
        script: str,
        kind: JobKind | str,
        options: SubmitJobOptions | dict[str, Any] | None,
    ) -> tuple[str, str, JobKind, SubmitJobOptions]:
        normalized_owner = (owner_id or "").strip() if isinstance(owner_id, str) else ""
        if not normalized_owner:
            raise _invalid_input("ownerId is required", field="ownerId")
        if not isinstance(script, str) or not script.strip():
            raise _invalid_input("script is required", field="script")

        try:
            job_kind = JobKind(kind)
        except ValueError as exc:
            raise _invalid_input(f"Unsupported job kind: {kind}", field="kind") from exc

        if options is None:
            job_options = SubmitJobOptions()
        elif isinstance(options, SubmitJobOptions):
            job_options = options
        else:
            try:
                job_options = SubmitJobOptions.model_validate(options)
            except ValidationError as exc:
                raise _invalid_input("Invalid job options", field="options") from exc

        return normalized_owner, script, job_kind, job_options


def _invalid_input(message: str, *, field: str) -> AdmissionError:
    return AdmissionError(status_code=400, code="INVALID_INPUT", message=message, details={"field": field})


def _status_view(record: JobRecord) -> JobStatusView:
    return JobStatusView(
        job_id=record.id,
        kind=record.kind,
        title=record.title,
        status=record.status,
        progress=record.progress,
        ready=record.status is JobStatus.COMPLETED,
        result_ref=record.result_ref,
        duration=record.duration_seconds,
        error=record.error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


__all__ = ["JobOrchestrator", "derive_title"]
