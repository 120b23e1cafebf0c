"""Job lifecycle manager: the single writer of job state."""

from __future__ import annotations

import asyncio
import dataclasses
import logging

from codereel.core.logging_safety import safe_log_identifier
from codereel.domain.job_fsm import is_terminal
from codereel.errors import not_found_error
from codereel.repositories.memory import InMemoryStore, JobRecord
from codereel.schemas.events import CompletedEvent, ErrorEvent, ProgressEvent, WebhookPayload
from codereel.schemas.job import JobKind, JobStatus, SubmitJobOptions
from codereel.services.notifications import NotificationHub
from codereel.services.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)


def terminal_event(record: JobRecord) -> CompletedEvent | ErrorEvent:
    """Push event describing a job's terminal outcome."""
    if record.status is JobStatus.COMPLETED:
        return CompletedEvent(
            job_id=record.id,
            result_ref=record.result_ref,
            duration=record.duration_seconds,
            timestamp=record.updated_at,
        )
    if record.status is JobStatus.FAILED:
        return ErrorEvent(job_id=record.id, error=record.error, timestamp=record.updated_at)
    raise ValueError(f"job {record.id} is not terminal")


class JobLifecycleManager:
    """Owns job records, applies FSM transitions and emits the matching events.

    Every write for a job runs under that job's lock, so the events it
    publishes reach subscribers in write order and the first terminal write
    wins. Later writes against a terminal job are logged no-ops.
    """

    def __init__(
        self,
        store: InMemoryStore,
        hub: NotificationHub,
        webhooks: WebhookDispatcher | None = None,
    ) -> None:
        self._store = store
        self._hub = hub
        self._webhooks = webhooks
        self._locks: dict[str, asyncio.Lock] = {}

    def create_job(
        self,
        *,
        owner_id: str,
        script: str,
        title: str,
        kind: JobKind,
        options: SubmitJobOptions,
    ) -> JobRecord:
        record = self._store.create_job(owner_id=owner_id, script=script, title=title, kind=kind, options=options)
        logger.info(
            "job.created job_id=%s owner_id=%s kind=%s",
            record.id,
            safe_log_identifier(owner_id, prefix="oid"),
            kind.value,
        )
        return dataclasses.replace(record)

    def get_job(self, job_id: str) -> JobRecord | None:
        """Return a detached copy; callers never hold the live record."""
        record = self._store.get_job(job_id)
        if record is None:
            return None
        return dataclasses.replace(record)

    def list_jobs(self, owner_id: str) -> list[JobRecord]:
        """Detached copies of an owner's jobs, newest first."""
        return [dataclasses.replace(record) for record in self._store.list_jobs_for_owner(owner_id)]

    async def mark_generating(self, job_id: str) -> bool:
        async with self._lock_for(job_id):
            record = self._require(job_id)
            if self._ignore_terminal(record, attempted="generating"):
                return False

            self._store.transition_job_status(job=record, new_status=JobStatus.GENERATING)
            logger.info("job.generating job_id=%s", job_id)
            await self._hub.publish(
                job_id,
                ProgressEvent(
                    job_id=job_id,
                    progress=record.progress,
                    status=record.status,
                    message="Generating...",
                    timestamp=record.updated_at,
                ),
            )
            return True

    async def update_progress(self, job_id: str, progress: int, message: str | None = None) -> bool:
        if not 0 <= progress <= 100:
            raise ValueError(f"progress must be within 0..100, got {progress}")

        async with self._lock_for(job_id):
            record = self._require(job_id)
            if self._ignore_terminal(record, attempted="progress"):
                return False
            if progress < record.progress:
                logger.warning(
                    "job.progress_regression_ignored job_id=%s current=%s attempted=%s",
                    job_id,
                    record.progress,
                    progress,
                )
                return False

            self._store.set_progress(job=record, progress=progress)
            await self._hub.publish(
                job_id,
                ProgressEvent(
                    job_id=job_id,
                    progress=record.progress,
                    status=record.status,
                    message=message,
                    timestamp=record.updated_at,
                ),
            )
            return True

    async def complete(self, job_id: str, result_ref: str, duration_seconds: int | None = None) -> bool:
        if not result_ref or not result_ref.strip():
            raise ValueError("completed jobs require a result reference")

        async with self._lock_for(job_id):
            record = self._require(job_id)
            if self._ignore_terminal(record, attempted="completed"):
                return False

            self._store.record_completion(job=record, result_ref=result_ref, duration_seconds=duration_seconds)
            logger.info("job.completed job_id=%s duration_seconds=%s", job_id, duration_seconds)
            await self._hub.publish(job_id, terminal_event(record))
            payload = WebhookPayload(
                job_id=job_id,
                status=record.status,
                result_ref=result_ref,
                duration=duration_seconds,
                timestamp=record.updated_at,
            )

        self._locks.pop(job_id, None)
        await self._notify_webhook(payload)
        return True

    async def fail(self, job_id: str, error: str) -> bool:
        if not error or not error.strip():
            raise ValueError("failed jobs require an error message")

        async with self._lock_for(job_id):
            record = self._require(job_id)
            if self._ignore_terminal(record, attempted="failed"):
                return False

            self._store.record_failure(job=record, error=error)
            logger.info("job.failed job_id=%s progress=%s", job_id, record.progress)
            await self._hub.publish(job_id, terminal_event(record))
            payload = WebhookPayload(
                job_id=job_id,
                status=record.status,
                error=error,
                timestamp=record.updated_at,
            )

        self._locks.pop(job_id, None)
        await self._notify_webhook(payload)
        return True

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        # Unknown ids never get a lock.
        self._require(job_id)
        return self._locks.setdefault(job_id, asyncio.Lock())

    def _require(self, job_id: str) -> JobRecord:
        record = self._store.get_job(job_id)
        if record is None:
            raise not_found_error()
        return record

    def _ignore_terminal(self, record: JobRecord, *, attempted: str) -> bool:
        if not is_terminal(record.status):
            return False
        self._locks.pop(record.id, None)
        logger.warning(
            "job.terminal_write_ignored job_id=%s current_status=%s attempted=%s",
            record.id,
            record.status.value,
            attempted,
        )
        return True

    async def _notify_webhook(self, payload: WebhookPayload) -> None:
        if self._webhooks is None:
            return
        await self._webhooks.dispatch(payload)


__all__ = ["JobLifecycleManager", "terminal_event"]
