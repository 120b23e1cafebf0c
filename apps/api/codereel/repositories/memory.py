"""In-memory job repository used by the service and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from codereel.domain.job_fsm import ensure_transition
from codereel.schemas.job import JobKind, JobStatus, SubmitJobOptions


@dataclass(slots=True)
class JobRecord:
    id: str
    owner_id: str
    script: str
    title: str
    kind: JobKind
    options: SubmitJobOptions
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    progress: int = 0
    error: str | None = None
    result_ref: str | None = None
    duration_seconds: int | None = None


@dataclass(slots=True)
class InMemoryStore:
    """Deterministic job persistence; callers other than the lifecycle manager only read."""

    jobs: dict[str, JobRecord] = field(default_factory=dict)
    job_write_count: int = 0

    def create_job(
        self,
        *,
        owner_id: str,
        script: str,
        title: str,
        kind: JobKind,
        options: SubmitJobOptions,
    ) -> JobRecord:
        now = datetime.now(UTC)
        job = JobRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            script=script,
            title=title,
            kind=kind,
            options=options,
            status=JobStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def list_jobs_for_owner(self, owner_id: str) -> list[JobRecord]:
        """Newest first; jobs created in the same instant keep reverse insertion order."""
        owned = [job for job in reversed(self.jobs.values()) if job.owner_id == owner_id]
        return sorted(owned, key=lambda job: job.created_at, reverse=True)

    def transition_job_status(self, *, job: JobRecord, new_status: JobStatus) -> None:
        """Apply an FSM-validated status mutation with consistent write bookkeeping."""
        ensure_transition(job.status, new_status)
        job.status = new_status
        self._touch(job)

    def set_progress(self, *, job: JobRecord, progress: int) -> None:
        job.progress = progress
        self._touch(job)

    def record_completion(self, *, job: JobRecord, result_ref: str, duration_seconds: int | None) -> None:
        """Write the completed status and its result fields as one mutation; nothing changes on rejection."""
        ensure_transition(job.status, JobStatus.COMPLETED)
        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.result_ref = result_ref
        job.duration_seconds = duration_seconds
        job.error = None
        self._touch(job)

    def record_failure(self, *, job: JobRecord, error: str) -> None:
        ensure_transition(job.status, JobStatus.FAILED)
        job.status = JobStatus.FAILED
        job.error = error
        job.result_ref = None
        job.duration_seconds = None
        self._touch(job)

    def _touch(self, job: JobRecord) -> None:
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1
