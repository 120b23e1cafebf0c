"""Process-lifetime wiring of the job services."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from codereel.adapters.credits import CreditLedger, InMemoryCreditLedger
from codereel.adapters.media import MediaCollaborators, build_mock_collaborators
from codereel.core.config import Settings
from codereel.repositories.memory import InMemoryStore
from codereel.schemas.job import JobKind
from codereel.services.job_queue import JobQueue
from codereel.services.lifecycle import JobLifecycleManager
from codereel.services.notifications import NotificationHub
from codereel.services.orchestrator import JobOrchestrator
from codereel.services.pipeline import PipelineExecutor
from codereel.services.webhooks import WebhookDispatcher


@dataclass(slots=True)
class ServiceRuntime:
    store: InMemoryStore
    hub: NotificationHub
    webhooks: WebhookDispatcher
    lifecycle: JobLifecycleManager
    executor: PipelineExecutor
    queue: JobQueue
    ledger: CreditLedger
    orchestrator: JobOrchestrator

    async def start(self) -> None:
        await self.queue.start()

    async def stop(self) -> None:
        await self.queue.stop()
        await self.hub.close()


def costs_from_settings(settings: Settings) -> dict[JobKind, int]:
    return {
        JobKind.VIDEO: settings.video_cost,
        JobKind.ANIMATION: settings.animation_cost,
        JobKind.AUDIO: settings.audio_cost,
    }


def build_runtime(
    settings: Settings,
    *,
    collaborators: MediaCollaborators | None = None,
    ledger: CreditLedger | None = None,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceRuntime:
    """Construct one instance of every service; the hub is shared, never global."""
    store = InMemoryStore()
    hub = NotificationHub(send_timeout_seconds=settings.notify_send_timeout_seconds)
    webhooks = WebhookDispatcher(
        url=str(settings.webhook_url) if settings.webhook_url is not None else None,
        secret=settings.webhook_secret,
        timeout_seconds=settings.webhook_timeout_seconds,
        transport=webhook_transport,
    )
    lifecycle = JobLifecycleManager(store, hub, webhooks)
    executor = PipelineExecutor(
        lifecycle,
        collaborators or build_mock_collaborators(),
        assumed_audio_bitrate=settings.assumed_audio_bitrate,
        phase_timeout_seconds=settings.phase_timeout_seconds,
    )
    queue = JobQueue(executor, concurrency=settings.max_concurrent_jobs)
    credit_ledger = ledger or InMemoryCreditLedger(trial_credits=settings.trial_credits)
    orchestrator = JobOrchestrator(
        lifecycle=lifecycle,
        ledger=credit_ledger,
        queue=queue,
        costs=costs_from_settings(settings),
    )
    return ServiceRuntime(
        store=store,
        hub=hub,
        webhooks=webhooks,
        lifecycle=lifecycle,
        executor=executor,
        queue=queue,
        ledger=credit_ledger,
        orchestrator=orchestrator,
    )


__all__ = ["ServiceRuntime", "build_runtime", "costs_from_settings"]
