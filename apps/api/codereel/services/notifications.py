"""Publish/subscribe fan-out of job events to live connections."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from codereel.schemas.events import JobEvent

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_PENDING_EVENTS = 256


class Connection(Protocol):
    """A push channel to one client; must be hashable."""

    @property
    def is_open(self) -> bool: ...

    async def send_json(self, data: dict[str, Any]) -> None: ...


@dataclass(slots=True)
class _Outbox:
    queue: asyncio.Queue[dict[str, Any]]
    task: asyncio.Task


class NotificationHub:
    """Co-indexed job/connection subscription maps owned by one instance per process.

    Map mutations never await, so on a single event loop each subscribe,
    unsubscribe or disconnect is applied to both maps before any other task
    observes them.

    ``publish`` never awaits a client. Each connection gets a bounded outbox
    drained by its own sender task, which keeps per-connection event order.
    A connection whose send exceeds ``send_timeout_seconds`` or whose outbox
    overflows is disconnected.
    """

    def __init__(
        self,
        *,
        send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        max_pending_events: int = DEFAULT_MAX_PENDING_EVENTS,
    ) -> None:
        self._subscribers_by_job: dict[str, set[Connection]] = {}
        self._jobs_by_connection: dict[Connection, set[str]] = {}
        self._outboxes: dict[Connection, _Outbox] = {}
        self._send_timeout = send_timeout_seconds
        self._max_pending = max(1, int(max_pending_events))

    def subscribe(self, connection: Connection, job_id: str) -> None:
        self._jobs_by_connection.setdefault(connection, set()).add(job_id)
        self._subscribers_by_job.setdefault(job_id, set()).add(connection)

    def unsubscribe(self, connection: Connection, job_id: str) -> bool:
        jobs = self._jobs_by_connection.get(connection)
        removed = jobs is not None and job_id in jobs
        if jobs is not None:
            jobs.discard(job_id)
            if not jobs:
                del self._jobs_by_connection[connection]

        subscribers = self._subscribers_by_job.get(job_id)
        if subscribers is not None:
            subscribers.discard(connection)
            if not subscribers:
                del self._subscribers_by_job[job_id]
        return removed

    def disconnect(self, connection: Connection) -> list[str]:
        """Drop every subscription held by a closed connection and discard its pending events."""
        job_ids = sorted(self._jobs_by_connection.get(connection, ()))
        for job_id in job_ids:
            self.unsubscribe(connection, job_id)
        self._jobs_by_connection.pop(connection, None)
        self._close_outbox(connection)
        return job_ids

    def subscribers_of(self, job_id: str) -> frozenset[Connection]:
        return frozenset(self._subscribers_by_job.get(job_id, ()))

    def subscriptions_of(self, connection: Connection) -> frozenset[str]:
        return frozenset(self._jobs_by_connection.get(connection, ()))

    async def publish(self, job_id: str, event: JobEvent) -> int:
        """Queue the event for current open subscribers; returns how many accepted it."""
        subscribers = list(self._subscribers_by_job.get(job_id, ()))
        if not subscribers:
            return 0

        message = event.to_wire()
        queued = 0
        for connection in subscribers:
            if not connection.is_open:
                continue
            outbox = self._outbox_for(connection)
            try:
                outbox.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(
                    "notify.overflow job_id=%s connection=%x pending=%s",
                    job_id,
                    id(connection),
                    outbox.queue.qsize(),
                )
                self.disconnect(connection)
                continue
            queued += 1
        return queued

    async def flush(self) -> None:
        """Wait until every queued event has been sent or dropped."""
        for outbox in list(self._outboxes.values()):
            await outbox.queue.join()

    async def close(self) -> None:
        tasks = []
        for connection in list(self._outboxes):
            outbox = self._outboxes[connection]
            tasks.append(outbox.task)
            self._close_outbox(connection)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _outbox_for(self, connection: Connection) -> _Outbox:
        outbox = self._outboxes.get(connection)
        if outbox is None:
            queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_pending)
            task = asyncio.create_task(self._deliver(connection, queue), name=f"notify-{id(connection):x}")
            outbox = _Outbox(queue=queue, task=task)
            self._outboxes[connection] = outbox
        return outbox

    def _close_outbox(self, connection: Connection) -> None:
        outbox = self._outboxes.pop(connection, None)
        if outbox is None:
            return
        if outbox.task is not asyncio.current_task():
            outbox.task.cancel()
        while not outbox.queue.empty():
            outbox.queue.get_nowait()
            outbox.queue.task_done()

    async def _deliver(self, connection: Connection, queue: asyncio.Queue[dict[str, Any]]) -> None:
        while True:
            message = await queue.get()
            try:
                if connection.is_open:
                    await asyncio.wait_for(connection.send_json(message), timeout=self._send_timeout)
            except TimeoutError:
                logger.warning(
                    "notify.send_timeout job_id=%s connection=%x timeout_seconds=%g",
                    message.get("jobId"),
                    id(connection),
                    self._send_timeout,
                )
                self.disconnect(connection)
            except Exception as exc:
                logger.debug(
                    "notify.dropped job_id=%s connection=%x event_type=%s reason=%s",
                    message.get("jobId"),
                    id(connection),
                    message.get("type"),
                    type(exc).__name__,
                )
            finally:
                queue.task_done()

            outbox = self._outboxes.get(connection)
            if outbox is None or outbox.queue is not queue:
                return


__all__ = ["Connection", "NotificationHub"]
