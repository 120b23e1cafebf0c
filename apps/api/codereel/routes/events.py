"""Push channels for job events: a websocket and a server-sent event stream."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from codereel.domain.job_fsm import is_terminal
from codereel.errors import ApiError, not_found_error
from codereel.routes.dependencies import get_notification_hub, get_runtime
from codereel.schemas.error import InvalidInputError, NoLeakNotFoundError
from codereel.schemas.events import SubscriptionAck, SubscriptionMessage
from codereel.services.lifecycle import terminal_event
from codereel.services.notifications import NotificationHub
from codereel.services.runtime import ServiceRuntime

router = APIRouter(tags=["Events"])
logger = logging.getLogger(__name__)

_INVALID_FORMAT = {"error": "Invalid message format"}
_INVALID_ACTION = {"error": "Unknown action or missing jobId"}
_TERMINAL_EVENT_TYPES = frozenset({"completed", "error"})
SSE_KEEPALIVE_SECONDS = 15.0


class WebSocketConnection:
    """Adapts a FastAPI websocket to the hub's connection protocol.

    Sends are serialized because hub deliveries and subscription acks may
    target the same socket concurrently.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._send_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state is WebSocketState.CONNECTED
            and self._websocket.application_state is WebSocketState.CONNECTED
        )

    async def send_json(self, data: dict[str, Any]) -> None:
        async with self._send_lock:
            await self._websocket.send_json(data)


class EventStreamConnection:
    """Hub connection backing one server-sent event stream.

    The stream ends once every watched job has delivered its terminal event.
    """

    def __init__(self, job_ids: Iterable[str], *, keepalive_seconds: float = SSE_KEEPALIVE_SECONDS) -> None:
        self._pending = set(job_ids)
        self._keepalive = keepalive_seconds
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def send_json(self, data: dict[str, Any]) -> None:
        self._queue.put_nowait(data)

    def close(self) -> None:
        if self._open:
            self._open = False
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        while self._pending:
            try:
                data = await asyncio.wait_for(self._queue.get(), timeout=self._keepalive)
            except TimeoutError:
                yield ": keep-alive\n\n"
                continue
            if data is None:
                return
            yield format_sse(data)
            if data.get("type") in _TERMINAL_EVENT_TYPES:
                self._pending.discard(data.get("jobId"))


def format_sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data, separators=(',', ':'))}\n\n"


@router.websocket("/ws")
async def job_events(
    websocket: WebSocket,
    hub: Annotated[NotificationHub, Depends(get_notification_hub)],
) -> None:
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    await connection.send_json({"type": "connected", "message": "WebSocket connected successfully"})

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            reply = _handle_message(hub, connection, _frame_text(frame))
            await connection.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        released = hub.disconnect(connection)
        logger.debug("ws.closed released_subscriptions=%s", len(released))


@router.get(
    "/jobs/events",
    response_class=StreamingResponse,
    responses={400: {"model": InvalidInputError}, 404: {"model": NoLeakNotFoundError}},
)
async def job_event_stream(
    runtime: Annotated[ServiceRuntime, Depends(get_runtime)],
    job_ids: Annotated[str, Query(alias="jobIds")] = "",
) -> StreamingResponse:
    requested = list(dict.fromkeys(part.strip() for part in job_ids.split(",") if part.strip()))
    if not requested:
        raise ApiError(
            status_code=400,
            code="INVALID_INPUT",
            message="Missing jobIds parameter",
            details={"field": "jobIds"},
        )

    # No await between the terminal check and subscribe, so no terminal event is missed.
    snapshots: list[dict[str, Any]] = []
    live: list[str] = []
    for job_id in requested:
        record = runtime.lifecycle.get_job(job_id)
        if record is None:
            continue
        if is_terminal(record.status):
            snapshots.append(terminal_event(record).to_wire())
        else:
            live.append(job_id)
    if not snapshots and not live:
        raise not_found_error()

    connection = EventStreamConnection(live)
    for job_id in live:
        runtime.hub.subscribe(connection, job_id)

    async def stream() -> AsyncIterator[str]:
        try:
            for snapshot in snapshots:
                yield format_sse(snapshot)
            async for frame in connection.frames():
                yield frame
        finally:
            connection.close()
            runtime.hub.disconnect(connection)

    logger.debug("sse.opened live_jobs=%s terminal_jobs=%s", len(live), len(snapshots))
    return StreamingResponse(stream(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})


def _frame_text(frame: dict[str, Any]) -> str | None:
    text = frame.get("text")
    if text is not None:
        return text
    try:
        return (frame.get("bytes") or b"").decode("utf-8")
    except UnicodeDecodeError:
        return None


def _handle_message(hub: NotificationHub, connection: WebSocketConnection, raw: str | None) -> dict[str, Any]:
    if raw is None:
        return _INVALID_FORMAT
    try:
        message = SubscriptionMessage.model_validate(json.loads(raw))
    except json.JSONDecodeError:
        return _INVALID_FORMAT
    except ValidationError:
        return _INVALID_ACTION

    if message.action == "subscribe":
        hub.subscribe(connection, message.job_id)
        return SubscriptionAck(type="subscribed", job_id=message.job_id).to_wire()

    hub.unsubscribe(connection, message.job_id)
    return SubscriptionAck(type="unsubscribed", job_id=message.job_id).to_wire()
