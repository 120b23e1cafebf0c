"""Dependency wiring for routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request, WebSocket

from codereel.services.notifications import NotificationHub
from codereel.services.orchestrator import JobOrchestrator
from codereel.services.runtime import ServiceRuntime


def get_runtime(request: Request) -> ServiceRuntime:
    return request.app.state.runtime


def get_job_orchestrator(runtime: Annotated[ServiceRuntime, Depends(get_runtime)]) -> JobOrchestrator:
    return runtime.orchestrator


def get_notification_hub(websocket: WebSocket) -> NotificationHub:
    return websocket.app.state.runtime.hub
