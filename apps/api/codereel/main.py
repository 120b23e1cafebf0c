"""FastAPI application entrypoint.

Settings are read when the app is built, so serve it through the factory:
``uvicorn codereel.main:create_app --factory``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from codereel.adapters.credits import CreditLedger
from codereel.adapters.media import MediaCollaborators
from codereel.core.config import Settings, get_settings
from codereel.errors import ApiError
from codereel.routes import events_router, jobs_router
from codereel.schemas.error import ErrorResponse
from codereel.services.runtime import build_runtime

_SUBMIT_VALIDATION_PATHS: set[tuple[str, str]] = {
    ("POST", "/api/v1/jobs"),
}


def create_app(
    *,
    settings: Settings | None = None,
    collaborators: MediaCollaborators | None = None,
    ledger: CreditLedger | None = None,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    runtime = build_runtime(
        settings or get_settings(),
        collaborators=collaborators,
        ledger=ledger,
        webhook_transport=webhook_transport,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="CodeReel API", version="1.0.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        if (request.method.upper(), route_path) in _SUBMIT_VALIDATION_PATHS:
            fields = sorted({".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()})
            payload = ErrorResponse(
                code="INVALID_INPUT",
                message="Invalid job submission payload",
                details={"fields": fields},
            )
            return JSONResponse(status_code=400, content=payload.model_dump())

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    # /jobs/events must be matched before /jobs/{jobId}.
    app.include_router(events_router, prefix=api_prefix)
    app.include_router(jobs_router, prefix=api_prefix)

    return app
