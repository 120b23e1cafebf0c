"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from codereel.routes.dependencies import get_job_orchestrator
from codereel.schemas.error import InsufficientCreditError, InvalidInputError, NoLeakNotFoundError
from codereel.schemas.job import JobStatusView, OwnerJobList, SubmitJobRequest, SubmitJobResponse
from codereel.services.orchestrator import JobOrchestrator

router = APIRouter(tags=["Jobs"])


@router.post(
    "/jobs",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": InvalidInputError}, 402: {"model": InsufficientCreditError}},
)
async def submit_job(
    payload: SubmitJobRequest,
    orchestrator: Annotated[JobOrchestrator, Depends(get_job_orchestrator)],
) -> SubmitJobResponse:
    return await orchestrator.submit(
        owner_id=payload.owner_id,
        script=payload.script,
        kind=payload.kind,
        options=payload.options,
    )


@router.get(
    "/jobs/{jobId}",
    response_model=JobStatusView,
    response_model_exclude_none=True,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job_status(
    job_id: Annotated[str, Path(alias="jobId")],
    orchestrator: Annotated[JobOrchestrator, Depends(get_job_orchestrator)],
) -> JobStatusView:
    return orchestrator.get_status(job_id)


@router.get(
    "/owners/{ownerId}/jobs",
    response_model=OwnerJobList,
    response_model_exclude_none=True,
    responses={400: {"model": InvalidInputError}},
)
async def list_owner_jobs(
    owner_id: Annotated[str, Path(alias="ownerId")],
    orchestrator: Annotated[JobOrchestrator, Depends(get_job_orchestrator)],
) -> OwnerJobList:
    return orchestrator.list_owner_jobs(owner_id)
