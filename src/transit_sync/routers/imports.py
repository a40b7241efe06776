"""Admin routes for static GTFS imports and workflow runs."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from transit_sync.errors import ImportAlreadyRunning
from transit_sync.logging import get_logger
from transit_sync.services.workflow.runner import WorkflowRunner

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def get_runner(request: Request) -> WorkflowRunner:
    return request.app.state.runner


class StaticImportRequest(BaseModel):
    """Request body for a static GTFS import."""

    source: str = Field(
        min_length=1,
        max_length=128,
        description="Feed source (agency) name; substituted into the static feed URL.",
    )
    archive_path: Optional[str] = Field(
        default=None,
        description="Local archive path. When set, no download is attempted.",
    )


class StaticImportAccepted(BaseModel):
    run_id: str
    source: str
    status: str


class WorkflowStepInfo(BaseModel):
    name: str
    attempts: int


class WorkflowRunResponse(BaseModel):
    """A workflow run and its checkpointed steps."""

    run_id: str
    workflow: str
    source: str
    params: Optional[Dict[str, Any]] = None
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    steps: List[WorkflowStepInfo] = []


# TODO: Add auth middleware before exposing the admin routes outside the cluster.
@router.post(
    "/imports/static",
    response_model=StaticImportAccepted,
    status_code=202,
    summary="Start a static GTFS import",
    description=(
        "Start a durable import of a source's static GTFS archive in the background. "
        "Returns 409 if an import for the same source is already running."
    ),
)
async def start_static_import(body: StaticImportRequest, request: Request) -> Dict[str, Any]:
    runner = get_runner(request)
    try:
        run_id = await runner.start_static_import(body.source, body.archive_path)
    except ImportAlreadyRunning as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "run_id": exc.run_id},
        ) from exc

    logger.info("Static import accepted", run_id=run_id, source=body.source)
    return {"run_id": run_id, "source": body.source, "status": "running"}


@router.get(
    "/imports/runs",
    response_model=List[WorkflowRunResponse],
    summary="List recent workflow runs",
)
async def list_runs(
    request: Request, source: Optional[str] = None, limit: int = 20
) -> List[Dict[str, Any]]:
    return await get_runner(request).list_runs(source=source, limit=min(max(limit, 1), 100))


@router.get(
    "/workflows/{run_id}",
    response_model=WorkflowRunResponse,
    summary="Get a workflow run",
)
async def get_workflow(run_id: str, request: Request) -> Dict[str, Any]:
    run = await get_runner(request).get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Unknown workflow run: {run_id}")
    return run


@router.post(
    "/workflows/{run_id}/resume",
    response_model=WorkflowRunResponse,
    status_code=202,
    summary="Resume a failed or timed out workflow run",
)
async def resume_workflow(run_id: str, request: Request) -> Dict[str, Any]:
    try:
        run = await get_runner(request).resume(run_id)
    except ImportAlreadyRunning as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "run_id": exc.run_id},
        ) from exc
    if run is None:
        raise HTTPException(status_code=404, detail=f"Unknown workflow run: {run_id}")
    return run
