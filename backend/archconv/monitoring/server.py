"""
Monitoring server endpoints.

Read-only HTTP API over a live conversion run.
Intended for trusted LAN access while long runs are in progress.

Observation only, no control operations.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from ..execution.runner import ConversionRunner
from .errors import FileNotFoundInRunError, RunNotAttachedError
from .models import (
    ConverterListResponse,
    FileDetail,
    FileListResponse,
    HealthResponse,
    LogResponse,
    ProgressResponse,
)
from .queries import (
    get_converters,
    get_file_detail,
    get_file_summaries,
    get_log,
    get_progress,
)


router = APIRouter(prefix="/monitor", tags=["monitoring"])


def _runner(request: Request) -> ConversionRunner:
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(status_code=503, detail=str(RunNotAttachedError()))
    return runner


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Answers even when no run is attached.
    """
    runner = getattr(request.app.state, "runner", None)
    running = runner.scheduler.progress().running if runner is not None else False
    return HealthResponse(status="ok", running=running)


@router.get("/converters", response_model=ConverterListResponse)
async def list_converters(request: Request):
    """Registered converters, available ones first."""
    return get_converters(_runner(request))


@router.get("/files", response_model=FileListResponse)
async def list_files(
    request: Request,
    failed_only: bool = False,
    include_hidden: bool = False,
):
    """
    List every file of the run with its format progress.

    Files are in registration order: imported files, then derived ones.
    """
    return get_file_summaries(_runner(request), failed_only=failed_only, include_hidden=include_hidden)


@router.get("/files/{file_id}", response_model=FileDetail)
async def get_file(file_id: str, request: Request):
    """
    Retrieve one file record, lineage and tool history included.

    Raises:
        404: If the file id does not exist
    """
    try:
        return get_file_detail(_runner(request), file_id)
    except FileNotFoundInRunError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/progress", response_model=ProgressResponse)
async def progress(request: Request):
    return get_progress(_runner(request))


@router.get("/log", response_model=LogResponse)
async def run_log(
    request: Request,
    limit: Optional[int] = Query(default=100, ge=0),
    errors_only: bool = False,
):
    """Most recent run-time log entries."""
    return get_log(_runner(request), limit=limit, errors_only=errors_only)
