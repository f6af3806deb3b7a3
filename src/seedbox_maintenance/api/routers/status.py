"""Status and health-check router for the seedbox-maintenance web API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from ... import __version__
from ..app_state import AppState
from ..models import HealthResponse, InstanceStatus, StatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_state(request: Request) -> AppState:
    """Retrieve the shared AppState from the application."""
    return request.app.state.app_state


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    """Health-check endpoint."""
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(get_app_state(request).uptime(), 2),
    )


@router.get("/status", response_model=StatusResponse)
def status(request: Request) -> StatusResponse:
    """Scheduler status of every configured instance."""
    snapshot = get_app_state(request).get_status()
    return StatusResponse(version=__version__, **snapshot)


@router.get("/instances/{name}", response_model=InstanceStatus)
def instance_status(name: str, request: Request) -> InstanceStatus:
    """Scheduler status of a single instance."""
    described = get_app_state(request).describe_instance(name)
    if described is None:
        raise HTTPException(status_code=404, detail=f"Unknown instance: {name}")
    return InstanceStatus(**described)
