"""Pydantic response models for the seedbox-maintenance web API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health-check endpoint."""

    status: str = "ok"
    version: str
    uptime_seconds: float


class CycleResponse(BaseModel):
    """Outcome of an instance's most recent cycle."""

    started_at: str
    duration_seconds: float
    success: bool
    error: Optional[str] = None
    fetched: int = 0
    malformed: int = 0
    decisions: Dict[str, int] = Field(default_factory=dict)
    removed: int = 0
    removal_failures: int = 0
    dry_run: bool = True
    drift: bool = False


class InstanceStatus(BaseModel):
    """Scheduler status for one seed-box instance."""

    name: str
    url: str
    state: str
    poll_interval_seconds: int
    policies: List[str] = Field(default_factory=list)
    cycles: int = 0
    crash_reason: Optional[str] = None
    last_cycle: Optional[CycleResponse] = None


class StatusResponse(BaseModel):
    """Response model for the status endpoint."""

    version: str
    enforce: bool
    instances: List[InstanceStatus] = Field(default_factory=list)


class ActionResponse(BaseModel):
    """Generic response for action endpoints."""

    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None
