"""Actions router for the seedbox-maintenance web API."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from ..app_state import AppState
from ..models import ActionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_state(request: Request) -> AppState:
    """Retrieve the shared AppState from the application."""
    return request.app.state.app_state


@router.post("/actions/poll", response_model=ActionResponse)
def trigger_poll(request: Request, instance: Optional[str] = None) -> ActionResponse:
    """Trigger an immediate cycle.

    Wakes the scheduler loop of the given instance, or of every instance.
    A scheduler that is mid-cycle starts its next cycle right after.
    """
    woken = get_app_state(request).request_poll(instance)
    if instance is not None and not woken:
        raise HTTPException(status_code=404, detail=f"Unknown instance: {instance}")
    logger.info(f"Poll triggered via API: {', '.join(woken)}")

    return ActionResponse(
        success=True,
        message=f"Poll triggered for {len(woken)} instance(s)",
        details={"instances": woken},
    )
