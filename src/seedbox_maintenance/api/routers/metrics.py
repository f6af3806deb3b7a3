"""Prometheus exposition endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import Response

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
def metrics(request: Request) -> Response:
    """Serve the shared metrics registry in the Prometheus text format."""
    body, content_type = request.app.state.app_state.metrics.exposition()
    return Response(content=body, media_type=content_type)
