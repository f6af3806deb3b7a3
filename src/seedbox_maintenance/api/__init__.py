"""FastAPI application factory and background server."""

import logging
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .. import __version__
from .app_state import AppState

logger = logging.getLogger(__name__)


def create_app(app_state: AppState) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="seedbox-maintenance",
        version=__version__,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )

    # Store app_state for dependency injection
    app.state.app_state = app_state

    # Import and include routers
    from .routers import actions, metrics, status

    app.include_router(status.router, prefix="/api", tags=["status"])
    app.include_router(actions.router, prefix="/api", tags=["actions"])
    app.include_router(metrics.router, tags=["metrics"])

    return app


class ApiServer:
    """Runs the web API with uvicorn on a background thread."""

    def __init__(self, app_state: AppState, host: str, port: int) -> None:
        self.host = host
        self.port = port
        config = uvicorn.Config(
            create_app(app_state),
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.run, name="api-server", daemon=True)
        self._thread.start()
        logger.info(f"Web API listening on http://{self.host}:{self.port} (metrics at /metrics)")

    def stop(self, timeout: float = 5.0) -> None:
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
