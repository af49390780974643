"""
HTTP status API using FastAPI.

Exposes transport liveness and the most recent messages from history. The
drive service is started and stopped by the application lifespan.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from common.logging import get_logger
from gateway.drive_service import DriveService

logger = get_logger(__name__)


class StatusApi:
    """FastAPI application wrapping one drive service."""

    def __init__(self, service: DriveService, manage_lifecycle: bool = True):
        self.service = service
        self.manage_lifecycle = manage_lifecycle
        self.app = FastAPI(title="streamdrive", version="0.1.0", lifespan=self._lifespan)
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        if self.manage_lifecycle:
            await self.service.initialize()
        try:
            yield
        finally:
            if self.manage_lifecycle:
                await self.service.shutdown()

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            status = self.service.status()
            healthy = status["transport_connected"]
            status["status"] = "healthy" if healthy else "unhealthy"
            if not healthy:
                logger.warning(event="health_check_unhealthy", initialized=status["initialized"])
            return JSONResponse(status, status_code=200 if healthy else 503)

        @self.app.get("/messages/latest")
        async def latest_received(kind: Optional[str] = None):
            """Most recent received message, optionally of one kind."""
            controller = self.service.controller
            message = controller.latest_of_kind(kind) if kind else controller.latest_overall()
            if message is None:
                raise HTTPException(status_code=404, detail="No message received")
            return message.summary()

        @self.app.get("/messages/sent/latest")
        async def latest_sent(kind: Optional[str] = None):
            """Most recent published message, optionally of one kind."""
            message = self.service.controller.latest_sent(kind)
            if message is None:
                raise HTTPException(status_code=404, detail="No message sent")
            return message.summary()


def create_status_app(service: DriveService, manage_lifecycle: bool = True) -> FastAPI:
    """Create and configure the status application."""
    return StatusApi(service, manage_lifecycle=manage_lifecycle).app
