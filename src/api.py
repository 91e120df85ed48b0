"""
Status API - Read-only HTTP view of the certsync controller.

Exposes liveness/readiness probes, controller status and history, the
registered plugins and a Server-Sent Events stream of reconcile outcomes.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from controller import Controller
from events import EventBus, EventType
from plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


class ListenerInfo(BaseModel):
    listener_id: str
    success: bool
    error_message: Optional[str] = None


class HistoryEntry(BaseModel):
    """A processed certificate bundle."""

    domains: List[str]
    status: str
    certificate_id: Optional[str] = None
    created: bool = False
    error_message: Optional[str] = None
    listeners: List[ListenerInfo] = []
    reconcile_time: str


class EventStats(BaseModel):
    subscribers: int
    published: int
    dropped: int


class StatusResponse(BaseModel):
    """Response model for the controller status."""

    state: str
    running: bool
    source: str
    destination: str
    watch_count: int
    consecutive_failures: int
    counters: Dict[str, int]
    last_reconcile: Optional[HistoryEntry] = None
    events: Optional[EventStats] = None


class ComponentHealth(BaseModel):
    healthy: bool
    message: str


class ReadinessResponse(BaseModel):
    ready: bool
    source: ComponentHealth
    destination: ComponentHealth


class PluginInfo(BaseModel):
    name: str
    version: str


class PluginsResponse(BaseModel):
    sources: List[PluginInfo] = []
    destinations: List[PluginInfo] = []


class StatusServer:
    """
    HTTP server exposing the controller status.

    The FastAPI app is built on construction so it can be served by
    uvicorn or driven directly by a test client.
    """

    def __init__(
        self,
        controller: Controller,
        registry: Optional[PluginRegistry] = None,
        event_bus: Optional[EventBus] = None,
        host: str = "0.0.0.0",
        port: int = 8000,
        log_level: str = "info",
    ):
        self.controller = controller
        self.registry = registry
        self.host = host
        self.port = port
        self.log_level = log_level.lower()
        self.server: Optional[uvicorn.Server] = None
        self._event_bus = event_bus

        self.app = FastAPI(
            title="certsync",
            description="Synchronizes Kubernetes TLS secrets to AWS ACM",
            version="1.0.0",
        )
        self._setup_routes()

    def _setup_routes(self) -> None:
        """
        Set up the FastAPI routes.

        Configures the following endpoints:
        - Banner: GET /
        - Probes: GET /healthz, GET /readyz
        - Controller: GET /api/v1/status, GET /api/v1/history
        - Plugin discovery: GET /api/v1/plugins
        - Event stream: GET /api/v1/events
        """

        @self.app.get("/")
        async def banner():
            return {"status": "ok", "service": "certsync"}

        @self.app.get("/healthz")
        async def liveness():
            """Liveness probe; the process is serving requests."""
            return {"status": "ok"}

        @self.app.get("/readyz", response_model=ReadinessResponse)
        async def readiness():
            """Readiness probe based on the source and destination health checks."""
            source_ok, source_msg = await self._check(self.controller.source)
            dest_ok, dest_msg = await self._check(self.controller.destination)

            body = ReadinessResponse(
                ready=source_ok and dest_ok,
                source=ComponentHealth(healthy=source_ok, message=source_msg),
                destination=ComponentHealth(healthy=dest_ok, message=dest_msg),
            )
            if not body.ready:
                return JSONResponse(status_code=503, content=body.model_dump())
            return body

        @self.app.get("/api/v1/status", response_model=StatusResponse)
        async def get_status():
            status = self.controller.get_status()
            if self._event_bus:
                status["events"] = self._event_bus.stats()
            return status

        @self.app.get("/api/v1/history", response_model=List[HistoryEntry])
        async def get_history(limit: int = Query(10, ge=1, le=1000)):
            """Most recent reconciliations, newest first."""
            return self.controller.get_history(limit)

        @self.app.get("/api/v1/plugins", response_model=PluginsResponse)
        async def list_plugins():
            """List registered source and destination plugins."""
            if not self.registry:
                return PluginsResponse()

            sources = []
            for name in self.registry.list_source_plugins():
                info = self.registry.get_source_plugin_info(name)
                if info:
                    sources.append(PluginInfo(**info))

            destinations = []
            for name in self.registry.list_destination_plugins():
                info = self.registry.get_destination_plugin_info(name)
                if info:
                    destinations.append(PluginInfo(**info))

            return PluginsResponse(sources=sources, destinations=destinations)

        @self.app.get("/api/v1/events")
        async def stream_events(status: Optional[str] = None):
            """SSE stream of reconcile outcome events.

            Optionally filter by outcome (published, dry_run, failed, rejected).
            """
            if not self._event_bus:
                raise HTTPException(
                    status_code=503,
                    detail="Event streaming not available",
                )

            event_types = []
            if status:
                try:
                    wanted = EventType(status.upper())
                except ValueError:
                    allowed = ", ".join(t.value.lower() for t in EventType)
                    raise HTTPException(
                        status_code=400,
                        detail=f"Unknown status '{status}'. Allowed: {allowed}",
                    )
                event_types.append(wanted)

            subscription = await self._event_bus.subscribe(event_types)

            async def event_generator():
                try:
                    async for event in subscription:
                        yield event.to_sse()
                except asyncio.CancelledError:
                    pass
                finally:
                    await self._event_bus.unsubscribe(subscription)

            return StreamingResponse(
                event_generator(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "X-Accel-Buffering": "no",
                },
            )

    @staticmethod
    async def _check(plugin: Any) -> tuple[bool, str]:
        try:
            return await plugin.health_check()
        except Exception as e:
            logger.error(f"Health check of {plugin.name} failed: {e}")
            return False, str(e)

    async def start(self) -> None:
        """Start the HTTP server."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level,
        )
        self.server = uvicorn.Server(config)

        logger.info(f"Starting status API on {self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        logger.info("Stopping status API")
        if self.server:
            self.server.should_exit = True
