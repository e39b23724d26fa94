"""
FastAPI Service Bus
-------------------
HTTP control surface for the media orchestrator.
Provides REST endpoints for playback, recording and status.

The orchestrator is injected; with manage_lifecycle=True the app
initializes it on startup and disposes it on shutdown.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from core.errors import (
    DecodeError, DeviceError, MediaError, NotInitializedError,
    RecordingError, SourceError,
)
from core.orchestrator import MediaOrchestrator, MediaResult, OperationStatus


# Request/Response Models

class AudioUrlRequest(BaseModel):
    """Network audio source."""
    url: str = Field(..., description="Audio URL to play")
    max_duration: Optional[float] = Field(None, gt=0, description="Auto-stop after seconds")


class AudioFileRequest(BaseModel):
    """Local audio source."""
    path: str = Field(..., description="Path of a local audio file")


class VideoRequest(BaseModel):
    """Video source."""
    url: str = Field(..., description="Video URL to play")
    muted: bool = False


class VolumeRequest(BaseModel):
    level: float = Field(..., description="Volume between 0.0 and 1.0")


class RecordRequest(BaseModel):
    seconds: float = Field(..., gt=0, description="Take length in seconds")


class OperationResponse(BaseModel):
    """Response from an orchestrator operation."""
    success: bool
    operation: str
    status: str
    value: Optional[Any] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class StatusResponse(BaseModel):
    """Engine status response."""
    state: str
    is_capturing: bool
    take_counter: int
    audio_playing: bool
    video_playing: bool
    video_source: Optional[str] = None
    cold_open_latency_ms: float
    uptime_seconds: float
    metrics: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str = "0.1.0"
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


# Error category -> HTTP status
ERROR_STATUS_CODES = {
    NotInitializedError: 503,
    DeviceError: 503,
    SourceError: 422,
    DecodeError: 422,
    RecordingError: 500,
}


# Service Bus

class ServiceBus:
    """
    HTTP service bus for the media engine.

    Provides REST API for:
    - Audio and video playback control
    - Recording takes
    - Status and latency metrics
    """

    def __init__(self, orchestrator: MediaOrchestrator, manage_lifecycle: bool = False):
        self._orchestrator = orchestrator
        self._manage_lifecycle = manage_lifecycle
        self._start_time = datetime.now()
        self._logger = logging.getLogger("mediakeep.infra.service_bus")
        self._app: Optional[FastAPI] = None

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self._logger.info("Service bus starting...")
            if self._manage_lifecycle:
                await self._orchestrator.initialize()
            yield
            if self._manage_lifecycle:
                await self._orchestrator.dispose()
            self._logger.info("Service bus shutting down...")

        app = FastAPI(
            title="mediakeep API",
            description="Playback and keep-alive recording control",
            version="0.1.0",
            lifespan=lifespan
        )

        # CORS for local development
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost:*", "http://127.0.0.1:*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._register_routes(app)

        self._app = app
        return app

    async def _run(self, operation: Awaitable[MediaResult]) -> OperationResponse:
        """Await an orchestrator call and map it onto an HTTP response."""
        try:
            result = await operation
        except MediaError as e:
            message = self._orchestrator.error_handler.handle(e)
            raise HTTPException(status_code=ERROR_STATUS_CODES.get(type(e), 500), detail=message)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if result.status in (OperationStatus.NOT_INITIALIZED, OperationStatus.DISPOSED):
            raise HTTPException(status_code=503, detail=result.error)

        value = result.value
        if isinstance(value, Path):
            value = str(value)

        return OperationResponse(
            success=result.ok,
            operation=result.operation,
            status=result.status.name,
            value=value,
            error=result.error,
            elapsed_ms=result.elapsed_ms,
        )

    def _register_routes(self, app: FastAPI) -> None:
        """Register all API routes."""
        orchestrator = self._orchestrator

        @app.get("/health", response_model=HealthResponse, tags=["System"])
        async def health_check():
            """Health check endpoint."""
            return HealthResponse(status="healthy" if orchestrator.is_ready else "degraded")

        @app.get("/status", response_model=StatusResponse, tags=["System"])
        async def get_status():
            """Get engine status."""
            status = orchestrator.get_status()
            uptime = (datetime.now() - self._start_time).total_seconds()

            return StatusResponse(
                state=status["state"],
                is_capturing=status["recording"]["is_capturing"],
                take_counter=status["recording"]["take_counter"],
                audio_playing=status["audio"]["is_playing"],
                video_playing=status["video"]["is_playing"],
                video_source=status["video"]["source"],
                cold_open_latency_ms=status["recording"]["cold_open_latency_ms"],
                uptime_seconds=uptime,
                metrics=status["metrics"],
            )

        # Audio

        @app.post("/audio/play", response_model=OperationResponse, tags=["Audio"])
        async def play_audio(req: AudioUrlRequest):
            return await self._run(orchestrator.play_audio_url(req.url, req.max_duration))

        @app.post("/audio/play-file", response_model=OperationResponse, tags=["Audio"])
        async def play_audio_file(req: AudioFileRequest):
            return await self._run(orchestrator.play_audio_file(req.path))

        @app.post("/audio/pause", response_model=OperationResponse, tags=["Audio"])
        async def pause_audio():
            return await self._run(orchestrator.pause_audio())

        @app.post("/audio/resume", response_model=OperationResponse, tags=["Audio"])
        async def resume_audio():
            return await self._run(orchestrator.resume_audio())

        @app.post("/audio/stop", response_model=OperationResponse, tags=["Audio"])
        async def stop_audio():
            return await self._run(orchestrator.stop_audio())

        # Video

        @app.post("/video/play", response_model=OperationResponse, tags=["Video"])
        async def play_video(req: VideoRequest):
            return await self._run(orchestrator.play_video(req.url, muted=req.muted))

        @app.post("/video/pause", response_model=OperationResponse, tags=["Video"])
        async def pause_video():
            return await self._run(orchestrator.pause_video())

        @app.post("/video/resume", response_model=OperationResponse, tags=["Video"])
        async def resume_video():
            return await self._run(orchestrator.resume_video())

        @app.post("/video/stop", response_model=OperationResponse, tags=["Video"])
        async def stop_video():
            return await self._run(orchestrator.stop_video())

        @app.put("/video/volume", response_model=OperationResponse, tags=["Video"])
        async def set_video_volume(req: VolumeRequest):
            return await self._run(orchestrator.set_video_volume(req.level))

        # Recording

        @app.post("/recording/start", response_model=OperationResponse, tags=["Recording"])
        async def start_recording():
            """Start a take; value is the resume latency in ms."""
            return await self._run(orchestrator.start_recording())

        @app.post("/recording/stop", response_model=OperationResponse, tags=["Recording"])
        async def stop_recording():
            """Stop the take; value is the saved file path or null."""
            return await self._run(orchestrator.stop_recording())

        @app.post("/recording/record", response_model=OperationResponse, tags=["Recording"])
        async def record_for_duration(req: RecordRequest):
            return await self._run(orchestrator.record_for_duration(req.seconds))

        @app.get("/recording/files", response_model=List[str], tags=["Recording"])
        async def list_recordings():
            return [str(p) for p in orchestrator.recorded_files]

        @app.post("/stop-all", response_model=OperationResponse, tags=["System"])
        async def stop_all():
            return await self._run(orchestrator.stop_all())


def create_app(orchestrator: MediaOrchestrator, manage_lifecycle: bool = False) -> FastAPI:
    """Create the FastAPI application."""
    bus = ServiceBus(orchestrator, manage_lifecycle=manage_lifecycle)
    return bus.create_app()


async def run_server(app: FastAPI, host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the service bus server."""
    import uvicorn

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info"
    )
    server = uvicorn.Server(config)
    await server.serve()
