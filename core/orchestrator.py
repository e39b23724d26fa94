"""
Orchestrator
------------
Central coordinator for capture and playback.
All cross-session interactions flow through the orchestrator.

Non-negotiable rule: sessions never reference each other.
The orchestrator pauses whatever would collide before delegating.

Exit Criterion: a second take starts without reopening the microphone.
"""

from dataclasses import dataclass, replace
from enum import Enum, auto
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
import asyncio
import logging
import time

from audio import CaptureStream, RecordingSession
from infra.audio_session import SessionEvent
from infra.config import MediaConfig
from infra.logging import TakeContext
from infra.metrics import LatencyTracker
from playback import AudioPlaybackSession, VideoPlaybackSession

from .backends import MediaBackends, default_backends
from .errors import ErrorHandler, NotInitializedError
from .state_machine import OrchestratorState, StateMachine


class OperationStatus(Enum):
    """Outcome of an orchestrator operation."""
    OK = auto()
    NOT_INITIALIZED = auto()
    ALREADY_INITIALIZED = auto()
    DISPOSED = auto()
    NO_ACTIVE_CAPTURE = auto()


@dataclass
class MediaResult:
    """Result of an orchestrator operation."""
    status: OperationStatus
    operation: str
    value: Any = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.OK

    def unwrap(self) -> Any:
        """Return the value, raising for precondition failures."""
        if self.status in (OperationStatus.NOT_INITIALIZED, OperationStatus.DISPOSED):
            raise NotInitializedError(self.error or f"{self.operation}: not initialized")
        return self.value

    def __repr__(self) -> str:
        status = "✓" if self.ok else "✗"
        return f"MediaResult({status} {self.operation}, value={self.value})"


@dataclass
class PlayVideoAndRecordResult:
    """Timings of a muted video played alongside a take."""
    recorded_path: Optional[Path]
    video_init_ms: float
    record_init_ms: float
    total_ms: float


class MediaOrchestrator:
    """
    Owner of the capture stream and the three sessions.

    Responsibilities:
    - Lifecycle (initialize once, dispose once)
    - Mutual exclusion between playback and capture
    - Latency metrics

    Usage:
        orchestrator = MediaOrchestrator(config)
        await orchestrator.initialize()
        latency = (await orchestrator.start_recording()).value
        path = (await orchestrator.stop_recording()).value
        await orchestrator.dispose()
    """

    def __init__(
        self,
        config: Optional[MediaConfig] = None,
        backends: Optional[MediaBackends] = None,
    ):
        self.config = config or MediaConfig()
        self._backends = backends
        self._state_machine = StateMachine()
        self.error_handler = ErrorHandler()
        self.metrics = LatencyTracker()
        self._logger = logging.getLogger("mediakeep.orchestrator")

        self._session_manager: Optional[Any] = None
        self._capture_stream: Optional[CaptureStream] = None
        self._recording: Optional[RecordingSession] = None
        self._audio: Optional[AudioPlaybackSession] = None
        self._video: Optional[VideoPlaybackSession] = None

    @property
    def state(self) -> OrchestratorState:
        return self._state_machine.state

    @property
    def state_machine(self) -> StateMachine:
        return self._state_machine

    @property
    def is_ready(self) -> bool:
        return self._state_machine.is_ready

    @property
    def recorded_files(self) -> Tuple[Path, ...]:
        if self._recording is None:
            return ()
        return self._recording.recorded_files

    @property
    def cold_open_latency_ms(self) -> float:
        """Device open latency paid once by initialize()."""
        if self._capture_stream is None:
            return 0.0
        return self._capture_stream.open_latency_ms

    @property
    def audio(self) -> Optional[AudioPlaybackSession]:
        return self._audio

    @property
    def video(self) -> Optional[VideoPlaybackSession]:
        return self._video

    @property
    def recording(self) -> Optional[RecordingSession]:
        return self._recording

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> MediaResult:
        """
        Configure the audio session, then open every session concurrently.

        Any failure releases what was created and re-raises; the orchestrator
        returns to UNINITIALIZED and may be initialized again. A dispose()
        arriving meanwhile wins: the result is DISPOSED and nothing stays open.
        """
        operation = "initialize"
        state = self.state

        if state in (OrchestratorState.READY, OrchestratorState.INITIALIZING):
            self._logger.warning("MediaOrchestrator already initialized")
            return MediaResult(OperationStatus.ALREADY_INITIALIZED, operation)

        if state == OrchestratorState.DISPOSED:
            self._logger.warning("MediaOrchestrator was disposed and cannot be reinitialized")
            return MediaResult(
                OperationStatus.DISPOSED, operation,
                error="Orchestrator disposed",
            )

        self._state_machine.transition(OrchestratorState.INITIALIZING, "initialize")
        self._logger.info("Initializing media engine...")
        start = time.perf_counter()
        session_manager: Any = None
        sessions: Tuple[Any, ...] = ()

        try:
            self._build_sessions(self._backends or default_backends(self.config))
            session_manager, sessions = self._session_manager, (self._recording, self._audio, self._video)

            # Session configuration strictly precedes the stream open
            await session_manager.configure()
            if self.state == OrchestratorState.DISPOSED:
                return await self._abandon_initialize(operation, session_manager, sessions, start)

            results = await asyncio.gather(
                *(session.initialize() for session in sessions),
                return_exceptions=True,
            )
            if self.state == OrchestratorState.DISPOSED:
                return await self._abandon_initialize(operation, session_manager, sessions, start)
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        except Exception as e:
            if self.state == OrchestratorState.DISPOSED:
                self._logger.debug(f"Initialization interrupted by dispose: {e}")
                return await self._abandon_initialize(operation, session_manager, sessions, start)
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.metrics.record(operation, elapsed_ms, is_error=True)
            self._logger.error(f"Initialization failed: {e}")
            await self._release_sessions()
            self._state_machine.transition(OrchestratorState.UNINITIALIZED, f"initialize failed: {e}")
            raise

        session_manager.add_listener(self._on_session_event)

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(operation, elapsed_ms)
        self._state_machine.transition(OrchestratorState.READY, "initialized")
        self._logger.info(
            f"Media engine ready in {elapsed_ms:.0f}ms "
            f"(capture open {self.cold_open_latency_ms:.1f}ms)",
            extra={"latency_ms": elapsed_ms},
        )
        return MediaResult(OperationStatus.OK, operation, value=elapsed_ms, elapsed_ms=elapsed_ms)

    async def _abandon_initialize(
        self,
        operation: str,
        session_manager: Any,
        sessions: Tuple[Any, ...],
        start: float,
    ) -> MediaResult:
        """
        Release what an initialize() interrupted by dispose() built.

        dispose() already released these components, but a session may have
        finished opening its device afterwards, so they are disposed again.
        """
        components = [c for c in (session_manager, *sessions) if c is not None]
        results = await asyncio.gather(
            *(c.dispose() for c in components),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                self._logger.error(f"Error releasing interrupted initialization: {result}")

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(operation, elapsed_ms, is_error=True)
        self._logger.warning("Initialization abandoned: orchestrator disposed meanwhile")
        return MediaResult(
            OperationStatus.DISPOSED, operation,
            error="Orchestrator disposed during initialize",
            elapsed_ms=elapsed_ms,
        )

    def _build_sessions(self, backends: MediaBackends) -> None:
        self._session_manager = backends.session_manager
        self._capture_stream = CaptureStream(
            self.config.capture,
            permission=backends.permission,
            stream_factory=backends.stream_factory,
        )
        self._recording = RecordingSession(self._capture_stream, self.config.recording)
        self._audio = AudioPlaybackSession(
            backends.audio_output_factory,
            default_max_duration=self.config.playback.max_audio_duration,
            start_timeout=self.config.playback.start_timeout,
        )
        self._video = VideoPlaybackSession(backends.video_decoder_factory)

    async def _release_sessions(self) -> None:
        """Dispose every created component concurrently, logging failures."""
        if self._session_manager is not None:
            self._session_manager.remove_listener(self._on_session_event)

        components = [
            c for c in (self._session_manager, self._recording, self._audio, self._video)
            if c is not None
        ]
        results = await asyncio.gather(
            *(c.dispose() for c in components),
            return_exceptions=True,
        )
        for component, result in zip(components, results):
            if isinstance(result, BaseException):
                self._logger.error(f"Error disposing {type(component).__name__}: {result}")

        self._session_manager = None
        self._recording = None
        self._audio = None
        self._video = None

    async def dispose(self) -> None:
        """Release every handle. Terminal; safe in any state, including mid-initialize."""
        if self.state == OrchestratorState.DISPOSED:
            return

        self._logger.info("Disposing media engine...")
        self._state_machine.transition(OrchestratorState.DISPOSED, "dispose")
        await self._release_sessions()
        self._capture_stream = None
        self._logger.info("Media engine disposed")

    async def _on_session_event(self, event: SessionEvent) -> None:
        if event != SessionEvent.BECOMING_NOISY or not self.is_ready:
            return
        await asyncio.gather(self._audio.pause(), self._video.pause())
        self._logger.info("Playback paused: output became noisy")

    # =========================================================================
    # Operation plumbing
    # =========================================================================

    def _precondition(self, operation: str) -> Optional[MediaResult]:
        """Return a failed result unless the orchestrator is READY."""
        state = self.state
        if state == OrchestratorState.READY:
            return None

        self._logger.warning(f"{operation} rejected in state {state.name}")
        if state == OrchestratorState.DISPOSED:
            return MediaResult(OperationStatus.DISPOSED, operation, error="Orchestrator disposed")
        return MediaResult(
            OperationStatus.NOT_INITIALIZED, operation,
            error="Orchestrator not initialized. Call initialize() first.",
        )

    async def _call(
        self,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        track: bool = False,
    ) -> MediaResult:
        failure = self._precondition(operation)
        if failure is not None:
            return failure

        start = time.perf_counter()
        try:
            value = await action()
        except Exception:
            if track:
                self.metrics.record(operation, (time.perf_counter() - start) * 1000, is_error=True)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        if track:
            self.metrics.record(operation, elapsed_ms)
        return MediaResult(OperationStatus.OK, operation, value=value, elapsed_ms=elapsed_ms)

    # =========================================================================
    # Audio playback
    # =========================================================================

    async def play_audio_url(
        self,
        url: str,
        max_duration: Optional[float] = None,
        on_started: Optional[Callable[[float], None]] = None,
    ) -> MediaResult:
        """Play a network source with auto-stop; value is the start latency in ms."""
        operation = "play_audio_url"
        started: Dict[str, float] = {}

        def _started(latency_ms: float) -> None:
            started["latency_ms"] = latency_ms
            self.metrics.record(operation, latency_ms)
            if on_started is not None:
                on_started(latency_ms)

        async def _play() -> Optional[float]:
            try:
                await self._audio.play_from_url(url, max_duration, _started)
            except Exception:
                self.metrics.record(operation, 0.0, is_error=True)
                raise
            return started.get("latency_ms")

        return await self._call(operation, _play)

    async def play_audio_file(self, path) -> MediaResult:
        return await self._call("play_audio_file", lambda: self._audio.play_from_file(path))

    async def stop_audio(self) -> MediaResult:
        return await self._call("stop_audio", lambda: self._audio.stop())

    async def pause_audio(self) -> MediaResult:
        return await self._call("pause_audio", lambda: self._audio.pause())

    async def resume_audio(self) -> MediaResult:
        return await self._call("resume_audio", lambda: self._audio.resume())

    # =========================================================================
    # Video playback
    # =========================================================================

    async def play_video(self, url: str, muted: bool = False) -> MediaResult:
        """Pause audio, then load (or reuse) the video handle and play from 0."""
        async def _play() -> None:
            await self._audio.pause()
            await self._video.play(url, muted=muted)

        return await self._call("play_video", _play, track=True)

    async def pause_video(self) -> MediaResult:
        return await self._call("pause_video", lambda: self._video.pause())

    async def resume_video(self) -> MediaResult:
        return await self._call("resume_video", lambda: self._video.resume())

    async def stop_video(self) -> MediaResult:
        return await self._call("stop_video", lambda: self._video.stop())

    async def set_video_volume(self, level: float) -> MediaResult:
        return await self._call("set_video_volume", lambda: self._video.set_volume(level))

    # =========================================================================
    # Recording
    # =========================================================================

    async def start_recording(self) -> MediaResult:
        """
        Pause audio and video, then resume the warm capture stream.

        The value is the resume latency in ms, as measured by the session.
        """
        operation = "start_recording"

        async def _start() -> float:
            await asyncio.gather(self._audio.pause(), self._video.pause())
            try:
                latency_ms = await self._recording.start_capture()
            except Exception:
                self.metrics.record(operation, 0.0, is_error=True)
                raise
            self.metrics.record(operation, latency_ms)
            return latency_ms

        return await self._call(operation, _start)

    async def stop_recording(self) -> MediaResult:
        """
        Flush the current take to disk. Nothing is resumed afterwards.

        Status NO_ACTIVE_CAPTURE (value None) when nothing was recording.
        """
        operation = "stop_recording"
        failure = self._precondition(operation)
        if failure is not None:
            return failure

        was_capturing = self._recording.is_capturing
        result = await self._call(operation, lambda: self._recording.stop_capture())
        if not was_capturing:
            return replace(result, status=OperationStatus.NO_ACTIVE_CAPTURE, value=None)
        return result

    async def stop_all(self) -> MediaResult:
        """Stop audio and video concurrently. Recording is untouched."""
        async def _stop() -> None:
            await asyncio.gather(self._audio.stop(), self._video.stop())

        return await self._call("stop_all", _stop)

    async def record_for_duration(self, seconds: float) -> MediaResult:
        """Record one take of `seconds`; the value is the saved path."""
        operation = "record_for_duration"
        with TakeContext():
            started = await self.start_recording()
            if not started.ok:
                return replace(started, operation=operation)

            self._logger.info(f"Recording started ({started.value:.2f}ms), capturing {seconds:.1f}s")
            try:
                await asyncio.sleep(seconds)
            finally:
                stopped = await self.stop_recording()

        return replace(
            stopped,
            operation=operation,
            elapsed_ms=started.elapsed_ms + stopped.elapsed_ms + seconds * 1000,
        )

    async def play_video_and_record(
        self,
        video_url: str,
        duration: float,
        on_video_started: Optional[Callable[[], None]] = None,
    ) -> MediaResult:
        """
        Play `video_url` muted while recording a take of `duration` seconds.

        The value is a PlayVideoAndRecordResult. However the call ends, the
        video is left paused and no take stays armed.
        """
        operation = "play_video_and_record"
        failure = self._precondition(operation)
        if failure is not None:
            return failure

        recording, video = self._recording, self._video
        start = time.perf_counter()
        path: Optional[Path] = None

        with TakeContext():
            try:
                await self._audio.pause()
                await video.play(video_url, muted=True)
                if on_video_started is not None:
                    on_video_started()
                video_init_ms = (time.perf_counter() - start) * 1000

                record_init_ms = await recording.start_capture()
                self.metrics.record("start_recording", record_init_ms)

                await asyncio.sleep(duration)
                path = await recording.stop_capture()
            finally:
                if recording.is_capturing:
                    # Interrupted mid-take: the partial take is still saved
                    path = await recording.stop_capture()
                await video.pause()

        total_ms = (time.perf_counter() - start) * 1000
        self._logger.info(
            f"Video+record completed in {total_ms:.0f}ms "
            f"(video init {video_init_ms:.0f}ms, record init {record_init_ms:.2f}ms)"
        )
        return MediaResult(
            OperationStatus.OK, operation,
            value=PlayVideoAndRecordResult(
                recorded_path=path,
                video_init_ms=video_init_ms,
                record_init_ms=record_init_ms,
                total_ms=total_ms,
            ),
            elapsed_ms=total_ms,
        )

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the engine for drivers and the HTTP surface."""
        audio_source = self._audio.current_source if self._audio else None
        return {
            "state": self.state.name,
            "recording": {
                "is_capturing": bool(self._recording and self._recording.is_capturing),
                "take_counter": self._recording.take_counter if self._recording else 0,
                "recorded_files": [str(p) for p in self.recorded_files],
                "cold_open_latency_ms": round(self.cold_open_latency_ms, 2),
            },
            "audio": {
                "is_playing": bool(self._audio and self._audio.is_playing),
                "source": audio_source.uri if audio_source else None,
            },
            "video": {
                "is_playing": bool(self._video and self._video.is_playing),
                "source": self._video.current_source if self._video else None,
                "handles_created": self._video.handles_created if self._video else 0,
            },
            "metrics": self.metrics.get_summary(),
            "errors": self.error_handler.get_error_stats(),
        }
