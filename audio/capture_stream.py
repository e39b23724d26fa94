"""
Capture Stream Module
---------------------
Keep-alive microphone capture using sounddevice.

The device stream is opened once and then only paused and resumed, so
starting a take never pays the driver open latency again. Chunks are
delivered on the driver thread to synchronous listeners and, through the
event loop, to any number of async `frames()` subscribers.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, AsyncIterator, Callable, List, Optional, Set
import asyncio
import logging
import threading
import time

try:
    import sounddevice as sd
except (ImportError, OSError):
    sd = None

from core.errors import DeviceError, NotInitializedError
from .audio_buffer import AudioChunk


class CaptureState(Enum):
    """Lifecycle of the capture handle."""
    UNINITIALIZED = auto()
    PAUSED = auto()
    ACTIVE = auto()
    DISPOSED = auto()


@dataclass
class CaptureConfig:
    """Configuration for microphone capture."""
    sample_rate: int = 44100
    channels: int = 1
    dtype: str = "int16"
    block_size: int = 1024  # Frames per callback
    device: Optional[Any] = None
    subscriber_queue_size: int = 256

    @property
    def sample_width(self) -> int:
        return {"int16": 2, "int32": 4, "float32": 4, "int8": 1, "uint8": 1}[self.dtype]

    @property
    def bits_per_sample(self) -> int:
        return self.sample_width * 8


ChunkListener = Callable[[AudioChunk], None]


class CaptureStream:
    """
    One long-lived microphone stream.

    Usage:
        stream = CaptureStream(config, permission=checker)
        await stream.open()      # opened and immediately paused
        await stream.resume()    # near-instant, handle was never released
        async for chunk in stream.frames():
            ...
        await stream.close()     # irreversible
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        permission: Optional[Any] = None,
        stream_factory: Optional[Callable[..., Any]] = None,
    ):
        self.config = config or CaptureConfig()
        self._permission = permission
        self._stream_factory = stream_factory
        self._stream: Optional[Any] = None
        self._state = CaptureState.UNINITIALIZED
        self._lock = threading.Lock()
        self._transition_lock = asyncio.Lock()
        self._listeners: List[ChunkListener] = []
        self._subscribers: Set[asyncio.Queue] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sequence = 0
        self._dropped = 0
        self.open_latency_ms = 0.0
        self._logger = logging.getLogger("mediakeep.audio.capture")

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state in (CaptureState.PAUSED, CaptureState.ACTIVE)

    @property
    def is_active(self) -> bool:
        return self._state == CaptureState.ACTIVE

    @property
    def chunks_delivered(self) -> int:
        with self._lock:
            return self._sequence

    def _resolve_factory(self) -> Callable[..., Any]:
        if self._stream_factory is not None:
            return self._stream_factory
        if sd is None:
            raise DeviceError(
                "sounddevice is required for capture. Install with: pip install sounddevice"
            )
        return sd.RawInputStream

    async def open(self) -> None:
        """
        Acquire the device, start streaming and pause immediately.

        Raises:
            DeviceError: If permission is missing or the device cannot be opened
        """
        if self.is_open:
            self._logger.warning("Capture stream already open")
            return

        if self._state == CaptureState.DISPOSED:
            raise DeviceError("Capture stream was closed and cannot be reopened")

        if self._permission is not None and not self._permission.has_capture_permission():
            raise DeviceError("No recording permission")

        factory = self._resolve_factory()
        self._loop = asyncio.get_running_loop()

        start = time.perf_counter()
        try:
            stream = await asyncio.to_thread(self._open_device, factory)
        except Exception as e:
            raise DeviceError(f"Cannot open capture device: {e}") from e

        if self._state == CaptureState.DISPOSED:
            await asyncio.to_thread(stream.close)
            raise DeviceError("Capture stream was closed while opening")

        self._stream = stream
        self.open_latency_ms = (time.perf_counter() - start) * 1000
        self._state = CaptureState.PAUSED

        self._logger.info(
            f"Capture stream open ({self.config.sample_rate}Hz, "
            f"{self.config.channels}ch, {self.config.dtype}) in "
            f"{self.open_latency_ms:.1f}ms - paused, ready for instant resume"
        )

    def _open_device(self, factory: Callable[..., Any]) -> Any:
        """Create and start the driver stream, then stop it (blocking)."""
        stream = factory(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype=self.config.dtype,
            blocksize=self.config.block_size,
            device=self.config.device,
            callback=self._audio_callback,
        )
        try:
            stream.start()
            stream.stop()
        except Exception:
            stream.close()
            raise
        return stream

    async def pause(self) -> None:
        """
        Stop hardware streaming without releasing the handle.

        The driver stop drains pending buffers, so it runs off the event loop.
        """
        async with self._transition_lock:
            if self._stream is None or self._state != CaptureState.ACTIVE:
                return
            await asyncio.to_thread(self._stream.stop)
            if self._state == CaptureState.ACTIVE:
                self._state = CaptureState.PAUSED
        self._logger.debug("Capture stream paused")

    async def resume(self) -> None:
        """Restart hardware streaming on the already-open handle."""
        async with self._transition_lock:
            if self._stream is None or self._state != CaptureState.PAUSED:
                return
            # Inline start: this is the latency a take pays
            self._stream.start()
            self._state = CaptureState.ACTIVE
        self._logger.debug("Capture stream resumed")

    def _audio_callback(self, indata, frames: int, time_info, status) -> None:
        """Callback for audio blocks from the driver thread."""
        if status:
            self._logger.debug(f"Capture status: {status}")

        with self._lock:
            self._sequence += 1
            sequence = self._sequence
            listeners = list(self._listeners)

        # Copy data, the driver reuses its buffer
        chunk = AudioChunk(data=bytes(indata), sequence=sequence, frame_count=frames)

        for listener in listeners:
            try:
                listener(chunk)
            except Exception as e:
                self._logger.warning(f"Chunk listener error: {e}")

        if self._subscribers and self._loop is not None:
            try:
                self._loop.call_soon_threadsafe(self._fan_out, chunk)
            except RuntimeError as e:
                self._logger.debug(f"Event loop unavailable for chunk {sequence}: {e}")

    def add_listener(self, callback: ChunkListener) -> None:
        """Add a chunk listener called on the driver thread."""
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: ChunkListener) -> None:
        """Remove a chunk listener."""
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _fan_out(self, chunk: Optional[AudioChunk]) -> None:
        for queue in list(self._subscribers):
            self._push(queue, chunk)

    def _push(self, queue: asyncio.Queue, item: Optional[AudioChunk]) -> None:
        if queue.full():
            queue.get_nowait()
            self._dropped += 1
        queue.put_nowait(item)

    async def frames(self) -> AsyncIterator[AudioChunk]:
        """
        Iterate over captured chunks until the stream is closed.

        Subscribing does not resume the hardware; a paused stream simply
        yields nothing until it is resumed.
        """
        if not self.is_open:
            raise NotInitializedError("Capture stream is not open")

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.subscriber_queue_size)
        self._subscribers.add(queue)
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    return
                yield chunk
        finally:
            self._subscribers.discard(queue)

    async def close(self) -> None:
        """Stop streaming, release the handle and end every frame iterator."""
        if self._state == CaptureState.DISPOSED:
            return

        stream, self._stream = self._stream, None
        self._state = CaptureState.DISPOSED

        with self._lock:
            self._listeners.clear()
        self._fan_out(None)

        if stream is not None:
            try:
                await asyncio.to_thread(self._close_device, stream)
            except Exception as e:
                raise DeviceError(f"Error releasing capture device: {e}") from e

        self._logger.info(
            f"Capture stream closed after {self.chunks_delivered} chunks"
            + (f" ({self._dropped} dropped by slow subscribers)" if self._dropped else "")
        )

    @staticmethod
    def _close_device(stream: Any) -> None:
        stream.stop()
        stream.close()
