"""
Recording Session
-----------------
Takes on top of a keep-alive capture stream.

The stream stays open for the whole session; a take only resumes it and
raises the capturing flag. Stopping lowers the flag, optionally pauses the
stream, and writes the retained chunks as a WAV file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
import asyncio
import logging
import tempfile
import time

from core.errors import NotInitializedError, RecordingError
from infra.logging import TakeContext
from .audio_buffer import AudioTake, TakeBuffer
from .capture_stream import CaptureStream
from .wav import encode_wav


@dataclass
class RecordingConfig:
    """Configuration for takes and their files."""
    output_dir: Optional[str] = None  # None = process-scoped temp directory
    pause_on_stop: bool = True
    file_prefix: str = "recording"
    extension: str = "wav"


class RecordingSession:
    """
    Keep-alive recorder.

    Usage:
        session = RecordingSession(CaptureStream(config))
        await session.initialize()
        latency_ms = await session.start_capture()
        ...
        path = await session.stop_capture()
    """

    def __init__(self, capture_stream: CaptureStream, config: Optional[RecordingConfig] = None):
        self.config = config or RecordingConfig()
        self._stream = capture_stream
        capture_config = capture_stream.config
        self._buffer = TakeBuffer(
            sample_rate=capture_config.sample_rate,
            channels=capture_config.channels,
            sample_width=capture_config.sample_width,
        )
        self._take_counter = 0
        self._recorded_files: List[Path] = []
        self._output_dir: Optional[Path] = None
        self._take_id: Optional[str] = None
        self._initialized = False
        self._logger = logging.getLogger("mediakeep.audio.recording")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_capturing(self) -> bool:
        return self._buffer.is_capturing

    @property
    def take_counter(self) -> int:
        return self._take_counter

    @property
    def recorded_files(self) -> Tuple[Path, ...]:
        """Files produced so far, oldest first."""
        return tuple(self._recorded_files)

    @property
    def output_dir(self) -> Optional[Path]:
        return self._output_dir

    @property
    def capture_stream(self) -> CaptureStream:
        return self._stream

    async def initialize(self) -> None:
        """Open the capture stream in keep-alive mode and attach retention."""
        if self._initialized:
            self._logger.warning("RecordingSession already initialized")
            return

        await self._stream.open()
        self._stream.add_listener(self._buffer.offer)
        self._output_dir = self._resolve_output_dir()
        self._initialized = True

        self._logger.info(f"RecordingSession initialized - keep-alive mode, files in {self._output_dir}")

    def _resolve_output_dir(self) -> Path:
        if self.config.output_dir:
            path = Path(self.config.output_dir).expanduser()
            path.mkdir(parents=True, exist_ok=True)
            return path
        return Path(tempfile.mkdtemp(prefix="mediakeep_"))

    async def start_capture(self) -> float:
        """
        Start a take.

        Inside an enclosing TakeContext the take adopts that id.

        Returns:
            Milliseconds spent resuming the stream and raising the flag

        Raises:
            NotInitializedError: If the capture stream was never opened
        """
        if not self._initialized or not self._stream.is_open:
            raise NotInitializedError("Recorder not initialized")

        if self._buffer.is_capturing:
            self._logger.warning("Capture already in progress, restarting take")
            self._buffer.disarm()

        self._buffer.reset()

        with TakeContext() as take_id:
            self._take_id = take_id
            start = time.perf_counter()
            await self._stream.resume()
            self._buffer.arm()
            resume_ms = (time.perf_counter() - start) * 1000

            self._logger.info(
                f"Started capturing take {self._take_counter} ({resume_ms:.2f}ms)",
                extra={"latency_ms": resume_ms},
            )
        return resume_ms

    async def stop_capture(self) -> Optional[Path]:
        """
        Stop the take in progress and save it.

        Returns:
            Path of the written file, or None if nothing was captured or
            no take was in progress

        Raises:
            RecordingError: If the file cannot be written
        """
        take = self._buffer.disarm() if self._initialized else None
        if take is None:
            self._logger.warning("No capture in progress")
            return None

        take_id, self._take_id = self._take_id, None
        with TakeContext(take_id):
            if self.config.pause_on_stop:
                await self._stream.pause()

            self._logger.info(
                f"Stopped capturing: {take.chunk_count} chunks, {take.duration_seconds:.2f}s"
            )

            if take.is_empty:
                self._logger.warning("No audio data captured")
                return None

            return await self._save_take(take)

    async def _save_take(self, take: AudioTake) -> Path:
        """Write the take as a WAV file and add it to the catalog."""
        timestamp = int(time.time() * 1000)
        filename = f"{self.config.file_prefix}_{self._take_counter}_{timestamp}.{self.config.extension}"
        path = self._output_dir / filename

        wav_bytes = encode_wav(
            take.pcm,
            sample_rate=take.sample_rate,
            channels=take.channels,
            bits_per_sample=take.sample_width * 8,
        )

        try:
            await asyncio.to_thread(path.write_bytes, wav_bytes)
        except OSError as e:
            raise RecordingError(f"Cannot write {path}: {e}", details={"path": str(path)}) from e

        self._recorded_files.append(path)
        self._take_counter += 1

        self._logger.info(
            f"Saved recording to {path} ({len(wav_bytes) / 1024:.1f} KB)",
            extra={"path": str(path)},
        )
        return path

    async def dispose(self) -> None:
        """Drop any take in progress and close the capture stream."""
        self._buffer.disarm()
        self._stream.remove_listener(self._buffer.offer)
        await self._stream.close()
        self._recorded_files.clear()
        self._initialized = False
        self._logger.info("RecordingSession disposed")
