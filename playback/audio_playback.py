"""
Audio Playback Session
----------------------
One reusable audio output handle with play/pause/stop and a bounded
auto-stop for network sources.
"""

from pathlib import Path
from typing import Callable, Optional, Union
import asyncio
import contextlib
import logging
import time

from core.errors import NotInitializedError, SourceError
from .handles import AudioOutputFactory, AudioOutputHandle, MediaSource


class AudioPlaybackSession:
    """
    Audio playback over a single output handle.

    Starting a new source always stops the previous one first.
    """

    START_POLL_INTERVAL = 0.005

    def __init__(
        self,
        output_factory: AudioOutputFactory,
        default_max_duration: float = 5.0,
        start_timeout: float = 2.0,
    ):
        self._output_factory = output_factory
        self.default_max_duration = default_max_duration
        self.start_timeout = start_timeout
        self._handle: Optional[AudioOutputHandle] = None
        self._current_source: Optional[MediaSource] = None
        self._auto_stop_task: Optional[asyncio.Task] = None
        self._generation = 0
        self.last_start_latency_ms: Optional[float] = None
        self._logger = logging.getLogger("mediakeep.playback.audio")

    @property
    def is_initialized(self) -> bool:
        return self._handle is not None

    @property
    def is_playing(self) -> bool:
        return self._handle is not None and self._handle.is_playing

    @property
    def current_source(self) -> Optional[MediaSource]:
        return self._current_source

    async def initialize(self) -> None:
        """Create the output handle."""
        if self._handle is not None:
            self._logger.warning("AudioPlaybackSession already initialized")
            return

        self._handle = self._output_factory()
        self._logger.info("AudioPlaybackSession initialized")

    def _require_handle(self) -> AudioOutputHandle:
        if self._handle is None:
            raise NotInitializedError("AudioPlaybackSession not initialized")
        return self._handle

    async def play_from_url(
        self,
        url: str,
        max_duration: Optional[float] = None,
        on_started: Optional[Callable[[float], None]] = None,
    ) -> None:
        """
        Play a network source and stop it after `max_duration` seconds.

        `on_started` receives the load+start latency in milliseconds once
        the output reports it is playing. Outputs that buffer first are
        waited on for up to `start_timeout` seconds; the auto-stop is
        scheduled either way.

        Raises:
            SourceError: If the source cannot be loaded or started
        """
        handle = self._require_handle()
        start = time.perf_counter()

        source = MediaSource.from_url(url)
        await self._start(handle, source)
        generation = self._generation

        duration = self.default_max_duration if max_duration is None else max_duration
        self._auto_stop_task = asyncio.create_task(self._auto_stop(generation, duration))

        if not await self._wait_until_playing(handle, generation):
            self._logger.warning(
                f"Output did not report playing within {self.start_timeout:.1f}s: {url}"
            )
            return

        latency_ms = (time.perf_counter() - start) * 1000
        self.last_start_latency_ms = latency_ms
        self._logger.info(
            f"Playing audio from URL: {url} ({latency_ms:.0f}ms)",
            extra={"source": url, "latency_ms": latency_ms},
        )

        if on_started is not None:
            on_started(latency_ms)

    async def _wait_until_playing(self, handle: AudioOutputHandle, generation: int) -> bool:
        """Poll until `handle` plays; False on timeout or if superseded."""
        deadline = time.perf_counter() + self.start_timeout
        while not handle.is_playing:
            if generation != self._generation or time.perf_counter() >= deadline:
                return False
            await asyncio.sleep(self.START_POLL_INTERVAL)
        return generation == self._generation

    async def play_from_file(self, path: Union[str, Path]) -> None:
        """
        Play a local file to completion or until stopped.

        Raises:
            SourceError: If the file is missing or cannot be played
        """
        handle = self._require_handle()

        if not Path(path).is_file():
            raise SourceError(f"Audio file not found: {path}", details={"source": str(path)})

        await self._start(handle, MediaSource.from_file(path))
        self._logger.info(f"Playing audio from file: {path}", extra={"source": str(path)})

    async def _start(self, handle: AudioOutputHandle, source: MediaSource) -> None:
        """Stop whatever is playing, then load and play `source`."""
        await self._cancel_auto_stop()
        self._generation += 1
        await handle.stop()
        self._current_source = None

        try:
            await handle.load(source)
            await handle.play()
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(f"Cannot play {source}: {e}", details={"source": source.uri}) from e

        self._current_source = source

    async def _auto_stop(self, generation: int, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            if generation != self._generation or self._handle is None:
                return
            await self._handle.stop()
            self._current_source = None
            self._logger.info(f"Audio auto-stopped after {delay:.1f}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error(f"Auto-stop failed: {e}")

    async def _cancel_auto_stop(self) -> None:
        task, self._auto_stop_task = self._auto_stop_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def stop(self) -> None:
        """Stop playback. No-op if nothing is loaded."""
        if self._handle is None or self._current_source is None:
            return

        await self._cancel_auto_stop()
        self._generation += 1
        await self._handle.stop()
        self._current_source = None
        self._logger.info("Audio stopped")

    async def pause(self) -> None:
        """Pause playback. No-op if nothing is loaded."""
        if self._handle is None or self._current_source is None:
            return

        await self._handle.pause()
        self._logger.info("Audio paused")

    async def resume(self) -> None:
        """Resume paused playback. No-op if nothing is loaded."""
        if self._handle is None or self._current_source is None:
            return

        await self._handle.play()
        self._logger.info("Audio resumed")

    async def dispose(self) -> None:
        """Release the output handle."""
        await self._cancel_auto_stop()
        handle, self._handle = self._handle, None
        self._current_source = None
        if handle is not None:
            await handle.dispose()
        self._logger.info("AudioPlaybackSession disposed")
