"""
Video Playback Session
----------------------
Caches at most one decoding handle, keyed by source URL.
Replaying the same URL reuses the handle; a new URL disposes the old
handle before creating the next one.
"""

from typing import Optional
import logging

from core.errors import DecodeError, NotInitializedError
from .handles import VideoDecoderFactory, VideoDecoderHandle


class VideoPlaybackSession:
    """Video playback with single-handle reuse and mute/volume control."""

    def __init__(self, decoder_factory: VideoDecoderFactory):
        self._decoder_factory = decoder_factory
        self._handle: Optional[VideoDecoderHandle] = None
        self._current_source: Optional[str] = None
        self._initialized = False
        self._muted = False
        self._volume = 1.0
        self.handles_created = 0
        self._logger = logging.getLogger("mediakeep.playback.video")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def current_source(self) -> Optional[str]:
        return self._current_source

    @property
    def is_playing(self) -> bool:
        return self._has_live_handle() and self._handle.is_playing

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def volume(self) -> float:
        return self._volume

    def _has_live_handle(self) -> bool:
        return self._handle is not None and self._handle.is_initialized

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("VideoPlaybackSession already initialized")
            return

        self._initialized = True
        self._logger.info("VideoPlaybackSession initialized")

    async def play(self, url: str, muted: bool = False) -> None:
        """
        Play `url` from the start, reusing the handle when the URL is unchanged.

        Raises:
            DecodeError: If a new handle fails to initialize
        """
        if not self._initialized:
            raise NotInitializedError("VideoPlaybackSession not initialized")

        if url != self._current_source:
            await self._dispose_current()
            self._handle = await self._create_handle(url)
            self._current_source = url
            self._logger.info(f"Video handle initialized for: {url}", extra={"source": url})
        else:
            self._logger.info(f"Reusing existing video handle for: {url}", extra={"source": url})

        self._muted = muted
        self._volume = 0.0 if muted else 1.0
        await self._handle.set_volume(self._volume)
        await self._handle.seek(0.0)
        await self._handle.play()

        self._logger.info(f"Playing video: {url}{' (muted)' if muted else ''}")

    async def _create_handle(self, url: str) -> VideoDecoderHandle:
        handle = self._decoder_factory(url)
        self.handles_created += 1

        try:
            await handle.initialize()
        except Exception as e:
            try:
                await handle.dispose()
            except Exception as dispose_error:
                self._logger.warning(f"Failed to release broken video handle: {dispose_error}")
            if isinstance(e, DecodeError):
                raise
            raise DecodeError(f"Cannot open video {url}: {e}", details={"source": url}) from e

        return handle

    async def pause(self) -> None:
        if not self._has_live_handle():
            return
        await self._handle.pause()
        self._logger.info("Video paused")

    async def resume(self) -> None:
        if not self._has_live_handle():
            return
        await self._handle.play()
        self._logger.info("Video resumed")

    async def stop(self) -> None:
        """Pause and rewind to the start."""
        if not self._has_live_handle():
            return
        await self._handle.pause()
        await self._handle.seek(0.0)
        self._logger.info("Video stopped")

    async def set_volume(self, level: float) -> None:
        """
        Set the output volume.

        Raises:
            ValueError: If level is outside [0, 1]
        """
        if not 0.0 <= level <= 1.0:
            raise ValueError(f"Volume must be within [0, 1], got {level}")

        self._volume = level
        self._muted = level == 0.0
        if self._has_live_handle():
            await self._handle.set_volume(level)

    async def _dispose_current(self) -> None:
        handle, self._handle = self._handle, None
        self._current_source = None
        if handle is not None:
            await handle.dispose()
            self._logger.info("Previous video handle disposed")

    async def dispose(self) -> None:
        await self._dispose_current()
        self._initialized = False
        self._logger.info("VideoPlaybackSession disposed")
