"""
OpenCV Video Decoder
--------------------
Video decoding handle built on cv2.VideoCapture.
Frames are pumped at the source frame rate to an optional sink; OpenCV
decodes no audio track, so volume is only recorded.
"""

from typing import Callable, Optional
import asyncio
import contextlib
import logging
import threading

import numpy as np

# OpenCV is optional
try:
    import cv2
    OPENCV_AVAILABLE = True
except ImportError:
    cv2 = None
    OPENCV_AVAILABLE = False

from core.errors import DecodeError

FrameSink = Callable[[np.ndarray, float], None]


class OpenCVVideoDecoder:
    """Decoding handle bound to a single video URL or path."""

    def __init__(self, url: str, on_frame: Optional[FrameSink] = None):
        self._url = url
        self._on_frame = on_frame
        self._capture = None
        self._fps = 25.0
        self._volume = 1.0
        self._position = 0.0
        self._pump_task: Optional[asyncio.Task] = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger("mediakeep.playback.opencv")

    @property
    def is_initialized(self) -> bool:
        return self._capture is not None

    @property
    def is_playing(self) -> bool:
        return self._pump_task is not None and not self._pump_task.done()

    @property
    def position_seconds(self) -> float:
        return self._position

    @property
    def volume(self) -> float:
        return self._volume

    async def initialize(self) -> None:
        if not OPENCV_AVAILABLE:
            raise DecodeError("OpenCV not available. Install with: pip install opencv-python")

        capture = await asyncio.to_thread(cv2.VideoCapture, self._url)
        if not capture.isOpened():
            capture.release()
            raise DecodeError(f"Cannot open video: {self._url}", details={"source": self._url})

        fps = capture.get(cv2.CAP_PROP_FPS)
        self._fps = fps if fps and fps > 0 else 25.0
        self._capture = capture
        self._logger.debug(f"Opened {self._url} at {self._fps:.1f} fps")

    def _read_frame(self):
        with self._lock:
            ok, frame = self._capture.read()
            position = self._capture.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
        return ok, frame, position

    async def _pump(self) -> None:
        interval = 1.0 / self._fps
        while self._capture is not None:
            ok, frame, position = await asyncio.to_thread(self._read_frame)
            if not ok:
                self._logger.info(f"End of video: {self._url}")
                return
            self._position = position
            if self._on_frame is not None:
                self._on_frame(frame, position)
            await asyncio.sleep(interval)

    async def play(self) -> None:
        if self._capture is None or self.is_playing:
            return
        self._pump_task = asyncio.create_task(self._pump())

    async def pause(self) -> None:
        task, self._pump_task = self._pump_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def seek(self, position_seconds: float) -> None:
        if self._capture is None:
            return

        def _seek() -> None:
            with self._lock:
                self._capture.set(cv2.CAP_PROP_POS_MSEC, position_seconds * 1000.0)

        await asyncio.to_thread(_seek)
        self._position = position_seconds

    async def set_volume(self, level: float) -> None:
        self._volume = level

    async def dispose(self) -> None:
        await self.pause()
        capture, self._capture = self._capture, None
        if capture is not None:
            await asyncio.to_thread(capture.release)
