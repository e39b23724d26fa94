"""
Audio Session
-------------
Process-wide audio configuration for simultaneous playback and capture.

Must be configured before any capture stream is opened. Also acts as the
hub for session events (interruptions, output becoming noisy) that
playback owners react to.
"""

from enum import Enum, auto
from typing import Any, Awaitable, Callable, List, Optional, Union
import asyncio
import inspect
import logging

try:
    import sounddevice as sd
except (ImportError, OSError):
    sd = None

from core.errors import DeviceError


class SessionEvent(Enum):
    """Events raised by the platform audio session."""
    INTERRUPTION_BEGAN = auto()  # e.g. incoming call
    INTERRUPTION_ENDED = auto()
    BECOMING_NOISY = auto()      # headphones unplugged


SessionListener = Callable[[SessionEvent], Union[None, Awaitable[None]]]


class AudioSessionManager:
    """
    Configures sounddevice defaults shared by input and output streams.

    Usage:
        session = AudioSessionManager(sample_rate=44100)
        await session.configure()   # idempotent
        session.add_listener(on_event)
        await session.dispose()
    """

    def __init__(
        self,
        sample_rate: int = 44100,
        channels: int = 1,
        dtype: str = "int16",
        latency: str = "low",
        device: Optional[Any] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.dtype = dtype
        self.latency = latency
        self.device = device
        self._configured = False
        self._listeners: List[SessionListener] = []
        self._logger = logging.getLogger("mediakeep.infra.audio_session")

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def configure(self) -> None:
        """
        Apply the session defaults.

        Raises:
            DeviceError: If no audio backend is available
        """
        if self._configured:
            self._logger.debug("Audio session already configured")
            return

        if sd is None:
            raise DeviceError(
                "sounddevice is required for audio. Install with: pip install sounddevice"
            )

        try:
            await asyncio.to_thread(self._apply_defaults)
        except Exception as e:
            # Streams still open with their explicit parameters
            self._logger.warning(f"Audio session configuration error: {e}")

        self._configured = True
        self._logger.info(
            f"Audio session configured ({self.sample_rate}Hz, {self.channels}ch, "
            f"{self.dtype}, latency={self.latency})"
        )

    def _apply_defaults(self) -> None:
        sd.default.samplerate = self.sample_rate
        sd.default.channels = self.channels
        sd.default.dtype = self.dtype
        sd.default.latency = self.latency
        if self.device is not None:
            sd.default.device = self.device

    def add_listener(self, listener: SessionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def notify(self, event: SessionEvent) -> None:
        """Deliver a session event to every listener, awaiting async ones."""
        if event == SessionEvent.BECOMING_NOISY:
            self._logger.info("Output becoming noisy (headphones unplugged)")
        else:
            self._logger.info(f"Audio interruption: {event.name}")

        for listener in list(self._listeners):
            result = listener(event)
            if inspect.isawaitable(result):
                await result

    async def dispose(self) -> None:
        self._listeners.clear()
        self._configured = False
        self._logger.info("Audio session disposed")
