"""
Media Backends
--------------
The hardware-facing collaborators the orchestrator is built from.

Tests inject fakes; `default_backends` wires sounddevice, httpx and OpenCV.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from infra.audio_session import AudioSessionManager
from infra.config import MediaConfig
from playback.handles import AudioOutputFactory, VideoDecoderFactory


@dataclass
class MediaBackends:
    """Factories and collaborators injected into the orchestrator."""
    audio_output_factory: AudioOutputFactory
    video_decoder_factory: VideoDecoderFactory
    session_manager: Any  # configure()/dispose()/add_listener()
    permission: Optional[Any] = None  # has_capture_permission()
    stream_factory: Optional[Callable[..., Any]] = None  # None = sounddevice.RawInputStream


def default_backends(config: Optional[MediaConfig] = None) -> MediaBackends:
    """Build the production backends from configuration."""
    # Import here so fakes never pull in the device libraries
    from playback.opencv_video import OpenCVVideoDecoder
    from playback.sounddevice_output import SoundDeviceOutput
    from security import MicrophonePermission

    config = config or MediaConfig()
    capture = config.capture
    playback = config.playback

    def audio_output_factory() -> SoundDeviceOutput:
        return SoundDeviceOutput(
            device=playback.output_device,
            http_timeout=playback.http_timeout,
            block_size=capture.block_size,
        )

    return MediaBackends(
        audio_output_factory=audio_output_factory,
        video_decoder_factory=OpenCVVideoDecoder,
        session_manager=AudioSessionManager(
            sample_rate=capture.sample_rate,
            channels=capture.channels,
            dtype=capture.dtype,
        ),
        permission=MicrophonePermission(
            device=capture.device,
            sample_rate=capture.sample_rate,
            channels=capture.channels,
            dtype=capture.dtype,
        ),
    )
