# Playback module - audio output and video decoding sessions
# Concrete sounddevice/OpenCV handles are imported from their modules directly

from .handles import (
    MediaSource, AudioOutputHandle, VideoDecoderHandle,
    AudioOutputFactory, VideoDecoderFactory,
)
from .audio_playback import AudioPlaybackSession
from .video_playback import VideoPlaybackSession

__all__ = [
    "MediaSource", "AudioOutputHandle", "VideoDecoderHandle",
    "AudioOutputFactory", "VideoDecoderFactory",
    "AudioPlaybackSession", "VideoPlaybackSession",
]
