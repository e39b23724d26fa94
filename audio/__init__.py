# Audio module - keep-alive capture, per-take buffering and WAV output

from .audio_buffer import AudioChunk, AudioTake, TakeBuffer
from .capture_stream import CaptureStream, CaptureConfig, CaptureState
from .recording_session import RecordingSession, RecordingConfig
from .wav import WavHeader, encode_wav, parse_wav_header

__all__ = [
    "AudioChunk", "AudioTake", "TakeBuffer",
    "CaptureStream", "CaptureConfig", "CaptureState",
    "RecordingSession", "RecordingConfig",
    "WavHeader", "encode_wav", "parse_wav_header",
]
