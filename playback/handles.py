"""
Playback Handles
----------------
Interfaces of the output/decoder handles owned by the playback sessions.
Concrete handles live in `sounddevice_output` and `opencv_video`; tests
provide their own.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Union
from urllib.parse import urlparse


@dataclass(frozen=True)
class MediaSource:
    """Identity of something to play: a network URL or a local file."""
    uri: str
    is_local: bool = False

    @classmethod
    def from_url(cls, url: str) -> "MediaSource":
        return cls(uri=url, is_local=False)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "MediaSource":
        return cls(uri=str(Path(path)), is_local=True)

    @property
    def is_remote(self) -> bool:
        return not self.is_local and urlparse(self.uri).scheme in ("http", "https")

    def __str__(self) -> str:
        return self.uri


class AudioOutputHandle(Protocol):
    """A reusable audio output (one per audio playback session)."""

    @property
    def is_playing(self) -> bool: ...

    async def load(self, source: MediaSource) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def stop(self) -> None: ...

    async def set_volume(self, level: float) -> None: ...

    async def dispose(self) -> None: ...


class VideoDecoderHandle(Protocol):
    """A decoding handle bound to one video source."""

    @property
    def is_initialized(self) -> bool: ...

    @property
    def is_playing(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, position_seconds: float) -> None: ...

    async def set_volume(self, level: float) -> None: ...

    async def dispose(self) -> None: ...


AudioOutputFactory = Callable[[], AudioOutputHandle]
VideoDecoderFactory = Callable[[str], VideoDecoderHandle]
