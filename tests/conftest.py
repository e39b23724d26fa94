"""
mediakeep Test Configuration
----------------------------
Shared fixtures and fakes for all tests.

Every hardware collaborator (input stream, permission, audio output,
video decoder, audio session) has an in-memory fake so tests never touch
a sound card or network.
"""

import inspect
import sys
import time
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from audio.recording_session import RecordingConfig
from core.backends import MediaBackends
from core.orchestrator import MediaOrchestrator
from infra.config import MediaConfig, PlaybackConfig

# One second of 16-bit mono 44.1 kHz audio
BYTES_PER_SECOND = 44100 * 2


def pcm_block(value: int, frames: int = 64) -> bytes:
    """A recognizable block of int16 samples all equal to `value`."""
    return value.to_bytes(2, "little", signed=True) * frames


# =============================================================================
# Capture fakes
# =============================================================================

class FakeInputStream:
    """Stands in for sounddevice.RawInputStream."""

    def __init__(self, events, open_delay=0.0, **kwargs):
        if open_delay:
            time.sleep(open_delay)
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.active = False
        self.closed = False
        self.calls = []
        self._events = events
        self._events.append("open")

    def start(self):
        self.calls.append("start")
        self.active = True

    def stop(self):
        self.calls.append("stop")
        self.active = False

    def close(self):
        self.calls.append("close")
        self.active = False
        self.closed = True

    def push(self, data: bytes) -> bool:
        """Deliver a block like the driver would; nothing arrives while stopped."""
        if not self.active:
            return False
        self.callback(data, len(data) // 2, None, None)
        return True


class FakeStreamFactory:
    """Callable factory recording every stream it creates."""

    def __init__(self, events=None, open_delay=0.0, fail=False):
        self.events = events if events is not None else []
        self.open_delay = open_delay
        self.fail = fail
        self.streams = []

    def __call__(self, **kwargs):
        if self.fail:
            raise OSError("Device unavailable")
        stream = FakeInputStream(self.events, open_delay=self.open_delay, **kwargs)
        self.streams.append(stream)
        return stream

    @property
    def stream(self) -> FakeInputStream:
        return self.streams[-1]


class FakePermission:
    def __init__(self, granted=True):
        self.granted = granted
        self.checks = 0

    def has_capture_permission(self) -> bool:
        self.checks += 1
        return self.granted


# =============================================================================
# Playback fakes
# =============================================================================

class FakeAudioOutput:
    """Stands in for the sounddevice output handle."""

    def __init__(self, fail_load=False):
        self.fail_load = fail_load
        self.is_playing = False
        self.source = None
        self.volume = 1.0
        self.disposed = False
        self.calls = []

    async def load(self, source):
        self.calls.append("load")
        if self.fail_load:
            raise IOError(f"unreachable: {source.uri}")
        self.source = source

    async def play(self):
        self.calls.append("play")
        self.is_playing = self.source is not None

    async def pause(self):
        self.calls.append("pause")
        self.is_playing = False

    async def stop(self):
        self.calls.append("stop")
        self.is_playing = False

    async def set_volume(self, level):
        self.volume = level

    async def dispose(self):
        self.calls.append("dispose")
        self.is_playing = False
        self.disposed = True


class FakeVideoDecoder:
    """Stands in for the OpenCV decoding handle."""

    def __init__(self, url, events, fail=False):
        self.url = url
        self.fail = fail
        self.is_initialized = False
        self.is_playing = False
        self.position = None
        self.volume = None
        self.disposed = False
        self._events = events

    async def initialize(self):
        if self.fail:
            raise RuntimeError(f"cannot decode {self.url}")
        self.is_initialized = True

    async def play(self):
        self.is_playing = True

    async def pause(self):
        self.is_playing = False

    async def seek(self, position_seconds):
        self.position = position_seconds

    async def set_volume(self, level):
        self.volume = level

    async def dispose(self):
        self._events.append(("dispose", self.url))
        self.is_initialized = False
        self.is_playing = False
        self.disposed = True


class FakeVideoFactory:
    """Callable factory recording every decoder it creates."""

    def __init__(self, events=None):
        self.events = events if events is not None else []
        self.fail_urls = set()
        self.decoders = []

    def __call__(self, url):
        self.events.append(("create", url))
        decoder = FakeVideoDecoder(url, self.events, fail=url in self.fail_urls)
        self.decoders.append(decoder)
        return decoder

    @property
    def decoder(self) -> FakeVideoDecoder:
        return self.decoders[-1]


class FakeSessionManager:
    """Stands in for AudioSessionManager."""

    def __init__(self, events=None):
        self.events = events if events is not None else []
        self.configured = False
        self.configure_calls = 0
        self.disposed = False
        self.listeners = []

    async def configure(self):
        self.configure_calls += 1
        self.events.append("configure")
        self.configured = True

    def add_listener(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    async def notify(self, event):
        for listener in list(self.listeners):
            result = listener(event)
            if inspect.isawaitable(result):
                await result

    async def dispose(self):
        self.configured = False
        self.disposed = True


class FakeRig:
    """All fakes wired together, with a shared event log for ordering checks."""

    def __init__(self, open_delay=0.0):
        self.events = []
        self.stream_factory = FakeStreamFactory(self.events, open_delay=open_delay)
        self.permission = FakePermission()
        self.session_manager = FakeSessionManager(self.events)
        self.video_factory = FakeVideoFactory(self.events)
        self.audio_outputs = []
        self.fail_audio_load = False

    def audio_output_factory(self) -> FakeAudioOutput:
        output = FakeAudioOutput(fail_load=self.fail_audio_load)
        self.audio_outputs.append(output)
        return output

    @property
    def audio_output(self) -> FakeAudioOutput:
        return self.audio_outputs[-1]

    @property
    def stream(self) -> FakeInputStream:
        return self.stream_factory.stream

    def backends(self) -> MediaBackends:
        return MediaBackends(
            audio_output_factory=self.audio_output_factory,
            video_decoder_factory=self.video_factory,
            session_manager=self.session_manager,
            permission=self.permission,
            stream_factory=self.stream_factory,
        )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def rig():
    return FakeRig()


@pytest.fixture
def takes_dir(tmp_path):
    return tmp_path / "takes"


@pytest.fixture
def media_config(takes_dir):
    """Configuration writing takes under tmp_path with a short auto-stop."""
    return MediaConfig(
        recording=RecordingConfig(output_dir=str(takes_dir)),
        playback=PlaybackConfig(max_audio_duration=0.05),
    )


@pytest.fixture
def orchestrator(rig, media_config):
    """An uninitialized orchestrator built on the fakes."""
    return MediaOrchestrator(media_config, rig.backends())
