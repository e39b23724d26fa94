"""
Recording Session Tests
-----------------------
Tests for takes on a keep-alive capture stream.

Tests cover:
- Start/stop lifecycle and resume latency
- Frame discard between takes
- File naming, catalog and counter
- Pause-on-stop policy
- Write failures
"""

import re
import shutil
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from audio.capture_stream import CaptureState, CaptureStream
from audio.recording_session import RecordingConfig, RecordingSession
from audio.wav import HEADER_SIZE, parse_wav_header
from core.errors import NotInitializedError, RecordingError
from conftest import FakeStreamFactory, pcm_block


def make_session(tmp_path, **config):
    factory = FakeStreamFactory()
    stream = CaptureStream(stream_factory=factory)
    session = RecordingSession(stream, RecordingConfig(output_dir=str(tmp_path / "takes"), **config))
    return session, factory


class TestRecordingLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_before_initialize(self, tmp_path):
        session, _ = make_session(tmp_path)

        with pytest.raises(NotInitializedError):
            await session.start_capture()

    @pytest.mark.asyncio
    async def test_initialize_opens_paused_stream(self, tmp_path):
        session, factory = make_session(tmp_path)

        await session.initialize()

        assert session.capture_stream.state == CaptureState.PAUSED
        assert session.output_dir == tmp_path / "takes"
        assert session.output_dir.is_dir()

    @pytest.mark.asyncio
    async def test_temp_dir_when_unconfigured(self):
        session = RecordingSession(CaptureStream(stream_factory=FakeStreamFactory()))

        await session.initialize()
        try:
            assert session.output_dir.name.startswith("mediakeep_")
        finally:
            shutil.rmtree(session.output_dir)

    @pytest.mark.asyncio
    async def test_start_resumes_and_returns_latency(self, tmp_path):
        session, factory = make_session(tmp_path)
        await session.initialize()

        latency_ms = await session.start_capture()

        assert latency_ms >= 0
        assert session.is_capturing
        assert factory.stream.active

    @pytest.mark.asyncio
    async def test_stop_writes_wav(self, tmp_path):
        """The saved file holds exactly the chunks of the take."""
        session, factory = make_session(tmp_path)
        await session.initialize()

        await session.start_capture()
        factory.stream.push(pcm_block(1))
        factory.stream.push(pcm_block(2))
        path = await session.stop_capture()

        data = path.read_bytes()
        header = parse_wav_header(data)
        assert data[HEADER_SIZE:] == pcm_block(1) + pcm_block(2)
        assert header.data_size == len(data) - HEADER_SIZE
        assert header.sample_rate == 44100
        assert header.channels == 1
        assert header.bits_per_sample == 16

    @pytest.mark.asyncio
    async def test_file_naming_and_catalog(self, tmp_path):
        session, factory = make_session(tmp_path)
        await session.initialize()

        paths = []
        for value in (1, 2):
            await session.start_capture()
            factory.stream.push(pcm_block(value))
            paths.append(await session.stop_capture())

        assert re.fullmatch(r"recording_0_\d+\.wav", paths[0].name)
        assert re.fullmatch(r"recording_1_\d+\.wav", paths[1].name)
        assert session.recorded_files == tuple(paths)
        assert session.take_counter == 2

    @pytest.mark.asyncio
    async def test_recorded_files_is_snapshot(self, tmp_path):
        session, factory = make_session(tmp_path)
        await session.initialize()
        snapshot = session.recorded_files

        await session.start_capture()
        factory.stream.push(pcm_block(1))
        await session.stop_capture()

        assert snapshot == ()
        assert len(session.recorded_files) == 1


class TestRecordingEdgeCases:
    """Tests for empty takes, restarts and stop without start."""

    @pytest.mark.asyncio
    async def test_stop_without_start(self, tmp_path):
        session, _ = make_session(tmp_path)
        await session.initialize()

        for _ in range(3):
            assert await session.stop_capture() is None

        assert session.take_counter == 0
        assert list(session.output_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_empty_take_writes_nothing(self, tmp_path):
        session, _ = make_session(tmp_path)
        await session.initialize()

        await session.start_capture()
        path = await session.stop_capture()

        assert path is None
        assert session.take_counter == 0
        assert list(session.output_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_restart_discards_previous_chunks(self, tmp_path):
        """Starting during a take restarts it with an empty buffer."""
        session, factory = make_session(tmp_path)
        await session.initialize()

        await session.start_capture()
        factory.stream.push(pcm_block(1))
        await session.start_capture()
        factory.stream.push(pcm_block(2))
        path = await session.stop_capture()

        assert path.read_bytes()[HEADER_SIZE:] == pcm_block(2)

    @pytest.mark.asyncio
    async def test_between_takes_frames_discarded(self, tmp_path):
        """With the stream left running, frames outside a take never reach a file."""
        session, factory = make_session(tmp_path, pause_on_stop=False)
        await session.initialize()

        await session.start_capture()
        factory.stream.push(pcm_block(1))
        await session.stop_capture()

        assert factory.stream.push(pcm_block(9)) is True  # delivered, not retained

        await session.start_capture()
        factory.stream.push(pcm_block(3))
        factory.stream.push(pcm_block(4))
        path = await session.stop_capture()

        assert path.read_bytes()[HEADER_SIZE:] == pcm_block(3) + pcm_block(4)


class TestPauseOnStop:
    """Tests for the pause-on-stop policy."""

    @pytest.mark.asyncio
    async def test_pauses_by_default(self, tmp_path):
        session, factory = make_session(tmp_path)
        await session.initialize()

        await session.start_capture()
        await session.stop_capture()

        assert session.capture_stream.state == CaptureState.PAUSED
        assert not factory.stream.active
        assert not factory.stream.closed

    @pytest.mark.asyncio
    async def test_keeps_running_when_disabled(self, tmp_path):
        session, factory = make_session(tmp_path, pause_on_stop=False)
        await session.initialize()

        await session.start_capture()
        await session.stop_capture()

        assert session.capture_stream.state == CaptureState.ACTIVE
        assert factory.stream.active


class TestRecordingFailures:
    """Tests for write failures and disposal."""

    @pytest.mark.asyncio
    async def test_write_failure(self, tmp_path):
        """An unwritable directory raises RecordingError and the session stays idle."""
        session, factory = make_session(tmp_path)
        await session.initialize()
        shutil.rmtree(session.output_dir)

        await session.start_capture()
        factory.stream.push(pcm_block(1))
        with pytest.raises(RecordingError):
            await session.stop_capture()

        assert not session.is_capturing
        assert session.take_counter == 0
        assert session.recorded_files == ()

    @pytest.mark.asyncio
    async def test_dispose_closes_stream(self, tmp_path):
        session, factory = make_session(tmp_path)
        await session.initialize()
        await session.start_capture()
        factory.stream.push(pcm_block(1))
        await session.stop_capture()

        await session.dispose()

        assert factory.stream.closed
        assert session.recorded_files == ()
        assert session.capture_stream.state == CaptureState.DISPOSED
