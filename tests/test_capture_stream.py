"""
Capture Stream Tests
--------------------
Tests for the keep-alive microphone stream.

Tests cover:
- Open = start + immediate pause
- Permission and device failures
- Pause/resume without releasing the handle
- Frame subscribers and close
"""

import asyncio
import pytest
from pathlib import Path
import sys
import time

sys.path.insert(0, str(Path(__file__).parent.parent))

from audio.audio_buffer import AudioChunk
from audio.capture_stream import CaptureConfig, CaptureState, CaptureStream
from core.errors import DeviceError, NotInitializedError
from conftest import FakePermission, FakeStreamFactory, pcm_block


class TestCaptureOpen:
    """Tests for opening the device."""

    @pytest.mark.asyncio
    async def test_open_starts_then_pauses(self):
        """The handle is started once and immediately stopped."""
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)

        await stream.open()

        assert stream.state == CaptureState.PAUSED
        assert factory.stream.calls == ["start", "stop"]
        assert not factory.stream.active

    @pytest.mark.asyncio
    async def test_open_uses_fixed_parameters(self):
        """16-bit mono 44.1kHz unless configured otherwise."""
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)

        await stream.open()

        kwargs = factory.stream.kwargs
        assert kwargs["samplerate"] == 44100
        assert kwargs["channels"] == 1
        assert kwargs["dtype"] == "int16"

    @pytest.mark.asyncio
    async def test_open_without_permission(self):
        """Missing permission is a DeviceError and no device is touched."""
        factory = FakeStreamFactory()
        stream = CaptureStream(permission=FakePermission(granted=False), stream_factory=factory)

        with pytest.raises(DeviceError):
            await stream.open()

        assert factory.streams == []
        assert stream.state == CaptureState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_device_failure(self):
        """Driver errors surface as DeviceError."""
        stream = CaptureStream(stream_factory=FakeStreamFactory(fail=True))

        with pytest.raises(DeviceError):
            await stream.open()

        assert not stream.is_open

    @pytest.mark.asyncio
    async def test_open_twice_is_noop(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)

        await stream.open()
        await stream.open()

        assert len(factory.streams) == 1

    @pytest.mark.asyncio
    async def test_cannot_reopen_after_close(self):
        stream = CaptureStream(stream_factory=FakeStreamFactory())
        await stream.open()
        await stream.close()

        with pytest.raises(DeviceError):
            await stream.open()

    @pytest.mark.asyncio
    async def test_open_latency_recorded(self):
        stream = CaptureStream(stream_factory=FakeStreamFactory(open_delay=0.02))

        await stream.open()

        assert stream.open_latency_ms >= 20

    @pytest.mark.asyncio
    async def test_close_while_opening(self):
        """A close() overtaking a slow open() releases the device once it arrives."""
        factory = FakeStreamFactory(open_delay=0.1)
        stream = CaptureStream(stream_factory=factory)

        opening = asyncio.create_task(stream.open())
        await asyncio.sleep(0.02)
        await stream.close()

        with pytest.raises(DeviceError):
            await opening

        assert factory.stream.closed
        assert stream.state == CaptureState.DISPOSED
        assert not stream.is_open


class TestCapturePauseResume:
    """Tests for keep-alive toggling."""

    @pytest.mark.asyncio
    async def test_resume_and_pause(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        await stream.open()

        await stream.resume()
        assert stream.state == CaptureState.ACTIVE
        assert factory.stream.active

        await stream.pause()
        assert stream.state == CaptureState.PAUSED
        assert not factory.stream.active
        assert not factory.stream.closed

    @pytest.mark.asyncio
    async def test_resume_twice_is_noop(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        await stream.open()

        await stream.resume()
        await stream.resume()

        assert factory.stream.calls == ["start", "stop", "start"]

    @pytest.mark.asyncio
    async def test_pause_resume_without_handle(self):
        """No-ops before open."""
        stream = CaptureStream(stream_factory=FakeStreamFactory())

        await stream.resume()
        await stream.pause()

        assert stream.state == CaptureState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_pause_does_not_block_event_loop(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        await stream.open()
        await stream.resume()
        driver = factory.stream
        fast_stop = driver.stop

        def draining_stop():
            time.sleep(0.1)
            fast_stop()

        driver.stop = draining_stop
        seen = []

        async def watch():
            for _ in range(5):
                await asyncio.sleep(0.01)
                seen.append(stream.state)

        await asyncio.gather(stream.pause(), watch())

        assert CaptureState.ACTIVE in seen
        assert stream.state == CaptureState.PAUSED
        assert not driver.active

    @pytest.mark.asyncio
    async def test_resume_waits_for_pending_pause(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        await stream.open()
        await stream.resume()
        driver = factory.stream
        fast_stop = driver.stop

        def draining_stop():
            time.sleep(0.05)
            fast_stop()

        driver.stop = draining_stop

        await asyncio.gather(stream.pause(), stream.resume())

        assert stream.state == CaptureState.ACTIVE
        assert driver.active
        assert driver.calls[-2:] == ["stop", "start"]

    @pytest.mark.asyncio
    async def test_listeners_receive_chunks(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        received = []
        stream.add_listener(received.append)
        await stream.open()
        await stream.resume()

        factory.stream.push(pcm_block(7))
        factory.stream.push(pcm_block(8))

        assert [c.sequence for c in received] == [1, 2]
        assert received[0].data == pcm_block(7)
        assert received[0].frame_count == 64
        assert stream.chunks_delivered == 2

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        received = []

        def broken(_chunk):
            raise RuntimeError("boom")

        stream.add_listener(broken)
        stream.add_listener(received.append)
        await stream.open()
        await stream.resume()

        factory.stream.push(pcm_block(1))

        assert len(received) == 1


class TestCaptureFrames:
    """Tests for async frame subscribers."""

    @pytest.mark.asyncio
    async def test_frames_before_open(self):
        stream = CaptureStream(stream_factory=FakeStreamFactory())

        with pytest.raises(NotInitializedError):
            async for _ in stream.frames():
                pass

    @pytest.mark.asyncio
    async def test_frames_until_close(self):
        """Subscribers see every chunk and their iterator ends on close."""
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        await stream.open()
        await stream.resume()
        received = []

        async def consume():
            async for chunk in stream.frames():
                received.append(chunk.sequence)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)

        factory.stream.push(pcm_block(1))
        factory.stream.push(pcm_block(2))
        await asyncio.sleep(0.01)

        await stream.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert received == [1, 2]
        assert factory.stream.closed

    @pytest.mark.asyncio
    async def test_subscribing_does_not_resume(self):
        """A paused stream stays paused while a subscriber waits."""
        factory = FakeStreamFactory()
        stream = CaptureStream(stream_factory=factory)
        await stream.open()

        async def consume():
            async for _ in stream.frames():
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)

        assert stream.state == CaptureState.PAUSED
        assert factory.stream.push(pcm_block(1)) is False

        await stream.close()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_slow_subscriber_drops_oldest(self):
        factory = FakeStreamFactory()
        stream = CaptureStream(CaptureConfig(subscriber_queue_size=2), stream_factory=factory)
        await stream.open()
        await stream.resume()
        received = []

        async def consume():
            async for chunk in stream.frames():
                received.append(chunk.sequence)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)

        # Deliver without yielding so the queue overflows
        for value in range(5):
            stream._fan_out(stream_chunk(value))
        await asyncio.sleep(0.01)

        await stream.close()
        await asyncio.wait_for(task, timeout=1.0)

        assert received[-1] == 4
        assert len(received) < 5


def stream_chunk(seq: int) -> AudioChunk:
    return AudioChunk(data=pcm_block(seq), sequence=seq, frame_count=64)
