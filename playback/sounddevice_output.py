"""
SoundDevice Output
------------------
Audio output handle that plays PCM WAV sources through sounddevice.
Remote sources are downloaded with httpx; compressed formats are not
decoded here.
"""

from pathlib import Path
from typing import Optional, Tuple
import asyncio
import io
import logging
import threading
import wave

import httpx
import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):
    sd = None

from core.errors import SourceError
from .handles import MediaSource


class SoundDeviceOutput:
    """
    Reusable output stream with a play position, so pause keeps its place
    and stop rewinds.
    """

    def __init__(self, device=None, http_timeout: float = 30.0, block_size: int = 1024):
        if sd is None:
            raise ImportError("sounddevice is required. Install with: pip install sounddevice")

        self._device = device
        self._http_timeout = http_timeout
        self._block_size = block_size
        self._samples: Optional[np.ndarray] = None
        self._sample_rate = 0
        self._position = 0
        self._volume = 1.0
        self._stream = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger("mediakeep.playback.output")

    @property
    def is_playing(self) -> bool:
        return self._stream is not None and self._stream.active

    async def load(self, source: MediaSource) -> None:
        """Fetch and decode `source`, replacing whatever was loaded."""
        if source.is_local:
            try:
                data = await asyncio.to_thread(Path(source.uri).read_bytes)
            except OSError as e:
                raise SourceError(f"Cannot read {source}: {e}", details={"source": source.uri}) from e
        else:
            data = await self._fetch(source.uri)

        samples, sample_rate = self._decode(data, source.uri)
        await self._close_stream()

        with self._lock:
            self._samples = samples
            self._sample_rate = sample_rate
            self._position = 0

        self._stream = sd.OutputStream(
            samplerate=sample_rate,
            channels=samples.shape[1],
            dtype="float32",
            blocksize=self._block_size,
            device=self._device,
            callback=self._callback,
        )
        self._logger.debug(
            f"Loaded {source} ({samples.shape[0] / sample_rate:.1f}s, {sample_rate}Hz)"
        )

    async def _fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self._http_timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise SourceError(f"Cannot fetch {url}: {e}", details={"source": url}) from e

    @staticmethod
    def _decode(data: bytes, uri: str) -> Tuple[np.ndarray, int]:
        """Decode 16-bit PCM WAV bytes into float32 frames x channels."""
        try:
            with wave.open(io.BytesIO(data), "rb") as wf:
                if wf.getsampwidth() != 2:
                    raise SourceError(f"Only 16-bit PCM WAV is supported: {uri}")
                channels = wf.getnchannels()
                sample_rate = wf.getframerate()
                frames = wf.readframes(wf.getnframes())
        except (wave.Error, EOFError) as e:
            raise SourceError(f"Unsupported audio format for {uri}: {e}", details={"source": uri}) from e

        audio = np.frombuffer(frames, dtype=np.int16).astype(np.float32) / 32768.0
        return audio.reshape(-1, channels), sample_rate

    def _callback(self, outdata, frames: int, time_info, status) -> None:
        """Feed the next block from the driver thread."""
        if status:
            self._logger.debug(f"Output status: {status}")

        with self._lock:
            start = self._position
            chunk = self._samples[start:start + frames]
            self._position = start + len(chunk)
            volume = self._volume

        outdata[:len(chunk)] = chunk * volume
        if len(chunk) < frames:
            outdata[len(chunk):] = 0
            raise sd.CallbackStop

    async def play(self) -> None:
        if self._stream is None or self._stream.active:
            return

        with self._lock:
            if self._position >= len(self._samples):
                self._position = 0

        if not self._stream.stopped:
            # Finished via CallbackStop; PortAudio wants an explicit stop first
            self._stream.stop()
        self._stream.start()

    async def pause(self) -> None:
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    async def stop(self) -> None:
        if self._stream is None:
            return
        if not self._stream.stopped:
            self._stream.stop()
        with self._lock:
            self._position = 0

    async def set_volume(self, level: float) -> None:
        with self._lock:
            self._volume = max(0.0, min(1.0, level))

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            await asyncio.to_thread(stream.close)

    async def dispose(self) -> None:
        await self._close_stream()
        with self._lock:
            self._samples = None
