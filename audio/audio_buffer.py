"""
Audio Buffer Module
-------------------
Per-take chunk storage gated by the capturing flag.
Stateless module - no imports from other packages of this project.

The driver callback thread offers chunks while the event loop starts and
stops takes, so the flag and the chunk list share a single lock.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import threading

import numpy as np


@dataclass(frozen=True)
class AudioChunk:
    """One block of raw PCM delivered by the capture driver."""

    data: bytes
    sequence: int
    frame_count: int
    timestamp: datetime = field(default_factory=datetime.now)

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class AudioTake:
    """The chunks retained between one start and one stop."""

    chunks: List[AudioChunk]
    sample_rate: int
    channels: int
    sample_width: int
    started_at: datetime
    stopped_at: datetime

    @property
    def pcm(self) -> bytes:
        """All chunk payloads joined in delivery order."""
        return b"".join(chunk.data for chunk in self.chunks)

    @property
    def byte_count(self) -> int:
        return sum(len(chunk.data) for chunk in self.chunks)

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def is_empty(self) -> bool:
        return self.byte_count == 0

    @property
    def duration_seconds(self) -> float:
        """Duration of the retained audio, from its byte count."""
        byte_rate = self.sample_rate * self.channels * self.sample_width
        if byte_rate == 0:
            return 0.0
        return self.byte_count / byte_rate

    def to_array(self) -> np.ndarray:
        """Interpret the payload as int16 samples."""
        return np.frombuffer(self.pcm, dtype=np.int16)

    def peak_level(self) -> float:
        """Peak absolute amplitude normalized to 0.0-1.0."""
        samples = self.to_array()
        if samples.size == 0:
            return 0.0
        return float(np.max(np.abs(samples.astype(np.int32)))) / 32768.0

    def __repr__(self) -> str:
        return (
            f"AudioTake(chunks={self.chunk_count}, "
            f"duration={self.duration_seconds:.2f}s, "
            f"start={self.started_at.isoformat()})"
        )


class TakeBuffer:
    """
    Flag-gated chunk buffer for a single take at a time.

    Chunks offered while the flag is down are dropped, which lets the
    capture hardware run continuously without growing memory.
    """

    def __init__(self, sample_rate: int = 44100, channels: int = 1, sample_width: int = 2):
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_width = sample_width
        self._lock = threading.Lock()
        self._chunks: List[AudioChunk] = []
        self._capturing = False
        self._started_at: Optional[datetime] = None
        self._discarded = 0

    def reset(self) -> None:
        """Replace the chunk list with a fresh one for the next take."""
        with self._lock:
            self._chunks = []

    def arm(self) -> None:
        """Raise the capturing flag."""
        with self._lock:
            self._capturing = True
            self._started_at = datetime.now()

    def offer(self, chunk: AudioChunk) -> bool:
        """
        Append the chunk if a take is in progress.

        Returns True when the chunk was retained.
        """
        with self._lock:
            if not self._capturing:
                self._discarded += 1
                return False
            self._chunks.append(chunk)
            return True

    def disarm(self) -> Optional[AudioTake]:
        """
        Lower the flag and hand over the take's chunks.

        Returns None if no take was in progress.
        """
        with self._lock:
            if not self._capturing:
                return None
            self._capturing = False
            chunks, self._chunks = self._chunks, []
            started_at = self._started_at or datetime.now()
            self._started_at = None

        return AudioTake(
            chunks=chunks,
            sample_rate=self.sample_rate,
            channels=self.channels,
            sample_width=self.sample_width,
            started_at=started_at,
            stopped_at=datetime.now(),
        )

    @property
    def is_capturing(self) -> bool:
        with self._lock:
            return self._capturing

    @property
    def pending_chunks(self) -> int:
        with self._lock:
            return len(self._chunks)

    @property
    def discarded_chunks(self) -> int:
        """Chunks dropped because no take was in progress."""
        with self._lock:
            return self._discarded
