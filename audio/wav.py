"""
WAV Container
-------------
Canonical 44-byte RIFF/WAVE header for linear PCM payloads.
"""

from dataclasses import dataclass
import struct

HEADER_SIZE = 44
PCM_FORMAT_TAG = 1

# RIFF, size-8, WAVE, "fmt ", fmt size, format tag, channels, rate,
# byte rate, block align, bits per sample, "data", payload size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavHeader:
    """Decoded fields of a canonical PCM WAV header."""
    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    @property
    def duration_seconds(self) -> float:
        """Playback duration of the payload described by this header."""
        if self.byte_rate == 0:
            return 0.0
        return self.data_size / self.byte_rate


def encode_wav(
    pcm: bytes,
    sample_rate: int = 44100,
    channels: int = 1,
    bits_per_sample: int = 16,
) -> bytes:
    """Prepend a PCM WAV header to raw little-endian samples."""
    data_size = len(pcm)
    byte_rate = sample_rate * channels * bits_per_sample // 8
    block_align = channels * bits_per_sample // 8

    header = _HEADER.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )
    return header + pcm


def parse_wav_header(data: bytes) -> WavHeader:
    """
    Parse the first 44 bytes of a canonical PCM WAV file.

    Raises:
        ValueError: If the data is too short or the magic tags do not match
    """
    if len(data) < HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")

    (riff, riff_size, wave_tag, fmt_tag, fmt_size, format_tag, channels,
     sample_rate, byte_rate, block_align, bits, data_tag, data_size) = _HEADER.unpack_from(data)

    if riff != b"RIFF" or wave_tag != b"WAVE":
        raise ValueError("Not a RIFF/WAVE file")
    if fmt_tag != b"fmt " or fmt_size != 16 or data_tag != b"data":
        raise ValueError("Unsupported WAV layout (expected canonical PCM header)")

    return WavHeader(
        riff_size=riff_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )
