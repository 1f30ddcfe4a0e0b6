"""Split a raw PCM buffer into fixed-duration frames.

WHY: The realtime backend expects audio in small, evenly sized frames
(100 ms by default) rather than one large blob.

HOW: StreamChunker computes the frame size from the audio format once and
iterates over the buffer in frame-sized slices. Iteration is lazy and each
call to iter() starts again from the beginning.

RULES:
- frame_size = sample_rate * bytes_per_sample * frame_ms / 1000
  (3200 bytes for 16 kHz, 16-bit, 100 ms)
- ceil(len(buffer) / frame_size) frames; only the last may be shorter
- Concatenating the frames reproduces the buffer exactly
- No I/O
"""

from __future__ import annotations

import math
from collections.abc import Iterator

from audio_to_text import config


def frame_size(sample_rate: int, bit_depth: int, frame_ms: int) -> int:
    """Bytes in one frame of mono PCM audio."""
    if sample_rate <= 0 or frame_ms <= 0:
        raise ValueError("sample_rate and frame_ms must be positive")
    if bit_depth <= 0 or bit_depth % 8:
        raise ValueError(f"bit_depth must be a positive multiple of 8, got {bit_depth}")
    bytes_per_sample = bit_depth // 8
    size = sample_rate * bytes_per_sample * frame_ms // 1000
    # Frames hold whole samples only.
    size -= size % bytes_per_sample
    if size < 1:
        raise ValueError("frame duration too short for the sample rate")
    return size


class StreamChunker:
    """Restartable, lazy sequence of PCM frames over one buffer."""

    def __init__(
        self,
        buffer: bytes,
        sample_rate: int = config.STREAM_SAMPLE_RATE,
        bit_depth: int = config.STREAM_BIT_DEPTH,
        frame_ms: int = config.STREAM_FRAME_MS,
    ) -> None:
        self._buffer = memoryview(bytes(buffer))
        self.frame_size = frame_size(sample_rate, bit_depth, frame_ms)

    def __iter__(self) -> Iterator[bytes]:
        for offset in range(0, len(self._buffer), self.frame_size):
            yield bytes(self._buffer[offset:offset + self.frame_size])

    def __len__(self) -> int:
        return math.ceil(len(self._buffer) / self.frame_size)
