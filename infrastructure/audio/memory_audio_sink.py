# infrastructure/audio/memory_audio_sink.py
# Collects emitted buffers in memory, for tests and two-pass rendering.

from threading import Lock
from typing import List

import numpy as np

from application.ports.audio_sink_port import IAudioSink
from trimmer.buffer import SampleBuffer


class MemoryAudioSink(IAudioSink):
    def __init__(self) -> None:
        self._buffers: List[SampleBuffer] = []
        self._lock: Lock = Lock()
        self.closed: bool = False

    @property
    def buffers(self) -> List[SampleBuffer]:
        """Shallow copy of everything received so far."""
        with self._lock:
            return list(self._buffers)

    @property
    def frames_written(self) -> int:
        with self._lock:
            return sum(b.frame_count for b in self._buffers)

    def write(self, buffer: SampleBuffer) -> None:
        with self._lock:
            self._buffers.append(buffer)

    def close(self) -> None:
        self.closed = True

    def concatenate(self, channels: int, sample_rate: int) -> SampleBuffer:
        """Join everything received into one buffer (empty if nothing arrived)."""
        received: List[SampleBuffer] = self.buffers
        if not received:
            return SampleBuffer.silence(channels, 0, sample_rate)
        joined: np.ndarray = np.concatenate([b.samples for b in received], axis=1)
        return SampleBuffer(joined, sample_rate)
