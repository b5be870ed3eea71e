from dataclasses import dataclass

import numpy as np


@dataclass(eq=False)
class SampleBuffer:
    """
    One block of decoded PCM audio.

    Samples are planar: shape (channels, num_frames), dtype float32, the same
    layout pedalboard takes. The array is mutated in place by fades and
    normalization; whoever holds the buffer owns it.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        if self.samples.ndim == 1:
            self.samples = self.samples.reshape(1, -1)
        if self.samples.ndim != 2:
            raise ValueError(
                f"Samples must be (channels, frames). Got shape {self.samples.shape}.\n"
                f"    → Transpose interleaved (frames, channels) data first."
            )
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive. Got: {self.sample_rate}.")

    @classmethod
    def from_interleaved(cls, frames: np.ndarray, sample_rate: int) -> "SampleBuffer":
        """Build from soundfile's (num_frames, channels) layout."""
        if frames.ndim == 1:
            frames = frames.reshape(-1, 1)
        planar: np.ndarray = np.ascontiguousarray(frames.T, dtype=np.float32)
        return cls(planar, sample_rate)

    @classmethod
    def silence(cls, channels: int, num_frames: int, sample_rate: int) -> "SampleBuffer":
        return cls(np.zeros((channels, num_frames), dtype=np.float32), sample_rate)

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate

    def interleaved(self) -> np.ndarray:
        """Return a (num_frames, channels) view for soundfile writers."""
        return self.samples.T

    def copy(self) -> "SampleBuffer":
        return SampleBuffer(self.samples.copy(), self.sample_rate)
