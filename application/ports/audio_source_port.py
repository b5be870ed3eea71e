# application/ports/audio_source_port.py
# Port interface for the upstream decoder. Pull-based: the session asks for
# the next block and gets None at end of stream.

from abc import ABC, abstractmethod
from typing import Optional

from trimmer.buffer import SampleBuffer


class IAudioSource(ABC):
    """Abstract base class for sequential PCM sources."""

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        ...

    @property
    @abstractmethod
    def channels(self) -> int:
        ...

    @property
    @abstractmethod
    def frames(self) -> int:
        """Total length in frames."""
        ...

    @property
    @abstractmethod
    def position(self) -> int:
        """Read cursor, in frames from the start."""
        ...

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    @abstractmethod
    def read(self, num_frames: int) -> Optional[SampleBuffer]:
        """
        Read the next block.

        Args:
            num_frames: Requested block size. The final block may be shorter.

        Returns:
            A planar SampleBuffer, or None at end of stream.

        Raises:
            ReadFailureError: the decoder failed mid-stream.
        """
        ...

    @abstractmethod
    def seek(self, frame: int) -> None:
        """Move the read cursor. Clamped to [0, frames]."""
        ...

    def close(self) -> None:
        """Release decoder resources."""
        pass
