# application/ports/audio_sink_port.py
# Port interface for the output collaborator. Push-based and fire-and-forget:
# the session never waits for a buffer to be played.

from abc import ABC, abstractmethod

from trimmer.buffer import SampleBuffer


class IAudioSink(ABC):
    """Abstract base class for consumers of emitted buffers."""

    @abstractmethod
    def write(self, buffer: SampleBuffer) -> None:
        """Take ownership of *buffer*."""
        ...

    def close(self) -> None:
        """Flush and release the output."""
        pass
