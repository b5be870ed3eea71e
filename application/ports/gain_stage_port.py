# application/ports/gain_stage_port.py
# Port interface for the output volume stage applied to emitted buffers.
# Domain layer — must not import infrastructure or adapter code.

from abc import ABC, abstractmethod

from trimmer.buffer import SampleBuffer


class IGainStage(ABC):
    """Abstract base class for output gain processors."""

    @abstractmethod
    def process(self, buffer: SampleBuffer, gain: float) -> SampleBuffer:
        """
        Scale *buffer* by a linear gain multiplier.

        Args:
            buffer: Emitted buffer, owned by the caller from here on.
            gain:   Positive multiplier; 1.0 leaves the audio untouched.

        Returns:
            The processed buffer (may be *buffer* itself).
        """
        ...
