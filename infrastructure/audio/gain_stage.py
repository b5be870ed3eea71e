# infrastructure/audio/gain_stage.py
# Output volume staging with Spotify Pedalboard.

import math
from typing import Optional

import numpy as np
from pedalboard import Gain, Pedalboard

from application.ports.gain_stage_port import IGainStage
from trimmer.buffer import SampleBuffer


def gain_to_db(gain: float) -> float:
    """Linear gain multiplier → decibels."""
    if gain <= 0:
        raise ValueError(f"Gain must be positive. Got: {gain}.")
    return 20.0 * math.log10(gain)


class GainStage(IGainStage):
    """Apply a linear gain multiplier to emitted buffers. Unity gain is a no-op."""

    def __init__(self) -> None:
        self._gain: Optional[float] = None
        self._board: Optional[Pedalboard] = None

    def _board_for(self, gain: float) -> Pedalboard:
        # Rebuild only when the multiplier changes
        if self._board is None or self._gain != gain:
            self._board = Pedalboard([Gain(gain_db=gain_to_db(gain))])
            self._gain = gain
        return self._board

    def process(self, buffer: SampleBuffer, gain: float) -> SampleBuffer:
        if gain == 1.0 or buffer.frame_count == 0:
            return buffer

        board: Pedalboard = self._board_for(gain)
        # Pedalboard takes (channels, num_frames) float32, same as SampleBuffer
        effected: np.ndarray = board(buffer.samples.astype(np.float32), buffer.sample_rate)
        buffer.samples = np.ascontiguousarray(effected, dtype=np.float32)
        return buffer
