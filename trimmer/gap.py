# trimmer/gap.py
# Holds the current run of candidate-silence buffers until it is resolved.

import logging
from typing import List, Tuple

from trimmer.buffer import SampleBuffer
from trimmer.effects import apply_fade
from trimmer.profiles import TrimProfile

logger = logging.getLogger("silence_trimmer")

DEFAULT_SAFETY_CAPACITY: int = 1000


class GapAccumulator:
    """
    Ordered buffer of consecutive silent blocks.

    ``buffers`` is non-empty only while ``in_gap`` is True. The caller checks
    ``is_over_capacity`` after every push and forces a flush when it trips.
    """

    def __init__(self, capacity: int = DEFAULT_SAFETY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"Safety capacity must be at least 1. Got: {capacity}.")
        self.capacity: int = capacity
        self.buffers: List[SampleBuffer] = []
        self.in_gap: bool = False

    def __len__(self) -> int:
        return len(self.buffers)

    @property
    def is_over_capacity(self) -> bool:
        return len(self.buffers) > self.capacity

    def push(self, buffer: SampleBuffer) -> None:
        self.in_gap = True
        self.buffers.append(buffer)

    def reset(self) -> None:
        """Drop held buffers and leave the gap. Nothing is emitted."""
        self.buffers = []
        self.in_gap = False

    def flush(self, end_of_gap: bool, profile: TrimProfile) -> Tuple[List[SampleBuffer], float]:
        """
        Resolve the held run and clear it.

        Returns the buffers to emit, in order, and the seconds removed.

        - Run shorter than ``profile.min_gap_frames``: everything comes back
          untouched, nothing saved.
        - Gap closed by loud audio: the first ``edge_frames_to_keep`` buffers
          come back with a fade-out on the last one; the rest are dropped and
          counted as saved, using the first dropped buffer's length.
        - Forced flush at capacity (gap still open): nothing comes back and
          nothing is counted. The held audio is discarded.

        A forced flush keeps ``in_gap`` set; only a closing flush leaves the gap.
        """
        held: List[SampleBuffer] = self.buffers
        self.buffers = []
        if end_of_gap:
            self.in_gap = False

        if len(held) < profile.min_gap_frames:
            return held, 0.0

        if not end_of_gap:
            logger.warning(
                "forced gap flush at capacity=%d: discarded %d buffers",
                self.capacity, len(held),
            )
            return [], 0.0

        keep: int = min(profile.edge_frames_to_keep, len(held))
        kept: List[SampleBuffer] = held[:keep]
        if kept:
            apply_fade(kept[-1], fade_out=True, channel_count=kept[-1].channel_count)

        dropped: List[SampleBuffer] = held[keep:]
        if not dropped:
            return kept, 0.0

        first: SampleBuffer = dropped[0]
        seconds_saved: float = (len(dropped) * first.frame_count) / first.sample_rate
        return kept, seconds_saved
