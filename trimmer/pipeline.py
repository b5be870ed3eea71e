"""
Buffer-by-buffer silence trimming.

The state machine has two states, Passthrough and InGap, tracked by the
accumulator's ``in_gap`` flag. Each step sees exactly one input buffer and
returns the buffers to emit now, in input order. Nothing is reordered; the
only changes are omissions and fades.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from trimmer.buffer import SampleBuffer
from trimmer.effects import apply_fade, loudness
from trimmer.gap import DEFAULT_SAFETY_CAPACITY, GapAccumulator
from trimmer.profiles import OFF, TrimProfile, profile_for

DEFAULT_GUARD_WINDOW_SEC: float = 5.0
DEFAULT_BUFFER_FRAMES: int = 4096
DEFAULT_TARGET_PEAK: float = 0.95


@dataclass(frozen=True)
class PipelineConfig:
    """Tunables that were fixed constants in earlier versions."""

    guard_window_sec: float = DEFAULT_GUARD_WINDOW_SEC   # never trim the last N seconds
    safety_capacity: int = DEFAULT_SAFETY_CAPACITY       # max held buffers before a forced flush
    buffer_frames: int = DEFAULT_BUFFER_FRAMES           # frames pulled per read
    target_peak: float = DEFAULT_TARGET_PEAK             # used when rendering with normalization


@dataclass
class PipelineState:
    """Observable timing for one loaded source, in seconds."""

    cumulative_time_trimmed: float = 0.0
    current_position: float = 0.0
    total_duration: float = 0.0

    @property
    def time_left(self) -> float:
        return self.total_duration - self.current_position

    @property
    def duration_known(self) -> bool:
        return self.total_duration > 0


@dataclass
class PipelineSession:
    """All mutable pipeline state. Owned by one processing task at a time."""

    accumulator: GapAccumulator
    state: PipelineState = field(default_factory=PipelineState)

    @classmethod
    def create(
        cls,
        total_duration: float = 0.0,
        config: Optional[PipelineConfig] = None,
    ) -> "PipelineSession":
        config = config or PipelineConfig()
        return cls(
            accumulator=GapAccumulator(config.safety_capacity),
            state=PipelineState(total_duration=total_duration),
        )

    @property
    def in_gap(self) -> bool:
        return self.accumulator.in_gap

    def reset_gap(self) -> None:
        """Back to Passthrough with an empty accumulator (seek, stop, new session)."""
        self.accumulator.reset()


def _trimming_disabled(
    session: PipelineSession, profile: TrimProfile, config: PipelineConfig
) -> bool:
    if not profile.enabled:
        return True
    # No loaded source, no end to guard
    if not session.state.duration_known:
        return False
    return session.state.time_left <= config.guard_window_sec


def _record_saving(session: PipelineSession, seconds: float) -> None:
    if seconds > 0:
        session.state.cumulative_time_trimmed += seconds


def process_buffer(
    session: PipelineSession,
    buffer: SampleBuffer,
    profile: TrimProfile,
    config: Optional[PipelineConfig] = None,
) -> List[SampleBuffer]:
    """
    Run one step of the trim state machine.

    The caller sets ``session.state.current_position`` before the call.
    Returns the buffers to hand to the output, possibly none.
    """
    config = config or PipelineConfig()

    if _trimming_disabled(session, profile, config):
        return [buffer]

    silent: bool = loudness(buffer) < profile.loudness_threshold
    acc: GapAccumulator = session.accumulator

    if not acc.in_gap:
        if not silent:
            return [buffer]
        acc.push(buffer)
        return []

    if silent:
        acc.push(buffer)
        if not acc.is_over_capacity:
            return []
        released, saved = acc.flush(end_of_gap=False, profile=profile)
        _record_saving(session, saved)
        return released

    released, saved = acc.flush(end_of_gap=True, profile=profile)
    _record_saving(session, saved)
    apply_fade(buffer, fade_out=False, channel_count=buffer.channel_count)
    return released + [buffer]


class TrimPipeline:
    """
    Convenience wrapper holding a session and the active profile.

    ``profile`` may be reassigned at any time; the new value applies from the
    next call to ``process``. Held buffers are never re-evaluated.

    Leaving *total_duration* at 0 means the length is unknown: the end-of-source
    guard is skipped until ``load`` supplies one.
    """

    def __init__(
        self,
        profile: Union[str, int, TrimProfile] = OFF,
        config: Optional[PipelineConfig] = None,
        total_duration: float = 0.0,
    ) -> None:
        self.config: PipelineConfig = config or PipelineConfig()
        self._profile: TrimProfile = profile_for(profile)
        self.session: PipelineSession = PipelineSession.create(total_duration, self.config)

    @property
    def profile(self) -> TrimProfile:
        return self._profile

    @profile.setter
    def profile(self, value: Union[str, int, TrimProfile]) -> None:
        self._profile = profile_for(value)

    @property
    def state(self) -> PipelineState:
        return self.session.state

    @property
    def time_trimmed(self) -> float:
        return self.session.state.cumulative_time_trimmed

    def process(self, buffer: SampleBuffer, position: Optional[float] = None) -> List[SampleBuffer]:
        if position is not None:
            self.session.state.current_position = position
        return process_buffer(self.session, buffer, self._profile, self.config)

    def reset(self) -> None:
        """Leave any open gap without emitting it. Keeps the trimmed total."""
        self.session.reset_gap()

    def load(self, total_duration: float) -> None:
        """Start over for a new source: fresh gap state and a zeroed total."""
        self.session = PipelineSession.create(total_duration, self.config)
