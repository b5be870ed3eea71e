# application/dto/session_dto.py
# Data Transfer Objects passed between the processing thread and observers.

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class TrimSettingsDTO:
    """Runtime-tunable parameters. Replaced wholesale, read once per buffer."""
    level: str = "medium"
    gain: float = 1.0       # output gain multiplier
    rate: float = 1.0       # playback rate multiplier (reported, owned by the output)

    def with_changes(self, **changes) -> "TrimSettingsDTO":
        return replace(self, **changes)


@dataclass(frozen=True)
class PlaybackSnapshotDTO:
    """Point-in-time view of a session, published by its processing thread."""
    status: str = "idle"          # idle | playing | stopped | done | error
    position: float = 0.0         # seconds of source consumed
    duration: float = 0.0         # seconds of source in total
    time_trimmed: float = 0.0     # seconds removed so far
    level: str = "medium"
    playback_rate: float = 1.0
    gain: float = 1.0
    error: Optional[str] = None

    @property
    def remaining(self) -> float:
        """Listening time left at the current rate, ignoring future trimming."""
        left: float = max(0.0, self.duration - self.position)
        return left / self.playback_rate if self.playback_rate > 0 else left

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "position": round(self.position, 3),
            "duration": round(self.duration, 3),
            "timeTrimmed": round(self.time_trimmed, 3),
            "remaining": round(self.remaining, 3),
            "level": self.level,
            "playbackRate": self.playback_rate,
            "gain": self.gain,
            "error": self.error,
        }
