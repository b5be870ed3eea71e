# trimmer/profiles.py
# Named trim presets. Lower threshold and shorter minimum gap = more trimming.

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TrimProfile:
    """Parameter triple for one aggressiveness level."""

    level: str
    loudness_threshold: float   # RMS below this counts as silence
    min_gap_frames: int         # buffers a gap needs before it is trimmed
    edge_frames_to_keep: int    # buffers re-inserted at the start of a trimmed gap

    @property
    def display_name(self) -> str:
        return self.level.capitalize()

    @property
    def enabled(self) -> bool:
        return self.level != "off"


OFF        = TrimProfile("off",        0.0,     0,  0)
MILD       = TrimProfile("mild",       0.0055,  20, 14)
MEDIUM     = TrimProfile("medium",     0.00511, 16, 12)
AGGRESSIVE = TrimProfile("aggressive", 0.005,   4,  0)

# Ordered by aggressiveness; the index is the level's integer code.
PROFILES: tuple[TrimProfile, ...] = (OFF, MILD, MEDIUM, AGGRESSIVE)

LEVEL_NAMES: tuple[str, ...] = tuple(p.level for p in PROFILES)

_BY_NAME: dict[str, TrimProfile] = {p.level: p for p in PROFILES}


def profile_for(level: Union[str, int, TrimProfile]) -> TrimProfile:
    """
    Look up the canonical profile for a level.

    Accepts the level name (case-insensitive), its integer index (0–3),
    or a TrimProfile, which is returned as is.
    """
    if isinstance(level, TrimProfile):
        return level
    if isinstance(level, bool):
        raise ValueError(f"Unknown trim level: {level!r}.")
    if isinstance(level, int):
        if 0 <= level < len(PROFILES):
            return PROFILES[level]
        raise ValueError(
            f"Trim level index must be between 0 and {len(PROFILES) - 1}. Got: {level}."
        )

    key: str = str(level).strip().lower()
    if key not in _BY_NAME:
        raise ValueError(
            f"Unknown trim level: '{level}'.\n"
            f"    Supported: {', '.join(LEVEL_NAMES)}"
        )
    return _BY_NAME[key]
