import os

from trimmer.profiles import LEVEL_NAMES

# Formats
SUPPORTED_INPUT_FORMATS: set[str] = {".mp3", ".wav", ".flac", ".ogg", ".aac", ".m4a"}
SUPPORTED_OUTPUT_FORMATS: set[str] = {".mp3", ".wav", ".flac", ".ogg", ".m4a"}

# Extension → pydub export format tag
FORMAT_EXPORT_MAP: dict[str, str] = {
    ".mp3": "mp3",
    ".wav": "wav",
    ".flac": "flac",
    ".ogg": "ogg",
    ".m4a": "mp4",
}

# Defaults shared by the CLI and the server
DEFAULT_PARAMS: dict = {
    "level": "medium",
    "gain": 1.0,
    "rate": 1.0,
    "buffer_frames": 4096,
    "guard": 5.0,
}

GAIN_RANGE: tuple[float, float] = (0.05, 8.0)
RATE_RANGE: tuple[float, float] = (0.25, 4.0)
BUFFER_FRAMES_RANGE: tuple[int, int] = (256, 65536)


def validate_input_file(path: str) -> None:
    """Raise FileNotFoundError / ValueError if the input path is unusable."""
    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Input file not found: '{path}'.\n" f"    → Check the path and try again."
        )
    if not os.path.isfile(path):
        raise ValueError(
            f"Input path is not a file: '{path}'.\n"
            f"    → Point at an audio file, not a directory."
        )

    ext: str = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_INPUT_FORMATS:
        raise ValueError(
            f"Unsupported input format: '{ext}'.\n"
            f"    Supported: {', '.join(sorted(SUPPORTED_INPUT_FORMATS))}\n"
            f"    → Example: python main.py lecture.mp3 lecture_trimmed.wav"
        )


def validate_output_path(path: str) -> None:
    """Raise ValueError / FileNotFoundError if the output path is unusable."""
    ext: str = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_OUTPUT_FORMATS:
        raise ValueError(
            f"Unsupported output format: '{ext}'.\n"
            f"    Supported: {', '.join(sorted(SUPPORTED_OUTPUT_FORMATS))}\n"
            f"    → Example: python main.py lecture.mp3 lecture_trimmed.mp3"
        )

    output_dir: str = os.path.dirname(os.path.abspath(path))
    if not os.path.exists(output_dir):
        raise FileNotFoundError(
            f"Output directory does not exist: '{output_dir}'.\n"
            f"    → Create it first, or write somewhere that exists."
        )


def validate_param_range(
    value: float, name: str, min_val: float, max_val: float
) -> None:
    """Raise ValueError if a numeric parameter falls outside [min_val, max_val]."""
    if not (min_val <= value <= max_val):
        raise ValueError(
            f"Parameter '{name}' must be between {min_val} and {max_val}. Got: {value}.\n"
            f"    → Adjust the value to be within the valid range."
        )


def validate_level(level: str) -> str:
    """Return the normalized level name or raise ValueError."""
    key: str = str(level).strip().lower()
    if key not in LEVEL_NAMES:
        raise ValueError(
            f"Unknown trim level: '{level}'.\n"
            f"    Supported: {', '.join(LEVEL_NAMES)}\n"
            f"    → Example: --level aggressive"
        )
    return key


def get_output_path(
    input_path: str, suffix: str = "_trimmed", output_ext: str = ".wav"
) -> str:
    """
    Derive an output path from an input path.

    Example: talk.mp3, suffix='_trimmed', output_ext='.wav'  →  talk_trimmed.wav
    """
    base: str
    base, _ = os.path.splitext(input_path)
    return f"{base}{suffix}{output_ext}"


def get_export_format(path: str) -> str:
    """Return the pydub export format string for the given output path."""
    ext: str = os.path.splitext(path)[1].lower()
    return FORMAT_EXPORT_MAP.get(ext, "wav")


def format_seconds(seconds: float) -> str:
    """Render a duration as m:ss.s (or h:mm:ss.s past an hour)."""
    seconds = max(0.0, seconds)
    minutes, secs = divmod(seconds, 60.0)
    hours, minutes = divmod(int(minutes), 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:04.1f}"
    return f"{minutes}:{secs:04.1f}"
