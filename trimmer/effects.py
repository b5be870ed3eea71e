from typing import Optional

import numpy as np

from trimmer.buffer import SampleBuffer


def loudness(buffer: SampleBuffer) -> float:
    """
    RMS loudness of a buffer: per-channel root-mean-square, averaged over channels.

    Empty buffers (no frames or no channels) measure 0.0. All-zero input is
    exactly 0.0. Scaling every sample by k scales the result by |k|.
    """
    if buffer.frame_count == 0 or buffer.channel_count == 0:
        return 0.0

    # float64 accumulation
    samples: np.ndarray = buffer.samples.astype(np.float64, copy=False)
    per_channel: np.ndarray = np.sqrt(np.mean(np.square(samples), axis=1))
    return float(np.mean(per_channel))


def apply_fade(
    buffer: SampleBuffer,
    fade_out: bool,
    channel_count: Optional[int] = None,
) -> None:
    """
    Multiply a linear gain ramp into the buffer, in place.

    Args:
        buffer:        Buffer to fade. Only sample data changes.
        fade_out:      True ramps 1 → 0, False ramps 0 → 1.
        channel_count: Number of leading channels to fade (default: all).
                       Clamped to the buffer's channel count.
    """
    num_frames: int = buffer.frame_count
    if num_frames == 0:
        return

    channels: int = buffer.channel_count
    if channel_count is not None:
        channels = min(channel_count, channels)

    start, end = (1.0, 0.0) if fade_out else (0.0, 1.0)
    ramp: np.ndarray = np.linspace(start, end, num_frames, dtype=buffer.samples.dtype)

    buffer.samples[:channels] *= ramp


def normalize_buffer(buffer: SampleBuffer, target_peak: float = 0.95) -> None:
    """
    Peak-normalize in place so the loudest sample equals *target_peak*.
    Silent buffers are left exactly as they are.
    """
    if buffer.samples.size == 0:
        return
    peak: float = float(np.max(np.abs(buffer.samples)))
    if peak > 0:
        buffer.samples *= buffer.samples.dtype.type(target_peak / peak)
