# infrastructure/audio/file_renderer.py
# File-to-file trimming: open a source, stream it through a TrimPlayer into a
# file (or memory, when normalizing) and report what was removed.

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Callable, Optional

import soundfile as sf
from pydub import AudioSegment

from application.dto.session_dto import PlaybackSnapshotDTO, TrimSettingsDTO
from application.ports.audio_sink_port import IAudioSink
from application.ports.audio_source_port import IAudioSource
from infrastructure.audio.memory_audio_sink import MemoryAudioSink
from infrastructure.audio.player_factory import open_player
from infrastructure.audio.soundfile_audio_sink import SoundFileAudioSink
from trimmer.buffer import SampleBuffer
from trimmer.effects import normalize_buffer
from trimmer.errors import ReadFailureError
from trimmer.pipeline import PipelineConfig
from trimmer.player import TrimPlayer
from trimmer.utils import (
    BUFFER_FRAMES_RANGE,
    GAIN_RANGE,
    get_export_format,
    validate_input_file,
    validate_level,
    validate_output_path,
    validate_param_range,
)

logger = logging.getLogger("silence_trimmer")


@dataclass(frozen=True)
class RenderResult:
    output_path: str
    duration: float          # seconds of input
    time_trimmed: float      # seconds removed
    output_duration: float   # seconds written


def _write_normalized(buffer: SampleBuffer, output_path: str) -> None:
    export_fmt: str = get_export_format(output_path)
    if export_fmt == "wav":
        sf.write(output_path, buffer.interleaved(), buffer.sample_rate, subtype="PCM_16")
        return

    tmp_fd: int
    tmp_out: str
    tmp_fd, tmp_out = tempfile.mkstemp(suffix=".wav")
    os.close(tmp_fd)
    try:
        sf.write(tmp_out, buffer.interleaved(), buffer.sample_rate, subtype="PCM_16")
        audio_out: AudioSegment = AudioSegment.from_wav(tmp_out)
        audio_out.export(output_path, format=export_fmt)
    finally:
        if os.path.exists(tmp_out):
            os.remove(tmp_out)


def trim_file(
    input_path  : str,
    output_path : str,
    level       : str = "medium",
    gain        : float = 1.0,
    normalize   : bool = False,
    config      : Optional[PipelineConfig] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> RenderResult:
    """
    Full pipeline: open source → trim silence buffer by buffer → save.

    Args:
        input_path:  Source audio file (mp3/wav/flac/ogg/aac/m4a).
        output_path: Destination audio file (.wav/.mp3/.flac/.ogg/.m4a).
        level:       Trim profile: off, mild, medium or aggressive.
        gain:        Output gain multiplier (0.05–8.0).
        normalize:   Peak-normalize the whole result to config.target_peak.
                     Holds the trimmed output in memory until the end.
        config:      Pipeline tunables (guard window, capacity, block size).
        progress_callback: Optional callback (frames_done, total_frames).

    Raises:
        FileNotFoundError / ValueError for bad paths or parameters,
        SourceUnavailableError if the input cannot be decoded,
        ReadFailureError if decoding fails part way through.
        Write failures from the sink propagate unchanged.
    """
    config = config or PipelineConfig()

    # ── Validate inputs ──────────────────────────────────────────
    validate_input_file(input_path)
    validate_output_path(output_path)
    level = validate_level(level)
    validate_param_range(gain, "gain", *GAIN_RANGE)
    validate_param_range(config.buffer_frames, "buffer_frames", *BUFFER_FRAMES_RANGE)

    def _make_sink(source: IAudioSource) -> IAudioSink:
        if normalize:
            return MemoryAudioSink()
        return SoundFileAudioSink(output_path, source.sample_rate, source.channels)

    player: TrimPlayer = open_player(
        input_path,
        _make_sink,
        settings=TrimSettingsDTO(level=level, gain=gain),
        config=config,
        progress_callback=progress_callback,
    )

    try:
        final: PlaybackSnapshotDTO = player.run()
    finally:
        player.close()

    if final.status == "error":
        if not normalize and os.path.exists(output_path):
            os.remove(output_path)
        if player.error is not None:
            raise player.error
        raise ReadFailureError(final.error or f"Read failed for '{input_path}'.")

    if normalize:
        memory_sink: MemoryAudioSink = player.sink
        rendered: SampleBuffer = memory_sink.concatenate(
            player.source.channels, player.source.sample_rate
        )
        normalize_buffer(rendered, config.target_peak)
        _write_normalized(rendered, output_path)
        output_duration: float = rendered.duration
    else:
        output_duration = player.sink.duration

    logger.info(
        "rendered %s: %.2fs in, %.2fs trimmed, %.2fs out",
        output_path, final.duration, final.time_trimmed, output_duration,
    )
    return RenderResult(
        output_path=output_path,
        duration=final.duration,
        time_trimmed=final.time_trimmed,
        output_duration=output_duration,
    )
