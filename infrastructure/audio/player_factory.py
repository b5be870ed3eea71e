# infrastructure/audio/player_factory.py
# Wires file-backed adapters into a TrimPlayer.

import logging
from typing import Callable, Optional

from application.dto.session_dto import TrimSettingsDTO
from application.ports.audio_sink_port import IAudioSink
from application.ports.audio_source_port import IAudioSource
from infrastructure.audio.gain_stage import GainStage
from infrastructure.audio.soundfile_audio_source import SoundFileAudioSource
from trimmer.pipeline import PipelineConfig
from trimmer.player import TrimPlayer

logger = logging.getLogger("silence_trimmer")


def open_player(
    path: str,
    sink_factory: Callable[[IAudioSource], IAudioSink],
    settings: Optional[TrimSettingsDTO] = None,
    config: Optional[PipelineConfig] = None,
    **kwargs,
) -> TrimPlayer:
    """
    Open *path* and build a player around it with a pedalboard gain stage.

    Raises SourceUnavailableError before any processing if the file cannot
    be decoded. *sink_factory* receives the opened source so the sink can
    match its rate and channel count.
    """
    source: SoundFileAudioSource = SoundFileAudioSource(path)
    try:
        sink: IAudioSink = sink_factory(source)
    except Exception:
        source.close()
        raise
    logger.info(
        "loaded %s: %.1fs, %d ch @ %d Hz",
        path, source.duration, source.channels, source.sample_rate,
    )
    return TrimPlayer(
        source,
        sink,
        settings=settings,
        config=config,
        gain_stage=GainStage(),
        **kwargs,
    )
