# infrastructure/audio/soundfile_audio_sink.py
# Streams emitted buffers to disk. WAV is written directly; other formats are
# written to a temporary WAV and exported through pydub on close.

import logging
import os
import tempfile
from typing import Optional

import soundfile as sf
from pydub import AudioSegment

from application.ports.audio_sink_port import IAudioSink
from trimmer.buffer import SampleBuffer
from trimmer.utils import get_export_format

logger = logging.getLogger("silence_trimmer")


class SoundFileAudioSink(IAudioSink):
    """Write buffers to *output_path* as 16-bit PCM."""

    def __init__(self, output_path: str, sample_rate: int, channels: int) -> None:
        self.output_path: str = output_path
        self.sample_rate: int = sample_rate
        self.channels: int = channels
        self.frames_written: int = 0
        self.export_format: str = get_export_format(output_path)

        self._tmp_path: Optional[str] = None
        write_path: str = output_path
        if self.export_format != "wav":
            tmp_fd: int
            tmp_fd, self._tmp_path = tempfile.mkstemp(suffix=".wav")
            os.close(tmp_fd)
            write_path = self._tmp_path

        self._file: sf.SoundFile = sf.SoundFile(
            write_path,
            mode="w",
            samplerate=sample_rate,
            channels=channels,
            subtype="PCM_16",
        )

    @property
    def duration(self) -> float:
        return self.frames_written / self.sample_rate

    def write(self, buffer: SampleBuffer) -> None:
        self._file.write(buffer.interleaved())
        self.frames_written += buffer.frame_count

    def close(self) -> None:
        if self._file.closed:
            return
        self._file.close()

        if self._tmp_path is None:
            return
        try:
            audio_out: AudioSegment = AudioSegment.from_wav(self._tmp_path)
            audio_out.export(self.output_path, format=self.export_format)
        finally:
            if os.path.exists(self._tmp_path):
                os.remove(self._tmp_path)
            self._tmp_path = None
