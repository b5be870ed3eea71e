# infrastructure/audio/soundfile_audio_source.py
# Implementation of IAudioSource on top of soundfile, with pydub as the
# decoder for containers libsndfile cannot open.

import logging
import os
import tempfile
from typing import Optional

import numpy as np
import soundfile as sf
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from application.ports.audio_source_port import IAudioSource
from trimmer.buffer import SampleBuffer
from trimmer.errors import ReadFailureError, SourceUnavailableError

logger = logging.getLogger("silence_trimmer")

# libsndfile reads these directly; everything else goes through ffmpeg via pydub
SOUNDFILE_NATIVE_FORMATS: set[str] = {".wav", ".flac", ".ogg"}


class SoundFileAudioSource(IAudioSource):
    """Stream float32 blocks from an audio file."""

    def __init__(self, path: str) -> None:
        self.path: str = path
        self._tmp_path: Optional[str] = None

        ext: str = os.path.splitext(path)[1].lower()
        try:
            decode_path: str = path
            if ext not in SOUNDFILE_NATIVE_FORMATS:
                decode_path = self._decode_to_temp_wav(path)
            self._file: sf.SoundFile = sf.SoundFile(decode_path, mode="r")
        except (RuntimeError, OSError, CouldntDecodeError) as exc:
            self._remove_temp()
            raise SourceUnavailableError(
                f"Could not open audio source: '{path}'.\n"
                f"    → {exc}"
            ) from exc

        if self._file.samplerate <= 0 or self._file.channels <= 0:
            self.close()
            raise SourceUnavailableError(
                f"Audio source has no usable format: '{path}'.\n"
                f"    → Check that the file is a valid audio file."
            )

    def _decode_to_temp_wav(self, path: str) -> str:
        # ffmpeg decodes, libsndfile streams the result
        segment: AudioSegment = AudioSegment.from_file(path)
        tmp_fd: int
        tmp_fd, self._tmp_path = tempfile.mkstemp(suffix=".wav")
        os.close(tmp_fd)
        segment.export(self._tmp_path, format="wav")
        logger.info("decoded %s to temporary wav", os.path.basename(path))
        return self._tmp_path

    def _remove_temp(self) -> None:
        if self._tmp_path and os.path.exists(self._tmp_path):
            try:
                os.unlink(self._tmp_path)
            except OSError as e:
                logger.warning("Could not delete %s: %s", self._tmp_path, e)
        self._tmp_path = None

    @property
    def sample_rate(self) -> int:
        return int(self._file.samplerate)

    @property
    def channels(self) -> int:
        return int(self._file.channels)

    @property
    def frames(self) -> int:
        return int(self._file.frames)

    @property
    def position(self) -> int:
        return int(self._file.tell())

    def read(self, num_frames: int) -> Optional[SampleBuffer]:
        try:
            block: np.ndarray = self._file.read(num_frames, dtype="float32", always_2d=True)
        except (RuntimeError, OSError) as exc:
            raise ReadFailureError(
                f"Read failed at frame {self.position} of '{self.path}'.\n"
                f"    → {exc}"
            ) from exc

        if len(block) == 0:
            return None
        return SampleBuffer.from_interleaved(block, self.sample_rate)

    def seek(self, frame: int) -> None:
        self._file.seek(max(0, min(int(frame), self.frames)))

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()
        self._remove_temp()
