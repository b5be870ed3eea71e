import os
from typing import List, Optional, Tuple

import numpy as np
import pytest
import soundfile as sf

from application.dto.session_dto import PlaybackSnapshotDTO, TrimSettingsDTO
from application.ports.audio_source_port import IAudioSource
from infrastructure.audio.gain_stage import GainStage, gain_to_db
from infrastructure.audio.memory_audio_sink import MemoryAudioSink
from infrastructure.audio.player_factory import open_player
from infrastructure.audio.soundfile_audio_sink import SoundFileAudioSink
from infrastructure.audio.soundfile_audio_source import SoundFileAudioSource
from trimmer.buffer import SampleBuffer
from trimmer.errors import ReadFailureError, SourceUnavailableError
from trimmer.pipeline import PipelineConfig
from trimmer.player import TrimPlayer

# Test Constants
SAMPLE_RATE: int = 1000
BLOCK: int = 100  # frames per read, 0.1 s
CONFIG: PipelineConfig = PipelineConfig(buffer_frames=BLOCK)


# Helpers


def build_signal(pattern: List[Tuple[float, int]], channels: int = 2) -> np.ndarray:
    """Planar signal from (constant value, number of blocks) segments."""
    parts: List[np.ndarray] = [
        np.full((channels, blocks * BLOCK), value, dtype=np.float32) for value, blocks in pattern
    ]
    return np.concatenate(parts, axis=1)


class ArraySource(IAudioSource):
    """In-memory decoder double."""

    def __init__(self, samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> None:
        self._samples: np.ndarray = samples
        self._rate: int = sample_rate
        self._pos: int = 0
        self.closed: bool = False
        self.reads: int = 0

    @property
    def sample_rate(self) -> int:
        return self._rate

    @property
    def channels(self) -> int:
        return int(self._samples.shape[0])

    @property
    def frames(self) -> int:
        return int(self._samples.shape[1])

    @property
    def position(self) -> int:
        return self._pos

    def read(self, num_frames: int) -> Optional[SampleBuffer]:
        self.reads += 1
        if self._pos >= self.frames:
            return None
        block: np.ndarray = self._samples[:, self._pos:self._pos + num_frames].copy()
        self._pos += block.shape[1]
        return SampleBuffer(block, self._rate)

    def seek(self, frame: int) -> None:
        self._pos = max(0, min(int(frame), self.frames))

    def close(self) -> None:
        self.closed = True


class FailingSource(ArraySource):
    """Raises on the n-th read."""

    def __init__(self, samples: np.ndarray, fail_on: int) -> None:
        super().__init__(samples)
        self.fail_on: int = fail_on

    def read(self, num_frames: int) -> Optional[SampleBuffer]:
        if self.reads + 1 == self.fail_on:
            self.reads += 1
            raise ReadFailureError("decoder exploded")
        return super().read(num_frames)


class BrokenSink(MemoryAudioSink):
    """Accepts *accept* buffers, then every write raises like a full disk."""

    def __init__(self, accept: int = 0) -> None:
        super().__init__()
        self.accept: int = accept

    def write(self, buffer: SampleBuffer) -> None:
        if len(self.buffers) >= self.accept:
            raise OSError("disk full")
        super().write(buffer)


def make_player(
    pattern: List[Tuple[float, int]], level: str = "aggressive", **kwargs
) -> Tuple[TrimPlayer, ArraySource, MemoryAudioSink]:
    kwargs.setdefault("gain_stage", GainStage())
    source: ArraySource = ArraySource(build_signal(pattern))
    sink: MemoryAudioSink = MemoryAudioSink()
    player: TrimPlayer = TrimPlayer(
        source, sink, settings=TrimSettingsDTO(level=level), config=CONFIG, **kwargs
    )
    return player, source, sink


class TestTrimPlayerRun:
    """Tests for the processing loop run in the calling thread."""

    def test_trims_gap_and_reports_time(self) -> None:
        player, _, sink = make_player([(0.3, 10), (0.0, 30), (0.3, 160)])
        final: PlaybackSnapshotDTO = player.run()

        assert final.status == "done"
        assert final.time_trimmed == pytest.approx(3.0)
        assert final.position == pytest.approx(20.0)
        assert sink.frames_written == 170 * BLOCK

    def test_off_level_passes_everything(self) -> None:
        player, source, sink = make_player([(0.3, 10), (0.0, 30), (0.3, 160)], level="off")
        player.run()
        np.testing.assert_array_equal(
            sink.concatenate(2, SAMPLE_RATE).samples, source._samples
        )

    def test_gap_open_at_end_of_stream_is_dropped(self) -> None:
        # Zero guard: only the very last block (0 s left) bypasses trimming
        source: ArraySource = ArraySource(build_signal([(0.3, 10), (0.0, 10)]))
        sink: MemoryAudioSink = MemoryAudioSink()
        player: TrimPlayer = TrimPlayer(
            source, sink,
            settings=TrimSettingsDTO(level="aggressive"),
            config=PipelineConfig(buffer_frames=BLOCK, guard_window_sec=0.0),
        )
        final: PlaybackSnapshotDTO = player.run()
        assert sink.frames_written == 11 * BLOCK
        assert final.time_trimmed == 0.0

    def test_last_seconds_are_never_trimmed(self) -> None:
        # 7 s source: blocks ending before 2.0 s are held, everything after is guarded
        player, _, sink = make_player([(0.3, 10), (0.0, 60)])
        final: PlaybackSnapshotDTO = player.run()
        assert sink.frames_written == 61 * BLOCK
        assert final.time_trimmed == 0.0

    def test_progress_callback_reaches_total(self) -> None:
        calls: List[Tuple[int, int]] = []
        player, _, _ = make_player([(0.3, 20)], progress_callback=lambda d, t: calls.append((d, t)))
        player.run()
        assert len(calls) == 20
        assert calls[-1] == (20 * BLOCK, 20 * BLOCK)

    def test_level_change_applies_from_next_buffer(self) -> None:
        player, _, sink = make_player([(0.0, 20), (0.3, 180)], level="off")

        def switch(frames_done: int, _total: int) -> None:
            if frames_done == 10 * BLOCK:
                player.set_level("aggressive")

        player.progress_callback = switch
        final: PlaybackSnapshotDTO = player.run()

        assert sink.frames_written == 190 * BLOCK
        assert final.time_trimmed == pytest.approx(1.0)
        assert final.level == "aggressive"

    def test_cancel_discards_open_gap(self) -> None:
        player, _, sink = make_player([(0.3, 3), (0.001, 5), (0.3, 192)], level="medium")

        def cancel_after_eight(frames_done: int, _total: int) -> None:
            if frames_done == 8 * BLOCK:
                player.pause()

        player.progress_callback = cancel_after_eight
        final: PlaybackSnapshotDTO = player.run()

        assert final.status == "stopped"
        assert sink.frames_written == 3 * BLOCK
        assert final.position == pytest.approx(0.8)

    def test_read_failure_ends_session(self) -> None:
        source: FailingSource = FailingSource(build_signal([(0.3, 50)]), fail_on=4)
        sink: MemoryAudioSink = MemoryAudioSink()
        finished: List[PlaybackSnapshotDTO] = []
        player: TrimPlayer = TrimPlayer(
            source, sink, settings=TrimSettingsDTO(level="off"), config=CONFIG,
            on_finished=finished.append,
        )
        final: PlaybackSnapshotDTO = player.run()

        assert final.status == "error"
        assert "decoder exploded" in (final.error or "")
        assert sink.frames_written == 3 * BLOCK
        assert [s.status for s in finished] == ["error"]

    def test_sink_failure_ends_session(self) -> None:
        source: ArraySource = ArraySource(build_signal([(0.3, 50)]))
        sink: BrokenSink = BrokenSink(accept=2)
        finished: List[PlaybackSnapshotDTO] = []
        player: TrimPlayer = TrimPlayer(
            source, sink, settings=TrimSettingsDTO(level="off"), config=CONFIG,
            on_finished=finished.append,
        )
        final: PlaybackSnapshotDTO = player.run()

        assert final.status == "error"
        assert "disk full" in (final.error or "")
        assert isinstance(player.error, OSError)
        assert sink.frames_written == 2 * BLOCK
        assert source.position == 3 * BLOCK
        assert [s.status for s in finished] == ["error"]

    def test_error_cleared_on_next_run(self) -> None:
        source: FailingSource = FailingSource(build_signal([(0.3, 20)]), fail_on=2)
        player: TrimPlayer = TrimPlayer(
            source, MemoryAudioSink(), settings=TrimSettingsDTO(level="off"), config=CONFIG
        )
        assert player.run().status == "error"
        assert isinstance(player.error, ReadFailureError)

        assert player.run().status == "done"
        assert player.error is None

    def test_gain_applied_to_output(self) -> None:
        source: ArraySource = ArraySource(build_signal([(0.1, 60)]))
        sink: MemoryAudioSink = MemoryAudioSink()
        player: TrimPlayer = TrimPlayer(
            source, sink, settings=TrimSettingsDTO(level="off", gain=2.0), config=CONFIG,
            gain_stage=GainStage(),
        )
        player.run()
        out: np.ndarray = sink.concatenate(2, SAMPLE_RATE).samples
        assert float(np.median(out)) == pytest.approx(0.2, abs=1e-4)
        assert float(np.max(np.abs(out))) <= 0.2 + 1e-3


class TestTrimPlayerControl:
    """Tests for threading, seek, stop and settings."""

    def test_background_worker_completes(self) -> None:
        finished: List[PlaybackSnapshotDTO] = []
        player, _, sink = make_player(
            [(0.3, 10), (0.0, 30), (0.3, 160)], on_finished=finished.append
        )
        player.start()
        assert player.wait(timeout=10.0)

        assert player.snapshot().status == "done"
        assert player.time_trimmed == pytest.approx(3.0)
        assert len(finished) == 1
        assert sink.frames_written == 170 * BLOCK

    def test_background_sink_failure_is_published(self) -> None:
        finished: List[PlaybackSnapshotDTO] = []
        source: ArraySource = ArraySource(build_signal([(0.3, 200)]))
        player: TrimPlayer = TrimPlayer(
            source, BrokenSink(), settings=TrimSettingsDTO(level="off"), config=CONFIG,
            on_finished=finished.append,
        )
        player.start()
        assert player.wait(timeout=5.0)

        snap: PlaybackSnapshotDTO = player.snapshot()
        assert snap.status == "error"
        assert snap.error == "disk full"
        assert [s.status for s in finished] == ["error"]
        assert not player.is_running

    def test_seek_moves_read_cursor(self) -> None:
        player, source, sink = make_player([(0.3, 200)], level="off")
        player.seek(5.0)
        assert source.position == 5 * SAMPLE_RATE
        assert player.snapshot().position == pytest.approx(5.0)

        player.run()
        assert sink.frames_written == 150 * BLOCK

    def test_seek_clamps_past_end(self) -> None:
        player, source, _ = make_player([(0.3, 20)], level="off")
        player.seek(999.0)
        assert source.position == source.frames

    def test_stop_rewinds(self) -> None:
        player, source, _ = make_player([(0.3, 20)], level="off")
        player.run()
        player.stop()
        snap: PlaybackSnapshotDTO = player.snapshot()
        assert snap.status == "stopped"
        assert snap.position == 0.0
        assert source.position == 0

    def test_settings_visible_in_snapshot(self) -> None:
        player, _, _ = make_player([(0.3, 20)])
        player.set_rate(1.5)
        player.set_gain(0.5)
        player.set_level("Mild")
        snap: PlaybackSnapshotDTO = player.snapshot()
        assert (snap.level, snap.playback_rate, snap.gain) == ("mild", 1.5, 0.5)
        assert snap.remaining == pytest.approx(2.0 / 1.5)

    @pytest.mark.parametrize(
        "setter,value",
        [("set_level", "loudest"), ("set_gain", 0.0), ("set_rate", -1.0)],
    )
    def test_invalid_settings_rejected(self, setter: str, value) -> None:
        player, _, _ = make_player([(0.3, 20)])
        with pytest.raises(ValueError):
            getattr(player, setter)(value)

    def test_close_releases_source_and_sink(self) -> None:
        player, source, sink = make_player([(0.3, 20)])
        player.close()
        assert source.closed
        assert sink.closed

    def test_gain_without_gain_stage_rejected(self) -> None:
        player, _, _ = make_player([(0.3, 20)], gain_stage=None)
        player.set_gain(1.0)
        with pytest.raises(ValueError, match="gain stage"):
            player.set_gain(2.0)
        with pytest.raises(ValueError, match="gain stage"):
            TrimPlayer(
                ArraySource(build_signal([(0.3, 5)])), MemoryAudioSink(),
                settings=TrimSettingsDTO(gain=0.5),
            )

    def test_invalid_initial_level_rejected(self) -> None:
        with pytest.raises(ValueError):
            make_player([(0.3, 20)], level="extreme")


class TestSoundFileAdapters:
    """Tests for the file-backed source and sink."""

    def test_source_reads_blocks_in_order(self, tmp_path) -> None:
        path: str = os.path.join(str(tmp_path), "in.wav")
        data: np.ndarray = np.linspace(-0.5, 0.5, 2500, dtype=np.float32)
        sf.write(path, np.column_stack([data, data]), SAMPLE_RATE, subtype="FLOAT")

        source: SoundFileAudioSource = SoundFileAudioSource(path)
        try:
            assert (source.sample_rate, source.channels, source.frames) == (SAMPLE_RATE, 2, 2500)
            assert source.duration == pytest.approx(2.5)
            sizes: List[int] = []
            buf: Optional[SampleBuffer] = source.read(1000)
            while buf is not None:
                sizes.append(buf.frame_count)
                buf = source.read(1000)
            assert sizes == [1000, 1000, 500]
            assert source.position == 2500
        finally:
            source.close()

    def test_source_seek_clamps(self, tmp_path) -> None:
        path: str = os.path.join(str(tmp_path), "in.wav")
        sf.write(path, np.zeros((1000, 1), dtype=np.float32), SAMPLE_RATE)
        source: SoundFileAudioSource = SoundFileAudioSource(path)
        try:
            source.seek(10_000)
            assert source.position == 1000
            assert source.read(100) is None
            source.seek(-5)
            assert source.position == 0
        finally:
            source.close()

    def test_missing_file_is_unavailable(self, tmp_path) -> None:
        with pytest.raises(SourceUnavailableError, match="Could not open"):
            SoundFileAudioSource(os.path.join(str(tmp_path), "nope.wav"))

    def test_garbage_file_is_unavailable(self, tmp_path) -> None:
        path: str = os.path.join(str(tmp_path), "fake.wav")
        with open(path, "w") as f:
            f.write("definitely not audio")
        with pytest.raises(SourceUnavailableError):
            SoundFileAudioSource(path)

    def test_open_failure_skips_sink_factory(self, tmp_path) -> None:
        created: List[object] = []
        with pytest.raises(SourceUnavailableError):
            open_player(
                os.path.join(str(tmp_path), "nope.wav"),
                lambda source: created.append(source) or MemoryAudioSink(),
            )
        assert created == []

    def test_sink_writes_pcm16_wav(self, tmp_path) -> None:
        path: str = os.path.join(str(tmp_path), "out.wav")
        sink: SoundFileAudioSink = SoundFileAudioSink(path, SAMPLE_RATE, 2)
        sink.write(SampleBuffer(np.full((2, 300), 0.25, dtype=np.float32), SAMPLE_RATE))
        sink.write(SampleBuffer(np.full((2, 200), -0.25, dtype=np.float32), SAMPLE_RATE))
        sink.close()

        data, sr = sf.read(path, dtype="float32")
        assert sr == SAMPLE_RATE
        assert data.shape == (500, 2)
        assert sink.duration == pytest.approx(0.5)
        np.testing.assert_allclose(data[:300], 0.25, atol=1 / 32768)
        assert sf.info(path).subtype == "PCM_16"

    def test_memory_sink_concatenates(self) -> None:
        sink: MemoryAudioSink = MemoryAudioSink()
        sink.write(SampleBuffer(np.ones((2, 3), dtype=np.float32), SAMPLE_RATE))
        sink.write(SampleBuffer(np.zeros((2, 4), dtype=np.float32), SAMPLE_RATE))
        joined: SampleBuffer = sink.concatenate(2, SAMPLE_RATE)
        assert joined.frame_count == 7
        assert sink.frames_written == 7

    def test_memory_sink_empty_concatenate(self) -> None:
        joined: SampleBuffer = MemoryAudioSink().concatenate(2, SAMPLE_RATE)
        assert (joined.channel_count, joined.frame_count) == (2, 0)


class TestGainStage:
    """Tests for pedalboard output gain."""

    def test_unity_gain_is_passthrough(self) -> None:
        buf: SampleBuffer = SampleBuffer(np.full((2, 64), 0.3, dtype=np.float32), SAMPLE_RATE)
        original: np.ndarray = buf.samples
        assert GainStage().process(buf, 1.0) is buf
        assert buf.samples is original

    def test_gain_to_db(self) -> None:
        assert gain_to_db(1.0) == 0.0
        assert gain_to_db(10.0) == pytest.approx(20.0)

    def test_non_positive_gain_raises(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            gain_to_db(0.0)

    def test_half_gain_attenuates(self) -> None:
        buf: SampleBuffer = SampleBuffer(np.full((2, 4096), 0.4, dtype=np.float32), SAMPLE_RATE)
        out: SampleBuffer = GainStage().process(buf, 0.5)
        assert out.samples.shape == (2, 4096)
        assert out.samples.dtype == np.float32
        assert float(np.median(out.samples)) == pytest.approx(0.2, abs=1e-4)
