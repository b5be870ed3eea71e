"""
Background trimming session.

One worker thread pulls buffers from the source, runs the trim state machine
and pushes whatever comes out to the sink. That thread is the only one that
touches the pipeline session while it runs. Everyone else talks to the player
through settings (read once per buffer) and published snapshots.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, List, Optional

from application.dto.session_dto import PlaybackSnapshotDTO, TrimSettingsDTO
from application.ports.audio_sink_port import IAudioSink
from application.ports.audio_source_port import IAudioSource
from application.ports.gain_stage_port import IGainStage
from trimmer.buffer import SampleBuffer
from trimmer.errors import ReadFailureError
from trimmer.pipeline import PipelineConfig, PipelineSession, process_buffer
from trimmer.profiles import TrimProfile, profile_for

logger = logging.getLogger("silence_trimmer")

ProgressCallback = Callable[[int, int], None]
FinishedCallback = Callable[[PlaybackSnapshotDTO], None]


class TrimPlayer:
    """
    Drive a source through the trimmer into a sink.

    Use ``start()`` for a background worker or ``run()`` to process in the
    calling thread. ``stop()`` and ``pause()`` are cooperative: the worker
    checks a flag once per buffer and exits before emitting anything more.

    Without a *gain_stage* only unity gain is accepted.

    Any exception raised while reading, trimming or writing ends the run with
    status ``error``; the exception itself is kept on ``self.error``.
    """

    def __init__(
        self,
        source: IAudioSource,
        sink: IAudioSink,
        settings: Optional[TrimSettingsDTO] = None,
        config: Optional[PipelineConfig] = None,
        gain_stage: Optional[IGainStage] = None,
        progress_callback: Optional[ProgressCallback] = None,
        on_finished: Optional[FinishedCallback] = None,
    ) -> None:
        self.source: IAudioSource = source
        self.sink: IAudioSink = sink
        self.config: PipelineConfig = config or PipelineConfig()
        self.gain_stage: Optional[IGainStage] = gain_stage
        self.progress_callback: Optional[ProgressCallback] = progress_callback
        self.on_finished: Optional[FinishedCallback] = on_finished
        self.error: Optional[Exception] = None

        settings = settings or TrimSettingsDTO()
        profile_for(settings.level)
        self._check_gain(settings.gain)
        self._settings: TrimSettingsDTO = settings
        self._settings_lock: threading.Lock = threading.Lock()

        self._session: PipelineSession = PipelineSession.create(source.duration, self.config)
        self._session.state.current_position = source.position / source.sample_rate

        self._cancel: threading.Event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._snapshot_lock: threading.Lock = threading.Lock()
        self._snapshot: PlaybackSnapshotDTO = PlaybackSnapshotDTO(duration=source.duration)

    # ── Settings (any thread) ────────────────────────────────────

    @property
    def settings(self) -> TrimSettingsDTO:
        with self._settings_lock:
            return self._settings

    def _update_settings(self, **changes) -> None:
        with self._settings_lock:
            self._settings = self._settings.with_changes(**changes)

    def set_level(self, level: str) -> None:
        profile: TrimProfile = profile_for(level)
        self._update_settings(level=profile.level)

    def _check_gain(self, gain: float) -> None:
        if gain <= 0:
            raise ValueError(f"Gain must be positive. Got: {gain}.")
        if gain != 1.0 and self.gain_stage is None:
            raise ValueError(
                f"Gain {gain} needs a gain stage.\n"
                f"    → Pass gain_stage=GainStage() when building the player."
            )

    def set_gain(self, gain: float) -> None:
        self._check_gain(gain)
        self._update_settings(gain=float(gain))

    def set_rate(self, rate: float) -> None:
        if rate <= 0:
            raise ValueError(f"Playback rate must be positive. Got: {rate}.")
        self._update_settings(rate=float(rate))

    # ── Observation (any thread) ─────────────────────────────────

    def snapshot(self) -> PlaybackSnapshotDTO:
        with self._snapshot_lock:
            published: PlaybackSnapshotDTO = self._snapshot
        current: TrimSettingsDTO = self.settings
        return replace(
            published,
            level=current.level,
            playback_rate=current.rate,
            gain=current.gain,
        )

    @property
    def time_trimmed(self) -> float:
        return self.snapshot().time_trimmed

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _publish(self, status: str, error: Optional[str] = None) -> None:
        state = self._session.state
        snapshot: PlaybackSnapshotDTO = PlaybackSnapshotDTO(
            status=status,
            position=state.current_position,
            duration=state.total_duration,
            time_trimmed=state.cumulative_time_trimmed,
            error=error,
        )
        with self._snapshot_lock:
            self._snapshot = snapshot

    # ── Control ──────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the worker. No-op if it is already running."""
        if self.is_running:
            return
        self._cancel.clear()
        self._thread = threading.Thread(target=self._run_loop, name="trim-session", daemon=True)
        self._thread.start()

    def pause(self) -> None:
        """Stop the worker but keep the read position."""
        self._cancel.set()
        self._join()
        self._session.reset_gap()
        self._publish("stopped")

    def stop(self) -> None:
        """Stop the worker and rewind to the start of the source."""
        self.pause()
        self.source.seek(0)
        self._session.state.current_position = 0.0
        self._publish("stopped")
        logger.info("session stopped")

    def seek(self, seconds: float) -> None:
        """Move to *seconds* into the source. Resumes if it was running."""
        was_running: bool = self.is_running
        self.pause()

        target: int = int(max(0.0, seconds) * self.source.sample_rate)
        self.source.seek(target)
        self._session.state.current_position = self.source.position / self.source.sample_rate
        self._publish("stopped")
        logger.info("seek to %.2fs", self._session.state.current_position)

        if was_running:
            self.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker exits. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def close(self) -> None:
        """Stop processing and release the source and the sink."""
        self._cancel.set()
        self._join()
        self._session.reset_gap()
        self.source.close()
        self.sink.close()

    def _join(self) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
            self._thread = None

    # ── Processing loop ──────────────────────────────────────────

    def run(self) -> PlaybackSnapshotDTO:
        """Process in the calling thread until end of stream, cancellation, or a read failure."""
        self._cancel.clear()
        return self._run_loop()

    def _run_loop(self) -> PlaybackSnapshotDTO:
        session: PipelineSession = self._session
        source: IAudioSource = self.source

        self.error = None
        session.reset_gap()
        self._publish("playing")
        logger.info("session started at %.2fs", session.state.current_position)

        try:
            while not self._cancel.is_set():
                settings: TrimSettingsDTO = self.settings
                buffer: Optional[SampleBuffer] = source.read(self.config.buffer_frames)
                if buffer is None or buffer.frame_count == 0:
                    break

                session.state.current_position = source.position / source.sample_rate
                emitted: List[SampleBuffer] = process_buffer(
                    session, buffer, profile_for(settings.level), self.config
                )
                for out in emitted:
                    if self.gain_stage is not None:
                        out = self.gain_stage.process(out, settings.gain)
                    self.sink.write(out)

                self._publish("playing")
                if self.progress_callback:
                    self.progress_callback(source.position, source.frames)
        except ReadFailureError as exc:
            logger.error("session failed: %s", exc)
            return self._fail(exc)
        except Exception as exc:
            logger.exception("session failed while processing")
            return self._fail(exc)

        # Whatever is still held (cancelled, or a gap open at end of stream) is dropped
        session.reset_gap()
        if self._cancel.is_set():
            return self.snapshot()

        self._publish("done")
        logger.info(
            "session finished: trimmed %.2fs of %.2fs",
            session.state.cumulative_time_trimmed, session.state.total_duration,
        )
        return self._finish()

    def _fail(self, exc: Exception) -> PlaybackSnapshotDTO:
        self.error = exc
        self._session.reset_gap()
        self._publish("error", error=str(exc) or type(exc).__name__)
        return self._finish()

    def _finish(self) -> PlaybackSnapshotDTO:
        final: PlaybackSnapshotDTO = self.snapshot()
        if self.on_finished:
            self.on_finished(final)
        return final
