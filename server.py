# server.py
import os
import re
import uuid
import logging
import tempfile
from functools import partial
from pathlib import Path
from threading import Timer

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from application.dto.session_dto import PlaybackSnapshotDTO, TrimSettingsDTO
from infrastructure.audio.player_factory import open_player
from infrastructure.audio.soundfile_audio_sink import SoundFileAudioSink
from infrastructure.web.session_store import (
    add_session,
    get_session,
    remove_session,
    update_session,
)
from trimmer.errors import SourceUnavailableError
from trimmer.pipeline import PipelineConfig, DEFAULT_GUARD_WINDOW_SEC
from trimmer.gap import DEFAULT_SAFETY_CAPACITY
from trimmer.player import TrimPlayer
from trimmer.profiles import LEVEL_NAMES
from trimmer.utils import DEFAULT_PARAMS, GAIN_RANGE, RATE_RANGE

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("silence_trimmer")


# ── Configuration ────────────────────────────────────────────────────

def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        logger.warning("ignoring invalid %s=%r", name, os.environ.get(name))
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        logger.warning("ignoring invalid %s=%r", name, os.environ.get(name))
        return default


PIPELINE_CONFIG: PipelineConfig = PipelineConfig(
    guard_window_sec=max(0.0, _env_float("TRIM_GUARD_SECONDS", DEFAULT_GUARD_WINDOW_SEC)),
    safety_capacity=max(1, _env_int("TRIM_SAFETY_CAPACITY", DEFAULT_SAFETY_CAPACITY)),
)

OUTPUT_TTL_SECONDS: int = 1800

# ── Flask app ────────────────────────────────────────────────────────
app = Flask(__name__)

# Upload size limit (100 MB hard cap)
app.config["MAX_CONTENT_LENGTH"] = 100 * 1024 * 1024

LOCAL_ORIGINS: list[str] = ["http://localhost:5000", "http://127.0.0.1:5000"]
CORS(app, resources={
    r"/sessions*":  {"origins": LOCAL_ORIGINS},
    r"/download/*": {"origins": LOCAL_ORIGINS},
})

app.config["SECRET_KEY"] = os.environ.get("FLASK_SECRET_KEY") or os.urandom(32)


# ════════════════════════════════════════════════════════════════════
# Request helpers
# ════════════════════════════════════════════════════════════════════

AUDIO_MAGIC_BYTES: dict[bytes, str] = {
    b"\xff\xfb":              ".mp3",
    b"\xff\xf3":              ".mp3",
    b"\xff\xf2":              ".mp3",
    b"ID3":                   ".mp3",
    b"RIFF":                  ".wav",
    b"fLaC":                  ".flac",
    b"OggS":                  ".ogg",
    b"\x00\x00\x00\x20ftyp": ".m4a",
    b"\x00\x00\x00\x1cftyp": ".m4a",
}

ALLOWED_OUTPUT_FORMATS: frozenset = frozenset({"mp3", "wav", "flac", "ogg", "m4a"})

SAFE_TEMP_DIR: str = os.path.realpath(tempfile.gettempdir())


def _looks_like_audio(header: bytes) -> bool:
    return any(header.startswith(magic) for magic in AUDIO_MAGIC_BYTES)


def _sanitize_filename(name: str) -> str:
    """Strip path components and unsafe characters, cap the length."""
    name = Path(name).name
    name = re.sub(r"[^\w\s\-.]", "", name)
    name = re.sub(r"\.{2,}", ".", name)
    return name[:128].strip()


def _is_valid_session_id(session_id: str) -> bool:
    try:
        return str(uuid.UUID(session_id, version=4)) == session_id
    except ValueError:
        return False


def _is_safe_path(path: str) -> bool:
    return os.path.realpath(path).startswith(SAFE_TEMP_DIR + os.sep)


def _parse_float(value, name: str, min_v: float, max_v: float) -> float:
    """Parse a float field; out-of-range or garbage raises ValueError."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be a number.")
    if not (min_v <= v <= max_v):
        raise ValueError(f"'{name}' must be between {min_v} and {max_v}.")
    return v


def _parse_level(value) -> str:
    level = str(value).strip().lower()
    if level not in LEVEL_NAMES:
        raise ValueError(f"'level' must be one of: {', '.join(LEVEL_NAMES)}.")
    return level


def _request_fields() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _safe_delete(path: str) -> None:
    try:
        if path and os.path.exists(path):
            os.unlink(path)
    except OSError as e:
        logger.warning("Could not delete %s: %s", path, e)


def _lookup(session_id: str):
    """Return (entry, None) or (None, error response)."""
    if not _is_valid_session_id(session_id):
        return None, (jsonify({"error": "Invalid session ID."}), 400)
    entry = get_session(session_id)
    if entry is None:
        return None, (jsonify({"error": "Session not found."}), 404)
    return entry, None


def _session_payload(session_id: str, entry: dict) -> dict:
    snapshot: PlaybackSnapshotDTO = entry["player"].snapshot()
    payload = snapshot.to_dict()
    payload["sessionId"] = session_id
    payload["ready"] = entry.get("ready", False)
    if entry.get("cancelled"):
        payload["status"] = "cancelled"
    elif entry.get("error"):
        payload["status"] = "error"
        payload["error"] = entry["error"]
    return payload


# ════════════════════════════════════════════════════════════════════
# Session lifecycle
# ════════════════════════════════════════════════════════════════════

def _on_session_finished(session_id: str, snapshot: PlaybackSnapshotDTO) -> None:
    """Runs on the worker thread once the source is exhausted or fails."""
    entry = get_session(session_id)
    if entry is None:
        return
    player: TrimPlayer = entry["player"]
    export_error = None
    try:
        player.close()
    except Exception as e:
        export_error = str(e)
        update_session(session_id, {"error": export_error})
        logger.error("session=%s export failed: %s", session_id[:8], e)
    finally:
        _safe_delete(entry["input_path"])

    if snapshot.status == "done" and export_error is None:
        update_session(session_id, {"ready": True})
        logger.info(
            "session=%s done trimmed=%.2fs of %.2fs",
            session_id[:8], snapshot.time_trimmed, snapshot.duration,
        )
    else:
        _safe_delete(entry["output_path"])
        logger.error("session=%s failed: %s", session_id[:8], snapshot.error or export_error)

    _schedule_cleanup(session_id, delay_s=OUTPUT_TTL_SECONDS)


def _discard_session(session_id: str) -> None:
    entry = remove_session(session_id)
    if entry is None:
        return
    entry["player"].close()
    _safe_delete(entry["input_path"])
    _safe_delete(entry["output_path"])


def _schedule_cleanup(session_id: str, delay_s: int) -> None:
    timer = Timer(delay_s, _discard_session, args=[session_id])
    timer.daemon = True
    timer.start()


# ════════════════════════════════════════════════════════════════════
# Routes
# ════════════════════════════════════════════════════════════════════

@app.route("/sessions", methods=["POST"])
def create_session():
    """
    POST /sessions
    Form fields:
      - file   : audio file (multipart)
      - format : output format extension (default "wav")
      - level  : off | mild | medium | aggressive
      - gain   : output gain multiplier
    Returns: { sessionId }
    """
    if "file" not in request.files:
        return jsonify({"error": "No file uploaded."}), 400

    audio_file = request.files["file"]
    header = audio_file.read(16)
    audio_file.seek(0)
    if not _looks_like_audio(header):
        logger.warning("upload rejected ip=%s reason=invalid_magic_bytes", request.remote_addr)
        return jsonify({"error": "Unsupported or invalid audio file."}), 415

    out_format = request.form.get("format", "wav").lower().strip().lstrip(".")
    if out_format not in ALLOWED_OUTPUT_FORMATS:
        return jsonify({"error": f"Format '{out_format}' is not allowed."}), 400

    try:
        settings = TrimSettingsDTO(
            level=_parse_level(request.form.get("level", DEFAULT_PARAMS["level"])),
            gain=_parse_float(request.form.get("gain", DEFAULT_PARAMS["gain"]), "gain", *GAIN_RANGE),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    safe_name = _sanitize_filename(audio_file.filename or "upload.wav")
    suffix = Path(safe_name).suffix or ".wav"

    tmp_fd_in, tmp_in = tempfile.mkstemp(suffix=suffix)
    os.close(tmp_fd_in)
    audio_file.save(tmp_in)
    if os.path.getsize(tmp_in) == 0:
        _safe_delete(tmp_in)
        return jsonify({"error": "Empty file uploaded."}), 400

    tmp_fd_out, tmp_out = tempfile.mkstemp(suffix=f".{out_format}")
    os.close(tmp_fd_out)

    session_id: str = str(uuid.uuid4())
    try:
        player = open_player(
            tmp_in,
            lambda source: SoundFileAudioSink(tmp_out, source.sample_rate, source.channels),
            settings=settings,
            config=PIPELINE_CONFIG,
            on_finished=partial(_on_session_finished, session_id),
        )
    except SourceUnavailableError as e:
        _safe_delete(tmp_in)
        _safe_delete(tmp_out)
        logger.warning("session rejected ip=%s: %s", request.remote_addr, e)
        return jsonify({"error": "Could not decode the uploaded audio."}), 422

    add_session(session_id, {
        "player":      player,
        "input_path":  tmp_in,
        "output_path": os.path.realpath(tmp_out),
        "ready":       False,
        "cancelled":   False,
    })
    player.start()

    logger.info(
        "session=%s started ip=%s level=%s format=%s",
        session_id[:8], request.remote_addr, settings.level, out_format,
    )
    return jsonify({"sessionId": session_id}), 202


@app.route("/sessions/<session_id>", methods=["GET"])
def get_session_status(session_id: str):
    """
    GET /sessions/<sessionId>
    Returns: { status, position, duration, timeTrimmed, remaining, level,
               playbackRate, gain, error, ready }
    """
    entry, error = _lookup(session_id)
    if error:
        return error
    return jsonify(_session_payload(session_id, entry))


@app.route("/sessions/<session_id>/settings", methods=["POST"])
def update_settings(session_id: str):
    """
    POST /sessions/<sessionId>/settings
    Fields (form or JSON, all optional): level, gain, rate.
    Changes apply from the next buffer; already-processed audio is unaffected.
    """
    entry, error = _lookup(session_id)
    if error:
        return error

    fields = _request_fields()
    player: TrimPlayer = entry["player"]
    try:
        level = _parse_level(fields["level"]) if "level" in fields else None
        gain = _parse_float(fields["gain"], "gain", *GAIN_RANGE) if "gain" in fields else None
        rate = _parse_float(fields["rate"], "rate", *RATE_RANGE) if "rate" in fields else None
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    if level is not None:
        player.set_level(level)
    if gain is not None:
        player.set_gain(gain)
    if rate is not None:
        player.set_rate(rate)

    logger.info("session=%s settings %s", session_id[:8], player.settings)
    return jsonify(_session_payload(session_id, get_session(session_id)))


@app.route("/sessions/<session_id>/cancel", methods=["POST"])
def cancel_session(session_id: str):
    """
    POST /sessions/<sessionId>/cancel
    Stops the worker; any gap still being held is discarded, not emitted.
    """
    entry, error = _lookup(session_id)
    if error:
        return error

    player: TrimPlayer = entry["player"]
    # Joins the worker, so a finish callback that was racing us has completed
    player.pause()
    entry = get_session(session_id) or entry
    if entry.get("ready") or entry.get("cancelled"):
        return jsonify({"error": "Session already finished."}), 409

    update_session(session_id, {"cancelled": True})
    player.close()
    _safe_delete(entry["input_path"])
    _safe_delete(entry["output_path"])
    _schedule_cleanup(session_id, delay_s=OUTPUT_TTL_SECONDS)

    logger.info("session=%s cancelled", session_id[:8])
    return jsonify(_session_payload(session_id, get_session(session_id)))


@app.route("/download/<session_id>", methods=["GET"])
def download_file(session_id: str):
    """
    GET /download/<sessionId>
    Returns the trimmed audio once the session is ready.
    """
    entry, error = _lookup(session_id)
    if error:
        return error
    if not entry.get("ready"):
        return jsonify({"error": "File not ready."}), 404

    output_path: str = entry["output_path"]
    if not _is_safe_path(output_path):
        logger.warning("path traversal attempt session=%s path=%s", session_id[:8], output_path)
        return jsonify({"error": "Access denied."}), 403
    if not os.path.exists(output_path):
        return jsonify({"error": "File has expired. Please upload again."}), 410

    ext: str = Path(output_path).suffix.lstrip(".")
    mimetype: str = {
        "mp3":  "audio/mpeg",
        "wav":  "audio/wav",
        "flac": "audio/flac",
        "ogg":  "audio/ogg",
        "m4a":  "audio/mp4",
    }.get(ext, "application/octet-stream")

    download_name = _sanitize_filename(request.args.get("name", f"trimmed.{ext}")) or f"trimmed.{ext}"
    return send_file(
        output_path,
        mimetype=mimetype,
        as_attachment=True,
        download_name=download_name,
    )


# ════════════════════════════════════════════════════════════════════
# Error handlers & headers
# ════════════════════════════════════════════════════════════════════

@app.errorhandler(413)
def request_entity_too_large(e):
    return jsonify({"error": "File too large. Maximum size is 100 MB."}), 413


@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Not found."}), 404


@app.errorhandler(Exception)
def handle_exception(e):
    """Never leak internal details to the client."""
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    logger.error("unhandled exception: %s", e, exc_info=True)
    return jsonify({"error": "An internal error occurred."}), 500


@app.after_request
def set_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


if __name__ == "__main__":
    debug_mode = os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    app.run(debug=debug_mode, port=5000)
