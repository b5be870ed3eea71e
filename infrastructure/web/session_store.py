# infrastructure/web/session_store.py
# In-memory registry of trimming sessions for the HTTP service.
# Thread-safe: every access goes through one Lock. Entries hold the live
# TrimPlayer plus bookkeeping (paths, creation time); reads return copies.

import time
from threading import Lock
from typing import Optional

_sessions: dict = {}
_lock: Lock = Lock()


def get_session(session_id: str) -> Optional[dict]:
    """Return a shallow copy of the entry, or None."""
    with _lock:
        entry = _sessions.get(session_id)
        return dict(entry) if entry is not None else None


def add_session(session_id: str, data: dict) -> None:
    """Register a session. Adds a created_at timestamp if missing."""
    with _lock:
        entry = dict(data)
        entry.setdefault("created_at", time.time())
        _sessions[session_id] = entry


def update_session(session_id: str, updates: dict) -> None:
    """Merge *updates* into an existing entry (no-op if missing)."""
    with _lock:
        if session_id in _sessions:
            _sessions[session_id].update(updates)


def remove_session(session_id: str) -> Optional[dict]:
    """Drop and return an entry (None if missing)."""
    with _lock:
        return _sessions.pop(session_id, None)
