"""
api/session.py — multi-user in-memory browser sessions (cookie based)

Each browser gets a UUID session id with its own auth state, one shared
API client, the exams it has paid for and at most one exam session
controller. Sessions expire after SESSION_TTL of inactivity; expiring or
resetting a session tears its countdown down and closes its client.
"""

import threading
import time
import uuid
from typing import Any

from config import SESSION_TTL
from certify_cbt.services.api_client import GradingApiClient
from certify_cbt.services.auth_state import AuthState

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}
_client_options: dict[str, Any] = {}


def configure_client(**options) -> None:
    """Options (e.g. ``base_url``) for the API clients of new sessions."""
    _client_options.clear()
    _client_options.update(options)


def _new_state() -> dict[str, Any]:
    auth = AuthState()
    return {
        "auth": auth,
        "client": GradingApiClient(auth=auth, **_client_options),
        "paid_exams": set(),
        "controller": None,
    }


def _teardown(state: dict[str, Any]) -> None:
    controller = state.get("controller")
    if controller is not None:
        controller.close()
    state["auth"].teardown()
    state["client"].close()


def create_session() -> str:
    """Create a new session and return its id."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """Session data by id. None if missing or expired."""
    expired = None
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            expired = _sessions.pop(sid)
            del _timestamps[sid]
        else:
            _timestamps[sid] = time.time()  # refresh on access
            return _sessions[sid]
    _teardown(expired)
    return None


def reset(sid: str) -> None:
    """Sign out: drop credentials and close any exam in progress."""
    with _lock:
        state = _sessions.get(sid)
        if state is not None:
            _sessions[sid] = _new_state()
            _timestamps[sid] = time.time()
    if state is not None:
        _teardown(state)


def cleanup_expired() -> int:
    """Remove expired sessions. Returns the number removed."""
    now = time.time()
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        states = [_sessions.pop(sid) for sid in expired]
        for sid in expired:
            del _timestamps[sid]
    for state in states:
        _teardown(state)
    return len(states)


def clear_all() -> None:
    """Close every session (server shutdown)."""
    with _lock:
        states = list(_sessions.values())
        _sessions.clear()
        _timestamps.clear()
    for state in states:
        _teardown(state)
