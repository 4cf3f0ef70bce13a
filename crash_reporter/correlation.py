"""
Session-scoped correlation between a captured fault and its response.

One logical fault can pass through several response cycles (error page,
redirects, asset requests), and a broken poller can raise the same error
every few seconds.  The tracker keeps a small state machine in the client's
session so that only the first response after a capture reports, and the
same (path, message) pair is reported at most once per suppression window::

    Idle ──capture──▶ Pending ──response──▶ Reported | Suppressed | Discarded ──▶ Idle
"""

import enum
import hashlib
from collections.abc import MutableMapping
from datetime import datetime
from typing import Any, Optional

from .artifacts import ArtifactStore
from .constants import (
    DEFAULT_SESSION_KEYS,
    SUPPRESSION_TIME_FORMAT,
    SUPPRESSION_WINDOW,
    SessionKeys,
)
from .errors import ArtifactStoreError


class SessionStore:
    """get/set/has/remove view over any mutable mapping (e.g. ``flask.session``)."""

    def __init__(self, mapping: Optional[MutableMapping] = None):
        self._mapping = mapping if mapping is not None else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._mapping.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._mapping[key] = value

    def has(self, key: str) -> bool:
        return key in self._mapping

    def remove(self, key: str) -> None:
        self._mapping.pop(key, None)

    def all(self) -> dict:
        return dict(self._mapping)


class Decision(enum.Enum):
    IDLE = "idle"
    SUPPRESSED = "suppressed"
    REPORT = "report"
    DISCARDED = "discarded"


def error_hash(request_path: str, message: str) -> str:
    return hashlib.md5(f"{request_path}{message}".encode("utf-8")).hexdigest()


class CorrelationTracker:
    """Reads and writes the correlation state under a fixed set of session keys."""

    def __init__(self, keys: SessionKeys = DEFAULT_SESSION_KEYS):
        self.keys = keys

    # ── capture phase ────────────────────────────────────────────

    def begin_capture(self, session: SessionStore) -> None:
        """Forget any earlier fault of this session."""
        session.remove(self.keys.filename)
        session.remove(self.keys.exception_present)

    def record_capture(self, session: SessionStore, artifact_key: str, message: str) -> None:
        """Enter ``Pending`` once the backtrace is safely stored."""
        session.set(self.keys.filename, artifact_key)
        session.set(self.keys.error, message)
        session.set(self.keys.exception_present, True)

    # ── response phase ───────────────────────────────────────────

    def is_pending(self, session: SessionStore) -> bool:
        return bool(session.get(self.keys.exception_present, False))

    def artifact_key(self, session: SessionStore) -> Optional[str]:
        return session.get(self.keys.filename)

    def error_message(self, session: SessionStore) -> str:
        return session.get(self.keys.error) or ""

    def evaluate(self, session: SessionStore, request_path: str, now: datetime) -> Decision:
        """Decide whether the pending fault of this session gets reported.

        On ``REPORT`` the suppression hash and time are updated; on
        ``SUPPRESSED`` the pending flag is cleared.
        """
        if not self.is_pending(session):
            return Decision.IDLE

        current = error_hash(request_path, self.error_message(session))

        # No artifact means nothing worth mailing: suppress rather than send
        # an empty report.
        if not session.has(self.keys.filename) or self._within_window(session, current, now):
            session.remove(self.keys.exception_present)
            return Decision.SUPPRESSED

        session.set(self.keys.previous_hash, current)
        session.set(self.keys.previous_time, now.strftime(SUPPRESSION_TIME_FORMAT))
        return Decision.REPORT

    def _within_window(self, session: SessionStore, current: str, now: datetime) -> bool:
        previous_time = session.get(self.keys.previous_time)
        if previous_time is None or session.get(self.keys.previous_hash, "") != current:
            return False
        try:
            expiry = datetime.strptime(previous_time, SUPPRESSION_TIME_FORMAT) + SUPPRESSION_WINDOW
        except (TypeError, ValueError):
            return False
        return now < expiry

    def finish_report(self, session: SessionStore) -> None:
        session.remove(self.keys.filename)
        session.remove(self.keys.error)
        session.remove(self.keys.exception_present)

    def release_artifact(self, session: SessionStore, store: ArtifactStore) -> None:
        """Delete the pending artifact if any; failures are ignored."""
        key = session.get(self.keys.filename)
        if key:
            try:
                store.delete(key)
            except ArtifactStoreError:
                pass
        session.remove(self.keys.filename)

    def discard(self, session: SessionStore, store: ArtifactStore) -> Decision:
        """Non-production path: drop the artifact and never report."""
        self.release_artifact(session, store)
        session.remove(self.keys.exception_present)
        return Decision.DISCARDED
