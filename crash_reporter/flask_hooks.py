"""
Flask integration.

Installs the two pipeline phases on an application:

* an error handler for ``Exception`` runs the capture phase for every
  server error (client errors such as 404 or 403 are passed through);
* an ``after_request`` hook runs the response phase for every response.

Usage::

    reporter = CrashReporter.from_settings(load_config("config.json"))
    reporter.install_flask(app)
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from flask import Flask, current_app, g, request, session
from werkzeug.exceptions import HTTPException, InternalServerError

from .artifacts import ArtifactStore, FilesystemArtifactStore
from .capture import BacktraceCapturePipeline
from .config import Configuration, SettingsConfiguration
from .correlation import CorrelationTracker, SessionStore
from .errors import TransportFailure
from .logging import clear_log_context, set_log_context, setup_logger
from .report import ReportAssembler
from .snapshots import RequestSnapshot, ResponseSnapshot
from .transports import NotificationSender, create_sender


def _flask_identity() -> Any:
    """The signed-in user as exposed by common auth middleware, or ``None``."""
    user = getattr(request, "current_user", None)
    if user:
        return user
    return g.get("user")


class CrashReporter:
    """Wires a :class:`BacktraceCapturePipeline` into a Flask app."""

    def __init__(
        self,
        configuration: Configuration,
        sender: NotificationSender,
        *,
        store: Optional[ArtifactStore] = None,
        tracker: Optional[CorrelationTracker] = None,
        identity_provider: Optional[Callable[[], Any]] = _flask_identity,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.assembler = ReportAssembler(configuration, sender)
        self.pipeline = BacktraceCapturePipeline(
            configuration,
            store or FilesystemArtifactStore(),
            self.assembler,
            tracker=tracker,
            identity_provider=identity_provider,
            clock=clock,
        )
        self.logger = setup_logger("crash_reporter.flask", "crash_reporter.log")

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], **kwargs) -> "CrashReporter":
        return cls(SettingsConfiguration(settings), create_sender(settings), **kwargs)

    # ── Flask integration ────────────────────────────────────────

    def install_flask(self, app: Flask) -> None:
        """Register the error handler and the response hook on *app*."""
        app.register_error_handler(Exception, self._handle_exception)
        app.after_request(self._after_request)
        app.extensions["crash_reporter"] = self

    def _handle_exception(self, exc: Exception):
        if isinstance(exc, HTTPException):
            # Expected client errors (404, 403, 400, 410, ...) are not crashes
            if exc.code is not None and exc.code < 500:
                return exc
            self._capture(exc)
            return exc

        self._capture(exc)
        return InternalServerError(original_exception=exc)

    def _capture(self, exc: Exception) -> None:
        set_log_context(request_path=request.path)
        try:
            self.pipeline.capture(exc, self._session_store())
        except TransportFailure:
            self.logger.exception("Failed to mail backtrace of %s", type(exc).__name__)

    def _after_request(self, response):
        try:
            self.pipeline.resolve(
                self._session_store(),
                request.path,
                lambda: (RequestSnapshot.from_flask(request), ResponseSnapshot.from_flask(response)),
            )
        except TransportFailure:
            self.logger.exception("Failed to send crash report for %s", request.path)
        finally:
            clear_log_context()
        return response

    def _session_store(self) -> SessionStore:
        # Without a secret key Flask hands out a read-only null session;
        # correlation then only spans the current request.
        if current_app.session_interface.is_null_session(session):
            return SessionStore(g.setdefault("_crash_reporter_session", {}))
        return SessionStore(session._get_current_object())
