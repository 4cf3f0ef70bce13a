"""
The capture-and-report pipeline.

Two explicit phases, both called by the request-lifecycle glue:

1. :meth:`BacktraceCapturePipeline.capture` runs when a fault reaches the
   boundary.  It writes the backtrace to the artifact store (renaming on
   collision, retrying on I/O errors, at most three attempts) and records
   the artifact in the session.  If the backtrace cannot be stored it is
   mailed right away instead.
2. :meth:`BacktraceCapturePipeline.respond` runs for every response.  If
   the session has a pending fault that is not suppressed, the artifact is
   read and removed, the request is redacted and the report is sent.

Both phases are no-ops (apart from cleanup) outside production mode.
"""

import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Tuple, Union

from .artifacts import ArtifactStore, BacktraceArtifact
from .config import Configuration
from .constants import DELETE_FAILED_NOTE, MAX_UPLOAD_ATTEMPTS, MISSING_BACKTRACE
from .correlation import CorrelationTracker, Decision, SessionStore
from .errors import ArtifactAlreadyExists, ArtifactDeleteFailed, ArtifactUploadFailed
from .logging import setup_logger
from .redaction import redact
from .report import ReportAssembler
from .snapshots import RequestSnapshot, ResponseSnapshot

# ── Capture outcome ──────────────────────────────────────────────


@dataclass(frozen=True)
class CaptureSucceeded:
    artifact_key: str


@dataclass(frozen=True)
class CaptureFailed:
    """The backtrace could not be stored; *last_error* is the final write error."""

    last_error: Optional[BaseException]
    artifact: BacktraceArtifact


CaptureOutcome = Union[CaptureSucceeded, CaptureFailed]


def _extract_location(tb) -> str:
    """Extract file:line from the innermost traceback frame."""
    if tb is None:
        return "unknown"
    while tb.tb_next:
        tb = tb.tb_next
    return f"{tb.tb_frame.f_code.co_filename}:{tb.tb_lineno}"


def build_backtrace(exc: BaseException, user: str) -> str:
    """Fixed-format backtrace text stored in the artifact."""
    code = getattr(exc, "errno", None) or getattr(exc, "code", None) or 0
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return (
        f"Exception Code: {code}"
        f"\nThe class of the exception: {type(exc).__module__}.{type(exc).__qualname__}"
        f"\nThe user who triggered the exception: {user}"
        f"\nFile in which the exception occured: {_extract_location(exc.__traceback__)}"
        f"\nException message: {exc}"
        f"\n\nThe backtrace:\n{trace}"
    )


# ── Pipeline ─────────────────────────────────────────────────────


class BacktraceCapturePipeline:
    """Orchestrates capture, correlation and reporting for one application."""

    def __init__(
        self,
        configuration: Configuration,
        store: ArtifactStore,
        assembler: ReportAssembler,
        *,
        tracker: Optional[CorrelationTracker] = None,
        identity_provider: Optional[Callable[[], Any]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            configuration: Provider of environment, folder, addresses, users.
            store: Where backtraces wait between the two phases.
            assembler: Builds and dispatches notifications.
            tracker: Session state machine; defaults to the standard keys.
            identity_provider: Returns the current user identity, or ``None``.
            clock: Source of "now" for the suppression window.
        """
        self.configuration = configuration
        self.store = store
        self.assembler = assembler
        self.tracker = tracker or CorrelationTracker()
        self.identity_provider = identity_provider
        self.clock = clock
        self.logger = setup_logger("crash_reporter.pipeline", "crash_reporter.log")

    def current_user(self) -> str:
        identity = self.identity_provider() if self.identity_provider else None
        return self.configuration.get_user_information(identity)

    # ── capture phase ────────────────────────────────────────────

    def capture(self, exc: BaseException, session: SessionStore) -> Optional[CaptureOutcome]:
        """Store the backtrace of *exc* and mark the session as pending.

        Returns ``None`` outside production mode.

        Raises:
            TransportFailure: the fallback notification could not be sent.
        """
        if not self.configuration.is_production_environment():
            return None

        self.logger.debug("Capturing %s", type(exc).__name__, extra={"error_type": type(exc).__name__})
        artifact = BacktraceArtifact(
            folder=self.configuration.get_backtrace_folder(),
            content=build_backtrace(exc, self.current_user()),
        )
        self.tracker.begin_capture(session)

        outcome = self.persist(artifact)
        if isinstance(outcome, CaptureSucceeded):
            self.tracker.record_capture(session, outcome.artifact_key, str(exc))
            return outcome

        self.logger.error(
            "Could not store backtrace for %s, mailing it inline: %s",
            type(exc).__name__,
            outcome.last_error,
            extra={"artifact_key": artifact.name},
        )
        self.assembler.dispatch(self.assembler.build_upload_failed(outcome.last_error, artifact))
        return outcome

    def persist(self, artifact: BacktraceArtifact) -> CaptureOutcome:
        """Write *artifact*, renaming on collision; at most three attempts."""
        last_error: Optional[BaseException] = None
        for attempt in range(1, MAX_UPLOAD_ATTEMPTS + 1):
            try:
                self.store.write(artifact.name, artifact.content)
                return CaptureSucceeded(artifact.name)
            except ArtifactAlreadyExists as exc:
                last_error = exc
                artifact.regenerate_name()
            except ArtifactUploadFailed as exc:
                last_error = exc
            except Exception as exc:
                # Unknown failures are fatal; retrying them gains nothing
                return CaptureFailed(exc, artifact)
            self.logger.warning(
                "Backtrace write attempt %d failed: %s",
                attempt,
                last_error,
                extra={"attempt": attempt, "artifact_key": last_error.key},
            )
        return CaptureFailed(last_error, artifact)

    # ── response phase ───────────────────────────────────────────

    def respond(
        self, request: RequestSnapshot, response: ResponseSnapshot, session: SessionStore
    ) -> Decision:
        """Report the session's pending fault, if any and not suppressed.

        Raises:
            TransportFailure: the report could not be sent.  The session
                state is cleared regardless.
        """
        return self.resolve(session, request.path, lambda: (request, response))

    def resolve(
        self,
        session: SessionStore,
        request_path: str,
        snapshots: Callable[[], Tuple[RequestSnapshot, ResponseSnapshot]],
    ) -> Decision:
        """Like :meth:`respond`, but *snapshots* is only called on ``REPORT``.

        The Flask glue uses this so that ordinary responses are never read.
        """
        if not self.configuration.is_production_environment():
            return self.tracker.discard(session, self.store)

        decision = self.tracker.evaluate(session, request_path, self.clock())
        if decision is Decision.SUPPRESSED:
            self.tracker.release_artifact(session, self.store)
            self.logger.info(
                "Suppressed repeated error report for %s",
                request_path,
                extra={"decision": decision.value},
            )
            return decision
        if decision is not Decision.REPORT:
            return decision

        key = self.tracker.artifact_key(session)
        try:
            request, response = snapshots()
            self._report(request, response, session, key)
        finally:
            self.tracker.finish_report(session)
        return decision

    def _report(
        self,
        request: RequestSnapshot,
        response: ResponseSnapshot,
        session: SessionStore,
        key: str,
    ) -> None:
        backtrace = self.store.read(key)
        if not backtrace:
            backtrace = MISSING_BACKTRACE.format(key=key)

        extra = ""
        try:
            self.store.delete(key)
        except ArtifactDeleteFailed as exc:
            self.logger.warning("%s", exc, extra={"artifact_key": key})
            extra = DELETE_FAILED_NOTE.format(key=key)

        notification = self.assembler.build_report(
            redact(request, self.configuration.get_redacted_fields()),
            response,
            session.all(),
            backtrace,
            self.tracker.error_message(session),
            self.current_user(),
            extra,
        )
        self.assembler.dispatch(notification)
        self.logger.info(
            "Crash report sent for %s %s",
            request.method,
            request.uri,
            extra={"artifact_key": key, "decision": Decision.REPORT.value},
        )
