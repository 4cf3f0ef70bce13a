"""
Centralised constants for the crash reporter.

Session keys, redaction defaults, retry limits and fixed report strings
live here so every module can import them without circular dependencies.
"""

from dataclasses import dataclass
from datetime import timedelta

# ── Version ──────────────────────────────────────────────────────
APP_VERSION = "0.4.0"

# ── Default paths ────────────────────────────────────────────────
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_BACKTRACE_FOLDER = "var/cache/crash_reporter"
DEFAULT_LOG_DIR = "logs"

# ── Backtrace artifacts ──────────────────────────────────────────
ARTIFACT_EXTENSION = ".btl"
ARTIFACT_RANDOM_BYTES = 20  # 160-bit names, 40 hex chars
MAX_UPLOAD_ATTEMPTS = 3

# ── Suppression ──────────────────────────────────────────────────
SUPPRESSION_WINDOW = timedelta(minutes=10)
# Minute precision: the stored time is truncated before the window is added
SUPPRESSION_TIME_FORMAT = "%Y-%m-%d %H:%M"

# ── Report rendering ─────────────────────────────────────────────
REMOVED_MARKER = "**REMOVED**"
MAX_DEPTH_MARKER = "**Maximum recursion level reached**"
MAX_DUMP_DEPTH = 3
NO_USER = "No user"
MISSING_BACKTRACE = (
    "FILE NOT FOUND. THE BACKTRACE FILE COULDN'T BE FOUND ON THE SERVER. "
    "MAYBE HAVE A LOOK?\n\n File: {key}"
)
DELETE_FAILED_NOTE = (
    "\n\n Note: removing the backtrace file failed (name: {key}). "
    "It is still on the server.\n\n"
)
REPORT_SUBJECT = "Crash report: 500 error at {uri}"
UPLOAD_FAILED_SUBJECT = "Crash report: failed to store backtrace"
EXCEPTION_TEMPLATE = "exception.txt"
UPLOAD_FAILED_TEMPLATE = "upload_failed.txt"

# Session entries written by Flask-Login / Flask-WTF; never mailed
SESSION_SECURITY_KEYS = frozenset({"_user_id", "_fresh", "_id", "csrf_token"})

# ── Attachments ──────────────────────────────────────────────────
ATTACHMENT_SERVER = "server variables.txt"
ATTACHMENT_BACKTRACE = "backtrace.txt"
ATTACHMENT_REQUEST = "request.txt"
ATTACHMENT_RESPONSE = "response.txt"
ATTACHMENT_SESSION = "session variables.txt"

# ── Mail backends ────────────────────────────────────────────────
SMTP_BACKENDS = frozenset({"smtp", "smtplib"})
HTTP_API_BACKENDS = frozenset({"http", "http_api"})
MAIL_BACKENDS = SMTP_BACKENDS | HTTP_API_BACKENDS
DEFAULT_MAIL_BACKEND = "smtp"
DEFAULT_HTTP_API_ENDPOINT = "https://api.brevo.com/v3/smtp/email"
SPOOL_RECOVER_SECONDS = 900
SPOOL_MAX_ATTEMPTS = 5

# ── Logging ──────────────────────────────────────────────────────
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB per log file
LOG_BACKUP_COUNT = 5


@dataclass(frozen=True)
class SessionKeys:
    """Names of the session entries holding the correlation state."""

    filename: str
    error: str
    previous_time: str
    previous_hash: str
    exception_present: str

    @classmethod
    def namespaced(cls, prefix: str) -> "SessionKeys":
        return cls(
            filename=f"{prefix}filename",
            error=f"{prefix}error",
            previous_time=f"{prefix}previous_time",
            previous_hash=f"{prefix}previous_hash",
            exception_present=f"{prefix}exception_present",
        )


DEFAULT_SESSION_KEYS = SessionKeys.namespaced("crash_reporter.")


@dataclass(frozen=True)
class RedactedFields:
    """Field names stripped from each part of a request before mailing."""

    request: frozenset = frozenset({"password", "_password"})
    server: frozenset = frozenset(
        {"COOKIE", "HTTP_AUTHORIZATION", "HTTP_COOKIE", "PHP_AUTH_PW"}
    )
    headers: frozenset = frozenset({"authorization", "cookie", "php-auth-pw"})
    cookies: frozenset = frozenset({"PHPSESSID", "REMEMBERME", "session"})


DEFAULT_REDACTED_FIELDS = RedactedFields()
