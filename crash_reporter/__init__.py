"""
Crash Reporter - backtrace capture and e-mail notification for Flask apps
"""

from .constants import APP_VERSION

__version__ = APP_VERSION

from .artifacts import BacktraceArtifact, FilesystemArtifactStore
from .capture import BacktraceCapturePipeline, CaptureFailed, CaptureSucceeded
from .config import ConfigError, EmptyConfiguration, SettingsConfiguration, load_config
from .correlation import CorrelationTracker, Decision, SessionStore
from .flask_hooks import CrashReporter
from .report import ReportAssembler
from .transports import HttpApiNotificationSender, SmtpNotificationSender, create_sender

__all__ = [
    "BacktraceArtifact",
    "FilesystemArtifactStore",
    "BacktraceCapturePipeline",
    "CaptureFailed",
    "CaptureSucceeded",
    "ConfigError",
    "EmptyConfiguration",
    "SettingsConfiguration",
    "load_config",
    "CorrelationTracker",
    "Decision",
    "SessionStore",
    "CrashReporter",
    "ReportAssembler",
    "HttpApiNotificationSender",
    "SmtpNotificationSender",
    "create_sender",
]
