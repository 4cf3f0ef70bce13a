"""
Test fixtures and configuration for pytest
"""

from datetime import datetime

import pytest

from crash_reporter.artifacts import FilesystemArtifactStore
from crash_reporter.capture import BacktraceCapturePipeline
from crash_reporter.config import Configuration
from crash_reporter.correlation import SessionStore
from crash_reporter.report import ReportAssembler
from crash_reporter.snapshots import RequestSnapshot, ResponseSnapshot
from crash_reporter.templates import TemplateRenderer
from crash_reporter.transports.base import NotificationSender


@pytest.fixture(autouse=True)
def _isolate_logs(tmp_path, monkeypatch):
    """Keep log files of every test out of the working tree."""
    monkeypatch.setenv("CRASH_REPORTER_LOG_DIR", str(tmp_path / "logs"))
    yield


class RecordingSender(NotificationSender):
    """Sender that renders for real but keeps messages instead of mailing them."""

    name = "recording"

    def __init__(self):
        super().__init__(TemplateRenderer())
        self.sent = []
        self.calls = []

    def send(self, recipients, sender, subject, template_id, context, attachments=()):
        self.calls.append(
            {
                "recipients": list(recipients),
                "sender": sender,
                "subject": subject,
                "template_id": template_id,
                "context": dict(context),
                "attachments": list(attachments),
            }
        )
        super().send(recipients, sender, subject, template_id, context, attachments)

    def deliver(self, recipients, sender, subject, body, attachments):
        self.sent.append({"subject": subject, "body": body, "attachments": attachments})


class StaticConfiguration(Configuration):
    """Configuration with test-controlled production flag and folder."""

    def __init__(self, folder, production=True):
        self.folder = str(folder)
        self.production = production

    def is_production_environment(self):
        return self.production

    def get_backtrace_folder(self):
        return self.folder

    def get_system_version(self):
        return "1.2.3-test"


class FakeClock:
    """Settable replacement for ``datetime.now``."""

    def __init__(self, now=datetime(2024, 3, 1, 12, 0, 0)):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def recording_sender():
    return RecordingSender()


@pytest.fixture
def configuration(tmp_path):
    return StaticConfiguration(tmp_path / "backtraces")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return SessionStore()


@pytest.fixture
def store():
    return FilesystemArtifactStore()


@pytest.fixture
def pipeline(configuration, store, recording_sender, clock):
    return BacktraceCapturePipeline(
        configuration,
        store,
        ReportAssembler(configuration, recording_sender),
        clock=clock,
    )


@pytest.fixture
def request_snapshot():
    return RequestSnapshot(
        method="POST",
        uri="/orders?page=2",
        path="/orders",
        host="shop.example.com",
        headers={"Host": "shop.example.com", "Authorization": "Bearer abc.def", "Accept": "*/*"},
        request={"password": "secret123", "item": "42"},
        query={"page": "2"},
        cookies={"session": "cookie-value", "theme": "dark"},
        server={"HTTP_AUTHORIZATION": "Bearer abc.def", "SERVER_NAME": "shop.example.com"},
    )


@pytest.fixture
def response_snapshot():
    return ResponseSnapshot(
        status="500 INTERNAL SERVER ERROR",
        headers=[("Content-Type", "text/html; charset=utf-8")],
        body="<h1>Internal Server Error</h1>",
    )


def raise_and_catch(exc):
    """Return *exc* with a populated ``__traceback__``."""
    try:
        raise exc
    except Exception as caught:
        return caught


@pytest.fixture
def raised():
    return raise_and_catch
