"""End-to-end tests of the Flask integration using the test client."""

import pytest
from flask import Flask, Response, abort, g

from crash_reporter.errors import TransportFailure
from crash_reporter.flask_hooks import CrashReporter
from crash_reporter.templates import TemplateRenderer
from crash_reporter.transports.base import NotificationSender

PNG_BYTES = b"\x89PNG\r\n\x1a\n\xff\xfe"


class FailingSender(NotificationSender):
    name = "failing"

    def __init__(self):
        super().__init__(TemplateRenderer())
        self.attempts = 0

    def deliver(self, recipients, sender, subject, body, attachments):
        self.attempts += 1
        raise TransportFailure("mail server unreachable")


def _make_app(secret_key="test-secret"):
    app = Flask(__name__)
    if secret_key:
        app.secret_key = secret_key

    @app.route("/ok")
    def ok():
        return "fine"

    @app.route("/logo.png")
    def logo():
        return Response(PNG_BYTES, mimetype="image/png")

    @app.route("/boom", methods=["GET", "POST"])
    def boom():
        raise RuntimeError("DB down")

    @app.route("/as-alice")
    def as_alice():
        g.user = {"username": "alice"}
        raise RuntimeError("DB down")

    @app.route("/missing")
    def missing():
        abort(404)

    @app.route("/forbidden")
    def forbidden():
        abort(403)

    @app.route("/unavailable")
    def unavailable():
        abort(503)

    return app


@pytest.fixture
def app(configuration, recording_sender):
    app = _make_app()
    CrashReporter(configuration, recording_sender).install_flask(app)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestInstall:
    def test_registered_as_extension(self, app):
        assert isinstance(app.extensions["crash_reporter"], CrashReporter)

    def test_from_settings(self, tmp_path):
        reporter = CrashReporter.from_settings(
            {
                "crash_reporter": {
                    "backtrace_folder": str(tmp_path),
                    "sender": "from@example.com",
                    "receiver": "to@example.com",
                    "mail_backend": "http_api",
                }
            }
        )
        assert reporter.assembler.sender.name == "http_api"
        assert reporter.assembler.configuration.get_receiver() == ["to@example.com"]


class TestServerErrors:
    def test_unhandled_exception_reported_once(self, client, recording_sender):
        response = client.get("/boom")

        assert response.status_code == 500
        assert len(recording_sender.calls) == 1
        call = recording_sender.calls[0]
        assert call["context"]["errorMessage"] == "DB down"
        assert call["context"]["requestUri"] == "/boom"
        assert call["context"]["user"] == "No user"
        assert len(call["attachments"]) == 5

    def test_artifact_removed_after_report(self, client, configuration, tmp_path):
        client.get("/boom")
        folder = tmp_path / "backtraces"
        assert list(folder.iterdir()) == []

    def test_user_from_request_globals(self, client, recording_sender):
        client.get("/as-alice")
        assert recording_sender.calls[0]["context"]["user"] == "alice"
        backtrace = recording_sender.calls[0]["attachments"][1].content
        assert "The user who triggered the exception: alice" in backtrace

    def test_posted_password_not_in_report(self, client, recording_sender):
        client.post("/boom", data={"password": "hunter2", "item": "42"})
        for attachment in recording_sender.calls[0]["attachments"]:
            assert "hunter2" not in attachment.content

    def test_server_http_exception_reported(self, client, recording_sender):
        response = client.get("/unavailable")
        assert response.status_code == 503
        assert len(recording_sender.calls) == 1

    def test_repeat_in_same_session_suppressed(self, client, recording_sender):
        client.get("/boom")
        client.get("/boom")
        client.get("/ok")
        assert len(recording_sender.calls) == 1

    def test_works_without_session_secret(self, configuration, recording_sender):
        app = _make_app(secret_key=None)
        CrashReporter(configuration, recording_sender).install_flask(app)

        response = app.test_client().get("/boom")

        assert response.status_code == 500
        assert len(recording_sender.calls) == 1


class TestIgnored:
    def test_success_sends_nothing(self, client, recording_sender):
        assert client.get("/ok").data == b"fine"
        assert recording_sender.calls == []

    @pytest.mark.parametrize("production", [True, False])
    def test_binary_response_passes_through(self, client, configuration, recording_sender, production):
        configuration.production = production
        response = client.get("/logo.png")
        assert response.status_code == 200
        assert response.data == PNG_BYTES
        assert recording_sender.calls == []

    def test_binary_response_after_crash_passes_through(self, client, recording_sender):
        client.get("/boom")
        assert client.get("/logo.png").status_code == 200
        assert len(recording_sender.calls) == 1

    @pytest.mark.parametrize("path,status", [("/missing", 404), ("/forbidden", 403), ("/nowhere", 404)])
    def test_client_errors_not_captured(self, client, recording_sender, tmp_path, path, status):
        assert client.get(path).status_code == status
        assert recording_sender.calls == []
        assert not (tmp_path / "backtraces").exists()

    def test_non_production_sends_nothing(self, client, configuration, recording_sender, tmp_path):
        configuration.production = False
        assert client.get("/boom").status_code == 500
        assert recording_sender.calls == []
        assert not (tmp_path / "backtraces").exists()


class TestTransportFailure:
    def test_failed_report_still_returns_500(self, configuration):
        sender = FailingSender()
        app = _make_app()
        CrashReporter(configuration, sender).install_flask(app)
        client = app.test_client()

        assert client.get("/boom").status_code == 500
        assert sender.attempts == 1
        # state was cleared, so the next clean response sends nothing
        assert client.get("/ok").status_code == 200
        assert sender.attempts == 1
