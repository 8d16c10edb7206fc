from __future__ import annotations

import dataclasses
import smtplib

import pytest
from fastapi.testclient import TestClient

from bsi_telemetry.api.app import create_app
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.services.exceptions import ValidationFailed
from bsi_telemetry.services.report_mailer import ReportMailer, SmtpConfig, parse_recipients

from conftest import ADMIN_PASSWORD

PDF = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF\n"


class FakeSMTP:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self.logins = []
        self.tls = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self.logins.append((user, password))

    def send_message(self, msg):
        if self.fail:
            raise smtplib.SMTPServerDisconnected("connection lost")
        self.sent.append(msg)


def _install(client: TestClient, smtp: FakeSMTP) -> None:
    config = SmtpConfig(host="smtp.example.test", username="mailer", password="pw", from_email="reports@example.test")
    client.app.state.report_mailer = ReportMailer(config, transport_factory=lambda _cfg: smtp)


def _send(client: TestClient, headers, *, recipients="ops@example.com", file=("report.pdf", PDF, "application/pdf"), **data):
    files = {"file": file} if file is not None else None
    form = {"recipients": recipients, **data} if recipients is not None else dict(data)
    return client.post("/api/send-report", headers=headers, data=form, files=files)


def test_parse_recipients():
    assert parse_recipients(" a@x.com, b@y.org ,") == ["a@x.com", "b@y.org"]
    with pytest.raises(ValidationFailed):
        parse_recipients("")
    with pytest.raises(ValidationFailed) as exc:
        parse_recipients("a@x.com, nope, also bad")
    assert "addresses: nope, also bad" in str(exc.value)


def test_report_is_mailed_as_pdf_attachment(client: TestClient, admin_headers):
    smtp = FakeSMTP()
    _install(client, smtp)

    r = _send(client, admin_headers, recipients="ops@example.com, noc@example.org", subject="Weekly N1")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["messageId"]

    assert smtp.tls is True
    assert smtp.logins == [("mailer", "pw")]
    assert len(smtp.sent) == 1
    msg = smtp.sent[0]
    assert msg["To"] == "ops@example.com, noc@example.org"
    assert msg["Subject"] == "Weekly N1"
    assert "reports@example.test" in msg["From"]
    assert "Please find the attached telemetry report." in msg.get_body().get_content()

    attachment = next(msg.iter_attachments())
    assert attachment.get_filename() == "report.pdf"
    assert attachment.get_content_type() == "application/pdf"
    assert attachment.get_content() == PDF


def test_invalid_recipients_rejected(client: TestClient, admin_headers):
    smtp = FakeSMTP()
    _install(client, smtp)

    r = _send(client, admin_headers, recipients="ops@example.com, not-an-email")
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert "not-an-email" in r.json()["message"]

    r = _send(client, admin_headers, recipients=None)
    assert r.status_code == 400
    assert smtp.sent == []


def test_non_pdf_and_missing_file_rejected(client: TestClient, admin_headers):
    smtp = FakeSMTP()
    _install(client, smtp)

    r = _send(client, admin_headers, file=("report.txt", b"hello", "text/plain"))
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

    r = _send(client, admin_headers, file=None)
    assert r.status_code == 400
    assert r.json()["message"] == "No file uploaded"
    assert smtp.sent == []


def test_send_requires_login(client: TestClient):
    r = _send(client, {})
    assert r.status_code == 401


def test_smtp_failure_returns_server_error(client: TestClient, admin_headers):
    _install(client, FakeSMTP(fail=True))

    r = _send(client, admin_headers)
    assert r.status_code == 500
    assert r.json()["code"] == "SERVER_ERROR"
    assert r.json()["message"] == "Failed to send email"


def test_unconfigured_smtp_refuses_to_send(client: TestClient, admin_headers):
    r = _send(client, admin_headers)
    assert r.status_code == 500
    assert r.json()["message"] == "Email delivery is not configured"


def test_send_report_rate_limited(settings: Settings):
    app = create_app(dataclasses.replace(settings, report_email_rate_limit=2))
    with TestClient(app) as c:
        token = c.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD}).json()["token"]
        headers = {"Authorization": f"Bearer {token}"}
        smtp = FakeSMTP()
        _install(c, smtp)

        assert _send(c, headers).status_code == 200
        assert _send(c, headers).status_code == 200
        r = _send(c, headers)
        assert r.status_code == 429
        assert r.json()["code"] == "RATE_LIMITED"
        assert len(smtp.sent) == 2
