from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Callable, List, Optional

from bsi_telemetry.services.exceptions import ServiceError, ValidationFailed
from bsi_telemetry.services.user_service import EMAIL_RE

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Telemetry Report"
DEFAULT_BODY = "Please find the attached telemetry report."
SENDER_NAME = "Telemetry Reporting"
PDF_CONTENT_TYPE = "application/pdf"


class MailDeliveryFailed(ServiceError):
    code = "SERVER_ERROR"


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int = 587
    # True: implicit TLS (SMTPS). False: plain connection upgraded with STARTTLS when offered.
    secure: bool = False
    username: str = ""
    password: str = ""
    from_email: str = ""
    timeout_s: float = 30.0


def parse_recipients(raw: Optional[str]) -> List[str]:
    """Split a comma-separated recipient list; every entry must be an address."""
    recipients = [r.strip() for r in (raw or "").split(",") if r.strip()]
    if not recipients:
        raise ValidationFailed("Recipient email is required")
    invalid = [r for r in recipients if not EMAIL_RE.match(r)]
    if invalid:
        suffix = "es" if len(invalid) > 1 else ""
        raise ValidationFailed(f"Invalid email address{suffix}: {', '.join(invalid)}")
    return recipients


class ReportMailer:
    """Sends an exported PDF report as an email attachment over SMTP."""

    def __init__(self, config: SmtpConfig, *, transport_factory: Optional[Callable[[SmtpConfig], Any]] = None) -> None:
        self.config = config
        self._transport_factory = transport_factory or _open_smtp

    @property
    def configured(self) -> bool:
        return bool(self.config.host and self.config.from_email)

    def build_message(
        self,
        *,
        recipients: List[str],
        filename: str,
        content: bytes,
        subject: Optional[str] = None,
        body: Optional[str] = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((SENDER_NAME, self.config.from_email))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = (subject or "").strip() or DEFAULT_SUBJECT
        msg["Message-ID"] = make_msgid()
        msg.set_content((body or "").strip() or DEFAULT_BODY)
        msg.add_attachment(content, maintype="application", subtype="pdf", filename=filename or "report.pdf")
        return msg

    def send(
        self,
        *,
        recipients: List[str],
        filename: str,
        content: bytes,
        subject: Optional[str] = None,
        body: Optional[str] = None,
    ) -> str:
        if not self.configured:
            raise MailDeliveryFailed("Email delivery is not configured")

        msg = self.build_message(recipients=recipients, filename=filename, content=content, subject=subject, body=body)
        try:
            with self._transport_factory(self.config) as smtp:
                if not self.config.secure:
                    smtp.ehlo()
                    if smtp.has_extn("starttls"):
                        smtp.starttls()
                        smtp.ehlo()
                if self.config.username:
                    smtp.login(self.config.username, self.config.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Report email to %d recipient(s) failed: %s", len(recipients), e)
            raise MailDeliveryFailed("Failed to send email") from e

        logger.info("Report email %s sent to %d recipient(s)", msg["Message-ID"], len(recipients))
        return str(msg["Message-ID"])


def _open_smtp(config: SmtpConfig):
    if config.secure:
        return smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout_s)
    return smtplib.SMTP(config.host, config.port, timeout=config.timeout_s)
