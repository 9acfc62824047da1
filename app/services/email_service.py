from __future__ import annotations

from dataclasses import dataclass
from email.message import EmailMessage
import html
import re
import smtplib

from app.services.delivery_errors import ChannelDeliveryError


class EmailDeliveryError(ChannelDeliveryError):
    pass


@dataclass(frozen=True)
class SmtpConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    sender: str
    use_tls: bool = True


def _html_to_text(html_body: str) -> str:
    text = re.sub(r"<br\s*/?>|</p>|</li>|</h\d>", "\n", html_body, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    return html.unescape(re.sub(r"\n{3,}", "\n\n", text)).strip()


def send_email(
    *,
    to: str,
    subject: str,
    html_body: str,
    smtp: SmtpConfig,
    timeout_seconds: float = 10.0,
) -> None:
    recipient = to.strip()
    if not recipient:
        raise EmailDeliveryError("Email recipient is required.")
    if not smtp.host:
        raise EmailDeliveryError("SMTP host is not configured.")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = smtp.sender
    msg["To"] = recipient
    msg.set_content(_html_to_text(html_body))
    msg.add_alternative(html_body, subtype="html")

    try:
        with smtplib.SMTP(smtp.host, smtp.port, timeout=timeout_seconds) as server:
            if smtp.use_tls:
                server.starttls()
            if smtp.username and smtp.password:
                server.login(smtp.username, smtp.password)
            server.send_message(msg)
    except smtplib.SMTPAuthenticationError as exc:
        raise EmailDeliveryError(f"SMTP authentication failed: {exc.smtp_code}") from exc
    except smtplib.SMTPRecipientsRefused as exc:
        raise EmailDeliveryError(f"SMTP server refused recipient {recipient}") from exc
    except smtplib.SMTPException as exc:
        raise EmailDeliveryError(f"SMTP delivery failed: {exc}", retryable=True) from exc
    except OSError as exc:
        raise EmailDeliveryError(f"SMTP connection failed: {exc}", retryable=True) from exc
