from __future__ import annotations

import html
import logging
import re
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


def html_to_text(body: str) -> str:
    text = re.sub(r"<br\s*/?>", "\n", body, flags=re.IGNORECASE)
    return html.unescape(_TAG_RE.sub("", text))


@dataclass(frozen=True)
class EmailGateway:
    host: str
    port: int
    username: str
    password: str
    from_email: str
    from_name: str = "AliveChMS"
    timeout_seconds: int = 30

    def build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to
        msg.set_content(html_to_text(html_body))
        msg.add_alternative(html_body, subtype="html")
        return msg

    def send(self, to: str, subject: str, html_body: str) -> bool:
        """SMTP + STARTTLS. Failures are logged and reported as False."""
        msg = self.build_message(to, subject, html_body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
                smtp.starttls(context=ssl.create_default_context())
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed to %s: %s", to, e)
            return False


def email_gateway_from_config(config: dict) -> EmailGateway:
    return EmailGateway(
        host=config.get("SMTP_HOST") or "smtp.gmail.com",
        port=int(config.get("SMTP_PORT") or 587),
        username=config.get("SMTP_USER") or "",
        password=config.get("SMTP_PASS") or "",
        from_email=config.get("SMTP_FROM_EMAIL") or "no-reply@alivechms.org",
        from_name=config.get("SMTP_FROM_NAME") or "AliveChMS",
    )
