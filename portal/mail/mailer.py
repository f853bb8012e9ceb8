"""
Mail collaborator.

The auth core only names a template and supplies placeholder values; rendering and
transport live here. `SmtpMailer` is used when SMTP is configured, otherwise
`LoggingMailer` records the request (local development).
"""
from __future__ import annotations

import logging
import os
import re
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from pathlib import Path
from typing import Dict, Optional, Protocol

from portal.auth.errors import MailDeliveryError

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class Mailer(Protocol):
    def send(self, to: str, subject: str, template_id: str, placeholders: Dict[str, str]) -> None: ...


@dataclass(frozen=True)
class SmtpConfig:
    host: Optional[str]
    port: int
    username: Optional[str]
    password: Optional[str]
    from_email: Optional[str]
    from_name: str
    timeout_seconds: float

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)


def load_smtp_config() -> SmtpConfig:
    port_raw = (os.getenv("SMTP_PORT") or "").strip() or "587"
    try:
        port = int(port_raw)
    except ValueError:
        port = 587
    username = (os.getenv("SMTP_USERNAME") or "").strip() or None
    return SmtpConfig(
        host=(os.getenv("SMTP_HOST") or "").strip() or None,
        port=port,
        username=username,
        password=(os.getenv("SMTP_PASSWORD") or "").strip() or None,
        from_email=(os.getenv("SMTP_FROM") or "").strip() or username,
        from_name=(os.getenv("SMTP_FROM_NAME") or "").strip() or "Job Portal",
        timeout_seconds=10.0,
    )


def render_template(template_id: str, placeholders: Dict[str, str]) -> str:
    """
    Substitute `{{name}}` placeholders (HTML-escaped) into a bundled template.

    Every marker in the template must have a value; a half-filled mail is never sent.
    """
    path = TEMPLATES_DIR / f"{template_id}.html"
    if not path.is_file():
        raise MailDeliveryError(detail=f"unknown mail template {template_id!r}")
    html = path.read_text(encoding="utf-8")
    missing = sorted({name for name in _PLACEHOLDER.findall(html) if name not in placeholders})
    if missing:
        logger.error("Mail template %s has no value for: %s", template_id, ", ".join(missing))
        raise MailDeliveryError(detail=f"unfilled placeholders in {template_id!r}: {', '.join(missing)}")
    return _PLACEHOLDER.sub(lambda m: escape(str(placeholders[m.group(1)]), quote=True), html)


class SmtpMailer:
    def __init__(self, cfg: SmtpConfig) -> None:
        self.cfg = cfg

    def send(self, to: str, subject: str, template_id: str, placeholders: Dict[str, str]) -> None:
        html_body = render_template(template_id, placeholders)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.cfg.from_name} <{self.cfg.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.cfg.host or "", self.cfg.port, timeout=self.cfg.timeout_seconds) as server:
                server.starttls()
                server.login(self.cfg.username or "", self.cfg.password or "")
                server.sendmail(self.cfg.from_email or "", [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send %s email: %s", template_id, type(e).__name__)
            raise MailDeliveryError(detail=f"smtp: {type(e).__name__}: {e}") from e
        logger.info("Sent %s email", template_id)


class LoggingMailer:
    """Development mailer: renders the template and logs that a message was requested."""

    def send(self, to: str, subject: str, template_id: str, placeholders: Dict[str, str]) -> None:
        render_template(template_id, placeholders)
        logger.warning("Email not configured, skipping send of %s (%s) to %s", template_id, subject, to)


def build_mailer(cfg: Optional[SmtpConfig] = None) -> Mailer:
    cfg = cfg or load_smtp_config()
    if cfg.is_configured:
        return SmtpMailer(cfg)
    return LoggingMailer()
