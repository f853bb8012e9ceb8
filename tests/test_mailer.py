from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from conftest import RecordingMailer
from portal.auth.errors import MailDeliveryError
from portal.mail.mailer import LoggingMailer, SmtpConfig, SmtpMailer, build_mailer, render_template
from portal.mail.mails import (
    RESET_TEMPLATE,
    VERIFY_TEMPLATE,
    build_link,
    send_forgot_password_email,
    send_verification_email,
)


def _smtp_cfg() -> SmtpConfig:
    return SmtpConfig(
        host="smtp.example.com",
        port=587,
        username="mailer",
        password="pw",
        from_email="noreply@example.com",
        from_name="Job Portal",
        timeout_seconds=5.0,
    )


def test_render_escapes_placeholders() -> None:
    html = render_template(VERIFY_TEMPLATE, {"username": "<Ann>", "verification_link": "http://x/verify?token=a&b"})
    assert "&lt;Ann&gt;" in html
    assert "token=a&amp;b" in html
    assert "{{" not in html


def test_unknown_template_is_delivery_error() -> None:
    with pytest.raises(MailDeliveryError):
        render_template("no-such-template", {})


def test_missing_placeholder_is_delivery_error() -> None:
    with pytest.raises(MailDeliveryError) as ei:
        render_template(VERIFY_TEMPLATE, {"username": "Ann"})
    assert "verification_link" in ei.value.detail


def test_placeholder_values_are_not_expanded_again() -> None:
    html = render_template(RESET_TEMPLATE, {"username": "{{reset_link}}", "reset_link": "http://x/reset?token=t"})
    assert "{{reset_link}}" in html
    assert html.count("http://x/reset?token=t") >= 1


def test_build_link_encodes_token() -> None:
    assert build_link("http://host/", "/api/auth/verify", "a b+c") == "http://host/api/auth/verify?token=a+b%2Bc"


def test_mail_helpers_pass_placeholders() -> None:
    m = RecordingMailer()
    send_verification_email(m, "ann@x.com", "Ann", "http://l")
    send_forgot_password_email(m, "ann@x.com", "Ann", "http://r")
    assert m.last(VERIFY_TEMPLATE)["placeholders"] == {"username": "Ann", "verification_link": "http://l"}
    assert m.last(RESET_TEMPLATE)["placeholders"] == {"username": "Ann", "reset_link": "http://r"}


def test_smtp_mailer_sends() -> None:
    server = MagicMock()
    with patch("portal.mail.mailer.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        SmtpMailer(_smtp_cfg()).send("ann@x.com", "Hello", RESET_TEMPLATE, {"username": "Ann", "reset_link": "http://r"})
    smtp.assert_called_once_with("smtp.example.com", 587, timeout=5.0)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "pw")
    from_addr, to_addrs, _ = server.sendmail.call_args.args
    assert from_addr == "noreply@example.com"
    assert to_addrs == ["ann@x.com"]


def test_smtp_failure_is_delivery_error() -> None:
    with patch("portal.mail.mailer.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, b"busy")):
        with pytest.raises(MailDeliveryError) as ei:
            SmtpMailer(_smtp_cfg()).send("ann@x.com", "Hello", RESET_TEMPLATE, {"username": "Ann", "reset_link": "x"})
    assert ei.value.status_code == 502
    assert ei.value.message == "Failed to send email"


def test_build_mailer_without_smtp_logs_only(monkeypatch) -> None:
    for name in ("SMTP_HOST", "SMTP_USERNAME", "SMTP_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    assert isinstance(build_mailer(), LoggingMailer)
    assert isinstance(build_mailer(_smtp_cfg()), SmtpMailer)
