from __future__ import annotations

from urllib.parse import urlencode

from portal.mail.mailer import Mailer

VERIFY_TEMPLATE = "verify-mail"
WELCOME_TEMPLATE = "on-boarding"
RESET_TEMPLATE = "reset-pass"


def build_link(base_url: str, path: str, token: str) -> str:
    return f"{base_url.rstrip('/')}{path}?{urlencode({'token': token})}"


def send_verification_email(mailer: Mailer, to_email: str, username: str, verification_link: str) -> None:
    mailer.send(
        to_email,
        "Email Verification",
        VERIFY_TEMPLATE,
        {"username": username, "verification_link": verification_link},
    )


def send_welcome_email(mailer: Mailer, to_email: str, username: str) -> None:
    mailer.send(to_email, "Welcome to Job Portal", WELCOME_TEMPLATE, {"username": username})


def send_forgot_password_email(mailer: Mailer, to_email: str, username: str, reset_link: str) -> None:
    mailer.send(
        to_email,
        "Reset your Password",
        RESET_TEMPLATE,
        {"username": username, "reset_link": reset_link},
    )
