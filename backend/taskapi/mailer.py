from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from functools import lru_cache

from . import config

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10


class SmtpMailer:
    """Sends mail over SMTP. With no host configured, messages are dropped and logged."""

    def __init__(self, host: str, port: int, user: str = "", password: str = "", sender: str = ""):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        if not self.enabled:
            logger.info("mail delivery disabled; dropping %r to %s", subject, to)
            return

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")

        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
                self._deliver(smtp, msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
                self._deliver(smtp, msg)
        logger.info("sent %r to %s", subject, to)

    def _deliver(self, smtp: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.user:
            smtp.login(self.user, self.password)
        smtp.send_message(msg)


@lru_cache(maxsize=1)
def get_mailer() -> SmtpMailer:
    return SmtpMailer(
        host=config.MAIL_HOST,
        port=config.MAIL_PORT,
        user=config.MAIL_USER,
        password=config.MAIL_PASS,
        sender=config.MAIL_FROM,
    )


def _otp_html(heading: str, intro: str, code: str, minutes: int) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">{heading}</h2>
  <p>{intro}</p>
  <div style="background-color: #f5f5f5; padding: 20px; text-align: center; margin: 20px 0;">
    <h1 style="color: #007bff; font-size: 32px; margin: 0; letter-spacing: 5px;">{code}</h1>
  </div>
  <p>This verification code will expire in <strong>{minutes} minutes</strong>.</p>
  <p>If you didn't request this, please ignore this email.</p>
</div>
"""


def send_otp_email(mailer: SmtpMailer, to: str, code: str, resent: bool = False) -> None:
    minutes = config.OTP_TTL_SECONDS // 60
    if resent:
        subject = "Verify Your Email - TodoApp (Resent)"
        html = _otp_html("Email Verification - TodoApp", "Here's your new verification code:", code, minutes)
    else:
        subject = "Verify Your Email - TodoApp"
        html = _otp_html(
            "Welcome to TodoApp!",
            "Thank you for registering. Please verify your email address using the code below:",
            code,
            minutes,
        )
    text = f"Your verification code is: {code}. This code will expire in {minutes} minutes."
    mailer.send(to, subject, text, html)


def send_reset_email(mailer: SmtpMailer, to: str, link: str) -> None:
    mailer.send(
        to,
        "Password Reset",
        f"Reset your password by visiting: {link}",
        f'<p>Reset your password by clicking <a href="{link}">here</a></p>',
    )
