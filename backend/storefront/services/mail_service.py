# Overview: Outbound mail adapter (SMTP) and the HTML body used for transactional emails.

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from html import escape

from flask import current_app


class MailError(Exception):
    """Raised when the mail transport rejects or cannot deliver a message."""


def make_a_nice_email(text: str) -> str:
    """Wrap already-escaped HTML `text` in the house email layout."""
    return f"""
    <div class="email" style="
      border: 1px solid black;
      padding: 20px;
      font-family: sans-serif;
      line-height: 2;
      font-size: 20px;
    ">
      <h2>Hello There!</h2>
      <p>{text}</p>
      <p>The Storefront Team</p>
    </div>
    """


def reset_email_body(reset_url: str) -> str:
    url = escape(reset_url, quote=True)
    return make_a_nice_email(
        f'Your Password Reset Token is here!<br><br><a href="{url}">Click Here to Reset</a>'
    )


class SMTPMailer:
    """Sends HTML mail through a single SMTP server, one connection per message."""

    def __init__(self, *, host, port, username=None, password=None, use_tls=False,
                 default_sender, timeout=10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_sender = default_sender
        self.timeout = timeout

    def send(self, to: str, subject: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.default_sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailError(str(exc)) from exc


def init_mailer(app) -> None:
    """Register the configured mailer unless one is already installed (tests)."""
    if "mailer" in app.extensions:
        return
    app.extensions["mailer"] = SMTPMailer(
        host=app.config["MAIL_SERVER"],
        port=app.config["MAIL_PORT"],
        username=app.config["MAIL_USERNAME"],
        password=app.config["MAIL_PASSWORD"],
        use_tls=app.config["MAIL_USE_TLS"],
        default_sender=app.config["MAIL_DEFAULT_SENDER"],
        timeout=app.config["MAIL_TIMEOUT_SECONDS"],
    )


def get_mailer():
    return current_app.extensions["mailer"]
