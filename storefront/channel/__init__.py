"""Notification channel registry.

``init_notifications(app)`` builds the email adapter named by
``EMAIL_BACKEND`` and a dispatcher around it, and stores both on the app. The
adapter is fixed for the life of the app; ``app.extensions["email"]`` is the
same object the dispatcher sends through.
"""

from flask import current_app

from storefront.channel.dispatcher import NotificationDispatcher
from storefront.channel.email_port import EmailMessage, EmailPort
from storefront.channel.fake_email import FakeEmailAdapter

EMAIL_KEY = "email"
DISPATCHER_KEY = "notifications"


def build_email_adapter(config) -> EmailPort:
    name = (config.get("EMAIL_BACKEND") or "smtp").lower()
    if name == "fake":
        if not config.get("TESTING"):
            raise ValueError("the fake email backend is only available when TESTING is set")
        return FakeEmailAdapter()
    if name == "smtp":
        from storefront.channel.smtp_email import SmtpEmailAdapter

        return SmtpEmailAdapter(
            host=config.get("SMTP_HOST") or "localhost",
            port=int(config.get("SMTP_PORT") or 587),
            username=config.get("SMTP_USERNAME"),
            password=config.get("SMTP_PASSWORD"),
            use_tls=bool(config.get("SMTP_USE_TLS", True)),
            sender=config.get("MAIL_FROM") or "no-reply@localhost",
        )
    raise ValueError(f"Unknown email backend: {name}")


def init_notifications(app) -> None:
    email = build_email_adapter(app.config)
    app.extensions[EMAIL_KEY] = email
    app.extensions[DISPATCHER_KEY] = NotificationDispatcher(email, max_workers=app.config.get("NOTIFY_WORKERS", 2))


def get_dispatcher() -> NotificationDispatcher:
    return current_app.extensions[DISPATCHER_KEY]


__all__ = ["EmailMessage", "NotificationDispatcher", "build_email_adapter", "get_dispatcher", "init_notifications"]
