"""SMTP email adapter.

Opens one connection per message; sends are already off the request thread
and order mail is low volume.
"""

import smtplib
from email.message import EmailMessage as MimeMessage
from email.utils import make_msgid

from storefront.channel.email_port import EmailMessage, EmailPort


class SmtpEmailAdapter(EmailPort):
    def __init__(self, host: str, port: int = 587, username: str | None = None, password: str | None = None,
                 use_tls: bool = True, sender: str = "no-reply@localhost", timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def _mime(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = self.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2] or None)
        mime.set_content(message.body)
        return mime

    def send(self, message: EmailMessage) -> dict:
        mime = self._mime(message)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(mime)
        except (smtplib.SMTPException, OSError) as exc:
            return {"message_id": None, "status": "failed", "error": str(exc) or exc.__class__.__name__}
        return {"message_id": mime["Message-ID"], "status": "sent"}
