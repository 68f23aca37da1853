"""Fake email adapter: records sent messages for test assertions."""

from threading import Lock
from uuid import uuid4

from storefront.channel.email_port import EmailMessage, EmailPort


class FakeEmailAdapter(EmailPort):
    def __init__(self):
        self.sent_emails: list[dict] = []
        self.attempts: list[dict] = []
        self.should_succeed = True
        self.raise_error = False
        self.failure_reason = "Email delivery failed"
        self._lock = Lock()

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed",
                  raise_error: bool = False):
        """``raise_error`` makes ``send`` blow up like a broken transport would."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_error = raise_error

    def send(self, message: EmailMessage) -> dict:
        with self._lock:
            self.attempts.append({"to": message.to, "subject": message.subject, "kind": message.kind})
        if self.raise_error:
            raise ConnectionError(self.failure_reason)
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"email-{uuid4().hex[:12]}"
        with self._lock:
            self.sent_emails.append({
                "message_id": message_id,
                "kind": message.kind,
                "order_id": message.order_id,
                "to": message.to,
                "subject": message.subject,
                "body": message.body,
            })
        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        self.sent_emails.clear()
        self.attempts.clear()
        self.should_succeed = True
        self.raise_error = False
        self.failure_reason = "Email delivery failed"
