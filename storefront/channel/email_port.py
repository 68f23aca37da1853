"""The outbound email contract and the message it carries."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EmailMessage:
    kind: str  # e.g. "order_cancelled.customer"
    to: str | None
    subject: str
    body: str
    order_id: int | None = None


class EmailPort(ABC):
    """Delivers one finished message.

    ``send`` returns ``{"status": "sent", "message_id": ...}`` or
    ``{"status": "failed", "error": ...}``. It may also raise; the dispatcher
    treats that the same as a failed send.
    """

    @abstractmethod
    def send(self, message: EmailMessage) -> dict:
        ...
