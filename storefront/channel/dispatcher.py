"""Fire-and-forget notification dispatch.

Messages are built by the caller (inside the request, where the order is
loaded) and handed to a thread pool; the request never waits on delivery. A
failed or exploding send is logged and dropped, it never reaches the caller.
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Lock

from storefront.channel.email_port import EmailMessage, EmailPort
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationDispatcher:
    def __init__(self, email: EmailPort, max_workers: int = 2):
        self.email = email
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="notify")
        self._pending: set[Future] = set()
        self._lock = Lock()

    def submit(self, message: EmailMessage) -> Future:
        future = self._executor.submit(self._deliver, message)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, message: EmailMessage) -> dict | None:
        log = logger.bind(kind=message.kind, order_id=message.order_id)
        if not message.to:
            log.warning("Notification skipped, no recipient configured")
            return None
        try:
            result = self.email.send(message)
        except Exception as exc:  # any transport failure stays in this thread
            log.error("Notification delivery raised", error=str(exc), exc_info=True)
            return None
        if result.get("status") != "sent":
            log.warning("Notification delivery failed", error=result.get("error"))
        else:
            log.info("Notification sent", message_id=result.get("message_id"))
        return result

    def wait(self, timeout: float | None = 5.0) -> None:
        """Block until everything submitted so far has been attempted."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
