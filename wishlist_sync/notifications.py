import logging
from typing import List, Protocol, Tuple

logger = logging.getLogger(__name__)

class Notifier(Protocol):
    def error(self, title: str, body: str) -> None: ...

class LoggingNotifier:
    """Logs reported failures and keeps the latest ones for the status endpoint."""

    def __init__(self, limit: int = 20):
        self.limit = limit
        self.messages: List[Tuple[str, str]] = []

    def error(self, title: str, body: str) -> None:
        logger.error(f"{title}: {body}")
        self.messages.append((title, body))
        if len(self.messages) > self.limit:
            self.messages = self.messages[-self.limit:]
