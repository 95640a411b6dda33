import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)


class Notifier:
    """
    User-facing feedback channel injected into review sessions.

    The default implementation only logs; a UI binds its own toasts and
    confirmation dialog by subclassing.
    """

    def notify(self, level: str, message: str) -> None:
        log = logger.warning if level in ("error", "warning") else logger.info
        log(message, extra={"notification_level": level})

    def success(self, message: str) -> None:
        self.notify("success", message)

    def info(self, message: str) -> None:
        self.notify("info", message)

    def warning(self, message: str) -> None:
        self.notify("warning", message)

    def error(self, message: str) -> None:
        self.notify("error", message)

    def confirm(self, message: str) -> bool:
        """Cancellable yes/no prompt. Non-interactive channels always cancel."""
        self.notify("info", message)
        return False


class RecordingNotifier(Notifier):
    """Keeps every message; answers confirmations with a preset reply."""

    def __init__(self, confirm_reply: bool = True):
        self.messages: List[Tuple[str, str]] = []
        self.prompts: List[str] = []
        self.confirm_reply = confirm_reply

    def notify(self, level: str, message: str) -> None:
        self.messages.append((level, message))
        super().notify(level, message)

    def confirm(self, message: str) -> bool:
        self.prompts.append(message)
        return self.confirm_reply
