"""
Transient user notifications.

Services and the UI push messages here; the Streamlit shell drains them into
toasts on the next render.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from itertools import count

from medclaim.core.enums import NotificationLevel

_ids = count(1)


@dataclass(frozen=True)
class Notification:
    """A dismissible toast message."""

    message: str
    level: NotificationLevel = NotificationLevel.INFO
    id: int = field(default_factory=lambda: next(_ids))

    @property
    def icon(self) -> str:
        return {
            NotificationLevel.SUCCESS: "✅",
            NotificationLevel.INFO: "ℹ️",
            NotificationLevel.ERROR: "⚠️",
        }[self.level]


class Notifier:
    """Queue of pending notifications for one browser session."""

    def __init__(self, max_pending: int = 20):
        self._lock = threading.Lock()
        self._pending: deque[Notification] = deque(maxlen=max_pending)

    def push(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> Notification:
        notification = Notification(message=message, level=level)
        with self._lock:
            self._pending.append(notification)
        return notification

    def success(self, message: str) -> Notification:
        return self.push(message, NotificationLevel.SUCCESS)

    def info(self, message: str) -> Notification:
        return self.push(message, NotificationLevel.INFO)

    def error(self, message: str) -> Notification:
        return self.push(message, NotificationLevel.ERROR)

    def drain(self) -> list[Notification]:
        """Return and clear every pending notification, oldest first."""
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
