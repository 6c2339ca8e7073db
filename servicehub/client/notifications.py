"""
User-visible transient notifications.

Components never print or raise to tell the customer something happened;
they hand a ``Notification`` to the injected ``Notifier``. The default
notifier writes to the log. Front ends supply their own.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    action_label: Optional[str] = None
    action_target: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """Base notifier. Subclasses override ``notify``."""

    def notify(self, notification: Notification) -> None:
        raise NotImplementedError

    def success(self, message: str, **kwargs: Optional[str]) -> None:
        self.notify(Notification(NotificationLevel.SUCCESS, message, **kwargs))

    def error(self, message: str, **kwargs: Optional[str]) -> None:
        self.notify(Notification(NotificationLevel.ERROR, message, **kwargs))

    def info(self, message: str, **kwargs: Optional[str]) -> None:
        self.notify(Notification(NotificationLevel.INFO, message, **kwargs))


class LoggingNotifier(Notifier):
    """Writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        level = logging.ERROR if notification.level == NotificationLevel.ERROR else logging.INFO
        logger.log(level, "[%s] %s", notification.level.value, notification.message)


class CollectingNotifier(Notifier):
    """Keeps every notification in order, for front ends that render them later."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def messages(self, level: Optional[NotificationLevel] = None) -> list[str]:
        return [
            n.message for n in self.notifications if level is None or n.level == level
        ]

    def clear(self) -> None:
        self.notifications.clear()
