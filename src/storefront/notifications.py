"""
Transient user notifications ("toasts") raised by cart and checkout flows.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str = DEFAULT


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log; used when no UI is attached."""

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.variant == DESTRUCTIVE else logging.INFO
        logger.log(level, f"{notification.title}: {notification.description}")


class RecordingNotifier:
    """Keeps notifications in memory until the UI drains them."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def drain(self) -> list[Notification]:
        pending, self.notifications = self.notifications, []
        return pending

    @property
    def titles(self) -> list[str]:
        return [n.title for n in self.notifications]
