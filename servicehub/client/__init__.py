from servicehub.client.api import ApiClient
from servicehub.client.credentials import CredentialStore
from servicehub.client.notifications import (
    CollectingNotifier,
    LoggingNotifier,
    Notification,
    NotificationLevel,
    Notifier,
)

__all__ = [
    "ApiClient",
    "CredentialStore",
    "Notifier",
    "Notification",
    "NotificationLevel",
    "LoggingNotifier",
    "CollectingNotifier",
]
