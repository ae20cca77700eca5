"""Firebase Cloud Messaging adapter."""

from ..errors import NotificationError, NotificationNotInitializedError
from .service import (
    MessageHandler,
    NotificationService,
    PushMessage,
    handle_background_message,
)

__all__ = [
    "NotificationService",
    "PushMessage",
    "MessageHandler",
    "handle_background_message",
    "NotificationError",
    "NotificationNotInitializedError",
]
