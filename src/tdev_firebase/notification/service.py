"""
Cloud Messaging Service.

Server-side push channel for one device, built on firebase_admin.messaging.
The device's FCM registration token comes from settings
(registration_token / FCM_REGISTRATION_TOKEN) or from update_token().

Messages reaching this process (from whatever transport the application
uses) are handed to dispatch_message() / dispatch_opened_message(), which
call the registered hooks:

    - on_message: message received while the app is in the foreground
    - on_message_opened_app: the user opened the app from a notification
    - set_initial_message: the notification that launched the app from a
      terminated state; delivered once to the opened-app hooks at initialize
    - handle_background_message: module-level entry point for messages
      handled outside the running service

Usage:
    >>> service = NotificationService(FirebaseSettings(registration_token="tok"))
    >>> await service.initialize()
    >>> await service.subscribe_to_topic("news")
    >>> message_id = await service.send(title="Hello", body="World")
"""

import inspect
import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import messaging
from pydantic import BaseModel, Field

from ..adapter import FirebaseAdapter
from ..errors import NotificationError, NotificationNotInitializedError
from ..settings import FirebaseSettings
from ..streams import Subscription

logger = logging.getLogger(__name__)

MessageHandler = Callable[["PushMessage"], Any]


class PushMessage(BaseModel):
    """
    A push message as seen by the application.

    Attributes:
        message_id: FCM message ID, if known
        title: Notification title
        body: Notification body
        data: Custom key/value payload
        topic: Topic the message was sent to, if any
    """

    message_id: Optional[str] = Field(default=None)
    title: Optional[str] = Field(default=None)
    body: Optional[str] = Field(default=None)
    data: Dict[str, str] = Field(default_factory=dict)
    topic: Optional[str] = Field(default=None)

    model_config = {"frozen": True}


async def handle_background_message(message: PushMessage) -> None:
    """Entry point for messages handled while no service is running."""
    logger.debug(f"[Background] Handled message: {message.message_id}")
    logger.debug(f"[Background] Data: {message.data}")


class NotificationService(FirebaseAdapter):
    """Cloud Messaging adapter for a single device registration token."""

    error_class = NotificationError
    not_initialized_error = NotificationNotInitializedError
    service_name = "NotificationService"

    def __init__(self, settings: Optional[FirebaseSettings] = None):
        super().__init__(settings)
        self._token: Optional[str] = settings.registration_token if settings else None
        self._token_lock = Lock()
        self._token_streams: List[Subscription[str]] = []
        self._message_handlers: List[MessageHandler] = []
        self._opened_handlers: List[MessageHandler] = []
        self._initial_message: Optional[PushMessage] = None

    def _connect(self, app: Any, settings: FirebaseSettings) -> Any:
        if self._token is None:
            self._token = settings.registration_token
        # messaging is a module-level API; the App is the handle
        return app

    async def initialize(self, settings: Optional[FirebaseSettings] = None) -> None:
        """
        Connect to Cloud Messaging and deliver a pending initial message.

        The initial message is consumed before the hooks run, so it is
        delivered at most once even if a hook fails.

        Raises:
            NotificationError: If the App can't be created, or if an opened-app
                hook fails on the initial message (the service stays ready)
        """
        was_ready = self.is_ready
        await super().initialize(settings)
        if not was_ready:
            logger.debug(f"FCM Token: {self._token}")
            message, self._initial_message = self._initial_message, None
            if message is not None:
                logger.debug("[Terminated Open] App opened from initial message")
                try:
                    await self.dispatch_opened_message(message)
                except Exception as e:
                    logger.error(f"Opened-app handler failed for initial message: {e}")
                    raise NotificationError(
                        "Opened-app handler failed for initial message", e
                    ) from e

    # Permissions & Token =======================================================

    @property
    def token(self) -> Optional[str]:
        """Current registration token of the device."""
        return self._token

    def update_token(self, token: str) -> None:
        """
        Replace the registration token.

        on_token_refresh() streams receive the new token if it changed.
        """
        if not token:
            raise ValueError("token must be a non-empty string")
        with self._token_lock:
            if token == self._token:
                return
            self._token = token
            streams = [s for s in self._token_streams if not s.closed]
            self._token_streams = streams
        logger.debug("FCM token refreshed")
        for stream in streams:
            stream.push(token)

    def on_token_refresh(self) -> Subscription[str]:
        """Stream every new registration token set after subscribing."""

        def start(sink: Subscription[str]) -> Callable[[], None]:
            with self._token_lock:
                self._token_streams.append(sink)

            def close() -> None:
                with self._token_lock:
                    if sink in self._token_streams:
                        self._token_streams.remove(sink)

            return close

        return Subscription(start, self.error_class, "FCM token refresh")

    def _require_token(self) -> str:
        if not self._token:
            raise NotificationError("No FCM registration token available")
        return self._token

    # Listeners =================================================================

    def on_message(self, handler: MessageHandler) -> None:
        """Register a handler for foreground messages."""
        self._message_handlers.append(handler)

    def on_message_opened_app(self, handler: MessageHandler) -> None:
        """Register a handler for notifications that opened the app."""
        self._opened_handlers.append(handler)

    def set_initial_message(self, message: PushMessage) -> None:
        """Record the notification that launched the app."""
        self._initial_message = message

    async def dispatch_message(self, message: PushMessage) -> None:
        """Deliver a foreground message to every on_message handler."""
        logger.debug(f"[Foreground] Message received: {message.title}")
        await self._dispatch(self._message_handlers, message)

    async def dispatch_opened_message(self, message: PushMessage) -> None:
        """Deliver a tapped notification to every on_message_opened_app handler."""
        logger.debug("[Background Open] App opened from message")
        await self._dispatch(self._opened_handlers, message)

    async def _dispatch(self, handlers: List[MessageHandler], message: PushMessage) -> None:
        for handler in list(handlers):
            result = handler(message)
            if inspect.isawaitable(result):
                await result

    # Topic Subscriptions =======================================================

    async def subscribe_to_topic(self, topic: str) -> None:
        """Subscribe the device to topic."""
        app = self._require_ready()
        token = self._require_token()
        response = await self._call(
            f"Cannot subscribe to topic: {topic}",
            lambda: messaging.subscribe_to_topic([token], topic, app=app),
        )
        self._check_topic_response(response, f"Cannot subscribe to topic: {topic}")
        logger.debug(f"Subscribed to topic: {topic}")

    async def unsubscribe_from_topic(self, topic: str) -> None:
        """Unsubscribe the device from topic."""
        app = self._require_ready()
        token = self._require_token()
        response = await self._call(
            f"Cannot unsubscribe from topic: {topic}",
            lambda: messaging.unsubscribe_from_topic([token], topic, app=app),
        )
        self._check_topic_response(response, f"Cannot unsubscribe from topic: {topic}")
        logger.debug(f"Unsubscribed from topic: {topic}")

    @staticmethod
    def _check_topic_response(response: Any, message: str) -> None:
        if getattr(response, "failure_count", 0):
            reasons = ", ".join(str(error.reason) for error in response.errors)
            raise NotificationError(f"{message} ({reasons})")

    # Send ======================================================================

    async def send(
        self,
        title: Optional[str] = None,
        body: Optional[str] = None,
        data: Optional[Dict[str, str]] = None,
        topic: Optional[str] = None,
    ) -> str:
        """
        Send a message to a topic, or to this device when topic is None.

        Returns:
            The FCM message ID
        """
        app = self._require_ready()
        token = None if topic else self._require_token()
        notification = None
        if title is not None or body is not None:
            notification = messaging.Notification(title=title, body=body)
        payload = {str(k): str(v) for k, v in (data or {}).items()}

        message = messaging.Message(
            notification=notification,
            data=payload or None,
            token=token,
            topic=topic,
        )
        target = f"topic {topic}" if topic else "device"
        message_id = await self._call(
            f"Cannot send message to {target}",
            lambda: messaging.send(message, app=app),
        )
        logger.debug(f"Sent message {message_id} to {target}")
        return message_id
