"""
Shared lifecycle for the Firebase adapters.

Every adapter moves through two states, UNINITIALIZED -> READY, exactly
once. initialize() resolves the firebase_admin App and builds the backend
handle (database reference, Firestore client, ...); every other operation
checks the state first and fails fast when the adapter is not ready.

Blocking SDK calls run on the event loop's default executor so that
concurrent operations do not block each other.
"""

import asyncio
import functools
import logging
from enum import Enum
from threading import Lock
from typing import Any, Callable, Optional, Type, TypeVar

from .app import get_firebase_app
from .errors import AdapterError
from .settings import FirebaseSettings

logger = logging.getLogger(__name__)

R = TypeVar("R")


class AdapterState(str, Enum):
    """Lifecycle states of an adapter."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"


class FirebaseAdapter:
    """
    Base class holding the connection handle of one adapter.

    Subclasses set error_class / not_initialized_error and implement
    _connect(app) returning the backend handle.

    Attributes:
        settings: Settings used by the next (or last) initialize()
    """

    error_class: Type[AdapterError] = AdapterError
    not_initialized_error: Type[AdapterError] = AdapterError
    service_name = "FirebaseAdapter"

    def __init__(self, settings: Optional[FirebaseSettings] = None):
        self.settings = settings
        self._state = AdapterState.UNINITIALIZED
        self._handle: Any = None
        self._app: Any = None
        self._init_lock = Lock()

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is AdapterState.READY

    @property
    def app(self) -> Any:
        """The firebase_admin App in use (None before initialize)."""
        return self._app

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self, settings: Optional[FirebaseSettings] = None) -> None:
        """
        Connect to the backend. Call once before any other operation.

        Calling it again (including concurrently) is a no-op once connected.

        Args:
            settings: Connection settings; overrides the constructor value.
                     If neither is given, settings come from the environment.

        Raises:
            AdapterError subclass: If the App or backend client can't be created
        """
        if self.is_ready:
            return
        if settings is not None:
            self.settings = settings
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._initialize_blocking)

    def _initialize_blocking(self) -> None:
        if self.is_ready:
            return

        with self._init_lock:
            # Double-check after acquiring lock
            if self.is_ready:
                return

            settings = self.settings or FirebaseSettings.from_env()
            try:
                app = get_firebase_app(settings)
                handle = self._connect(app, settings)
            except AdapterError:
                raise
            except Exception as e:
                raise self.error_class(f"Failed to initialize {self.service_name}", e) from e

            self.settings = settings
            self._app = app
            self._handle = handle
            self._state = AdapterState.READY
            logger.info(f"{self.service_name} initialized (app: {settings.app_name})")

    def _connect(self, app: Any, settings: FirebaseSettings) -> Any:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def _require_ready(self) -> Any:
        if self._state is not AdapterState.READY:
            raise self.not_initialized_error(
                f"{self.service_name} is not initialized, call initialize() first"
            )
        return self._handle

    async def _call(self, message: str, fn: Callable[..., R], *args: Any) -> R:
        """
        Run a blocking SDK call in the executor, wrapping its failures.

        Args:
            message: Error message used if fn raises
            fn: Blocking callable performing exactly one backend operation
            *args: Positional arguments for fn

        Raises:
            error_class: Wrapping whatever fn raised
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args))
        except AdapterError:
            raise
        except Exception as e:
            logger.debug(f"{message}: {e}")
            raise self.error_class(message, e) from e
