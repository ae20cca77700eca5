"""
Async subscription streams over Firebase SDK listeners.

The Firebase Admin SDK delivers realtime events by invoking a callback on a
background thread it owns. Subscription bridges those callbacks into an
asyncio async iterator:

    - Lazy: the backend listener is registered on first iteration (or an
      explicit await start()), never at construction time.
    - Ordered: items are delivered in the order the SDK produced them.
    - Unbuffered policy: nothing is coalesced or dropped. The queue is
      unbounded, so a slow consumer accumulates pending events in memory.
    - Non-restartable: once cancelled, failed or closed it stays exhausted.

Usage:
    >>> async for node in service.subscribe("counters/c1"):
    ...     print(node.value)

ListenerHandle drives a Subscription in a background task and hands every
item to a callback; it is what the callback-style APIs return.
"""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Callable, Generic, Optional, TypeVar

from .errors import AdapterError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Registers the backend listener and returns a callable that closes it.
# Runs in an executor thread because SDK listener setup performs blocking I/O.
StartListener = Callable[["Subscription[Any]"], Callable[[], None]]
ErrorFactory = Callable[[str, Optional[BaseException]], AdapterError]

_END = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: AdapterError):
        self.error = error


class Subscription(Generic[T]):
    """
    Lazy async iterator over one backend listener.

    Attributes:
        description: Human-readable target, used in log and error messages
    """

    def __init__(
        self,
        start_listener: StartListener,
        error_factory: ErrorFactory,
        description: str,
    ):
        self.description = description
        self._start_listener = start_listener
        self._error_factory = error_factory
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._close_listener: Optional[Callable[[], None]] = None
        self._started = False
        self._cancelled = False
        self._exhausted = False

    # -------------------------------------------------------------------------
    # Producer side (called from SDK threads)
    # -------------------------------------------------------------------------

    def push(self, item: T) -> None:
        """Queue an item for the consumer. Safe to call from any thread."""
        self._enqueue(item)

    def fail(self, cause: BaseException, message: Optional[str] = None) -> None:
        """Deliver an error to the consumer and end the stream."""
        if isinstance(cause, AdapterError):
            error = cause
        else:
            error = self._error_factory(
                message or f"Listener failed for {self.description}", cause
            )
        self._enqueue(_Failure(error))

    def _enqueue(self, item: Any) -> None:
        if self._cancelled or self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Event loop already closed; the consumer is gone.
            logger.debug(f"Dropped event for {self.description}: event loop closed")

    # -------------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        """True once the stream can no longer yield items."""
        return self._cancelled or self._exhausted

    async def start(self) -> None:
        """
        Register the backend listener without consuming an item.

        Idempotent. Raises the adapter's error if registration fails.
        """
        if self._started:
            return
        if self.closed:
            raise self._error_factory(
                f"Subscription to {self.description} is closed", None
            )

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._started = True

        try:
            close = await self._loop.run_in_executor(None, self._start_listener, self)
        except AdapterError:
            self._exhausted = True
            raise
        except Exception as e:
            self._exhausted = True
            raise self._error_factory(
                f"Cannot listen to {self.description}", e
            ) from e

        self._close_listener = close
        logger.debug(f"Listening to {self.description}")

        if self._cancelled:
            # cancel() raced with registration
            self._release()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        if self.closed:
            raise StopAsyncIteration

        await self.start()

        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._exhausted = True
            self._release()
            raise item.error
        return item

    def cancel(self) -> None:
        """
        Close this subscription's backend listener.

        Has no effect on any other subscription. Safe to call repeatedly.
        """
        if self._cancelled:
            return
        self._cancelled = True
        self._release()
        if self._loop is not None and self._queue is not None:
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, _END)
            except RuntimeError:
                pass

    async def aclose(self) -> None:
        """Cancel without blocking the event loop on listener shutdown."""
        if self._cancelled:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.cancel)

    async def __aenter__(self) -> "Subscription[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _release(self) -> None:
        close, self._close_listener = self._close_listener, None
        if close is None:
            return
        try:
            close()
            logger.debug(f"Stopped listening to {self.description}")
        except Exception as e:
            logger.warning(f"Error closing listener for {self.description}: {e}")


class ListenerHandle(Generic[T]):
    """
    Runs a callback for every item of a Subscription.

    The callback may be a plain function or a coroutine function. An
    exception raised by the callback or by the listener stops the handle,
    closes the listener, is kept in `error` and is re-raised by wait().
    """

    def __init__(self, subscription: Subscription[T], callback: Callable[[T], Any]):
        self.subscription = subscription
        self._callback = callback
        self._error: Optional[BaseException] = None
        self._task = asyncio.ensure_future(self._pump())
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: "asyncio.Future[None]") -> None:
        # Marks the exception as retrieved; wait() still re-raises it
        if not task.cancelled():
            self._error = task.exception()

    async def _pump(self) -> None:
        try:
            async for item in self.subscription:
                result = self._callback(item)
                if inspect.isawaitable(result):
                    await result
        except Exception:
            logger.exception(f"Listener stopped with an error for {self.subscription.description}")
            self.subscription.cancel()
            raise

    @property
    def active(self) -> bool:
        return not self._task.done()

    @property
    def error(self) -> Optional[BaseException]:
        """The exception that stopped the handle, if any."""
        return self._error

    def cancel(self) -> None:
        """Stop delivering events and close the backend listener."""
        self.subscription.cancel()

    async def wait(self) -> None:
        """Wait until the handle stops; re-raises callback/listener errors."""
        await self._task
