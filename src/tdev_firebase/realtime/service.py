"""
Realtime Database Service.

Async facade over firebase_admin.db. Every operation addresses a node by a
slash-delimited path relative to the database root and performs exactly one
SDK call. SDK failures are re-raised as RealtimeError carrying the original
exception.

Usage:
    >>> service = RealtimeService(FirebaseSettings.from_env())
    >>> await service.initialize()
    >>> key = await service.append("messages", {"text": "hi"})
    >>> node = await service.read_once(f"messages/{key}")
    >>> node.value
    {'text': 'hi'}
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from firebase_admin import db

from ..adapter import FirebaseAdapter
from ..errors import (
    RealtimeError,
    RealtimeNotInitializedError,
    RealtimeStructureError,
)
from ..settings import FirebaseSettings
from ..streams import ListenerHandle, Subscription
from ..values import JsonValue, is_mapping, last_segment
from .node import (
    CHILD_ADDED,
    CHILD_CHANGED,
    CHILD_EVENT_KINDS,
    CHILD_REMOVED,
    Node,
    TreeMirror,
    children_of,
)

logger = logging.getLogger(__name__)

NodeCallback = Callable[[Node], Any]


@dataclass
class ChildEventHandles:
    """
    Handles returned by RealtimeService.subscribe_child_events().

    One handle per callback that was supplied; each can be cancelled on its
    own without affecting the others.
    """

    added: Optional[ListenerHandle[Node]] = None
    changed: Optional[ListenerHandle[Node]] = None
    removed: Optional[ListenerHandle[Node]] = None

    def handles(self) -> List[ListenerHandle[Node]]:
        return [h for h in (self.added, self.changed, self.removed) if h is not None]

    def cancel(self) -> None:
        """Cancel every handle."""
        for handle in self.handles():
            handle.cancel()


class RealtimeService(FirebaseAdapter):
    """
    Realtime Database adapter.

    Paths are passed through verbatim to the SDK, which rejects invalid
    ones (e.g. a leading slash); that rejection surfaces as RealtimeError.
    """

    error_class = RealtimeError
    not_initialized_error = RealtimeNotInitializedError
    service_name = "RealtimeService"

    def _connect(self, app: Any, settings: FirebaseSettings) -> Any:
        return db.reference("/", app=app, url=settings.database_url)

    # Write =====================================================================

    async def replace(self, path: str, value: JsonValue) -> None:
        """
        Overwrite the node at path.

        Note: children of the existing node that are not in value are deleted.
        """
        root = self._require_ready()
        logger.debug(f"set {path}")
        await self._call(
            f"Cannot set data at: {path}",
            lambda: root.child(path).set(value),
        )

    async def append(self, path: str, value: JsonValue) -> str:
        """
        Create a child of path with a generated unique key.

        Returns:
            The generated key
        """
        root = self._require_ready()

        def push() -> Optional[str]:
            return root.child(path).push(value).key

        key = await self._call(f"Cannot push data under: {path}", push)
        if not key:
            raise RealtimeError(f"No key was generated for new child of: {path}")
        logger.debug(f"push {path} -> {key}")
        return key

    async def merge(self, path: str, fields: Mapping[str, JsonValue]) -> None:
        """
        Update only the given children of path.

        Children not named in fields are left untouched. A value of None
        deletes that child.
        """
        root = self._require_ready()
        if not is_mapping(fields):
            raise RealtimeStructureError(
                f"Update at {path} needs a mapping of children, got {type(fields).__name__}"
            )
        logger.debug(f"update {path} ({len(fields)} fields)")
        await self._call(
            f"Cannot update data at: {path}",
            lambda: root.child(path).update(dict(fields)),
        )

    async def remove(self, path: str) -> None:
        """Delete the node at path and everything below it."""
        root = self._require_ready()
        logger.debug(f"delete {path}")
        await self._call(
            f"Cannot delete data at: {path}",
            lambda: root.child(path).delete(),
        )

    # Read ======================================================================

    async def read_once(self, path: str) -> Node:
        """
        Read the current value at path.

        Returns:
            Node with exists=False (and key/value None) if nothing is stored.
        """
        root = self._require_ready()

        def read() -> Node:
            ref = root.child(path)
            return Node.from_value(ref.key, ref.get())

        return await self._call(f"Cannot read data at: {path}", read)

    async def read_children_once(self, path: str) -> List[Node]:
        """
        Read the direct children of path, one Node each, in backend order.

        Returns:
            Empty list if path does not exist.

        Raises:
            RealtimeStructureError: If the value at path is not a mapping
        """
        root = self._require_ready()
        value = await self._call(
            f"Cannot read children of: {path}",
            lambda: root.child(path).get(),
        )
        if value is None:
            return []
        if not is_mapping(value):
            raise RealtimeStructureError(
                f"Value at {path} is a {type(value).__name__}, not a map of children"
            )
        return [Node(key=key, value=child, exists=True) for key, child in children_of(value).items()]

    # Listen ====================================================================

    def subscribe(self, path: str) -> Subscription[Node]:
        """
        Stream the full value at path after every change.

        The first item is the value at subscribe time. Iteration starts the
        listener; cancel() (or leaving an 'async with' block) stops it.
        """
        root = self._require_ready()
        key = last_segment(path)

        def start(sink: Subscription[Node]) -> Callable[[], None]:
            mirror = TreeMirror()

            def on_event(event: Any) -> None:
                try:
                    applied = mirror.apply(event.event_type, event.path, event.data)
                except Exception as e:
                    sink.fail(e, f"Invalid event received for: {path}")
                    return
                if applied:
                    sink.push(mirror.node(key))

            return root.child(path).listen(on_event).close

        return Subscription(start, self.error_class, f"'{path}'")

    def child_added(self, path: str) -> Subscription[Node]:
        """Stream children added under path (existing children first)."""
        return self._child_stream(path, CHILD_ADDED)

    def child_changed(self, path: str) -> Subscription[Node]:
        """Stream direct children of path whose value changed."""
        return self._child_stream(path, CHILD_CHANGED)

    def child_removed(self, path: str) -> Subscription[Node]:
        """Stream children removed from path (value is the last known value)."""
        return self._child_stream(path, CHILD_REMOVED)

    def _child_stream(self, path: str, kind: str) -> Subscription[Node]:
        if kind not in CHILD_EVENT_KINDS:
            raise ValueError(f"Unknown child event kind: {kind}")
        root = self._require_ready()

        def start(sink: Subscription[Node]) -> Callable[[], None]:
            mirror = TreeMirror()

            def on_event(event: Any) -> None:
                try:
                    changes = mirror.apply_and_diff(event.event_type, event.path, event.data)
                except Exception as e:
                    sink.fail(e, f"Invalid event received for: {path}")
                    return
                for change_kind, node in changes:
                    if change_kind == kind:
                        sink.push(node)

            return root.child(path).listen(on_event).close

        return Subscription(start, self.error_class, f"{kind} '{path}'")

    async def subscribe_child_events(
        self,
        path: str,
        on_added: Optional[NodeCallback] = None,
        on_changed: Optional[NodeCallback] = None,
        on_removed: Optional[NodeCallback] = None,
    ) -> ChildEventHandles:
        """
        Register independent listeners for child events under path.

        Each supplied callback gets its own backend listener and its own
        handle; callbacks may be plain or async functions.

        Returns:
            ChildEventHandles with a handle for each supplied callback.
        """
        self._require_ready()
        requested: Dict[str, NodeCallback] = {}
        if on_added is not None:
            requested["added"] = on_added
        if on_changed is not None:
            requested["changed"] = on_changed
        if on_removed is not None:
            requested["removed"] = on_removed

        streams = {
            "added": self.child_added,
            "changed": self.child_changed,
            "removed": self.child_removed,
        }

        started: Dict[str, Subscription[Node]] = {}
        try:
            for name in requested:
                subscription = streams[name](path)
                await subscription.start()
                started[name] = subscription
        except RealtimeError:
            for subscription in started.values():
                subscription.cancel()
            raise

        handles = ChildEventHandles()
        for name, subscription in started.items():
            setattr(handles, name, ListenerHandle(subscription, requested[name]))
        return handles
