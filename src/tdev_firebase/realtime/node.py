"""
Realtime Database data carriers and event translation.

Node is what every read and every subscription event returns. TreeMirror
turns the SDK's raw put/patch stream for one listened path into full
values and per-child added/changed/removed events.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..values import deep_copy_value, is_mapping, split_path

CHILD_ADDED = "child_added"
CHILD_CHANGED = "child_changed"
CHILD_REMOVED = "child_removed"
CHILD_EVENT_KINDS = (CHILD_ADDED, CHILD_CHANGED, CHILD_REMOVED)


class Node(BaseModel):
    """
    One key/value pair read from the Realtime Database.

    exists and value are separate so that a missing node and a stored value
    can never be confused. For a missing node key and value are both None.
    For child_removed events exists is False and value holds the last value
    the child had.

    Attributes:
        key: Last path segment of the node, None if the node does not exist
        value: Scalar, list or mapping stored at the node
        exists: Whether the node currently holds data

    Example:
        >>> Node(key="u1", value={"name": "An"}, exists=True).to_dict()
        {'key': 'u1', 'name': 'An'}
    """

    key: Optional[str] = Field(default=None, description="Node key")
    value: Any = Field(default=None, description="Stored value")
    exists: bool = Field(default=False, description="Whether the node holds data")

    model_config = {"frozen": True}

    @classmethod
    def missing(cls) -> "Node":
        return cls(key=None, value=None, exists=False)

    @classmethod
    def from_value(cls, key: Optional[str], value: Any) -> "Node":
        """Build a Node from a raw SDK value, None meaning 'no data'."""
        if value is None:
            return cls.missing()
        return cls(key=key, value=value, exists=True)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into a dict: mapping values are merged next to 'key'."""
        if is_mapping(self.value):
            return {"key": self.key, **dict(self.value)}
        return {"key": self.key, "value": self.value}


def children_of(value: Any) -> Dict[str, Any]:
    """
    Return the direct children of a stored value keyed by child key.

    The Realtime Database returns array-like nodes as lists; their indices
    become string keys and holes (None) are skipped. Scalars have no children.
    """
    if is_mapping(value):
        return {str(k): v for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value) if v is not None}
    return {}


def _set_at(current: Any, segments: List[str], data: Any) -> Any:
    # Copy-on-write so previously emitted values are never mutated
    if not segments:
        if data == {}:
            return None
        return deep_copy_value(data)

    head, rest = segments[0], segments[1:]
    if isinstance(current, list) and head.isdigit():
        return _set_in_list(current, int(head), rest, data)

    updated = children_of(current)
    child = _set_at(updated.get(head), rest, data)
    if child is None or child == {}:
        updated.pop(head, None)
    else:
        updated[head] = child
    return updated or None


def _set_in_list(current: List[Any], index: int, rest: List[str], data: Any) -> Any:
    # Array-like nodes stay lists; trailing holes are dropped
    items = list(current)
    if index >= len(items):
        items.extend([None] * (index + 1 - len(items)))
    child = _set_at(items[index], rest, data)
    items[index] = None if child == {} else child
    while items and items[-1] is None:
        items.pop()
    return items or None


class TreeMirror:
    """
    Reconstructs the value at a listened path from SDK events.

    The SDK reports 'put' (replace the value at a relative path) and 'patch'
    (update several children below a relative path). The mirror only holds
    the value of the single listened node for the lifetime of one listener.
    """

    def __init__(self):
        self.value: Any = None

    @property
    def exists(self) -> bool:
        return self.value is not None

    def apply(self, event_type: str, path: Optional[str], data: Any) -> bool:
        """
        Apply one event.

        Returns:
            True if the event was a put/patch and was applied.

        Raises:
            ValueError: If a patch event does not carry a mapping
        """
        segments = split_path(path)

        if event_type == "put":
            self.value = _set_at(self.value, segments, data)
            return True

        if event_type == "patch":
            if not is_mapping(data):
                raise ValueError(f"patch event data must be a mapping, got {type(data).__name__}")
            for relative, child in data.items():
                self.value = _set_at(self.value, segments + split_path(relative), child)
            return True

        return False

    def node(self, key: Optional[str]) -> Node:
        """Snapshot of the listened node."""
        return Node.from_value(key, deep_copy_value(self.value))

    def apply_and_diff(
        self, event_type: str, path: Optional[str], data: Any
    ) -> List[Tuple[str, Node]]:
        """
        Apply an event and report how the direct children changed.

        Returns:
            (kind, node) pairs: added children first, then changed, then
            removed, each group in child order.
        """
        before = children_of(self.value)
        if not self.apply(event_type, path, data):
            return []
        after = children_of(self.value)

        events: List[Tuple[str, Node]] = []
        for key, value in after.items():
            if key not in before:
                events.append((CHILD_ADDED, Node(key=key, value=deep_copy_value(value), exists=True)))
        for key, value in after.items():
            if key in before and before[key] != value:
                events.append((CHILD_CHANGED, Node(key=key, value=deep_copy_value(value), exists=True)))
        for key, value in before.items():
            if key not in after:
                events.append((CHILD_REMOVED, Node(key=key, value=value, exists=False)))
        return events
