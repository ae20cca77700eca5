"""
JSON-like value helpers shared by the adapters.

Both Firebase databases store schema-less values: null, booleans, numbers,
strings, lists and string-keyed mappings nested to any depth.
"""

import copy
from typing import Any, Dict, List, Mapping, Optional, Union

JsonScalar = Union[None, bool, int, float, str]
JsonValue = Union[JsonScalar, List[Any], Dict[str, Any]]


def is_mapping(value: Any) -> bool:
    """Return True if value is a string-keyed mapping node."""
    return isinstance(value, Mapping)


def deep_copy_value(value: JsonValue) -> JsonValue:
    """Return a deep copy so callers can't mutate shared event payloads."""
    return copy.deepcopy(value)


def split_path(path: Optional[str]) -> List[str]:
    """
    Split a slash-delimited path into its non-empty segments.

    Example:
        >>> split_path("/users/u1/")
        ['users', 'u1']
        >>> split_path("/")
        []
    """
    if not path:
        return []
    return [segment for segment in path.split("/") if segment]


def last_segment(path: Optional[str]) -> Optional[str]:
    """Return the final segment of path, or None for the root."""
    segments = split_path(path)
    return segments[-1] if segments else None
