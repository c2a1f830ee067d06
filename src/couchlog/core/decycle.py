"""Snapshot arbitrary metadata into an acyclic, JSON-safe structure.

Repeated references to the same container are replaced with a marker of the
form ``{"$ref": PATH}`` where PATH is a JSONPath-like expression pointing at
the first place the container was seen, e.g. ``$["request"]["headers"]``.
The result can always be passed to ``json.dumps``.
"""

import json
from collections.abc import Mapping, Set
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

REF_KEY = "$ref"


def decycle(value: Any) -> Any:
    """Return a cycle-free copy of value.

    Mappings become dicts with string keys, sequences and sets become lists,
    dates become ISO-8601 strings, and any other non-JSON object is replaced
    by its ``str()``. Scalars that JSON understands are returned unchanged.

    Args:
        value: Any Python value, possibly self-referential.

    Returns:
        A structure made only of dict, list, str, int, float, bool and None.
    """
    seen: dict[int, str] = {}
    return _walk(value, "$", seen)


def _walk(value: Any, path: str, seen: dict[int, str]) -> Any:
    if isinstance(value, Enum):
        return _walk(value.value, path, seen)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")

    if isinstance(value, (Mapping, list, tuple, Set)):
        ref = seen.get(id(value))
        if ref is not None:
            return {REF_KEY: ref}
        seen[id(value)] = path
        if isinstance(value, Mapping):
            return {
                str(key): _walk(item, f"{path}[{json.dumps(str(key))}]", seen)
                for key, item in value.items()
            }
        return [
            _walk(item, f"{path}[{index}]", seen) for index, item in enumerate(value)
        ]

    return str(value)
