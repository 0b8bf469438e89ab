"""
Deterministic cache keys for (operation, input) pairs.

This module is pure — no I/O, no shared state.

Key = SHA-256(identity + "|" + normalized input). Every value in the input
is encoded as ``[type_name, payload]`` at every nesting level, so values that
differ only in type (``1`` vs ``"1"``, ``(1, 2)`` vs ``[1, 2]``) never share
a key. Structurally equal values (e.g. dicts built in a different order) give
equal fingerprints. Digest collisions are accepted as a low-probability risk.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Set
from typing import Any

_SCALARS = (type(None), bool, int, float, str)


def _type_name(value: Any) -> str:
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def _dump(node: Any) -> str:
    return json.dumps(node, separators=(",", ":"))


def _canonical(value: Any) -> list[Any]:
    """Encode a value as a type-tagged, JSON-friendly tree with stable ordering."""
    name = _type_name(value)
    if isinstance(value, _SCALARS):
        return [name, value]
    if isinstance(value, Mapping):
        # Keys carry their own type tag, so 1 and "1" stay distinct
        pairs = [[_canonical(k), _canonical(v)] for k, v in value.items()]
        pairs.sort(key=lambda pair: _dump(pair[0]))
        return [name, pairs]
    if isinstance(value, (list, tuple)):
        return [name, [_canonical(v) for v in value]]
    if isinstance(value, Set):
        return [name, sorted((_canonical(v) for v in value), key=_dump)]
    if type(value).__repr__ is object.__repr__:
        # Default repr embeds the memory address; use the instance state instead
        state = getattr(value, "__dict__", None)
        if state is not None:
            return [name, _canonical(state)]
    return [name, repr(value)]


def normalize(value: Any) -> str:
    """Return a canonical string form of an operation input.

    Args:
        value: Any input passed to ``execute``.

    Returns:
        Compact JSON of the type-tagged tree. Leaves that are not JSON
        values are encoded by ``repr`` (or by their attributes when the
        class keeps the default ``repr``).
    """
    return _dump(_canonical(value))


def fingerprint(identity: str, value: Any) -> str:
    """Fingerprint an input for a given operation.

    Args:
        identity: Stable identity of the operation (cache namespace).
        value: The operation input.

    Returns:
        Hex-encoded SHA-256 digest.
    """
    raw = f"{identity}|{normalize(value)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
