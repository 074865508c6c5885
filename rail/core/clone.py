"""
Deep clone engine used for clone-on-emit.

Each listener gets its own structural copy of the payload so one
handler can never change what another handler (or the emitter) sees.
This is value isolation, not a type-preserving deepcopy: arbitrary
class instances come back as plain dicts of their attributes (from
``__dict__`` and ``__slots__``), and an instance without any comes back
as an empty dict.

Cycles are not detected. A cyclic payload raises RecursionError.
"""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Mapping, MutableSequence
from decimal import Decimal
from datetime import date, datetime, time, timedelta
from enum import Enum
from fractions import Fraction
from pathlib import PurePath
from typing import Any
from uuid import UUID

# Immutable values, returned unchanged
_ATOMIC = (
    type(None), bool, int, float, complex, str, bytes, Enum,
    Decimal, Fraction, UUID, PurePath, range,
)


def deep_clone(value: Any) -> Any:
    """
    Return an independent deep copy of an event payload.

    Args:
        value: Payload to copy

    Returns:
        Value-equal copy sharing no mutable substructure with ``value``
    """
    if isinstance(value, _ATOMIC):
        return value

    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime):
        return value.replace()
    if isinstance(value, date):
        return value.replace()
    if isinstance(value, time):
        return value.replace()
    if isinstance(value, timedelta):
        return timedelta(value.days, value.seconds, value.microseconds)

    if isinstance(value, list):
        return [deep_clone(item) for item in value]
    if isinstance(value, tuple):
        items = [deep_clone(item) for item in value]
        if hasattr(value, "_fields"):
            return type(value)(*items)
        return tuple(items)
    if isinstance(value, (set, frozenset)):
        # members are hashable, so only the container needs copying
        return type(value)(value)
    if isinstance(value, bytearray):
        return bytearray(value)

    if isinstance(value, deque):
        return deque((deep_clone(item) for item in value), maxlen=value.maxlen)
    if isinstance(value, MutableSequence):
        return [deep_clone(item) for item in value]

    if isinstance(value, re.Pattern):
        return re.compile(value.pattern, value.flags)

    if isinstance(value, Mapping):
        return {key: deep_clone(item) for key, item in value.items()}

    if callable(value):
        return value

    return {key: deep_clone(item) for key, item in _instance_attrs(value).items()}


def _instance_attrs(value: Any) -> dict[str, Any]:
    """Own attributes of an instance: ``__dict__`` plus any set ``__slots__``."""
    attrs: dict[str, Any] = {}
    for cls in reversed(type(value).__mro__):
        slots = cls.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot in ("__dict__", "__weakref__"):
                continue
            if hasattr(value, slot):
                attrs[slot] = getattr(value, slot)
    attrs.update(getattr(value, "__dict__", None) or {})
    return attrs
