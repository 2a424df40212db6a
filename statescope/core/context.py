# statescope/core/context.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import copy
import threading
from typing import Any


def clone(value: Any) -> Any:
    """Return a structurally independent copy of a context or input value."""
    return copy.deepcopy(value)


class ContextStore:
    """
    Holds the machine's mutable data payload. The stored value is never handed out
    directly: reads return deep copies and writes store deep copies, so no caller
    can alias the live context.
    """

    def __init__(self, value: Any = None) -> None:
        self._lock = threading.Lock()
        self._value = clone(value) if value is not None else {}

    def get(self) -> Any:
        """Return a deep copy of the current context."""
        with self._lock:
            return clone(self._value)

    def replace(self, value: Any) -> None:
        """
        Replace the whole context. The value is copied on the way in.

        :param value: The new context value.
        """
        value = clone(value)
        with self._lock:
            self._value = value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ContextStore):
            return self.get() == other.get()
        return NotImplemented

    def __repr__(self) -> str:
        return f"ContextStore({self._value!r})"
