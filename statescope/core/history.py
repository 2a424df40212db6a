# statescope/core/history.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from statescope.core.configuration import INITIAL_EVENT
from statescope.core.context import clone


@dataclass(frozen=True)
class HistoryEntry:
    """
    An immutable record of the machine at one point of its timeline: the state it
    was in, the event that brought it there, and copies of context and input.
    """

    timestamp: float
    state: Optional[str]
    event: str
    context: Any
    input: Any = field(default_factory=dict)

    @property
    def is_initial(self) -> bool:
        return self.event == INITIAL_EVENT

    def copy(self) -> "HistoryEntry":
        """Return an entry whose context and input share nothing with this one."""
        return HistoryEntry(
            timestamp=self.timestamp,
            state=self.state,
            event=self.event,
            context=clone(self.context),
            input=clone(self.input),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "state": self.state,
            "event": self.event,
            "context": clone(self.context),
            "input": clone(self.input),
        }


@dataclass(frozen=True)
class ReplayStep:
    """One scripted event for a replay: the event id and the input sent with it."""

    event: str
    input: Any = field(default_factory=dict)

    @classmethod
    def coerce(cls, item: Union["ReplayStep", Mapping[str, Any]]) -> "ReplayStep":
        """
        Accept either a ReplayStep or an ``{"event": ..., "input": ...}`` mapping.

        :raises ValueError: If the item has no event id.
        """
        if isinstance(item, ReplayStep):
            return item
        if isinstance(item, Mapping) and isinstance(item.get("event"), str):
            payload = item.get("input")
            return cls(event=item["event"], input=clone(payload) if payload is not None else {})
        raise ValueError(f"Replay step must name an event: {item!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event, "input": clone(self.input)}


class HistoryLog:
    """
    Ordered, append/pop-able sequence of history entries. Entries are copied when
    recorded and when read back out.
    """

    def __init__(self) -> None:
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()

    def record(self, timestamp: float, state: Optional[str], event: str, context: Any, input: Any = None) -> HistoryEntry:
        """
        Append an entry for the machine's already-updated state and context.

        :param timestamp: Time of the entry, as given by the engine clock.
        :param state: The state id the machine is now in.
        :param event: The event that caused the entry, or the initial-state tag.
        :param context: The context after the transition; copied.
        :param input: The input that accompanied the event; copied.
        :return: The recorded entry.
        """
        entry = HistoryEntry(
            timestamp=timestamp,
            state=state,
            event=event,
            context=clone(context),
            input=clone(input) if input is not None else {},
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def pop(self) -> HistoryEntry:
        """
        Remove and return the most recent entry.

        :raises IndexError: If the log is empty.
        """
        with self._lock:
            return self._entries.pop()

    @property
    def last(self) -> Optional[HistoryEntry]:
        """A copy of the most recent entry, or None when empty."""
        with self._lock:
            return self._entries[-1].copy() if self._entries else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def entries(self) -> List[HistoryEntry]:
        """Copies of all entries, oldest first."""
        with self._lock:
            return [entry.copy() for entry in self._entries]

    def to_script(self) -> List[ReplayStep]:
        """
        Turn the recorded timeline back into a replay script. Initial-state entries
        are skipped since a replay starts with a reset.
        """
        with self._lock:
            return [ReplayStep(event=e.event, input=clone(e.input)) for e in self._entries if not e.is_initial]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
