# statescope/core/hooks.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, List, Optional

if TYPE_CHECKING:
    from statescope.core.state_machine import EngineSnapshot

Listener = Callable[["EngineSnapshot"], None]


class ObserverHub:
    """
    Keeps the listeners subscribed to a machine and pushes a snapshot to each of
    them after every state-affecting operation. A failing listener is logged and
    skipped; it neither stops delivery to the others nor aborts the operation that
    triggered the notification.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._logger = logger or logging.getLogger(__name__)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener. Listeners are called in registration order.

        :param listener: Callable taking an EngineSnapshot.
        :return: A callable that unsubscribes the listener.
        :raises TypeError: If the listener is not callable.
        """
        if not callable(listener):
            raise TypeError("Listener must be callable")
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> bool:
        """
        Remove the first registration of a listener.

        :return: True if the listener was registered.
        """
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def notify(self, snapshot_factory: Callable[[], "EngineSnapshot"]) -> None:
        """
        Deliver a fresh snapshot to every listener. Each listener gets its own copy,
        so one listener mutating what it received cannot affect the next.

        :param snapshot_factory: Builds the snapshot to deliver.
        """
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot_factory())
            except Exception:
                self._logger.exception("Listener %r failed while handling a state change", listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
