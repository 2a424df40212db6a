# statescope/runtime/replay.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Union

from statescope.core.errors import ReplayInProgressError
from statescope.core.history import ReplayStep
from statescope.core.results import SendResult

if TYPE_CHECKING:
    from statescope.core.state_machine import StateMachine


class ReplayDriver:
    """
    Resets a machine and re-sends a scripted list of events, sleeping a fixed delay
    before each one. Sends never overlap: each delay starts only after the previous
    send has completed. While a replay runs the machine rejects every other
    state-affecting call with MachineBusyError.
    """

    def __init__(self, machine: "StateMachine", logger: Optional[logging.Logger] = None) -> None:
        self._machine = machine
        self._logger = logger or logging.getLogger(__name__)
        self._running = False
        self._cancel_requested = False

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self) -> bool:
        """
        Ask the running replay to stop before its next event. The replay then
        returns the results collected so far.

        :return: False if no replay is running.
        """
        if not self._running:
            return False
        self._cancel_requested = True
        return True

    async def run(
        self, sequence: Sequence[Union[ReplayStep, Mapping[str, Any]]], delay: Optional[float] = None
    ) -> List[SendResult]:
        """
        Replay a sequence of events from a freshly reset machine.

        :param sequence: ReplayStep objects or ``{"event": ..., "input": ...}`` mappings.
        :param delay: Seconds to wait before each send; defaults to the machine's replay_delay setting.
        :return: One SendResult per event actually sent.
        :raises ValueError: If a step has no event id or the delay is negative.
        :raises ReplayInProgressError: If the machine is already replaying.
        """
        steps = [ReplayStep.coerce(item) for item in sequence]
        if delay is None:
            delay = self._machine.settings.replay_delay
        if delay < 0:
            raise ValueError("Replay delay must be non-negative")

        machine = self._machine
        with machine._lock:
            if machine._busy:
                raise ReplayInProgressError()
            machine._busy = True
        self._running = True
        self._cancel_requested = False

        results: List[SendResult] = []
        try:
            self._logger.info("Starting replay of %d events", len(steps))
            with machine._lock:
                machine._reset()
            for step in steps:
                await asyncio.sleep(delay)
                if self._cancel_requested:
                    self._logger.info("Replay cancelled after %d of %d events", len(results), len(steps))
                    break
                with machine._lock:
                    results.append(machine._send(step.event, step.input))
            else:
                self._logger.info("Replay complete")
        finally:
            with machine._lock:
                machine._busy = False
            self._running = False
            self._cancel_requested = False
        return results
