# statescope/core/state_machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from statescope.core.actions import ActionRegistry, ActionSandbox
from statescope.core.configuration import INITIAL_EVENT, Configuration, StateNode, Transition
from statescope.core.context import ContextStore, clone
from statescope.core.errors import ActionError, ConfigurationError, MachineBusyError
from statescope.core.history import HistoryEntry, HistoryLog, ReplayStep
from statescope.core.hooks import Listener, ObserverHub
from statescope.core.results import SendResult
from statescope.core.validations import Validator
from statescope.runtime.diagram import Renderer, render_mermaid
from statescope.runtime.replay import ReplayDriver
from statescope.settings import EngineSettings


@dataclass(frozen=True)
class EngineSnapshot:
    """
    Read-only view of a machine handed to observers and callers. Context and
    history are copies taken when the snapshot was built.
    """

    id: Optional[str]
    data: Optional[StateNode]
    context: Any
    available_events: Mapping[str, Transition]
    diagram_source: str
    history: Tuple[HistoryEntry, ...]

    def to_dict(self) -> Dict[str, Any]:
        """The camel-cased mapping used by JavaScript-facing observers."""
        return {
            "id": self.id,
            "data": self.data.to_dict() if self.data is not None else None,
            "context": clone(self.context),
            "availableEvents": {event_id: t.to_dict() for event_id, t in self.available_events.items()},
            "diagramSource": self.diagram_source,
            "history": [entry.to_dict() for entry in self.history],
        }


class StateMachine:
    """
    Interprets one declarative state machine at a time.

    A configuration is loaded, events are sent to it, and every committed change
    is recorded in the history log and pushed to subscribed listeners. Failures
    are logged and reported through return values; they never leave the machine
    half-updated.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        actions: Optional[Union[ActionRegistry, Dict[str, Callable[[Any, Any], Any]]]] = None,
        renderer: Optional[Renderer] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        :param settings: Engine limits and defaults.
        :param actions: Named actions, as a registry or a plain name-to-callable mapping.
        :param renderer: Builds the diagram source for snapshots.
        :param logger: Receives all diagnostics; defaults to this module's logger.
        :param clock: Returns the timestamp stored in history entries.
        """
        self._settings = settings or EngineSettings()
        registry = actions if isinstance(actions, ActionRegistry) else ActionRegistry(actions)
        self._sandbox = ActionSandbox(
            registry,
            step_limit=self._settings.action_step_limit,
            max_exponent=self._settings.max_exponent,
        )
        self._renderer = renderer or render_mermaid
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock or time.time
        self._validator = Validator()

        self._config: Optional[Configuration] = None
        self._current_state_id: Optional[str] = None
        self._context = ContextStore()
        self._history = HistoryLog()
        self._hub = ObserverHub(self._logger)
        self._lock = threading.RLock()
        self._busy = False
        self._replay_driver = ReplayDriver(self, self._logger)

    # Properties

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def actions(self) -> ActionRegistry:
        return self._sandbox.registry

    @property
    def configuration(self) -> Optional[Configuration]:
        return self._config

    @property
    def is_loaded(self) -> bool:
        return self._config is not None

    @property
    def is_busy(self) -> bool:
        """True while a replay owns the machine."""
        return self._busy

    @property
    def current_state_id(self) -> Optional[str]:
        return self._current_state_id

    @property
    def context(self) -> Any:
        """A deep copy of the live context."""
        return self._context.get()

    @property
    def history(self) -> List[HistoryEntry]:
        """Copies of the history entries, oldest first."""
        return self._history.entries()

    # Loading

    def load(self, config: Union[Configuration, Mapping[str, Any], None]) -> None:
        """
        Load a configuration, replacing everything about the previous machine.
        Invalid input is logged and leaves the machine as it was.

        :param config: A Configuration or a JSON-like mapping.
        :raises MachineBusyError: If a replay is in progress.
        """
        with self._lock:
            self._ensure_idle("load")
            self._load(config)

    def _load(self, config: Union[Configuration, Mapping[str, Any], None]) -> None:
        self._logger.info("Loading configuration %s", _config_id(config))
        try:
            if not isinstance(config, Configuration):
                config = Configuration.from_mapping(config)
            elif not isinstance(config.states, Mapping):
                raise ConfigurationError("Configuration must define a 'states' mapping")
            else:
                config = replace(config, states=_freeze_states(config.states))
            context = clone(config.context) if config.context is not None else {}
        except ConfigurationError as e:
            self._logger.error("Invalid configuration provided: %s", e)
            return
        except Exception as e:
            self._logger.error("Invalid configuration provided: context cannot be copied: %s", e)
            return

        if self._settings.validate_on_load:
            for warning in self._validator.validate(config):
                self._logger.warning("Configuration %s: %s", config.id, warning)
        self._sandbox.clear_cache()
        self._prepare_actions(config)

        self._config = config
        self._context.replace(context)
        self._current_state_id = config.initial_state
        self._history.clear()
        self._record_history(INITIAL_EVENT, {})
        self._notify()
        self._logger.info("Load complete. Current state: %s", self._current_state_id)

    def _prepare_actions(self, config: Configuration) -> None:
        """Compile every action up front so broken code is reported at load time."""
        for state_id, node in config.states.items():
            for event_id, transition in node.on.items():
                if not transition.action:
                    continue
                try:
                    self._sandbox.compile(transition.action)
                except ActionError as e:
                    self._logger.warning(
                        "Action for event %s in state %s will fail when taken: %s", event_id, state_id, e.message
                    )

    def reset(self) -> None:
        """
        Reload the last configuration. Does nothing if none was loaded.

        :raises MachineBusyError: If a replay is in progress.
        """
        with self._lock:
            self._ensure_idle("reset")
            self._reset()

    def _reset(self) -> None:
        if self._config is not None:
            self._logger.info("Resetting")
            self._load(self._config)

    # Observers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with an EngineSnapshot after every change.

        :return: A callable that removes the listener again.
        """
        return self._hub.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> bool:
        return self._hub.unsubscribe(listener)

    def _notify(self) -> None:
        self._hub.notify(self.get_state)

    # Transitions

    def available_events(self) -> Mapping[str, Transition]:
        node = self._current_node()
        return MappingProxyType(dict(node.on)) if node is not None else MappingProxyType({})

    def can_send(self, event_id: str) -> bool:
        return event_id in self.available_events()

    def send(self, event_id: str, input: Any = None) -> SendResult:
        """
        Send an event to the machine.

        :param event_id: The event to look up in the current state.
        :param input: Value handed to the transition's action; defaults to ``{}``.
        :return: APPLIED if the transition committed, NO_TRANSITION if the event is
            not defined in the current state, ACTION_FAILED if the action raised.
        :raises MachineBusyError: If a replay is in progress.
        """
        with self._lock:
            self._ensure_idle("send")
            return self._send(event_id, input)

    def _send(self, event_id: str, input: Any = None) -> SendResult:
        node = self._current_node()
        transition = node.on.get(event_id) if node is not None else None
        if transition is None:
            self._logger.error("No transition found for event %s in state %s", event_id, self._current_state_id)
            return SendResult.no_transition(event_id)

        try:
            input = clone(input) if input is not None else {}
        except Exception as e:
            self._logger.error("Input for event %s cannot be copied: %s", event_id, e)
            return SendResult.failed(f"Input cannot be copied: {e}", event_id)

        if transition.action:
            try:
                new_context = self._sandbox.execute(transition.action, self._context.get(), input)
            except ActionError as e:
                self._logger.error("Action error for %s: %s", event_id, e.message)
                return SendResult.failed(e.message, event_id)
            self._context.replace(new_context)

        self._current_state_id = transition.to
        self._record_history(event_id, input)
        self._notify()
        return SendResult.applied(event_id)

    def _current_node(self) -> Optional[StateNode]:
        if self._config is None or self._current_state_id is None:
            return None
        return self._config.states.get(self._current_state_id)

    # History

    def _record_history(self, event: str, input: Any) -> None:
        self._history.record(
            timestamp=self._clock(),
            state=self._current_state_id,
            event=event,
            context=self._context.get(),
            input=input,
        )

    def undo(self) -> None:
        """
        Step back to the previous history entry. Does nothing when only the
        initial entry is left. Actions are never re-run.

        :raises MachineBusyError: If a replay is in progress.
        """
        with self._lock:
            self._ensure_idle("undo")
            if len(self._history) <= 1:
                return
            self._history.pop()
            previous = self._history.last
            self._current_state_id = previous.state
            self._context.replace(previous.context)
            self._logger.info("Undo to %s", self._current_state_id)
            self._notify()

    def history_script(self) -> List[ReplayStep]:
        """The events of the current timeline as a replay script."""
        return self._history.to_script()

    # Replay

    async def replay(
        self, sequence: Sequence[Union[ReplayStep, Mapping[str, Any]]], delay: Optional[float] = None
    ) -> List[SendResult]:
        """
        Reset the machine and send a scripted sequence of events, waiting ``delay``
        seconds before each one. See ReplayDriver.run.
        """
        return await self._replay_driver.run(sequence, delay)

    def cancel_replay(self) -> bool:
        """Stop a running replay before its next event. Returns False if none was running."""
        return self._replay_driver.cancel()

    def _ensure_idle(self, operation: str) -> None:
        if self._busy:
            raise MachineBusyError(operation)

    # Snapshot

    def get_state(self) -> EngineSnapshot:
        """
        Build a read-only snapshot of the machine. If the current state id is not in
        the configuration a warning is logged and the snapshot degrades to no data
        and no available events.
        """
        with self._lock:
            node = self._current_node()
            if node is None and self._config is not None:
                self._logger.warning("State %s not found in config", self._current_state_id)
            return EngineSnapshot(
                id=self._current_state_id,
                data=node,
                context=self._context.get(),
                available_events=MappingProxyType(dict(node.on)) if node is not None else MappingProxyType({}),
                diagram_source=self._render(),
                history=tuple(self._history.entries()),
            )

    def _render(self) -> str:
        try:
            return self._renderer(self._config.states if self._config else None, self._current_state_id)
        except Exception:
            self._logger.exception("Diagram renderer failed")
            return ""


def _config_id(config: Any) -> Optional[str]:
    if isinstance(config, Configuration):
        return config.id
    if isinstance(config, Mapping):
        return config.get("id")
    return None


def _freeze_states(states: Mapping[str, StateNode]) -> Mapping[str, StateNode]:
    """Read-only copy of a states mapping built outside Configuration.from_mapping."""
    frozen = {}
    for state_id, node in states.items():
        if isinstance(node, StateNode) and not isinstance(node.on, MappingProxyType):
            node = replace(node, on=MappingProxyType(dict(node.on)))
        frozen[state_id] = node
    return MappingProxyType(frozen)
