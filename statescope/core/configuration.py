# statescope/core/configuration.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from statescope.core.errors import ConfigurationError

INITIAL_EVENT = "Initial State"


@dataclass(frozen=True)
class Transition:
    """
    A named edge out of a state. Taking it optionally runs ``action`` and always
    moves the machine to ``to``.
    """

    to: str
    label: Optional[str] = None
    action: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Any, path: str) -> "Transition":
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"{path} must be a mapping")
        target = raw.get("to")
        if not isinstance(target, str) or not target:
            raise ConfigurationError(f"{path}.to must be a non-empty string")
        label = raw.get("label")
        if label is not None and not isinstance(label, str):
            raise ConfigurationError(f"{path}.label must be a string")
        action = raw.get("action")
        if action is not None and not isinstance(action, str):
            raise ConfigurationError(f"{path}.action must be a string")
        return cls(to=target, label=label, action=action or None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"to": self.to}
        if self.label is not None:
            data["label"] = self.label
        if self.action is not None:
            data["action"] = self.action
        return data


@dataclass(frozen=True)
class StateNode:
    """A state and the transitions leaving it, keyed by event id."""

    label: Optional[str] = None
    on: Mapping[str, Transition] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_mapping(cls, raw: Any, path: str) -> "StateNode":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"{path} must be a mapping")
        label = raw.get("label")
        if label is not None and not isinstance(label, str):
            raise ConfigurationError(f"{path}.label must be a string")
        raw_on = raw.get("on")
        if raw_on is None:
            raw_on = {}
        if not isinstance(raw_on, Mapping):
            raise ConfigurationError(f"{path}.on must be a mapping")
        transitions = {}
        for event_id, raw_transition in raw_on.items():
            if not isinstance(event_id, str) or not event_id:
                raise ConfigurationError(f"{path}.on keys must be non-empty strings")
            transitions[event_id] = Transition.from_mapping(raw_transition, f"{path}.on.{event_id}")
        return cls(label=label, on=MappingProxyType(transitions))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"on": {event_id: t.to_dict() for event_id, t in self.on.items()}}
        if self.label is not None:
            data["label"] = self.label
        return data


@dataclass(frozen=True)
class Configuration:
    """
    A loaded machine definition. The states mapping is read-only and the default
    context is a private deep copy of whatever the caller supplied.
    """

    initial_state: Optional[str]
    states: Mapping[str, StateNode]
    context: Any = field(default_factory=dict)
    id: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Any) -> "Configuration":
        """
        Parse a JSON-like mapping into a Configuration.

        :param raw: Mapping with ``states`` and optionally ``id``, ``initialState`` and ``context``.
        :raises ConfigurationError: If the mapping is absent or malformed.
        """
        if raw is None:
            raise ConfigurationError("No configuration provided")
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Configuration must be a mapping")
        raw_states = raw.get("states")
        if not isinstance(raw_states, Mapping):
            raise ConfigurationError("Configuration must define a 'states' mapping")

        states = {}
        for state_id, raw_node in raw_states.items():
            if not isinstance(state_id, str) or not state_id:
                raise ConfigurationError("State ids must be non-empty strings")
            states[state_id] = StateNode.from_mapping(raw_node, f"states.{state_id}")

        initial_state = raw.get("initialState", raw.get("initial_state"))
        if initial_state is not None and not isinstance(initial_state, str):
            raise ConfigurationError("initialState must be a string")

        context = raw.get("context")
        try:
            context = copy.deepcopy(context) if context is not None else {}
        except Exception as e:
            raise ConfigurationError(f"Context cannot be copied: {e}")

        config_id = raw.get("id")
        return cls(
            initial_state=initial_state,
            states=MappingProxyType(states),
            context=context,
            id=None if config_id is None else str(config_id),
        )

    @classmethod
    def from_json(cls, text: str) -> "Configuration":
        """Parse a JSON document into a Configuration."""
        try:
            raw = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Configuration is not valid JSON: {e}")
        return cls.from_mapping(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "initialState": self.initial_state,
            "context": copy.deepcopy(self.context),
            "states": {state_id: node.to_dict() for state_id, node in self.states.items()},
        }
