# tests/unit/core/test_configuration_model.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import json

import pytest

from statescope.core.configuration import Configuration, StateNode, Transition
from statescope.core.errors import ConfigurationError


def test_from_mapping_builds_states(toggle_config) -> None:
    """A well-formed mapping becomes nested StateNode and Transition objects."""
    config = Configuration.from_mapping(toggle_config)

    assert config.id == "toggle"
    assert config.initial_state == "off"
    assert set(config.states) == {"off", "on"}
    assert config.states["off"].label == "Off"
    assert config.states["on"].label is None
    assert config.states["off"].on["toggle"] == Transition(
        to="on", action="context.count = (context.count||0)+1"
    )


def test_from_mapping_copies_context(toggle_config) -> None:
    """Mutating the caller's context after parsing does not leak into the configuration."""
    config = Configuration.from_mapping(toggle_config)
    toggle_config["context"]["count"] = 42

    assert config.context == {"count": 0}


def test_states_are_read_only(toggle_config) -> None:
    config = Configuration.from_mapping(toggle_config)

    with pytest.raises(TypeError):
        config.states["new"] = StateNode()
    with pytest.raises(TypeError):
        config.states["off"].on["other"] = Transition(to="on")


def test_missing_context_defaults_to_empty_mapping() -> None:
    config = Configuration.from_mapping({"initialState": "a", "states": {"a": {}}})
    assert config.context == {}


def test_state_without_on_has_no_transitions() -> None:
    config = Configuration.from_mapping({"initialState": "a", "states": {"a": None, "b": {"label": "B"}}})

    assert dict(config.states["a"].on) == {}
    assert dict(config.states["b"].on) == {}


def test_empty_states_mapping_is_accepted() -> None:
    config = Configuration.from_mapping({"initialState": "x", "states": {}})
    assert dict(config.states) == {}
    assert config.initial_state == "x"


def test_snake_case_initial_state_is_accepted() -> None:
    config = Configuration.from_mapping({"initial_state": "a", "states": {"a": {}}})
    assert config.initial_state == "a"


@pytest.mark.parametrize(
    "raw,message",
    [
        (None, "No configuration provided"),
        ([], "must be a mapping"),
        ({"id": "x"}, "'states'"),
        ({"states": ["a"]}, "'states'"),
        ({"states": {"a": "nope"}}, "states.a must be a mapping"),
        ({"states": {"a": {"on": []}}}, "states.a.on must be a mapping"),
        ({"states": {"a": {"on": {"go": "b"}}}}, "states.a.on.go must be a mapping"),
        ({"states": {"a": {"on": {"go": {}}}}}, "states.a.on.go.to"),
        ({"states": {"a": {"on": {"go": {"to": "a", "action": 5}}}}}, "action must be a string"),
        ({"states": {"a": {"label": 3}}}, "label must be a string"),
        ({"initialState": 1, "states": {"a": {}}}, "initialState must be a string"),
    ],
)
def test_malformed_configurations_are_rejected(raw, message) -> None:
    with pytest.raises(ConfigurationError, match=message):
        Configuration.from_mapping(raw)


def test_from_json_round_trips_to_dict(toggle_config) -> None:
    config = Configuration.from_json(json.dumps(toggle_config))

    data = config.to_dict()
    assert data["initialState"] == "off"
    assert data["states"]["off"]["on"]["toggle"]["to"] == "on"
    assert data["states"]["off"]["label"] == "Off"
    assert "label" not in data["states"]["on"]


def test_from_json_rejects_invalid_documents() -> None:
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        Configuration.from_json("{states:")


def test_empty_action_is_treated_as_absent() -> None:
    config = Configuration.from_mapping({"states": {"a": {"on": {"go": {"to": "a", "action": ""}}}}})
    assert config.states["a"].on["go"].action is None
