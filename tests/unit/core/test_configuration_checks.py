# tests/unit/core/test_configuration_checks.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from statescope.core.configuration import Configuration
from statescope.core.validations import Validator, validate_configuration


def _config(raw):
    return Configuration.from_mapping(raw)


def test_valid_configuration_has_no_warnings(toggle_config) -> None:
    assert validate_configuration(_config(toggle_config)) == []


def test_missing_initial_state_is_reported() -> None:
    warnings = Validator().validate(_config({"states": {"a": {}}}))
    assert warnings == ["Configuration has no initialState"]


def test_unknown_initial_state_is_reported() -> None:
    warnings = validate_configuration(_config({"initialState": "ghost", "states": {"a": {}}}))
    assert warnings == ["Initial state 'ghost' is not defined in states"]


def test_unknown_transition_target_is_reported() -> None:
    raw = {"initialState": "a", "states": {"a": {"on": {"go": {"to": "nowhere"}}}}}
    warnings = validate_configuration(_config(raw))
    assert warnings == ["Transition 'go' from 'a' targets unknown state 'nowhere'"]


def test_unreachable_states_are_reported() -> None:
    raw = {
        "initialState": "a",
        "states": {
            "a": {"on": {"go": {"to": "b"}}},
            "b": {},
            "island": {"on": {"go": {"to": "a"}}},
        },
    }
    warnings = validate_configuration(_config(raw))
    assert warnings == ["States ['island'] are not reachable from initial state 'a'"]


def test_reachability_follows_cycles(checkout_config) -> None:
    assert validate_configuration(_config(checkout_config)) == []
