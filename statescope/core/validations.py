# statescope/core/validations.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import List

from statescope.core.configuration import Configuration


class Validator:
    """
    Checks a loaded configuration for structural problems that do not stop it from
    loading: a missing initial state, transitions into unknown states and states
    that can never be reached. Findings are returned as messages, never raised.
    """

    def validate(self, config: Configuration) -> List[str]:
        """
        Collect warnings for the given configuration.

        :param config: The configuration to inspect.
        :return: A list of human-readable warnings, empty if none were found.
        """
        warnings = []
        warnings.extend(_DefaultValidationRules.check_initial_state(config))
        warnings.extend(_DefaultValidationRules.check_targets(config))
        warnings.extend(_DefaultValidationRules.check_reachability(config))
        return warnings


class _DefaultValidationRules:
    """
    Built-in rules applied by the Validator.
    """

    @staticmethod
    def check_initial_state(config: Configuration) -> List[str]:
        if config.initial_state is None:
            return ["Configuration has no initialState"]
        if config.initial_state not in config.states:
            return [f"Initial state '{config.initial_state}' is not defined in states"]
        return []

    @staticmethod
    def check_targets(config: Configuration) -> List[str]:
        warnings = []
        for state_id, node in config.states.items():
            for event_id, transition in node.on.items():
                if transition.to not in config.states:
                    warnings.append(
                        f"Transition '{event_id}' from '{state_id}' targets unknown state '{transition.to}'"
                    )
        return warnings

    @staticmethod
    def check_reachability(config: Configuration) -> List[str]:
        """
        Walk transitions outward from the initial state and report every state that
        was never visited. Skipped when the initial state itself is unknown.
        """
        if config.initial_state not in config.states:
            return []

        reachable = {config.initial_state}
        frontier = [config.initial_state]
        while frontier:
            node = config.states[frontier.pop()]
            for transition in node.on.values():
                if transition.to in config.states and transition.to not in reachable:
                    reachable.add(transition.to)
                    frontier.append(transition.to)

        unreachable = [state_id for state_id in config.states if state_id not in reachable]
        if unreachable:
            return [f"States {unreachable} are not reachable from initial state '{config.initial_state}'"]
        return []


def validate_configuration(config: Configuration) -> List[str]:
    """Run the default Validator over a configuration."""
    return Validator().validate(config)
