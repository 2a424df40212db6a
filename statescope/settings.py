# statescope/settings.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from statescope.core.errors import ConfigurationError


@dataclass(frozen=True)
class EngineSettings:
    """
    Tunable limits and defaults for a StateMachine instance.

    :param replay_delay: Seconds to wait before each replayed event.
    :param action_step_limit: Maximum number of evaluation steps a single action may take.
    :param max_exponent: Largest exponent accepted by the ``**`` operator in actions.
    :param validate_on_load: Whether to log structural warnings when a configuration loads.
    """

    replay_delay: float = 0.5
    action_step_limit: int = 10_000
    max_exponent: int = 1_000
    validate_on_load: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.replay_delay, bool) or not isinstance(self.replay_delay, (int, float)):
            raise ConfigurationError("replay_delay must be a number")
        if self.replay_delay < 0:
            raise ConfigurationError("replay_delay must be non-negative")
        for name in ("action_step_limit", "max_exponent"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer")
        if not isinstance(self.validate_on_load, bool):
            raise ConfigurationError("validate_on_load must be a boolean")

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "EngineSettings":
        """
        Build settings from a plain mapping. Unknown keys are ignored.

        :param raw: Mapping of setting names to values, or None for defaults.
        :raises ConfigurationError: If a known setting has an invalid value.
        """
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Engine settings must be a mapping")
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in raw.items() if key in known})
