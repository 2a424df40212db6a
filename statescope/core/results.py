# statescope/core/results.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional


class SendOutcome(Enum):
    """The three possible results of sending an event."""

    APPLIED = auto()  # Transition committed
    NO_TRANSITION = auto()  # Event not defined in the current state
    ACTION_FAILED = auto()  # Action raised; nothing committed


@dataclass(frozen=True)
class SendResult:
    """
    Tagged result of StateMachine.send. Callers should branch on ``outcome``;
    truthiness is kept for convenience and is True only for APPLIED.
    """

    outcome: SendOutcome
    event: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def applied(cls, event: Optional[str] = None) -> "SendResult":
        return cls(SendOutcome.APPLIED, event)

    @classmethod
    def no_transition(cls, event: Optional[str] = None) -> "SendResult":
        return cls(SendOutcome.NO_TRANSITION, event)

    @classmethod
    def failed(cls, message: str, event: Optional[str] = None) -> "SendResult":
        return cls(SendOutcome.ACTION_FAILED, event, message)

    @property
    def ok(self) -> bool:
        return self.outcome is SendOutcome.APPLIED

    def __bool__(self) -> bool:
        return self.ok

    def to_json(self) -> Any:
        """The wire form used by JavaScript observers: ``true``, ``false`` or ``{"error": msg}``."""
        if self.outcome is SendOutcome.ACTION_FAILED:
            result: Dict[str, str] = {"error": self.error or ""}
            return result
        return self.ok
