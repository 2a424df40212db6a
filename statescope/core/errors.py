# statescope/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import Optional


class StateScopeError(Exception):
    """
    Base exception class for errors raised by the state machine interpreter.
    """


class ConfigurationError(StateScopeError):
    """
    Raised when a machine configuration or engine setting is missing or malformed.
    """


class ActionError(StateScopeError):
    """
    Raised when a transition action cannot be compiled or fails while running.
    The message is meant to be shown to whoever authored the action.
    """

    def __init__(self, message: str, event_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.event_id = event_id


class MachineBusyError(StateScopeError):
    """
    Raised when a state-affecting operation is attempted while a replay owns the machine.
    """

    def __init__(self, operation: str) -> None:
        super().__init__(f"Cannot {operation} while a replay is in progress")
        self.operation = operation


class ReplayInProgressError(MachineBusyError):
    """
    Raised when a replay is started while another replay is still running.
    """

    def __init__(self) -> None:
        super().__init__("replay")
