"""statescope: interpreter for declarative finite state machines

Loads a JSON-like machine definition, drives a single live instance of it and
exposes its state and context to observers, with history, undo and timed replay
for interactive inspection.

Responsibilities:
    - Configuration loading and structural checks
    - Event-driven transitions with sandboxed actions
    - History recording and undo
    - Scripted replay
    - Observer notification

Cross-cutting Concerns:
    Error Handling:
        - Failures are logged and reported through return values
        - No failure leaves the machine half-updated

    Logging:
        - Standard library logging, one logger per module
        - The engine accepts an injected logger

    Security:
        - Action code runs in a restricted interpreter, never through exec/eval
        - Context and input are deep-copied at every boundary
"""

from statescope.core.actions import ActionRegistry, ActionSandbox, compile_action
from statescope.core.configuration import INITIAL_EVENT, Configuration, StateNode, Transition
from statescope.core.errors import (
    ActionError,
    ConfigurationError,
    MachineBusyError,
    ReplayInProgressError,
    StateScopeError,
)
from statescope.core.history import HistoryEntry, HistoryLog, ReplayStep
from statescope.core.results import SendOutcome, SendResult
from statescope.core.state_machine import EngineSnapshot, StateMachine
from statescope.runtime.diagram import render_mermaid
from statescope.settings import EngineSettings

__version__ = "0.1.0"

__all__ = [
    "ActionError",
    "ActionRegistry",
    "ActionSandbox",
    "Configuration",
    "ConfigurationError",
    "EngineSettings",
    "EngineSnapshot",
    "HistoryEntry",
    "HistoryLog",
    "INITIAL_EVENT",
    "MachineBusyError",
    "ReplayInProgressError",
    "ReplayStep",
    "SendOutcome",
    "SendResult",
    "StateMachine",
    "StateNode",
    "StateScopeError",
    "Transition",
    "compile_action",
    "render_mermaid",
]
