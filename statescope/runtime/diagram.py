# statescope/runtime/diagram.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import Callable, Mapping, Optional

from statescope.core.configuration import StateNode

Renderer = Callable[[Optional[Mapping[str, StateNode]], Optional[str]], str]

CURRENT_CLASS = "classDef current fill:#6366f1,stroke:#fff,stroke-width:2px,color:#fff"


def render_mermaid(states: Optional[Mapping[str, StateNode]], current_state_id: Optional[str]) -> str:
    """
    Describe a machine as a Mermaid ``stateDiagram-v2``.

    Nodes are labelled with the state's label, falling back to its id, and the
    current state is given the ``current`` class. There is one edge per
    ``(state, event)`` pair, labelled with the transition's label or the event id.

    :param states: The configuration's states, or None when nothing is loaded.
    :param current_state_id: The id to highlight.
    :return: Mermaid source, or an empty string when there is nothing to draw.
    """
    if states is None:
        return ""

    lines = ["stateDiagram-v2", "    direction LR", "", f"    {CURRENT_CLASS}", ""]

    for state_id, node in states.items():
        label = node.label or state_id
        lines.append(f'    state "{label}" as {state_id}')
        if state_id == current_state_id:
            lines.append(f"    class {state_id} current")

    lines.append("")

    for source_id, node in states.items():
        for event_id, transition in node.on.items():
            label = transition.label or event_id
            lines.append(f"    {source_id} --> {transition.to}: {label}")

    return "\n".join(lines) + "\n"
