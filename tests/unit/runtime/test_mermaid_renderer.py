# tests/unit/runtime/test_mermaid_renderer.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from conftest import make_checkout_config, make_toggle_config

from statescope.core.configuration import Configuration
from statescope.runtime.diagram import CURRENT_CLASS, render_mermaid


def _states(raw):
    return Configuration.from_mapping(raw).states


def test_renders_toggle_machine():
    expected = "\n".join(
        [
            "stateDiagram-v2",
            "    direction LR",
            "",
            f"    {CURRENT_CLASS}",
            "",
            '    state "Off" as off',
            "    class off current",
            '    state "on" as on',
            "",
            "    off --> on: toggle",
            "    on --> off: toggle",
            "",
        ]
    )
    assert render_mermaid(_states(make_toggle_config()), "off") == expected


def test_edge_labels_prefer_transition_label():
    source = render_mermaid(_states(make_checkout_config()), "paying")
    assert "    browsing --> browsing: Add item" in source
    assert "    browsing --> paying: checkout" in source
    assert "    browsing --> paying: explode" in source
    assert "    class paying current" in source
    assert "    class browsing current" not in source


def test_one_line_per_state():
    source = render_mermaid(_states(make_checkout_config()), None)
    assert source.count("    state ") == 3
    assert "class" not in source.replace("classDef", "")


def test_nothing_loaded():
    assert render_mermaid(None, None) == ""
