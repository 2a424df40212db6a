# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import itertools
from typing import Any, Dict, List

import pytest

from statescope.core.state_machine import EngineSnapshot, StateMachine


def pytest_configure(config):
    """Register custom marks."""
    config.addinivalue_line("markers", "stress: mark test as a stress test")
    config.addinivalue_line("markers", "property: mark test as a property-based test")


def make_toggle_config() -> Dict[str, Any]:
    """Two-state light switch; switching on counts how often it was turned on."""
    return {
        "id": "toggle",
        "initialState": "off",
        "context": {"count": 0},
        "states": {
            "off": {
                "label": "Off",
                "on": {"toggle": {"to": "on", "action": "context.count = (context.count||0)+1"}},
            },
            "on": {"on": {"toggle": {"to": "off"}}},
        },
    }


def make_checkout_config() -> Dict[str, Any]:
    """A small shopping flow with input-driven actions and a failing edge."""
    return {
        "id": "checkout",
        "initialState": "browsing",
        "context": {"cart": [], "total": 0},
        "states": {
            "browsing": {
                "on": {
                    "add": {
                        "to": "browsing",
                        "label": "Add item",
                        "action": "context.cart.append(input.sku)\ncontext.total += input.price",
                    },
                    "checkout": {"to": "paying"},
                    "explode": {"to": "paying", "action": "context.total = context.total / 0"},
                }
            },
            "paying": {
                "label": "Paying",
                "on": {
                    "pay": {"to": "done", "action": "context.paid = input.amount >= context.total"},
                    "back": {"to": "browsing"},
                },
            },
            "done": {"label": "Done"},
        },
    }


class Recorder:
    """Listener that keeps every snapshot it receives."""

    def __init__(self) -> None:
        self.snapshots: List[EngineSnapshot] = []

    def __call__(self, snapshot: EngineSnapshot) -> None:
        self.snapshots.append(snapshot)

    @property
    def states(self) -> List[str]:
        return [s.id for s in self.snapshots]


@pytest.fixture
def toggle_config() -> Dict[str, Any]:
    return make_toggle_config()


@pytest.fixture
def checkout_config() -> Dict[str, Any]:
    return make_checkout_config()


@pytest.fixture
def clock():
    """A deterministic clock ticking one second per history entry."""
    counter = itertools.count()
    return lambda: float(next(counter))


@pytest.fixture
def machine(clock) -> StateMachine:
    return StateMachine(clock=clock)


@pytest.fixture
def toggle_machine(machine, toggle_config) -> StateMachine:
    machine.load(toggle_config)
    return machine


@pytest.fixture
def checkout_machine(machine, checkout_config) -> StateMachine:
    machine.load(checkout_config)
    return machine


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
