# tests/unit/core/test_history_log.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import unittest

from statescope.core.configuration import INITIAL_EVENT
from statescope.core.history import HistoryEntry, HistoryLog, ReplayStep


class TestHistoryLog(unittest.TestCase):
    """Test cases for HistoryLog.

    Tests verify:
    1. Recording and ordering
    2. Snapshot isolation
    3. Pop and clear
    4. Conversion to replay scripts
    """

    def setUp(self):
        self.log = HistoryLog()

    def test_initial_state(self):
        self.assertEqual(len(self.log), 0)
        self.assertIsNone(self.log.last)
        self.assertEqual(self.log.entries(), [])

    def test_record_appends_in_order(self):
        self.log.record(1.0, "off", INITIAL_EVENT, {"count": 0})
        self.log.record(2.0, "on", "toggle", {"count": 1}, {"by": "user"})

        entries = self.log.entries()
        self.assertEqual([e.state for e in entries], ["off", "on"])
        self.assertEqual(entries[1].event, "toggle")
        self.assertEqual(entries[1].input, {"by": "user"})
        self.assertEqual(entries[0].input, {})
        self.assertTrue(entries[0].is_initial)
        self.assertFalse(entries[1].is_initial)

    def test_recorded_context_is_a_snapshot(self):
        context = {"items": [1]}
        self.log.record(1.0, "a", INITIAL_EVENT, context)

        context["items"].append(2)

        self.assertEqual(self.log.last.context, {"items": [1]})

    def test_entries_are_copies(self):
        self.log.record(1.0, "a", INITIAL_EVENT, {"items": [1]})

        self.log.entries()[0].context["items"].append(2)
        self.log.last.context["items"].append(3)

        self.assertEqual(self.log.last.context, {"items": [1]})

    def test_pop_returns_most_recent(self):
        self.log.record(1.0, "a", INITIAL_EVENT, {})
        self.log.record(2.0, "b", "go", {})

        popped = self.log.pop()

        self.assertEqual(popped.state, "b")
        self.assertEqual(len(self.log), 1)
        self.assertEqual(self.log.last.state, "a")

    def test_pop_empty_raises(self):
        with self.assertRaises(IndexError):
            self.log.pop()

    def test_clear(self):
        self.log.record(1.0, "a", INITIAL_EVENT, {})
        self.log.clear()
        self.assertEqual(len(self.log), 0)

    def test_to_script_skips_initial_entries(self):
        self.log.record(1.0, "a", INITIAL_EVENT, {})
        self.log.record(2.0, "b", "go", {}, {"speed": 2})
        self.log.record(3.0, "a", "back", {})

        self.assertEqual(
            self.log.to_script(),
            [ReplayStep("go", {"speed": 2}), ReplayStep("back", {})],
        )

    def test_entry_to_dict(self):
        entry = HistoryEntry(timestamp=5.0, state="a", event="go", context={"x": 1}, input={"y": 2})
        self.assertEqual(
            entry.to_dict(),
            {"timestamp": 5.0, "state": "a", "event": "go", "context": {"x": 1}, "input": {"y": 2}},
        )


class TestReplayStep(unittest.TestCase):
    def test_coerce_mapping(self):
        step = ReplayStep.coerce({"event": "go", "input": {"n": 1}})
        self.assertEqual(step, ReplayStep("go", {"n": 1}))

    def test_coerce_mapping_without_input(self):
        self.assertEqual(ReplayStep.coerce({"event": "go"}), ReplayStep("go", {}))

    def test_coerce_passes_steps_through(self):
        step = ReplayStep("go")
        self.assertIs(ReplayStep.coerce(step), step)

    def test_coerce_rejects_items_without_event(self):
        for item in ({"input": {}}, {"event": 3}, "go", None):
            with self.assertRaises(ValueError):
                ReplayStep.coerce(item)

    def test_to_dict(self):
        self.assertEqual(ReplayStep("go", {"n": 1}).to_dict(), {"event": "go", "input": {"n": 1}})


if __name__ == "__main__":
    unittest.main()
