# tests/unit/core/test_context_store.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import unittest

from statescope.core.context import ContextStore, clone


class TestContextStore(unittest.TestCase):
    """Test cases for ContextStore.

    Tests verify:
    1. Default value
    2. Copy on read
    3. Copy on write
    4. Equality by value
    """

    def test_default_is_empty_mapping(self):
        self.assertEqual(ContextStore().get(), {})

    def test_initial_value_is_copied(self):
        value = {"nested": {"items": [1, 2]}}
        store = ContextStore(value)

        value["nested"]["items"].append(3)

        self.assertEqual(store.get(), {"nested": {"items": [1, 2]}})

    def test_get_returns_independent_copy(self):
        store = ContextStore({"items": [1]})

        first = store.get()
        first["items"].append(2)

        self.assertEqual(store.get(), {"items": [1]})
        self.assertIsNot(store.get(), store.get())

    def test_replace_copies_value(self):
        store = ContextStore()
        value = {"count": 1}

        store.replace(value)
        value["count"] = 2

        self.assertEqual(store.get(), {"count": 1})

    def test_scalar_and_list_contexts(self):
        store = ContextStore()
        store.replace([1, 2, 3])
        self.assertEqual(store.get(), [1, 2, 3])
        store.replace(7)
        self.assertEqual(store.get(), 7)

    def test_equality(self):
        self.assertEqual(ContextStore({"a": 1}), ContextStore({"a": 1}))
        self.assertNotEqual(ContextStore({"a": 1}), ContextStore({"a": 2}))


class TestClone(unittest.TestCase):
    def test_clone_is_deep(self):
        value = {"a": [{"b": 1}]}
        copied = clone(value)
        copied["a"][0]["b"] = 2
        self.assertEqual(value, {"a": [{"b": 1}]})


if __name__ == "__main__":
    unittest.main()
