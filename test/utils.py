"""
Utilities behavioral tests (sentinel and helpers).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import pickle
import unittest
from types import MappingProxyType
from unittest import TestCase, IsolatedAsyncioTestCase

from herald.utils import Unset, UnsetType, coalesce, fold, mirror, rename, settle


class TestUnset(TestCase):
    """Behavioral tests for the Unset sentinel."""

    def testSingletonAndFalsey(self):
        self.assertIs(UnsetType(), Unset)
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testPickleKeepsIdentity(self):
        self.assertIs(pickle.loads(pickle.dumps(Unset)), Unset)

    def testNotSubclassable(self):
        with self.assertRaises(TypeError):
            type("Other", (UnsetType,), {})

    def testUnionWithTypes(self):
        self.assertIsInstance(Unset, str | Unset)
        self.assertIsInstance("x", str | Unset)


class TestHelpers(TestCase):
    """Behavioral tests for coalesce, rename, mirror and fold."""

    def testCoalesce(self):
        self.assertEqual(coalesce(Unset, "?"), "?")
        self.assertIsNone(coalesce(None, "?"))
        self.assertEqual(coalesce(0, 1), 0)
        self.assertIsNone(coalesce(Unset))

    def testRenameForms(self):
        def work():
            pass

        self.assertEqual(rename(work, "job").__name__, "job")

        @rename("task")
        def other():
            pass

        self.assertEqual(other.__qualname__, "task")

    def testRenameRejectsBadArguments(self):
        with self.assertRaises(TypeError):
            rename(42, "x")
        with self.assertRaises(TypeError):
            rename()

    def testMirrorFreezesContainers(self):
        class Holder:
            items = mirror("items")
            names = mirror("names")
            table = mirror("table")

            def __init__(self):
                self._items = [1, 2]
                self._names = {"a"}
                self._table = {"k": "v"}

        holder = Holder()
        self.assertEqual(holder.items, (1, 2))
        self.assertEqual(holder.names, frozenset({"a"}))
        self.assertIsInstance(holder.table, MappingProxyType)
        with self.assertRaises(AttributeError):
            holder.items = ()

    def testFold(self):
        self.assertEqual(fold("HeLp"), fold("help"))
        self.assertEqual(fold("STRASSE"), fold("straße"))
        with self.assertRaises(TypeError):
            fold(None)  # type: ignore[arg-type]


class TestSettle(IsolatedAsyncioTestCase):
    """Behavioral tests for settle()."""

    async def testPlainValue(self):
        self.assertEqual(await settle(3), 3)

    async def testAwaitable(self):
        async def value():
            return "done"

        self.assertEqual(await settle(value()), "done")


if __name__ == "__main__":
    unittest.main()
