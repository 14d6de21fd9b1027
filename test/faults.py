"""
Faults module behavioral tests (codes, exceptions, trigger, rendering).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import contextlib
import copy
import io
import unittest
from unittest import TestCase

from helmsman import (
    Commander,
    CommandException,
    FaultCode,
    MissingRequiredFlagError,
    NoSuchCommandError,
    getdoc,
    trigger,
)


class TestFaultCode(TestCase):
    """Behavioral tests for FaultCode."""

    def testStableValues(self):
        self.assertEqual(FaultCode.UNKNOWN_COMMAND, 11101)
        self.assertEqual(FaultCode.UNKNOWN_SUBCOMMAND, 11102)
        self.assertEqual(FaultCode.MISSING_COMMAND, 11103)
        self.assertEqual(FaultCode.MISSING_REQUIRED_FLAG, 11126)

    def testNormalizeWithoutMapping(self):
        self.assertEqual(FaultCode.MISSING_COMMAND.normalize(), "11103")

    def testGetdoc(self):
        self.assertIsNone(getdoc(FaultCode.UNKNOWN_COMMAND))
        with self.assertRaises(TypeError):
            getdoc(11101)


class TestCommandException(TestCase):
    """Behavioral tests for exceptions and trigger()."""

    def testMessageAndOptions(self):
        fault = NoSuchCommandError("unknown command 'x'", code=FaultCode.UNKNOWN_COMMAND)
        self.assertEqual(str(fault), "unknown command 'x'")
        self.assertEqual(fault.options["code"], FaultCode.UNKNOWN_COMMAND)
        self.assertEqual(str(CommandException()), "")

    def testReplaceMergesOptions(self):
        fault = NoSuchCommandError("boom", code=FaultCode.UNKNOWN_COMMAND, hint="old")
        replaced = copy.replace(fault, hint="new", shell=False)
        self.assertIsInstance(replaced, NoSuchCommandError)
        self.assertEqual(replaced.message, "boom")
        self.assertEqual(replaced.options["hint"], "new")
        self.assertEqual(replaced.options["code"], FaultCode.UNKNOWN_COMMAND)
        self.assertEqual(fault.options["hint"], "old")

    def testMissingNames(self):
        fault = MissingRequiredFlagError("cmd requires 'a'", missing=["a", "b"])
        self.assertEqual(fault.missing, ("a", "b"))
        self.assertEqual(MissingRequiredFlagError().missing, ())

    def testTriggerRaisesOutsideShell(self):
        with self.assertRaises(NoSuchCommandError) as cm:
            trigger(NoSuchCommandError("boom"), shell=False, title="unknown command")
        self.assertEqual(cm.exception.options["title"], "unknown command")

    def testTriggerRendersAndExitsInShell(self):
        stderr = io.StringIO()
        fault = NoSuchCommandError(
            "unknown command 'x'",
            title="unknown command",
            code=FaultCode.UNKNOWN_COMMAND,
            hint="run 'tool -h'",
        )
        with contextlib.redirect_stderr(stderr), self.assertRaises(SystemExit) as cm:
            trigger(fault, tool=Commander("tool"), shell=True)
        self.assertEqual(cm.exception.code, 1)
        output = stderr.getvalue()
        self.assertIn("tool", output)
        self.assertIn("11101", output)
        self.assertIn("Unknown Command", output)
        self.assertIn("unknown command 'x'", output)
        self.assertIn("run 'tool -h'", output)

    def testTriggerRejectsPlainObjects(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("x"))


if __name__ == "__main__":
    unittest.main()
