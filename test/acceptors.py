"""
Acceptors module behavioral tests (conversion, rejection, suggestions).

Scope
- Validate well-known acceptors (integer, float, numeric, boolean, array, string).
- Validate pattern, enum and range acceptors, including "did you mean" suggestions.
- Validate create(spec) resolution and its rejection of illegal specs.

Conventions
- Test method names follow CamelCase per project convention.
- Rejection is always observed as ValueError from accept().
"""

import enum
import re
import unittest
from unittest import TestCase

from armada import ToolDefinitionError, acceptors


class Color(enum.Enum):
    RED = "r"
    GREEN = "g"


class TestWellKnownAcceptors(TestCase):

    def testIntegerConvertsSignedDigits(self):
        self.assertEqual(acceptors.INTEGER.accept("-42"), -42)
        self.assertEqual(acceptors.INTEGER.accept("1_000"), 1000)

    def testIntegerRejectsFloats(self):
        with self.assertRaises(ValueError):
            acceptors.INTEGER.accept("4.2")

    def testFloatAndNumeric(self):
        self.assertEqual(acceptors.FLOAT.accept("2.5"), 2.5)
        self.assertEqual(acceptors.NUMERIC.accept("3"), 3)
        self.assertIsInstance(acceptors.NUMERIC.accept("3"), int)
        self.assertEqual(acceptors.NUMERIC.accept("3.5"), 3.5)

    def testBooleanAcceptsPrefixes(self):
        self.assertIs(acceptors.BOOLEAN.accept("y"), True)
        self.assertIs(acceptors.BOOLEAN.accept("FALSE"), False)
        self.assertIs(acceptors.BOOLEAN.accept("nil"), False)

    def testBooleanTreatsOmittedValueAsTrue(self):
        self.assertIs(acceptors.BOOLEAN.accept(None), True)

    def testBooleanRejectsNonsense(self):
        with self.assertRaises(ValueError):
            acceptors.BOOLEAN.accept("maybe")

    def testArraySplitsOnCommas(self):
        self.assertEqual(acceptors.ARRAY.accept("a,b,c"), ["a", "b", "c"])

    def testStringRejectsEmpty(self):
        with self.assertRaises(ValueError):
            acceptors.STRING.accept("")

    def testOmittedValueIsNoneForPlainAcceptors(self):
        self.assertIsNone(acceptors.INTEGER.accept(None))
        self.assertIsNone(acceptors.STRING.accept(None))


class TestCustomAcceptors(TestCase):

    def testPatternWithConverter(self):
        acceptor = acceptors.PatternAcceptor(r"\d+x\d+", lambda raw: tuple(map(int, raw.split("x"))))
        self.assertEqual(acceptor.accept("3x4"), (3, 4))
        with self.assertRaises(ValueError):
            acceptor.accept("3x")

    def testEnumReturnsOriginalValue(self):
        acceptor = acceptors.EnumAcceptor([1, 2, 3])
        self.assertEqual(acceptor.accept("2"), 2)

    def testEnumMatchesMemberNames(self):
        acceptor = acceptors.EnumAcceptor(Color)
        self.assertIs(acceptor.accept("GREEN"), Color.GREEN)

    def testEnumSuggestsCloseValues(self):
        acceptor = acceptors.EnumAcceptor(["debug", "release"])
        with self.assertRaises(ValueError):
            acceptor.accept("relase")
        self.assertEqual(acceptor.suggestions("relase"), ("release",))

    def testRangeOfIntegers(self):
        acceptor = acceptors.RangeAcceptor(range(1, 10))
        self.assertEqual(acceptor.accept("9"), 9)
        with self.assertRaises(ValueError):
            acceptor.accept("10")

    def testRangeOfFloats(self):
        acceptor = acceptors.RangeAcceptor((0.0, 1.0))
        self.assertEqual(acceptor.accept("0.5"), 0.5)
        with self.assertRaises(ValueError):
            acceptor.accept("1.5")

    def testSimpleAcceptorTurnsTypeErrorIntoValueError(self):
        acceptor = acceptors.SimpleAcceptor(lambda raw: int(raw) * 2)
        self.assertEqual(acceptor.accept("21"), 42)
        with self.assertRaises(ValueError):
            acceptor.accept("x")


class TestCreate(TestCase):

    def testUnsetGivesPassthrough(self):
        self.assertIs(acceptors.create(), acceptors.DEFAULT)
        self.assertEqual(acceptors.DEFAULT.accept("--anything"), "--anything")

    def testTypesAndNamesGiveWellKnownAcceptors(self):
        self.assertIs(acceptors.create(int), acceptors.INTEGER)
        self.assertIs(acceptors.create("float"), acceptors.FLOAT)
        self.assertIs(acceptors.create(bool), acceptors.BOOLEAN)

    def testCollectionsAndRanges(self):
        self.assertIsInstance(acceptors.create(["a", "b"]), acceptors.EnumAcceptor)
        self.assertIsInstance(acceptors.create(Color), acceptors.EnumAcceptor)
        self.assertIsInstance(acceptors.create(range(3)), acceptors.RangeAcceptor)
        self.assertIsInstance(acceptors.create(re.compile("a+")), acceptors.PatternAcceptor)

    def testCallableGivesSimpleAcceptor(self):
        acceptor = acceptors.create(str.upper)
        self.assertIsInstance(acceptor, acceptors.SimpleAcceptor)
        self.assertEqual(acceptor.accept("abc"), "ABC")

    def testUnknownNameRaises(self):
        with self.assertRaises(ToolDefinitionError):
            acceptors.create("no-such-acceptor")

    def testIllegalSpecRaises(self):
        with self.assertRaises(ToolDefinitionError):
            acceptors.create(42)


if __name__ == "__main__":
    unittest.main()
