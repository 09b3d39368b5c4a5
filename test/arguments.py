"""
Schema behavioral tests (flag syntaxes, flags, positional arguments, flag groups).

Scope
- Validate FlagSyntax parsing of the conventional notations and rejection of illegal ones.
- Validate Flag canonicalization: default syntaxes, implied values, conflicting types.
- Validate ToolNode schema rules: collisions, reserved flags, positional ordering, groups.
- Validate FlagGroup validation messages for every constraint kind.
- Validate the definition lock set by finish().

Conventions
- Test method names follow CamelCase per project convention.
- Nodes are built directly through ToolNode; no loader is involved.
"""

import unittest
from unittest import TestCase

from armada import (
    PUSH,
    Flag,
    FlagGroup,
    FlagSyntax,
    ToolDefinitionError,
    ToolNode,
    acceptors,
)


class TestFlagSyntax(TestCase):

    def testShortBoolean(self):
        syntax = FlagSyntax("-v")
        self.assertEqual(syntax.positive_flag, "-v")
        self.assertEqual(syntax.style, "short")
        self.assertIsNone(syntax.flag_type)

    def testShortRequiredValueForms(self):
        attached, separate = FlagSyntax("-oFILE"), FlagSyntax("-o FILE")
        self.assertEqual((attached.flag_type, attached.value_type, attached.value_delim), ("value", "required", ""))
        self.assertEqual((separate.flag_type, separate.value_type, separate.value_delim), ("value", "required", " "))
        self.assertEqual(attached.value_label, "FILE")

    def testShortOptionalValue(self):
        syntax = FlagSyntax("-l[LEVEL]")
        self.assertEqual((syntax.flag_type, syntax.value_type), ("value", "optional"))

    def testLongNegatable(self):
        syntax = FlagSyntax("--[no-]color")
        self.assertEqual(syntax.flags, ("--color", "--no-color"))
        self.assertEqual(syntax.flag_type, "boolean")

    def testLongValueForms(self):
        self.assertEqual(FlagSyntax("--name=NAME").value_delim, "=")
        self.assertEqual(FlagSyntax("--name NAME").value_delim, " ")
        optional = FlagSyntax("--name[=NAME]")
        self.assertEqual((optional.value_type, optional.value_delim), ("optional", "="))

    def testIllegalSyntaxRaises(self):
        for text in ("v", "---v", "--", "-", "--=x"):
            with self.subTest(text=text), self.assertRaises(ToolDefinitionError):
                FlagSyntax(text)


class TestFlag(TestCase):

    def testDefaultSyntaxFromKey(self):
        self.assertEqual(Flag("v").effective_flags, ("-v",))
        self.assertEqual(Flag("dry_run").effective_flags, ("--dry-run",))

    def testDefaultSyntaxTakesValueWhenAcceptorImpliesOne(self):
        flag = Flag("jobs", accept=int)
        self.assertEqual(flag.flag_type, "value")
        self.assertEqual(flag.canonical_syntax_strings, ("--jobs VALUE",))

    def testUntypedSyntaxWithDefaultTakesOptionalValue(self):
        flag = Flag("level", "--level", default="info")
        self.assertEqual((flag.flag_type, flag.value_type), ("value", "optional"))

    def testPlainSyntaxIsBoolean(self):
        flag = Flag("force", "-f", "--force")
        self.assertEqual(flag.flag_type, "boolean")

    def testShortSyntaxAdoptsLongValue(self):
        flag = Flag("output", "-o", "--output=PATH")
        self.assertEqual(flag.canonical_syntax_strings, ("-oPATH", "--output=PATH"))
        self.assertEqual(flag.display_name, "--output=PATH")

    def testMixedBooleanAndValueRaises(self):
        with self.assertRaises(ToolDefinitionError):
            Flag("x", "--[no-]x", "-x VALUE")

    def testMixedRequiredAndOptionalRaises(self):
        with self.assertRaises(ToolDefinitionError):
            Flag("x", "-x VALUE", "--x[=VALUE]")

    def testHandlerNames(self):
        self.assertIs(Flag("item", "--item=ITEM", handler="push").handler, PUSH)
        with self.assertRaises(ToolDefinitionError):
            Flag("item", "--item=ITEM", handler="append")

    def testResolvePrefersExactMatch(self):
        flag = Flag("verbose", "--verbose", "--[no-]color")
        self.assertTrue(flag.resolve("--verb").found_unique)
        resolution = flag.resolve("--no-color")
        self.assertTrue(resolution.found_unique)
        self.assertTrue(resolution.unique_flag_negative)

    def testKeyMustBeNonEmpty(self):
        with self.assertRaises(TypeError):
            Flag("")


class TestToolNodeSchema(TestCase):

    def testCollidingFlagRaises(self):
        node = ToolNode(("build",))
        node.add_flag("verbose", "-v")
        with self.assertRaises(ToolDefinitionError):
            node.add_flag("version", "-v")

    def testCollisionsCanBeDropped(self):
        node = ToolNode(("build",))
        node.add_flag("verbose", "-v", "--verbose")
        flag = node.add_flag("version", "-v", "--version", report_collisions=False)
        self.assertEqual(flag.effective_flags, ("--version",))
        skipped = node.add_flag("again", "-v", report_collisions=False)
        self.assertFalse(skipped.active)
        self.assertIsNone(node.flag("again"))
        self.assertIn("again", node.default_data)

    def testDisabledFlagCannotBeDefined(self):
        node = ToolNode(("build",))
        node.disable_flag("--force")
        with self.assertRaises(ToolDefinitionError):
            node.add_flag("force", "--force")

    def testNamedAcceptorLookup(self):
        parent = ToolNode(("ns",))
        parent.add_acceptor("port", range(1, 65536))
        child = ToolNode(("ns", "serve"))
        child.parent = parent
        flag = child.add_flag("port", "--port=PORT", accept="port")
        self.assertIsInstance(flag.acceptor, acceptors.RangeAcceptor)

    def testRequiredAfterOptionalRaises(self):
        node = ToolNode(("copy",))
        node.add_optional_arg("dest")
        with self.assertRaises(ToolDefinitionError):
            node.add_required_arg("source")

    def testOptionalAfterRemainingRaises(self):
        node = ToolNode(("copy",))
        node.set_remaining_args("files")
        with self.assertRaises(ToolDefinitionError):
            node.add_optional_arg("dest")

    def testDuplicateArgumentKeyRaises(self):
        node = ToolNode(("copy",))
        node.add_required_arg("source")
        with self.assertRaises(ToolDefinitionError):
            node.add_optional_arg("source")

    def testPositionalDefaultsAndDisplayNames(self):
        node = ToolNode(("copy",))
        source = node.add_required_arg("source-file")
        node.add_optional_arg("dest", default=".")
        node.set_remaining_args("extra")
        self.assertEqual(source.display_name, "SOURCE_FILE")
        self.assertEqual(node.default_data["dest"], ".")
        self.assertEqual(node.default_data["extra"], [])
        self.assertEqual([argument.kind for argument in node.positional_args], ["required", "optional", "remaining"])

    def testUnknownGroupRaises(self):
        node = ToolNode(("build",))
        with self.assertRaises(ToolDefinitionError):
            node.add_flag("fast", "--fast", group="speed")

    def testFlagJoinsNamedGroup(self):
        node = ToolNode(("build",))
        group = node.add_flag_group("exactly_one", name="mode")
        node.add_flag("fast", "--fast", group="mode")
        self.assertEqual([flag.key for flag in group], ["fast"])

    def testFinishedNodeRejectsChanges(self):
        node = ToolNode(("build",))
        node.finish()
        with self.assertRaises(ToolDefinitionError):
            node.add_flag("late", "--late")
        with self.assertRaises(ToolDefinitionError):
            node.desc = "too late"

    def testDelegationRules(self):
        node = ToolNode(("alias",))
        with self.assertRaises(ToolDefinitionError):
            node.delegate_to("alias")
        node.delegate_to("build all")
        self.assertEqual(node.delegate_target, ("build", "all"))
        self.assertTrue(node.runnable)
        self.assertTrue(node.argument_parsing_disabled)
        with self.assertRaises(ToolDefinitionError):
            node.set_handler("run", lambda context: 0)


class TestFlagGroup(TestCase):

    def setUp(self):
        self.a = Flag("a", "--a")
        self.b = Flag("b", "--b")

    def _group(self, kind):
        group = FlagGroup(kind, name="mode")
        group.append(self.a)
        group.append(self.b)
        return group

    def testExactlyOne(self):
        group = self._group("exactly_one")
        self.assertEqual(group.validation_errors(["a"]), [])
        none, = group.validation_errors([])
        both, = group.validation_errors(["a", "b"])
        self.assertIn("'mode'", none.message)
        self.assertIn("none were provided", none.message)
        self.assertIn("2 were provided", both.message)

    def testAtMostOne(self):
        group = self._group("at-most-one")
        self.assertEqual(group.validation_errors([]), [])
        self.assertEqual(len(group.validation_errors(["a", "b"])), 1)

    def testAtLeastOne(self):
        group = self._group("at_least_one")
        self.assertEqual(group.validation_errors(["b"]), [])
        self.assertEqual(len(group.validation_errors([])), 1)

    def testRequiredReportsEachMissingFlag(self):
        group = self._group("required")
        errors = group.validation_errors(["a"])
        self.assertEqual([error.message for error in errors], ["flag '--b' is required"])

    def testDescriptionDefaults(self):
        self.assertEqual(FlagGroup("required").desc, "Required Flags")
        self.assertEqual(FlagGroup().desc, "Flags")
        self.assertEqual(FlagGroup("optional", name="Output").desc, "Output")

    def testUnknownKindRaises(self):
        with self.assertRaises(ToolDefinitionError):
            FlagGroup("some")


if __name__ == "__main__":
    unittest.main()
