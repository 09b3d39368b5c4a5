"""
Loader behavioral tests (priorities, conflicts, laziness, caching, sources).

Scope
- Validate tier ordering for appended, prepended and explicit priorities.
- Validate same-tier conflicts and higher-tier shadowing.
- Validate lookup of the deepest defined tool, leftovers and extra delimiters.
- Validate implicit namespaces, hidden tools and sub-tool listings.
- Validate laziness: sources with disjoint prefixes are never asked.
- Validate that concurrent first lookups materialize a path exactly once.
- Validate file and directory sources.

Conventions
- Test method names follow CamelCase per project convention.
- Custom sources subclass Source and record every request they receive.
"""

import os
import tempfile
import textwrap
import threading
import time
import unittest
from unittest import TestCase

from armada import (
    BlockSource,
    DefinitionConflictError,
    Loader,
    LoaderError,
    Source,
    ToolDefinitionError,
    ToolNode,
)


class RecordingSource(Source):
    """Defines a fixed set of paths and records every request."""
    kind = "recording"

    def __init__(self, *paths, prefix=()):
        super().__init__(prefix, name="recording")
        self.paths = {tuple(path.split()) for path in paths}
        self.requests = []

    def materialize(self, path, /):
        self.requests.append(tuple(path))
        if tuple(path) not in self.paths:
            return None
        node = ToolNode(path, source_info=self.info, priority=self.priority)
        node.set_handler("run", lambda context: 0)
        return node

    def enumerate_children(self, path, /):
        self.requests.append(tuple(path))
        depth = len(path)
        return tuple(dict.fromkeys(
            known[depth] for known in self.paths if len(known) > depth and known[:depth] == tuple(path)
        ))


class SlowSource(RecordingSource):
    """Counts materializations and widens the race window."""

    def __init__(self, *paths):
        super().__init__(*paths)
        self.materializations = 0
        self._counter = threading.Lock()

    def materialize(self, path, /):
        if tuple(path) in self.paths:
            with self._counter:
                self.materializations += 1
            time.sleep(0.05)
        return super().materialize(path)


def define_tool(desc):
    def define(tool):
        with tool.tool("build") as build:
            build.desc(desc)
            build.run(lambda context: 0)
    return define


class TestPriorities(TestCase):

    def testAppendedSourcesGetLowerTiers(self):
        loader = Loader()
        first = loader.add_block(define_tool("first"))
        second = loader.add_block(define_tool("second"))
        self.assertEqual((first.priority, second.priority), (0, -1))
        node, _ = loader.lookup(["build"])
        self.assertEqual(node.desc, "first")

    def testPrependedSourceWins(self):
        loader = Loader()
        loader.add_block(define_tool("first"))
        top = loader.add_block(define_tool("top"), prepend=True)
        self.assertEqual(top.priority, 1)
        self.assertEqual(loader.lookup(["build"])[0].desc, "top")
        self.assertEqual(loader.sources[0], top)

    def testExplicitPriority(self):
        loader = Loader()
        loader.add_block(define_tool("low"), priority=-5)
        loader.add_block(define_tool("high"), priority=5)
        self.assertEqual(loader.lookup(["build"])[0].desc, "high")

    def testSameTierConflictNamesBothSources(self):
        loader = Loader()
        loader.add_block(define_tool("a"), priority=0)
        loader.add_block(define_tool("b"), priority=0)
        with self.assertRaises(DefinitionConflictError) as caught:
            loader.lookup(["build"])
        self.assertEqual(len(caught.exception.provenances), 2)
        self.assertIn("more than one source", caught.exception.message)

    def testSharedNamespaceIsNotAConflict(self):
        loader = Loader()
        loader.add_block(lambda tool: tool.tool("ns x").run(lambda context: 1), priority=0)
        loader.add_block(lambda tool: tool.tool("ns").tool("y").run(lambda context: 2), priority=0)
        self.assertEqual(loader.lookup(["ns", "x"])[0].full_name, ("ns", "x"))
        self.assertEqual(loader.lookup(["ns", "y"])[0].full_name, ("ns", "y"))
        namespace = loader.lookup_specific(["ns"])
        self.assertIsNone(namespace.source_info)
        self.assertFalse(namespace.runnable)
        self.assertEqual([node.full_name for node in loader.list_subtools(["ns"])], [("ns", "x"), ("ns", "y")])

    def testHigherTierShadowsOnlyThatPath(self):
        loader = Loader()
        loader.add_source(RecordingSource("build"), 1)
        loader.add_source(RecordingSource("build", "test"), 0)
        self.assertEqual(loader.lookup(["build"])[0].priority, 1)
        self.assertEqual(loader.lookup(["test"])[0].priority, 0)

    def testAddingAfterLookupRaises(self):
        loader = Loader()
        loader.add_block(define_tool("first"))
        loader.lookup([])
        with self.assertRaises(LoaderError):
            loader.add_block(define_tool("late"))

    def testRejectsNonSources(self):
        with self.assertRaises(TypeError):
            Loader().add_source(object())

    def testSourceIsAbstract(self):
        with self.assertRaises(TypeError):
            Source()


class TestLookup(TestCase):

    def setUp(self):
        self.loader = Loader(extra_delimiters=".:")
        self.loader.add_source(RecordingSource("build", "ns deploy", "ns _internal"))

    def testDeepestToolAndLeftovers(self):
        node, remaining = self.loader.lookup(["ns", "deploy", "prod", "--force"])
        self.assertEqual(node.full_name, ("ns", "deploy"))
        self.assertEqual(remaining, ["prod", "--force"])

    def testFlagStopsNameWords(self):
        node, remaining = self.loader.lookup(["--help", "build"])
        self.assertTrue(node.is_root)
        self.assertEqual(remaining, ["--help", "build"])

    def testUndefinedLeafFallsBackToNamespace(self):
        node, remaining = self.loader.lookup(["ns", "missing"])
        self.assertEqual(node.full_name, ("ns",))
        self.assertEqual(remaining, ["missing"])

    def testImplicitNamespace(self):
        node = self.loader.lookup_specific(["ns"])
        self.assertIsNotNone(node)
        self.assertFalse(node.runnable)
        self.assertIsNone(node.source_info)

    def testRootAlwaysDefined(self):
        self.assertTrue(Loader().tool_defined([]))

    def testExtraDelimitersSplitFirstWord(self):
        node, remaining = self.loader.lookup(["ns.deploy", "x"])
        self.assertEqual(node.full_name, ("ns", "deploy"))
        self.assertEqual(remaining, ["x"])
        self.assertEqual(self.loader.split_path("ns:deploy now"), ("ns", "deploy", "now"))

    def testIllegalDelimiters(self):
        with self.assertRaises(LoaderError):
            Loader(extra_delimiters="-")

    def testCachedNodeIsReused(self):
        self.assertIs(self.loader.lookup_specific(["build"]), self.loader.lookup_specific(["build"]))

    def testNodesAreLinkedAndFinished(self):
        node = self.loader.lookup_specific(["ns", "deploy"])
        self.assertIs(node.parent, self.loader.lookup_specific(["ns"]))
        self.assertTrue(node.finished)
        self.assertTrue(node.middleware_stack)

    def testListingHidesUnderscoreNames(self):
        names = [node.full_name for node in self.loader.list_subtools([], recursive=True)]
        self.assertEqual(names, [("build",), ("ns",), ("ns", "deploy")])
        hidden = [node.full_name for node in self.loader.list_subtools(["ns"], include_hidden=True)]
        self.assertEqual(hidden, [("ns", "_internal"), ("ns", "deploy")])

    def testListingWithoutNamespaces(self):
        names = [node.full_name for node in self.loader.list_subtools([], recursive=True, include_namespaces=False)]
        self.assertEqual(names, [("build",), ("ns", "deploy")])

    def testHasSubtools(self):
        self.assertTrue(self.loader.has_subtools([]))
        self.assertFalse(self.loader.has_subtools(["build"]))

    def testChildHasFreshCache(self):
        node = self.loader.lookup_specific(["build"])
        child = self.loader.child()
        self.assertEqual(child.sources, self.loader.sources)
        self.assertIsNot(child.lookup_specific(["build"]), node)


class TestLaziness(TestCase):

    def testDisjointSourceIsNeverAsked(self):
        loader = Loader()
        foo = loader.add_source(RecordingSource("foo", "foo run", prefix=("foo",)))
        bar = loader.add_source(RecordingSource("bar", prefix=("bar",)))
        node, _ = loader.lookup(["bar"])
        self.assertEqual(node.full_name, ("bar",))
        self.assertEqual(foo.requests, [])
        self.assertTrue(bar.requests)

    def testBlockDefinerRunsOnceAndOnlyWhenNeeded(self):
        calls = []

        def define(tool):
            calls.append(True)
            tool.tool("one").run(lambda context: 0)
            tool.tool("two").run(lambda context: 0)

        loader = Loader()
        loader.add_block(define, ("foo",))
        loader.add_source(RecordingSource("bar"))
        loader.lookup(["bar"])
        self.assertEqual(calls, [])
        loader.lookup(["foo", "one"])
        loader.lookup(["foo", "two"])
        self.assertEqual(calls, [True])

    def testMaterializationsAreIndependentCopies(self):
        def define(tool):
            tool.tool("build").flag("jobs", "--jobs=N", accept=int)

        source = BlockSource(define)
        first, second = source.materialize(["build"]), source.materialize(["build"])
        self.assertIsNot(first, second)
        self.assertIsNot(first.flags[0], second.flags[0])
        self.assertEqual(first.flags[0].key, second.flags[0].key)


class TestConcurrency(TestCase):

    def testParallelFirstLookupsMaterializeOnce(self):
        count = 8
        loader = Loader()
        source = loader.add_source(SlowSource("slow"))
        barrier = threading.Barrier(count)
        results = [None] * count

        def worker(index):
            barrier.wait()
            results[index] = loader.lookup_specific(["slow"])

        threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(source.materializations, 1)
        self.assertIsNotNone(results[0])
        self.assertTrue(all(result is results[0] for result in results))
        self.assertTrue(results[0].finished)


class TestPathSource(TestCase):

    def setUp(self):
        self._directory = tempfile.TemporaryDirectory()
        self.root = self._directory.name
        self.write(".armada.py", """
            def define(tool):
                tool.desc("root tools")
        """)
        self.write("greet.py", """
            def define(tool):
                tool.desc("Say hello")
                tool.required("name")

                @tool.run
                def _(context):
                    return 0

                tool.tool("loudly").run(lambda context: 0)
        """)
        self.write("ns/deploy.py", """
            def define(tool):
                tool.run(lambda context: 0)
        """)
        self.write("ns/__pycache__/ignored.py", "")

    def tearDown(self):
        self._directory.cleanup()

    def write(self, name, text):
        path = os.path.join(self.root, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as stream:
            stream.write(textwrap.dedent(text))

    def testIndexFileDefinesDirectoryNode(self):
        loader = Loader()
        loader.add_path(self.root)
        root, _ = loader.lookup([])
        self.assertEqual(root.desc, "root tools")
        self.assertEqual(root.source_info.kind, "file")
        self.assertEqual(root.context_directory, self.root)

    def testFileDefinesToolAndSubtools(self):
        loader = Loader()
        loader.add_path(self.root)
        node, remaining = loader.lookup(["greet", "bob"])
        self.assertEqual(node.desc, "Say hello")
        self.assertEqual(remaining, ["bob"])
        self.assertTrue(node.source_info.path.endswith("greet.py"))
        self.assertTrue(loader.tool_defined(["greet", "loudly"]))

    def testDirectoriesBecomeNamespaces(self):
        loader = Loader()
        loader.add_path(self.root)
        self.assertTrue(loader.lookup_specific(["ns", "deploy"]).runnable)
        names = [node.full_name for node in loader.list_subtools([], recursive=True)]
        self.assertEqual(names, [("greet",), ("greet", "loudly"), ("ns",), ("ns", "deploy")])

    def testSingleFileWithPrefix(self):
        loader = Loader()
        loader.add_path(os.path.join(self.root, "greet.py"), "hello")
        node, _ = loader.lookup(["hello", "loudly"])
        self.assertEqual(node.full_name, ("hello", "loudly"))

    def testMissingPathRaises(self):
        with self.assertRaises(ToolDefinitionError):
            Loader().add_path(os.path.join(self.root, "absent"))


if __name__ == "__main__":
    unittest.main()
