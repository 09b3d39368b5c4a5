"""
Armada sources: origins of tool definitions.

Overview
- SourceInfo
  • Provenance of a definition: kind ("block", "file" or "directory"), path,
    name and priority. str(info) is the advisory location used in messages.
- Source
  • Interface consumed by the loader:
    - might_provide(path): can this source define path (or a descendant)?
    - materialize(path): a fresh ToolNode for path, or None.
    - enumerate_children(path): child segments this source knows below path.
  • A source only answers for paths under its prefix; the loader never asks a
    source whose prefix is disjoint from the requested path.
- BlockSource
  • Definitions written in Python: definer(builder) runs once (thread-safe) and
    populates prototypes; every materialization returns an independent copy.
- PathSource
  • Definitions read from the file system. A ".py" file exposing define(tool)
    defines the node at the source prefix (and possibly sub-tools). A directory
    maps "name.py" files and "name/" subdirectories to child segments; its index
    file (".armada.py" by default) defines the directory's own node.
- ToolBuilder
  • The authoring API passed to definers: tool(name), desc(), flag(),
    required(), optional(), remaining(), flag groups, acceptors, mixins,
    handlers, delegation and parsing settings.

Example
    def define(tool):
        tool.desc("Project tools")

        with tool.tool("build") as build:
            build.desc("Build the project")
            build.flag("target", "--target=TARGET", accept=str)

            @build.run
            def _(context):
                context.logger.info("building %s", context["target"])
"""
import copy
import dataclasses
import inspect
import logging
import os
import runpy
import threading
from abc import ABC, abstractmethod

from .faults import ToolDefinitionError
from .tools import Mixin, ToolNode
from .utils import *

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SourceInfo:
    """Where a tool definition came from."""
    kind: str
    path: str | None = None
    name: str | None = None
    priority: int = 0
    prefix: tuple = ()

    @property
    def context_directory(self):
        if self.path is None:
            return None
        return self.path if self.kind == "directory" else os.path.dirname(self.path)

    def __str__(self):
        if self.kind != "block":
            return self.path or self.kind
        if self.path is not None:
            return "block %s in %s" % (self.name or "<anonymous>", self.path)
        return "block %s" % (self.name or "<anonymous>")


def _normalize_prefix(prefix):
    if isinstance(prefix, str):
        prefix = prefix.split()
    prefix = tuple(prefix)
    if not all(isinstance(segment, str) and segment for segment in prefix):
        raise TypeError("source prefix must be a sequence of non-empty strings")
    return prefix


class Source(ABC):
    """
    Base class of every definition origin.

    Subclasses implement materialize() and enumerate_children(); the loader
    assigns priority when the source is added.
    """
    kind = "source"

    def __init__(self, prefix=(), /, *, name=Unset):
        self.prefix = _normalize_prefix(prefix)
        self.name = coalesce(name)
        self.priority = 0

    @property
    def info(self):
        return SourceInfo(self.kind, None, self.name, self.priority, self.prefix)

    def might_provide(self, path, /):
        return tuple(path[:len(self.prefix)]) == self.prefix

    @abstractmethod
    def materialize(self, path, /):
        ...

    @abstractmethod
    def enumerate_children(self, path, /):
        ...

    def __repr__(self):
        return "%s(%s, prefix=%r, priority=%r)" % (type(self).__name__, self.name or "", self.prefix, self.priority)


class _GroupBuilder:
    """Adds flags to one flag group; returned by ToolBuilder.flag_group()."""

    def __init__(self, builder, group, /):
        self._builder = builder
        self.group = group

    def flag(self, key, /, *syntaxes, **options):
        return self._builder.flag(key, *syntaxes, group=self.group, **options)

    def __enter__(self):
        return self

    def __exit__(self, *unused):
        return False


class ToolBuilder:
    """
    Authoring API over one ToolNode.

    Every mutating method registers the node with the defining source; a tool
    that is merely navigated through (tool("a").tool("b")) does not define "a"
    and resolves as an implicit namespace.
    Methods that take a callable return it, so they double as decorators.
    """

    def __init__(self, node, registry, /):
        self._node = node
        self._registry = registry

    @property
    def node(self):
        return self._node

    @property
    def name(self):
        return self._node.full_name

    def _touch(self):
        self._node = self._registry.setdefault(self._node.full_name, self._node)
        return self._node

    def __enter__(self):
        return self

    def __exit__(self, *unused):
        return False

    def tool(self, name, definer=Unset, /):
        """Return the builder of a sub-tool (name may contain spaces)."""
        words = name.split() if isinstance(name, str) else list(name)
        if not words:
            raise ToolDefinitionError("tool name must not be empty")
        path = (*self._node.full_name, *words)
        node = self._registry.get(path)
        if node is None:
            node = ToolNode(path, source_info=self._node.source_info, priority=self._node.priority)
            node.parent = self._node
        builder = type(self)(node, self._registry)
        if definer is not Unset:
            definer(builder)
        return builder

    def desc(self, text, /):
        self._touch().desc = text
        return self

    def long_desc(self, *lines):
        self._touch().long_desc = lines
        return self

    def flag(self, key, /, *syntaxes, **options):
        return self._touch().add_flag(key, *syntaxes, **options)

    def required(self, key, /, **options):
        return self._touch().add_required_arg(key, **options)

    def optional(self, key, /, **options):
        return self._touch().add_optional_arg(key, **options)

    def remaining(self, key="args", /, **options):
        return self._touch().set_remaining_args(key, **options)

    def flag_group(self, kind="optional", /, **options):
        return _GroupBuilder(self, self._touch().add_flag_group(kind, **options))

    def all_required(self, **options):
        return self.flag_group("required", **options)

    def at_most_one(self, **options):
        return self.flag_group("at_most_one", **options)

    def at_least_one(self, **options):
        return self.flag_group("at_least_one", **options)

    def exactly_one(self, **options):
        return self.flag_group("exactly_one", **options)

    def accept(self, name, spec, /, **options):
        self._touch().add_acceptor(name, spec, **options)
        return self

    def mixin(self, name, mixin=Unset, /, **capabilities):
        """Register a named mixin for this tool and its sub-tools."""
        if mixin is Unset:
            mixin = Mixin(name, **capabilities)
        self._touch().add_mixin(name, mixin)
        return mixin

    def include(self, mixin, /, **options):
        self._touch().include_mixin(mixin, **options)
        return self

    def run(self, handler, /):
        self._touch().set_handler("run", handler)
        return handler

    def on_interrupt(self, handler, /):
        self._touch().set_handler("interrupt", handler)
        return handler

    def on_usage_error(self, handler, /):
        self._touch().set_handler("usage_error", handler)
        return handler

    def delegate_to(self, target, /):
        self._touch().delegate_to(target)
        return self

    def disable_flag(self, *flags):
        self._touch().disable_flag(*flags)
        return self

    def set(self, key, value, /):
        self._touch().set_default(key, value)
        return self

    def enforce_flags_before_args(self, enabled=True, /):
        self._touch().configure(enforce_flags_before_args=enabled)
        return self

    def require_exact_flag_match(self, enabled=True, /):
        self._touch().configure(require_exact_flag_match=enabled)
        return self

    def disable_argument_parsing(self):
        self._touch().configure(argument_parsing_disabled=True)
        return self

    def context_directory(self, path, /):
        self._touch().context_directory = os.fspath(path)
        return self


class BlockSource(Source):
    """
    Tools defined by a Python callable.

    definer(builder) receives the builder of the prefix node. It runs at most
    once, on first use; the resulting nodes are prototypes that materialize()
    copies, so callers never share mutable schema.
    """
    kind = "block"

    def __init__(self, definer, prefix=(), /, *, name=Unset, path=Unset):
        if not callable(definer):
            raise TypeError("block source definer must be callable")
        super().__init__(prefix, name=coalesce(name, getattr(definer, "__qualname__", None)))
        if path is Unset:
            try:
                path = inspect.getsourcefile(definer)
            except TypeError:
                path = None
        self.path = path
        self._definer = definer
        self._lock = threading.Lock()
        self._prototypes = None

    @property
    def info(self):
        return SourceInfo(self.kind, self.path, self.name, self.priority, self.prefix)

    def _define(self):
        if (prototypes := self._prototypes) is not None:
            return prototypes
        with self._lock:
            if self._prototypes is None:
                registry = {}
                root = ToolNode(self.prefix, source_info=self.info, priority=self.priority)
                self._definer(ToolBuilder(root, registry))
                logger.debug("source %s defined %d tools", self, len(registry))
                self._prototypes = registry
            return self._prototypes

    def materialize(self, path, /):
        if not self.might_provide(path):
            return None
        prototype = self._define().get(tuple(path))
        return None if prototype is None else copy.deepcopy(prototype)

    def enumerate_children(self, path, /):
        path = tuple(path)
        if not self.might_provide(path):
            return ()
        depth = len(path)
        return tuple(dict.fromkeys(
            defined[depth] for defined in self._define()
            if len(defined) > depth and defined[:depth] == path
        ))

    def __str__(self):
        return str(self.info)


def _load_definer(path):
    namespace = runpy.run_path(path)
    definer = namespace.get("define")
    if not callable(definer):
        raise ToolDefinitionError("%s does not define a callable 'define(tool)'" % path)
    return definer


class PathSource(Source):
    """
    Tools defined by a file or a directory tree of files.

    Each file is executed once, when a path it governs is first requested.
    """

    def __init__(self, path, prefix=(), /, *, name=Unset, index_file_name=".armada.py"):
        path = os.path.abspath(os.fspath(path))
        if not os.path.exists(path):
            raise ToolDefinitionError("no such file or directory: %s" % path)
        super().__init__(prefix, name=coalesce(name, os.path.basename(path)))
        self.path = path
        self.index_file_name = index_file_name
        self._lock = threading.Lock()
        self._files = {}

    @property
    def kind(self):
        return "directory" if os.path.isdir(self.path) else "file"

    @property
    def info(self):
        return SourceInfo(self.kind, self.path, self.name, self.priority, self.prefix)

    def _file_source(self, file, prefix):
        """The BlockSource for one definition file, created once."""
        key = (file, prefix)
        if (source := self._files.get(key)) is not None:
            return source
        with self._lock:
            if key not in self._files:
                source = BlockSource(
                    lambda builder: _load_definer(file)(builder),
                    prefix,
                    name=os.path.basename(file),
                    path=file,
                )
                source.kind = "file"
                source.priority = self.priority
                self._files[key] = source
            return self._files[key]

    def _governing(self, path):
        """
        Map a name path to (file source or None, directory or None).

        The file source is the one whose file defines path (or an ancestor of it
        that may define path as a sub-tool); the directory is the one path maps
        to, if any.
        """
        relative = tuple(path[len(self.prefix):])
        if not os.path.isdir(self.path):
            return self._file_source(self.path, self.prefix), None

        directory = self.path
        for index, segment in enumerate(relative):
            if segment.startswith(".") or segment == "__pycache__":
                return None, None
            candidate = os.path.join(directory, segment)
            if os.path.isdir(candidate):
                directory = candidate
                continue
            if os.path.isfile(module := candidate + ".py"):
                return self._file_source(module, (*self.prefix, *relative[:index + 1])), None
            return None, None

        if os.path.isfile(index_file := os.path.join(directory, self.index_file_name)):
            return self._file_source(index_file, tuple(path)), directory
        if relative and os.path.isfile(module := directory + ".py"):
            return self._file_source(module, tuple(path)), directory
        return None, directory

    def materialize(self, path, /):
        if not self.might_provide(path):
            return None
        source, _ = self._governing(path)
        if source is None:
            return None
        node = source.materialize(path)
        if node is not None:
            logger.debug("materialized %r from %s", " ".join(path), source.path)
        return node

    def enumerate_children(self, path, /):
        if not self.might_provide(path):
            return ()
        source, directory = self._governing(path)
        children = dict.fromkeys(source.enumerate_children(path) if source else ())
        if directory is not None:
            for entry in sorted(os.listdir(directory)):
                if entry.startswith(".") or entry == "__pycache__":
                    continue
                if os.path.isdir(os.path.join(directory, entry)):
                    children.setdefault(entry)
                elif entry.endswith(".py") and entry != self.index_file_name:
                    children.setdefault(entry[:-3])
        return tuple(children)


__all__ = (
    # Classes
    "SourceInfo",
    "Source",
    "BlockSource",
    "PathSource",
    "ToolBuilder",
)
