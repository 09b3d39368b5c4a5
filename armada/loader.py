"""
Armada loader: one lazily-materialized namespace tree over many sources.

Sources
- Each source has a priority tier. add_source() appends at the lowest tier by
  default (min - 1) or prepends at the highest (max + 1); an explicit priority
  may also be given. Sources can only be added before the first lookup.

Resolution of a name path P (memoized, once per loader)
- Only sources whose prefix is a prefix of P are asked to materialize P; a
  source covering "foo" is never invoked when "bar" is requested.
- Tiers are tried from highest to lowest. Within the first tier where any
  source materializes P, exactly one source may do so; two or more raise
  DefinitionConflictError naming their provenances.
- Without a materializing source, P is still defined (as an empty namespace)
  when some source has a descendant of P. The root is always defined.
- A materialized node is linked to its parent node, configured by the
  middleware stack, then frozen.

Concurrency
- The cache is read without locking; resolve-if-absent runs under one
  re-entrant lock, so concurrent first lookups of a path materialize it once.

Listing
- Children are merged across all tiers; names starting with "_" are hidden
  (with their descendants) unless include_hidden is set.
"""
import logging
import re
import threading

from . import middleware
from .faults import DefinitionConflictError, LoaderError
from .sources import BlockSource, PathSource, Source
from .tools import ToolNode
from .utils import *

logger = logging.getLogger(__name__)

_NOT_FOUND = object()


class Loader:
    """
    Tool namespace over priority-ordered sources.

    Options
    - middleware_stack: middleware specs (default: middleware.default_stack()).
    - extra_delimiters: characters among ".", ":" and "/" that also separate
      tool name segments ("ns.tool" is looked up as ["ns", "tool"]).
    - index_file_name: the per-directory index file of PathSource directories.
    """

    def __init__(self, *, middleware_stack=Unset, extra_delimiters="", index_file_name=".armada.py"):
        if not isinstance(extra_delimiters, str) or not re.fullmatch(r"[.:/]*", extra_delimiters):
            raise LoaderError("illegal extra delimiters %r" % (extra_delimiters,))
        self._stack_specs = tuple(coalesce(middleware_stack, middleware.default_stack()))
        self.middleware_stack = middleware.resolve_stack(self._stack_specs)
        self.extra_delimiters = extra_delimiters
        self.index_file_name = index_file_name
        self._sources = []
        self._cache = {}
        self._lock = threading.RLock()
        self._loading_started = False
        self._delimiter_pattern = re.compile("[%s]" % re.escape(extra_delimiters)) if extra_delimiters else None

    # Sources

    @property
    def sources(self):
        return tuple(self._sources)

    def add_source(self, source, /, priority=Unset, *, prepend=False):
        """Add a source; see the module docstring for priority defaults."""
        if not isinstance(source, Source):
            raise TypeError("loader sources must be Source instances")
        with self._lock:
            if self._loading_started:
                raise LoaderError("cannot add a source after tool loading has started")
            if priority is Unset:
                tiers = [existing.priority for existing in self._sources]
                if not tiers:
                    priority = 0
                else:
                    priority = max(tiers) + 1 if prepend else min(tiers) - 1
            source.priority = priority
            if prepend:
                self._sources.insert(0, source)
            else:
                self._sources.append(source)
        logger.debug("added source %r at priority %d", source, priority)
        return source

    def add_block(self, definer, prefix=(), /, *, priority=Unset, prepend=False, name=Unset):
        return self.add_source(BlockSource(definer, prefix, name=name), priority, prepend=prepend)

    def add_path(self, path, prefix=(), /, *, priority=Unset, prepend=False, name=Unset):
        return self.add_source(
            PathSource(path, prefix, name=name, index_file_name=self.index_file_name), priority, prepend=prepend
        )

    def child(self):
        """A loader with the same sources and settings and an empty cache."""
        clone = type(self)(
            middleware_stack=self._stack_specs,
            extra_delimiters=self.extra_delimiters,
            index_file_name=self.index_file_name,
        )
        clone._sources = list(self._sources)
        return clone

    # Names

    def split_path(self, text, /):
        """Split a tool name on whitespace and the extra delimiters."""
        if self._delimiter_pattern is not None:
            text = self._delimiter_pattern.sub(" ", text)
        return tuple(text.split())

    def _tiers(self):
        """Sources grouped by priority, highest first."""
        tiers = {}
        for source in self._sources:
            tiers.setdefault(source.priority, []).append(source)
        return [tiers[priority] for priority in sorted(tiers, reverse=True)]

    # Lookup

    def lookup(self, args, /):
        """
        Resolve the deepest defined tool named by the leading words of args.

        Returns (node, remaining args). The candidate name is the leading run
        of args not starting with "-"; it is shortened one word at a time
        until a tool is defined (the root always is).
        """
        args = list(args)
        if args and self._delimiter_pattern is not None and not args[0].startswith("-"):
            args[0:1] = self.split_path(args[0]) or args[0:1]
        words = []
        for arg in args:
            if arg.startswith("-"):
                break
            words.append(arg)
        for length in range(len(words), -1, -1):
            if (node := self.lookup_specific(words[:length])) is not None:
                return node, args[length:]
        raise AssertionError("root tool must always be defined")

    def lookup_specific(self, path, /):
        """Return the node at exactly path, or None."""
        path = tuple(path)
        node = self._cache.get(path)
        if node is None:
            node = self._resolve(path)
        return None if node is _NOT_FOUND else node

    def tool_defined(self, path, /):
        return self.lookup_specific(path) is not None

    def has_subtools(self, path, /):
        return any(not name.startswith("_") for name in self._children(tuple(path)))

    def list_subtools(self, path=(), /, *, recursive=False, include_hidden=False, include_namespaces=True):
        """Defined sub-tools of path, sorted by name (depth-first when recursive)."""
        path = tuple(path)
        found = []
        for name in sorted(self._children(path)):
            if name.startswith("_") and not include_hidden:
                continue
            node = self.lookup_specific((*path, name))
            if node is None:
                continue
            if include_namespaces or node.runnable:
                found.append(node)
            if recursive:
                found.extend(self.list_subtools(
                    node.full_name,
                    recursive=True,
                    include_hidden=include_hidden,
                    include_namespaces=include_namespaces,
                ))
        return found

    # Internals

    def _children(self, path):
        names = {}
        depth = len(path)
        for tier in self._tiers():
            for source in tier:
                if len(source.prefix) > depth and source.prefix[:depth] == path:
                    names.setdefault(source.prefix[depth])
                elif source.might_provide(path):
                    for name in source.enumerate_children(path):
                        names.setdefault(name)
        return tuple(names)

    def _resolve(self, path):
        with self._lock:
            self._loading_started = True
            if (cached := self._cache.get(path)) is not None:
                return cached

            parent = None
            if path:
                parent = self.lookup_specific(path[:-1])
                if parent is None:
                    self._cache[path] = _NOT_FOUND
                    return _NOT_FOUND

            node = self._materialize(path)
            if node is None:
                if path and not self._children(path):
                    logger.debug("tool %r not found", " ".join(path))
                    self._cache[path] = _NOT_FOUND
                    return _NOT_FOUND
                node = ToolNode(path)

            node.parent = parent
            middleware.configure(node, self, self.middleware_stack)
            node.finish(self.middleware_stack)
            self._cache[path] = node
            return node

    def _materialize(self, path):
        for tier in self._tiers():
            found = []
            for source in tier:
                if not source.might_provide(path):
                    continue
                if (node := source.materialize(path)) is not None:
                    found.append((source, node))
            if len(found) > 1:
                provenances = tuple(str(node.source_info or source) for source, node in found)
                raise DefinitionConflictError(
                    "tool %r is defined in more than one source at priority %d: %s"
                    % (" ".join(path), tier[0].priority, ", ".join(provenances)),
                    provenances=provenances,
                )
            if found:
                source, node = found[0]
                logger.debug("materialized tool %r from %s", " ".join(path), node.source_info or source)
                return node
        return None


__all__ = (
    # Classes
    "Loader",
)
