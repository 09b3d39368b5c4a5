"""
Armada execution context: everything one invocation of a tool can see.

A Context is created fresh by the CLI for every run() and never shared between
runs. It maps data keys to values:
- user keys (strings): bound flag and argument values, plus anything the tool
  or its middleware stores while running;
- well-known keys (Keys members): the tool node, the CLI and loader, the
  verbosity, the per-run logger, the raw arguments and what the parser could
  not match.

Capabilities of included mixins are bound to the context as methods.
"""
import enum
import types

from .faults import ToolDefinitionError, ToolExit
from .utils import *


class Keys(enum.Enum):
    """Well-known context keys; never equal to any user (string) key."""
    ARGS = "args"
    CLI = "cli"
    CONTEXT_DIRECTORY = "context-directory"
    DELEGATED_FROM = "delegated-from"
    EXECUTABLE_NAME = "executable-name"
    LOADER = "loader"
    LOGGER = "logger"
    TOOL = "tool"
    TOOL_NAME = "tool-name"
    TOOL_SOURCE = "tool-source"
    UNMATCHED_ARGS = "unmatched-args"
    UNMATCHED_FLAGS = "unmatched-flags"
    UNMATCHED_POSITIONAL = "unmatched-positional"
    USAGE_ERRORS = "usage-errors"
    VERBOSITY = "verbosity"

    # Keys owned by the standard middleware
    SHOW_HELP = "show-help"
    SHOW_USAGE = "show-usage"
    SHOW_LIST = "show-list"
    RECURSIVE_LIST = "recursive-list"
    SEARCH_TERM = "search-term"
    HELP_TARGET = "help-target"
    SHOW_VERSION = "show-version"

    def __repr__(self):
        return "Keys.%s" % self.name


class Context:
    """
    Data and services for one tool invocation.

    Access
    - context["target"], context.get("target"), "target" in context
    - context[Keys.VERBOSITY] or the matching property (context.verbosity)
    - context.options: only the user (string-keyed) data
    """

    def __init__(self, data, /):
        self._data = dict(data)
        node = self._data.get(Keys.TOOL)
        for name, function in (node.capabilities.items() if node is not None else ()):
            if hasattr(type(self), name) or name in vars(self):
                raise ToolDefinitionError("capability %r shadows a context attribute" % name)
            setattr(self, name, types.MethodType(function, self))

    def __getitem__(self, key):
        return self._data[key]

    def __setitem__(self, key, value):
        self._data[key] = value

    def __contains__(self, key):
        return key in self._data

    def get(self, key, default=None, /):
        return self._data.get(key, default)

    def keys(self):
        return self._data.keys()

    @property
    def options(self):
        return {key: value for key, value in self._data.items() if not isinstance(key, Keys)}

    @property
    def args(self):
        return tuple(self._data.get(Keys.ARGS, ()))

    @property
    def cli(self):
        return self._data.get(Keys.CLI)

    @property
    def loader(self):
        return self._data.get(Keys.LOADER)

    @property
    def logger(self):
        return self._data.get(Keys.LOGGER)

    @property
    def tool(self):
        return self._data.get(Keys.TOOL)

    @property
    def tool_name(self):
        return tuple(self._data.get(Keys.TOOL_NAME, ()))

    @property
    def tool_source(self):
        return self._data.get(Keys.TOOL_SOURCE)

    @property
    def context_directory(self):
        return self._data.get(Keys.CONTEXT_DIRECTORY)

    @property
    def executable_name(self):
        return self._data.get(Keys.EXECUTABLE_NAME)

    @property
    def delegated_from(self):
        return self._data.get(Keys.DELEGATED_FROM)

    @property
    def verbosity(self):
        return self._data.get(Keys.VERBOSITY) or 0

    @property
    def usage_errors(self):
        return tuple(self._data.get(Keys.USAGE_ERRORS, ()))

    @property
    def unmatched_args(self):
        return tuple(self._data.get(Keys.UNMATCHED_ARGS, ()))

    @property
    def unmatched_positional(self):
        return tuple(self._data.get(Keys.UNMATCHED_POSITIONAL, ()))

    @property
    def unmatched_flags(self):
        return tuple(self._data.get(Keys.UNMATCHED_FLAGS, ()))

    def exit(self, code=0, /):
        """Stop the tool; the CLI returns code."""
        raise ToolExit(code)

    def run(self, *args, verbosity=Unset):
        """Run another tool through the same CLI, delegated from this context."""
        return self.cli.run(*args, verbosity=coalesce(verbosity, self.verbosity), delegated_from=self)

    def __repr__(self):
        return "context(tool=%r, options=%r)" % (" ".join(self.tool_name), self.options)


__all__ = (
    # Classes
    "Context",
    "Keys",
)
