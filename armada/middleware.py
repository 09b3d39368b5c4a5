"""
Armada middleware: cross-cutting behavior around configuring and running tools.

Phases
- configure: once per node, when the loader materializes it. Each middleware's
  config(node, loader, proceed) may mutate the node and must call proceed() to
  let the remaining (inner) middleware configure it; not calling proceed()
  stops configuration there.
- run: once per invocation. Middleware are composed into nested continuations,
  outermost first; run(context, proceed) may work before and after proceed(),
  or skip it entirely to short-circuit the tool.

Stack specs
- A stack is an ordered iterable of specs; a spec is a Middleware instance, a
  Middleware subclass (instantiated without arguments) or a (class, options)
  pair. resolve_stack() turns specs into instances once.

Standard middleware
- SetDefaultDescriptions, ShowHelp, HandleUsageErrors, AddVerbosityFlags,
  ShowRootVersion, ApplyConfig. default_stack() lists the default order.
"""
import logging

from rich.console import Console
from rich.text import Text

from .acceptors import Acceptor
from .context import Keys
from .faults import ArgParsingError, console
from .help import HelpText
from .utils import *

logger = logging.getLogger(__name__)


class Middleware:
    """Base middleware; both hooks just continue the chain."""

    def config(self, node, loader, proceed, /):
        proceed()

    def run(self, context, proceed, /):
        return proceed()

    def __repr__(self):
        return "%s()" % type(self).__name__


def resolve_stack(specs, /):
    """Instantiate a middleware stack from specs (see module docstring)."""
    stack = []
    for spec in specs:
        match spec:
            case Middleware():
                stack.append(spec)
            case type() if issubclass(spec, Middleware):
                stack.append(spec())
            case (type() as cls, dict() as options) if issubclass(cls, Middleware):
                stack.append(cls(**options))
            case _:
                raise TypeError("illegal middleware spec %r" % (spec,))
    return tuple(stack)


def configure(node, loader, stack, /):
    """Run the configure phase of stack against node, outermost first."""

    def step(index):
        if index == len(stack):
            return

        @rename("proceed")
        def proceed():
            step(index + 1)

        stack[index].config(node, loader, proceed)

    step(0)


def chain(stack, innermost, /):
    """
    Compose the run phase of stack around innermost(context).

    Returns a callable(context); the first middleware is the outermost.
    """
    handler = innermost
    for middleware in reversed(stack):

        def wrap(middleware, inner):
            @rename("%s.run" % type(middleware).__name__)
            def wrapper(context):
                return middleware.run(context, rename(lambda: inner(context), "proceed"))
            return wrapper

        handler = wrap(middleware, handler)
    return handler


def _describe(value):
    return value if isinstance(value, str) else repr(value)


class SetDefaultDescriptions(Middleware):
    """
    Fill in descriptions the tool author left empty.

    Tools, namespaces and the root get fixed defaults; flags and positional
    arguments get a sentence generated from their acceptor and default.
    """

    def __init__(
            self,
            *,
            default_tool_desc="(No tool description available)",
            default_namespace_desc="(A namespace of tools)",
            default_root_desc="Command line tool built using armada",
    ):
        self.default_tool_desc = default_tool_desc
        self.default_namespace_desc = default_namespace_desc
        self.default_root_desc = default_root_desc

    def config(self, node, loader, proceed, /):
        proceed()
        if not node.desc:
            if node.is_root:
                node.desc = self.default_root_desc
            elif node.runnable:
                node.desc = self.default_tool_desc
            else:
                node.desc = self.default_namespace_desc
        for flag in node.flags:
            if not flag.desc:
                flag.desc = self._flag_desc(flag)
        for argument in node.positional_args:
            if not argument.desc:
                argument.desc = self._argument_desc(argument)

    @staticmethod
    def _type_desc(acceptor):
        return acceptor.type_desc if isinstance(acceptor, Acceptor) else "string"

    def _flag_desc(self, flag):
        name = _describe(flag.key)
        if flag.flag_type == "boolean":
            return 'Sets the "%s" flag.' % name
        desc = 'Sets the "%s" option as type %s.' % (name, self._type_desc(flag.acceptor))
        if flag.default is not None:
            desc += " Defaults to %r." % (flag.default,)
        return desc

    def _argument_desc(self, argument):
        type_desc = self._type_desc(argument.acceptor)
        match argument.kind:
            case "required":
                return 'Required %s argument.' % type_desc
            case "optional" if argument.default is not None:
                return "Optional %s argument. Defaults to %r." % (type_desc, argument.default)
            case "optional":
                return "Optional %s argument." % type_desc
            case _:
                return "Remaining arguments are type %s." % type_desc


class ShowHelp(Middleware):
    """
    Help, usage and sub-tool listing flags.

    Options
    - help_flags / usage_flags / list_flags: flag syntaxes for each display
      (empty to disable). List flags exist only on nodes with sub-tools.
    - recursive_flags / search_flags: refine the sub-tool list.
    - default_recursive: list sub-tools recursively unless told otherwise.
    - fallback_execution: show help when a non-runnable tool is run without
      usage errors (namespaces show their help instead of failing).
    - allow_root_args: at the root, help accepts a tool name as arguments
      ("prog --help build" shows the help of build).
    - output: where to print (a rich Console); defaults to the CLI's output.
    """

    def __init__(
            self,
            *,
            help_flags=("-?", "--help"),
            usage_flags=("--usage",),
            list_flags=("--tools",),
            recursive_flags=("--[no-]recursive",),
            search_flags=("--search=TERM",),
            default_recursive=False,
            fallback_execution=False,
            allow_root_args=False,
            output=Unset,
    ):
        self.help_flags = tuple(help_flags)
        self.usage_flags = tuple(usage_flags)
        self.list_flags = tuple(list_flags)
        self.recursive_flags = tuple(recursive_flags)
        self.search_flags = tuple(search_flags)
        self.default_recursive = bool(default_recursive)
        self.fallback_execution = bool(fallback_execution)
        self.allow_root_args = bool(allow_root_args)
        self.output = output

    def config(self, node, loader, proceed, /):
        if not node.argument_parsing_disabled:
            has_subtools = loader.has_subtools(node.full_name)
            shown = []
            if self.help_flags:
                shown.append(node.add_flag(
                    Keys.SHOW_HELP, *self.help_flags, report_collisions=False, desc="Display help for this tool"
                ))
            if self.usage_flags:
                shown.append(node.add_flag(
                    Keys.SHOW_USAGE, *self.usage_flags, report_collisions=False, desc="Display a brief usage string"
                ))
            if has_subtools and self.list_flags:
                shown.append(node.add_flag(
                    Keys.SHOW_LIST, *self.list_flags, report_collisions=False, desc="List the sub-tools of this tool"
                ))
            if has_subtools and (any(flag.active for flag in shown) or self.fallback_execution):
                if self.recursive_flags:
                    node.add_flag(
                        Keys.RECURSIVE_LIST,
                        *self.recursive_flags,
                        default=self.default_recursive,
                        report_collisions=False,
                        desc="List all sub-tools recursively",
                    )
                if self.search_flags:
                    node.add_flag(
                        Keys.SEARCH_TERM,
                        *self.search_flags,
                        report_collisions=False,
                        desc="Search sub-tools for the given term",
                    )
            if node.is_root and self.allow_root_args and not node.runnable and node.remaining_arg is None:
                node.set_remaining_args(
                    Keys.HELP_TARGET, display_name="TOOL_NAME", desc="The tool to show help for"
                )
        proceed()

    def _renderer(self, context, node):
        cli = context.cli
        return HelpText(
            node,
            loader=context.loader,
            executable_name=coalesce(context.executable_name, "armada"),
            colorful=getattr(cli, "colorful", True),
        )

    def _target(self, context):
        words = context.get(Keys.HELP_TARGET) or ()
        node = context.tool
        if words and context.loader is not None:
            node, _ = context.loader.lookup([*context.tool_name, *words])
        return node

    def run(self, context, proceed, /):
        output = coalesce(self.output, getattr(context.cli, "output", None) or Console())
        recursive = bool(context.get(Keys.RECURSIVE_LIST, self.default_recursive))
        search = context.get(Keys.SEARCH_TERM)

        if context.get(Keys.SHOW_HELP):
            output.print(self._renderer(context, self._target(context)).help(recursive=recursive, search=search))
            return 0
        if context.get(Keys.SHOW_USAGE):
            output.print(self._renderer(context, self._target(context)).usage())
            return 0
        if context.get(Keys.SHOW_LIST):
            output.print(self._renderer(context, context.tool).list(recursive=recursive, search=search))
            return 0
        if self.fallback_execution and not context.tool.runnable and not context.usage_errors:
            output.print(self._renderer(context, self._target(context)).help(recursive=recursive, search=search))
            return 0
        return proceed()


class HandleUsageErrors(Middleware):
    """
    Report usage errors and stop with exit_code instead of running the tool.

    The report lists every error (with "did you mean" hints) and the usage line.
    Tools with their own usage-error handler are left to it.
    """

    def __init__(self, *, exit_code=2, output=Unset):
        self.exit_code = exit_code
        self.output = output

    def run(self, context, proceed, /):
        if not (errors := context.usage_errors) or context.tool.usage_error_handler is not None:
            return proceed()
        cli = context.cli
        output = coalesce(self.output, getattr(cli, "error_output", None) or console)
        helper = HelpText(context.tool, loader=context.loader, executable_name=coalesce(context.executable_name, "armada"))
        error = ArgParsingError(
            errors,
            usage="\n".join("usage: " + line for line in helper.usage_lines()),
            program=coalesce(context.executable_name, "armada"),
            colorful=getattr(cli, "colorful", True),
            fancy=getattr(cli, "fancy", False),
        )
        logger.debug("usage errors for %r: %s", " ".join(context.tool_name), error)
        output.print(error)
        return self.exit_code


class AddVerbosityFlags(Middleware):
    """Add flags that raise (-v, --verbose) and lower (-q, --quiet) the verbosity."""

    def __init__(self, *, verbose_flags=("-v", "--verbose"), quiet_flags=("-q", "--quiet")):
        self.verbose_flags = tuple(verbose_flags)
        self.quiet_flags = tuple(quiet_flags)

    def config(self, node, loader, proceed, /):
        if not node.argument_parsing_disabled:
            if self.verbose_flags:
                node.add_flag(
                    Keys.VERBOSITY,
                    *self.verbose_flags,
                    handler=lambda value, previous: (previous or 0) + 1,
                    report_collisions=False,
                    desc="Increase verbosity, causing additional logging levels to display",
                )
            if self.quiet_flags:
                node.add_flag(
                    Keys.VERBOSITY,
                    *self.quiet_flags,
                    handler=lambda value, previous: (previous or 0) - 1,
                    report_collisions=False,
                    desc="Decrease verbosity, causing fewer logging levels to display",
                )
        proceed()


class ShowRootVersion(Middleware):
    """Add a version flag to the root tool and print version_string for it."""

    def __init__(self, *, version_string=Unset, version_flags=("--version",), output=Unset):
        self.version_string = version_string
        self.version_flags = tuple(version_flags)
        self.output = output

    def config(self, node, loader, proceed, /):
        if node.is_root and self.version_string is not Unset and self.version_flags:
            node.add_flag(
                Keys.SHOW_VERSION, *self.version_flags, report_collisions=False, desc="Display the version"
            )
        proceed()

    def run(self, context, proceed, /):
        if context.tool.is_root and context.get(Keys.SHOW_VERSION):
            output = coalesce(self.output, getattr(context.cli, "output", None) or Console())
            output.print(Text(str(self.version_string)))
            return 0
        return proceed()


class ApplyConfig(Middleware):
    """Run callback(node, loader) against every node during configuration."""

    def __init__(self, callback, /):
        if not callable(callback):
            raise TypeError("apply-config callback must be callable")
        self.callback = callback

    def config(self, node, loader, proceed, /):
        self.callback(node, loader)
        proceed()


def default_stack():
    """The default middleware stack, outermost first."""
    return [
        SetDefaultDescriptions,
        (ShowHelp, {"help_flags": ("-?", "--help"), "fallback_execution": True}),
        HandleUsageErrors,
        AddVerbosityFlags,
    ]


__all__ = (
    # Classes
    "Middleware",
    "SetDefaultDescriptions",
    "ShowHelp",
    "HandleUsageErrors",
    "AddVerbosityFlags",
    "ShowRootVersion",
    "ApplyConfig",

    # Functions
    "resolve_stack",
    "configure",
    "chain",
    "default_stack",
)
