"""
Armada CLI: resolve, parse and run tools from an argv.

run(*args) -> exit code
1. loader.lookup(args): the deepest defined tool and the leftover args.
2. ArgParser binds the leftover args to the tool; usage errors are data.
3. A non-runnable tool whose first unmatched positional names a defined
   sub-tool is re-dispatched to that sub-tool with the other args.
4. A fresh Context is seeded with the bound values, the well-known keys and a
   per-run logger whose level follows the verbosity.
5. The tool's middleware chain runs around the executor, which:
   - hands usage errors to the tool's usage-error handler, or raises
     ArgParsingError;
   - follows delegation, raises NotRunnableError for namespaces;
   - runs mixin initializers, then the run handler. An int result is the exit
     code; any other result means 0.
6. Exceptions escaping the chain are wrapped in ContextualError (tool name,
   args, source location) and given to the error handler, which returns the
   exit code. Without an error handler they propagate. KeyboardInterrupt goes
   to the tool's interrupt handler when it has one, and otherwise reaches the
   error handler (or the caller) unwrapped. ToolExit always becomes its code.
"""
import dataclasses
import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from . import middleware
from .config import Settings
from .context import Context, Keys
from .faults import (
    ArgParsingError,
    ContextualError,
    NotRunnableError,
    ToolDefinitionError,
    ToolExit,
    console,
)
from .help import HelpText
from .loader import Loader
from .parser import ArgParser
from .utils import *

logger = logging.getLogger(__name__)


def _exit_code(result):
    return result if isinstance(result, int) and not isinstance(result, bool) else 0


class DefaultErrorHandler:
    """
    Print the error to output and map it to an exit code.

    Exit codes
    - ArgParsingError: 2
    - NotRunnableError: 126
    - KeyboardInterrupt: 130 (128 + SIGINT)
    - anything else: 1
    """

    def __init__(self, *, output=Unset):
        self.output = coalesce(output, console)

    def __call__(self, error, /):
        cause = error.cause if isinstance(error, ContextualError) and error.cause is not None else error
        match cause:
            case KeyboardInterrupt():
                self.output.print(Text("interrupted"))
                return 130
            case ArgParsingError():
                self.output.print(cause)
                return 2
            case NotRunnableError():
                self.output.print(cause)
                return 126
            case _:
                self.output.print(error)
                return 1


class CLI:
    """
    Entry point object owning one loader.

    Options (each falls back to settings, see config.Settings)
    - executable_name: program name shown in help and messages.
    - middleware_stack: middleware specs (default: middleware.default_stack()).
    - extra_delimiters, index_file_name, config_dir_name: loader settings.
    - base_level: log level at verbosity 0 (default WARNING).
    - error_handler: callable(error) -> exit code; None lets errors propagate.
    - logger_factory: callable(node) -> logging.Logger, called once per run.
    - colorful, fancy: rendering switches.
    - output, error_output: rich Consoles for normal and error output.
    """

    def __init__(
            self,
            *,
            executable_name=Unset,
            middleware_stack=Unset,
            extra_delimiters=Unset,
            base_level=Unset,
            error_handler=None,
            logger_factory=Unset,
            index_file_name=Unset,
            config_dir_name=Unset,
            colorful=Unset,
            fancy=Unset,
            output=Unset,
            error_output=Unset,
            settings=Unset,
    ):
        settings = coalesce(settings, Settings())
        self._options = {
            "executable_name": executable_name,
            "middleware_stack": middleware_stack,
            "extra_delimiters": extra_delimiters,
            "base_level": base_level,
            "error_handler": error_handler,
            "logger_factory": logger_factory,
            "index_file_name": index_file_name,
            "config_dir_name": config_dir_name,
            "colorful": colorful,
            "fancy": fancy,
            "output": output,
            "error_output": error_output,
            "settings": settings,
        }
        self.settings = settings
        self.executable_name = coalesce(
            executable_name, settings.executable_name or os.path.basename(sys.argv[0]) or "armada"
        )
        self.base_level = coalesce(base_level, settings.base_level)
        self.error_handler = error_handler
        self.logger_factory = coalesce(logger_factory, self._default_logger)
        self.index_file_name = coalesce(index_file_name, settings.index_file_name)
        self.config_dir_name = coalesce(config_dir_name, settings.config_dir_name)
        self.colorful = coalesce(colorful, settings.colorful)
        self.fancy = coalesce(fancy, settings.fancy)
        self.output = coalesce(output, Console())
        self.error_output = coalesce(error_output, console)
        self.loader = Loader(
            middleware_stack=middleware_stack,
            extra_delimiters=coalesce(extra_delimiters, settings.extra_delimiters),
            index_file_name=self.index_file_name,
        )
        for path in settings.search_paths:
            self.add_search_path(path)

    # Sources

    def add_block(self, definer, prefix=(), /, **options):
        self.loader.add_block(definer, prefix, **options)
        return self

    def add_path(self, path, prefix=(), /, **options):
        self.loader.add_path(path, prefix, **options)
        return self

    def add_search_path(self, directory, /, *, prepend=False):
        """Add <directory>/<config-dir-name> and <directory>/<index-file-name>, when present."""
        directory = os.fspath(directory)
        found = False
        for name, check in ((self.config_dir_name, os.path.isdir), (self.index_file_name, os.path.isfile)):
            if check(candidate := os.path.join(directory, name)):
                self.loader.add_path(candidate, prepend=prepend)
                found = True
        return found

    def add_search_path_hierarchy(self, start=Unset, terminate=Unset, /):
        """Add search paths from start up to the filesystem root (or terminate)."""
        directory = os.path.abspath(coalesce(start, os.getcwd()))
        terminate = None if terminate is Unset else os.path.abspath(terminate)
        while True:
            self.add_search_path(directory)
            parent = os.path.dirname(directory)
            if directory == terminate or parent == directory:
                break
            directory = parent
        return self

    def child(self, **overrides):
        """A CLI with the same options and sources and a fresh cache."""
        unknown = set(overrides) - set(self._options)
        if unknown:
            raise TypeError("unknown CLI options: %s" % ", ".join(sorted(unknown)))
        options = self._options | overrides
        options["settings"] = dataclasses.replace(options["settings"], search_paths=())
        clone = type(self)(**options)
        for source in self.loader.sources:
            clone.loader.add_source(source, source.priority)
        return clone

    # Running

    def run(self, *args, verbosity=0, delegated_from=None):
        """Run the tool named by args; return its exit code."""
        if len(args) == 1 and not isinstance(args[0], str):
            args = tuple(args[0])
        try:
            with ContextualError.capture("error while loading tool", tool_args=args):
                node, remaining = self.loader.lookup(args)
            return self._execute(node, list(remaining), verbosity, delegated_from)
        except ToolExit as request:
            return request.code if isinstance(request.code, int) else (0 if request.code is None else 1)
        except (ContextualError, KeyboardInterrupt) as error:
            if self.error_handler is None:
                raise
            return self.error_handler(error)

    def _execute(self, node, args, verbosity, delegated_from):
        options = {
            "tool_name": node.full_name,
            "tool_args": tuple(args),
            "source_path": getattr(node.source_info, "path", None),
        }
        with ContextualError.capture("unexpected error while running tool", **options):
            parser = ArgParser(node, loader=self.loader, verbosity=verbosity).parse(args).finish()

            if not node.runnable and parser.unmatched_positional:
                child = self.loader.lookup_specific((*node.full_name, parser.unmatched_positional[0]))
                if child is not None:
                    index = parser.unmatched_positional_indices[0]
                    logger.debug("re-dispatching %r to %r", node.display_name, child.display_name)
                    return self._execute(child, args[:index] + args[index + 1:], verbosity, delegated_from)

            context = Context(self._seed(node, parser.data, delegated_from))
            runner = middleware.chain(node.middleware_stack, self._executor)
            try:
                return _exit_code(runner(context))
            except KeyboardInterrupt:
                if node.interrupt_handler is None:
                    raise
                return _exit_code(node.interrupt_handler(context))

    def _seed(self, node, data, delegated_from):
        run_logger = self.logger_factory(node)
        level = self.base_level - 10 * (data.get(Keys.VERBOSITY) or 0)
        run_logger.setLevel(min(max(level, logging.DEBUG), logging.CRITICAL))
        return data | {
            Keys.CLI: self,
            Keys.LOADER: self.loader,
            Keys.TOOL: node,
            Keys.TOOL_NAME: node.full_name,
            Keys.TOOL_SOURCE: node.source_info,
            Keys.CONTEXT_DIRECTORY: node.context_directory,
            Keys.EXECUTABLE_NAME: self.executable_name,
            Keys.LOGGER: run_logger,
            Keys.DELEGATED_FROM: delegated_from,
        }

    def _default_logger(self, node):
        run_logger = logging.Logger(" ".join((self.executable_name, *node.full_name)))
        run_logger.addHandler(RichHandler(console=self.error_output, show_time=False, show_path=False))
        return run_logger

    def _executor(self, context):
        node = context.tool
        if errors := context.usage_errors:
            if node.usage_error_handler is not None:
                return node.usage_error_handler(context)
            helper = HelpText(node, loader=self.loader, executable_name=self.executable_name)
            raise ArgParsingError(
                errors,
                usage="\n".join("usage: " + line for line in helper.usage_lines()),
                program=self.executable_name,
                colorful=self.colorful,
                fancy=self.fancy,
            )
        if node.delegate_target is not None:
            return self._delegate(context)
        if not node.runnable:
            raise NotRunnableError(
                "no implementation for tool %r" % node.display_name,
                program=self.executable_name,
                colorful=self.colorful,
                fancy=self.fancy,
            )
        for initializer, options in node.initializers:
            initializer(context, **options)
        return node.run_handler(context)

    def _delegate(self, context):
        node = context.tool
        target = node.delegate_target
        visited = [node.full_name]
        origin = context.delegated_from
        while origin is not None:
            visited.append(origin.tool_name)
            origin = origin.delegated_from
        if target in visited:
            raise ToolDefinitionError("delegation loop: %s" % " -> ".join(
                " ".join(name) or "(root)" for name in (*reversed(visited), target)
            ))
        if self.loader.lookup_specific(target) is None:
            raise ToolDefinitionError("delegation target %r of tool %r not found" % (" ".join(target), node.display_name))
        return self.run(*target, *context.args, verbosity=context.verbosity, delegated_from=context)


__all__ = (
    # Classes
    "CLI",
    "DefaultErrorHandler",
)
