"""
Armada faults (errors raised or collected by the framework) and rendering.

Scope
- FaultCode: stable numeric identifiers grouped by domain, so logs and
  searches stay predictable.
- ToolException: base type carrying a message plus read-only options, able to
  render itself for rich consoles.
- UsageError and subclasses: user input problems. The parser collects them as
  data; ArgParsingError bundles them when a caller decides to abort.
- ToolDefinitionError, DefinitionConflictError, LoaderError: programmer or
  configuration mistakes, raised immediately.
- NotRunnableError, ContextualError: execution-time failures.
- ToolExit: control-flow exit carrying an exit code.

Rendering
- Titles and messages use a short, lowercased tone.
- Palettes can be overridden with a __styles__ mapping in __main__.
- Options "colorful" (default True), "fancy" (panel chrome, default False) and
  "program" (header label) tune the output.
"""
import contextlib
import copy
import os
import traceback
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, pluralize

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across armada.

    grouping (by domain)
    - usage (11xxx): problems with the argv of one invocation.
    - definition (21xxx): malformed schemas and source conflicts.
    - loading (22xxx): source and loader misuse.
    - execution (31xxx): failures while running a tool.
    """
    # --- usage errors (11xxx) ---
    USAGE                   = 11100
    TOOL_NOT_FOUND          = 11101
    UNKNOWN_FLAG            = 11111
    AMBIGUOUS_FLAG          = 11112
    MISSING_FLAG_VALUE      = 11113
    UNEXPECTED_FLAG_VALUE   = 11114
    UNACCEPTABLE_VALUE      = 11115
    MISSING_ARGUMENT        = 11121
    EXTRA_ARGUMENTS         = 11122
    FLAG_GROUP_VIOLATION    = 11131

    # --- definition errors (21xxx) ---
    ILLEGAL_DEFINITION      = 21101
    DEFINITION_CONFLICT     = 21102

    # --- loading errors (22xxx) ---
    LOADER_MISUSE           = 22101

    # --- execution errors (31xxx) ---
    NOT_RUNNABLE            = 31101
    TOOL_FAILURE            = 31111

    def normalize(self):
        """
        return a host-normalized label for this code.

        a __codes__ mapping in __main__ may remap codes to friendlier labels;
        otherwise the numeric value is used.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _palette(defaults, /):
    """merge a default palette with the host's __styles__ overrides."""
    return defaultdict(str, defaults | getattr(__import__("__main__"), "__styles__", {}))


def _texter(options, styles, /):
    """build the (styler, text) pair honoring the colorful option."""
    colorful = options.get("colorful", True)

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if isinstance(fragment, Text):
            return fragment if colorful else Text(fragment.plain)
        return Text(str(fragment), style if colorful else "")

    return styler, text


class ToolException(Exception):
    """
    base type for every fault raised or collected by armada.

    the message is positional; every other detail lives in a read-only
    options mapping so faults can be copied with overrides via copy.replace().
    """
    code = FaultCode.TOOL_FAILURE
    title = "tool failure"

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message or "")
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message or ""

    @property
    def hint(self):
        return self.options.get("hint")

    def __rich__(self):
        styles = _palette({
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        })
        styler, text = _texter(self.options, styles)

        main = __import__("__main__")
        prog = text(getattr(main, "__prog__", self.options.get("program", "armada")), styler("prog-name"))
        header = Text.assemble(
            "[ ",
            prog,
            " - ",
            text(self.options.get("code", self.code).normalize(), styler("code")),
            " | ",
            text(self.options.get("title", self.title).title(), styler("error-title")),
            " ]"
        )
        renders = [text(self.message, styler("error-message"))]
        renders.extend(self._details(styler, text))
        if self.hint:
            renders.append(Text.assemble(text(" → ", styler("hint-arrow")), text(self.hint, styler("hint"))))

        if self.options.get("fancy", False):
            width = self.options.get("width")
            return Panel(Group(*renders), title=header, title_align="left", width=width)
        return Group(header, *renders)

    def _details(self, styler, text):
        """extra body lines rendered between the message and the hint."""
        return ()

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class ToolDefinitionError(ToolException):
    """a tool schema is malformed (illegal flag syntax, duplicates, bad ordering)."""
    code = FaultCode.ILLEGAL_DEFINITION
    title = "illegal definition"


class DefinitionConflictError(ToolDefinitionError):
    """two sources at the same priority both define the same tool."""
    code = FaultCode.DEFINITION_CONFLICT
    title = "definition conflict"

    @property
    def provenances(self):
        return tuple(self.options.get("provenances", ()))


class LoaderError(ToolException):
    code = FaultCode.LOADER_MISUSE
    title = "loader error"


class NotRunnableError(ToolException):
    code = FaultCode.NOT_RUNNABLE
    title = "tool not runnable"


class UsageError(ToolException):
    """
    a recoverable problem with the arguments of one invocation.

    usage errors are data: the parser appends them to a list and keeps
    scanning. options commonly carried:
    - name: the flag or argument display name involved.
    - value: the raw token involved, if any.
    - suggestions: close alternatives, best first.
    """
    code = FaultCode.USAGE
    title = "usage error"

    @property
    def suggestions(self):
        return tuple(self.options.get("suggestions", ()))

    @property
    def hint(self):
        if hint := self.options.get("hint"):
            return hint
        if suggestions := self.suggestions:
            return "did you mean %s?" % " or ".join(map(repr, suggestions[:3]))
        return None

    def __eq__(self, other):
        if not isinstance(other, UsageError):
            return NotImplemented
        return type(self) is type(other) and self.message == other.message and self.suggestions == other.suggestions

    def __hash__(self):
        return hash((type(self), self.message, self.suggestions))


class ToolNotFoundError(UsageError):
    code = FaultCode.TOOL_NOT_FOUND
    title = "tool not found"


class UnknownFlagError(UsageError):
    code = FaultCode.UNKNOWN_FLAG
    title = "unknown flag"


class AmbiguousFlagError(UsageError):
    code = FaultCode.AMBIGUOUS_FLAG
    title = "ambiguous flag"


class MissingFlagValueError(UsageError):
    code = FaultCode.MISSING_FLAG_VALUE
    title = "missing flag value"


class UnexpectedFlagValueError(UsageError):
    code = FaultCode.UNEXPECTED_FLAG_VALUE
    title = "flag cannot take a value"


class UnacceptableValueError(UsageError):
    code = FaultCode.UNACCEPTABLE_VALUE
    title = "unacceptable value"


class MissingArgumentError(UsageError):
    code = FaultCode.MISSING_ARGUMENT
    title = "missing argument"


class ExtraArgumentsError(UsageError):
    code = FaultCode.EXTRA_ARGUMENTS
    title = "extra arguments"


class FlagGroupError(UsageError):
    code = FaultCode.FLAG_GROUP_VIOLATION
    title = "flag group violation"


class ArgParsingError(ExceptionGroup[UsageError]):
    """
    raised when usage errors abort an invocation.

    wraps the collected UsageError instances in parse order and renders them
    together under a single header.
    """
    code = FaultCode.USAGE

    def __new__(cls, exceptions, **options):
        return super().__new__(cls, "usage errors", tuple(exceptions))

    def __init__(self, exceptions, **options):
        super().__init__("usage errors", tuple(exceptions))
        self.options = MappingProxyType(options)

    @property
    def usage_errors(self):
        return self.exceptions

    def __str__(self):
        return "; ".join(map(str, self.exceptions))

    def __rich__(self):
        styles = _palette({
            "prog-name": "bold #E6E6F0",
            "title": "bold #FF4DA6",
            "usage": "#9CA3AF",
        })
        styler, text = _texter(self.options, styles)

        main = __import__("__main__")
        prog = text(getattr(main, "__prog__", self.options.get("program", "armada")), styler("prog-name"))
        count = len(self.exceptions)
        label = "%d %s" % (count, pluralize("usage error") if count > 1 else "usage error")
        header = Text.assemble("[ ", prog, " - ", text(label.title(), styler("title")), " ]")

        renders = [copy.replace(exception, **self.options) for exception in self.exceptions]
        if usage := self.options.get("usage"):
            renders.append(text(usage, styler("usage")))

        if self.options.get("fancy", False):
            return Panel(Group(*renders), title=header, title_align="left")
        return Group(header, *renders)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.exceptions, **{**self.options, **overrides})


def _locate(exception, path, /):
    """find the deepest traceback frame belonging to path, as 'path:line'."""
    if not path or exception is None:
        return None
    path = os.path.abspath(path)
    for frame in reversed(traceback.extract_tb(exception.__traceback__)):
        if os.path.abspath(frame.filename) == path:
            return "%s:%d" % (frame.filename, frame.lineno)
    return None


class ContextualError(ToolException):
    """
    wraps an unexpected exception with the context it happened in.

    options
    - cause: the original exception (also chained as __cause__).
    - tool_name: the name path of the tool being executed, if known.
    - tool_args: the arguments the tool was given, if known.
    - source_path: the file the tool was defined in, if known.
    - source_location: best-effort "path:line" within source_path.
    """
    code = FaultCode.TOOL_FAILURE
    title = "tool failure"

    def __init__(self, message=Unset, /, **options):
        super().__init__(message, **options)
        self.__cause__ = options.get("cause")

    @property
    def cause(self):
        return self.options.get("cause")

    @property
    def banner(self):
        return self.message

    @property
    def tool_name(self):
        return self.options.get("tool_name")

    @property
    def tool_args(self):
        return self.options.get("tool_args")

    @property
    def source_location(self):
        return self.options.get("source_location")

    def _details(self, styler, text):
        styles = _palette({"cause": "bold #FFD600", "context": "#9CA3AF"})
        if self.cause is not None:
            yield text("%s: %s" % (type(self.cause).__name__, self.cause), styles["cause"])
        if self.tool_name is not None:
            yield text("while executing tool: %s" % " ".join(self.tool_name), styles["context"])
            if self.tool_args is not None:
                yield text("with arguments: %r" % list(self.tool_args), styles["context"])
        if self.source_location:
            yield text("at %s" % self.source_location, styles["context"])
        elif self.options.get("source_path"):
            yield text("in %s" % self.options["source_path"], styles["context"])

    @classmethod
    @contextlib.contextmanager
    def capture(cls, banner, /, **options):
        """
        wrap any exception escaping the block into a ContextualError.

        behavior
        - an existing ContextualError only gets the options it is missing.
        - ToolExit, KeyboardInterrupt and other BaseException subclasses pass
          through untouched.
        - anything else becomes cls(banner, cause=exception, **options).
        """
        try:
            yield
        except ContextualError as error:
            missing = {key: value for key, value in options.items() if error.options.get(key) is None}
            if error.source_location is None and (path := missing.get("source_path")):
                missing["source_location"] = _locate(error.cause, path)
            raise copy.replace(error, **missing) from error.cause
        except Exception as exception:
            location = _locate(exception, options.get("source_path"))
            raise cls(banner, cause=exception, **options, source_location=location) from exception


class ToolExit(SystemExit):
    """
    request to stop the current tool with an exit code.

    raised by Context.exit(); the CLI converts it into the returned code.
    outside a CLI it behaves like SystemExit.
    """

    def __init__(self, code=0, /):
        super().__init__(code)


__all__ = (
    "FaultCode",
    "ToolException",
    "ToolDefinitionError",
    "DefinitionConflictError",
    "LoaderError",
    "NotRunnableError",
    "UsageError",
    "ToolNotFoundError",
    "UnknownFlagError",
    "AmbiguousFlagError",
    "MissingFlagValueError",
    "UnexpectedFlagValueError",
    "UnacceptableValueError",
    "MissingArgumentError",
    "ExtraArgumentsError",
    "FlagGroupError",
    "ArgParsingError",
    "ContextualError",
    "ToolExit",
)
