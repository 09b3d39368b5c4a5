"""
Armada argument parser: binds an argv to one tool node's schema.

Scanning (left to right, one token at a time)
- "--" disables flag recognition for every later token.
- "--name=value" is a valued long flag; "--name" a plain long flag; "-abc" a
  cluster of single-character flags. A lone "-" is a positional.
- A value-taking short flag inside a cluster takes the rest of the cluster as
  its value ("-sVALUE"); otherwise the next token supplies the value. An
  optional value is only taken from the next token when that token does not
  start with "-".
- Other tokens fill positional arguments: required ones, then optional ones,
  then the remaining capture. Surplus tokens are recorded as unmatched.

Errors
- Ordinary usage mistakes never raise: they are collected as UsageError
  instances in parse order, and scanning continues so several problems can be
  reported together. Only schema mistakes (ToolDefinitionError) propagate.

Finishing
- finish() resolves a pending flag value, reports a missing required argument
  or surplus arguments ("tool not found" for namespaces), checks flag groups
  and stores the results under the well-known Keys.
"""
import re

from .context import Keys
from .faults import (
    AmbiguousFlagError,
    ExtraArgumentsError,
    MissingArgumentError,
    MissingFlagValueError,
    ToolNotFoundError,
    UnacceptableValueError,
    UnexpectedFlagValueError,
    UnknownFlagError,
)
from .arguments import PUSH
from .utils import *

_VALUED_LONG_FLAG = re.compile(r"(--\w[?\w-]*)=(.*)", re.DOTALL)
_LONG_FLAG = re.compile(r"--.+", re.DOTALL)
_SHORT_FLAGS = re.compile(r"-(.+)", re.DOTALL)


class ArgParser:
    """
    Parser state for one parse of one node.

    Usage
        parser = ArgParser(node, loader=loader, verbosity=0)
        parser.parse(args).finish()
        parser.data, parser.errors, parser.unmatched_positional

    The node is only read; parsing the same args twice against the same node
    yields equal data and equal errors.
    """

    def __init__(self, node, /, *, loader=Unset, default_data=Unset, verbosity=0):
        self.node = node
        self.loader = coalesce(loader)
        self.data = dict(coalesce(default_data, node.default_data))
        self.data[Keys.VERBOSITY] = verbosity
        self.errors = []
        self.parsed_args = []
        self.unmatched_args = []
        self.unmatched_positional = []
        self.unmatched_positional_indices = []
        self.unmatched_flags = []
        self.seen_flag_keys = []
        self.finished = False
        self._arguments = node.positional_args
        self._argument_index = 0
        self._flags_allowed = not node.argument_parsing_disabled
        self._parsing_disabled = node.argument_parsing_disabled
        self._active_flag = None
        self._active_flag_name = None

    def parse(self, args, /):
        """Consume args (may be called several times before finish())."""
        if self.finished:
            raise RuntimeError("parser is already finished")
        for arg in args:
            self._parse_arg(arg)
        return self

    def finish(self):
        """Complete the parse; afterwards data, errors and unmatched lists are final."""
        if self.finished:
            return self
        self._finish_active_flag()
        self._finish_arguments()
        self._finish_flag_groups()
        self.data[Keys.ARGS] = tuple(self.parsed_args)
        self.data[Keys.USAGE_ERRORS] = tuple(self.errors)
        self.data[Keys.UNMATCHED_ARGS] = tuple(self.unmatched_args)
        self.data[Keys.UNMATCHED_POSITIONAL] = tuple(self.unmatched_positional)
        self.data[Keys.UNMATCHED_FLAGS] = tuple(self.unmatched_flags)
        self.finished = True
        return self

    # Scanning

    def _parse_arg(self, arg):
        index = len(self.parsed_args)
        self.parsed_args.append(arg)
        if self._parsing_disabled:
            return
        if not self._flags_allowed:
            self._handle_positional(arg, index)
            return
        if self._check_flag_value(arg):
            return
        if arg == "--":
            self._flags_allowed = False
        elif match := _VALUED_LONG_FLAG.fullmatch(arg):
            self._handle_valued_flag(match.group(1), match.group(2))
        elif _LONG_FLAG.fullmatch(arg):
            self._handle_plain_flag(arg)
        elif match := _SHORT_FLAGS.fullmatch(arg):
            self._handle_single_flags(match.group(1))
        else:
            self._handle_positional(arg, index)

    def _check_flag_value(self, arg):
        """Feed arg to a flag waiting for its value; False if it was not taken."""
        if self._active_flag is None:
            return False
        flag, name = self._active_flag, self._active_flag_name
        self._active_flag = self._active_flag_name = None
        taken = flag.value_type == "required" or not arg.startswith("-")
        self._add_data(flag.key, flag.handler, flag.acceptor, arg if taken else None, name, kind="flag")
        return taken

    def _handle_single_flags(self, cluster):
        while cluster:
            cluster = self._handle_plain_flag("-" + cluster[0], cluster[1:])

    def _handle_plain_flag(self, name, following=""):
        resolution = self._find_flag(name)
        if resolution is None:
            return following
        flag = resolution.unique_flag
        self.seen_flag_keys.append(flag.key)
        if flag.flag_type == "boolean":
            self._add_data(flag.key, flag.handler, None, not resolution.unique_flag_negative, name, kind="flag")
        elif not following:
            if flag.value_type == "required" or resolution.unique_flag_syntax.value_delim == " ":
                self._active_flag, self._active_flag_name = flag, name
            else:
                self._add_data(flag.key, flag.handler, flag.acceptor, None, name, kind="flag")
        else:
            self._add_data(flag.key, flag.handler, flag.acceptor, following, name, kind="flag")
            following = ""
        return following

    def _handle_valued_flag(self, name, value):
        resolution = self._find_flag(name)
        if resolution is None:
            return
        flag = resolution.unique_flag
        self.seen_flag_keys.append(flag.key)
        if flag.flag_type == "value":
            self._add_data(flag.key, flag.handler, flag.acceptor, value, name, kind="flag")
        else:
            self.errors.append(UnexpectedFlagValueError(
                "flag %r should not take an argument" % name, name=name, value=value
            ))
            self._add_data(flag.key, flag.handler, None, not resolution.unique_flag_negative, name, kind="flag")

    def _find_flag(self, name):
        resolution = self.node.resolve_flag(name)
        if resolution.found_unique:
            return resolution
        self.unmatched_flags.append(name)
        self.unmatched_args.append(name)
        if resolution.not_found:
            self.errors.append(UnknownFlagError(
                "flag %r is not recognized" % name,
                name=name,
                suggestions=tuple(suggest(name, (string for flag in self.node.flags for string in flag.effective_flags))),
            ))
        else:
            self.errors.append(AmbiguousFlagError(
                "flag prefix %r is ambiguous" % name,
                name=name,
                suggestions=resolution.matching_flag_strings,
            ))
        return None

    def _handle_positional(self, arg, index):
        if self.node.enforce_flags_before_args:
            self._flags_allowed = False
        if self._argument_index >= len(self._arguments):
            self.unmatched_positional.append(arg)
            self.unmatched_positional_indices.append(index)
            self.unmatched_args.append(arg)
            return
        argument = self._arguments[self._argument_index]
        if argument.kind == "remaining":
            self._add_data(argument.key, PUSH, argument.acceptor, arg, argument.display_name, kind="argument")
        else:
            self._add_data(argument.key, None, argument.acceptor, arg, argument.display_name, kind="argument")
            self._argument_index += 1

    def _add_data(self, key, handler, acceptor, value, name, *, kind):
        if acceptor is not None:
            try:
                value = acceptor.accept(value)
            except ValueError:
                self.errors.append(UnacceptableValueError(
                    "unacceptable value %r for %s %r" % (value, kind, name),
                    name=name,
                    value=value,
                    suggestions=tuple(acceptor.suggestions(value)),
                ))
                return
        if handler is not None:
            value = handler(value, self.data.get(key))
        self.data[key] = value

    # Finishing

    def _finish_active_flag(self):
        if self._active_flag is None:
            return
        flag, name = self._active_flag, self._active_flag_name
        self._active_flag = self._active_flag_name = None
        if flag.value_type == "required":
            self.errors.append(MissingFlagValueError("flag %r is missing a value" % name, name=name))
        else:
            self._add_data(flag.key, flag.handler, flag.acceptor, None, name, kind="flag")

    def _finish_arguments(self):
        if self._argument_index < len(self._arguments):
            argument = self._arguments[self._argument_index]
            if argument.kind == "required":
                self.errors.append(MissingArgumentError(
                    "required argument %r is missing" % argument.display_name, name=argument.display_name
                ))
        if not self.unmatched_positional:
            return
        if self.node.runnable or self.seen_flag_keys:
            self.errors.append(ExtraArgumentsError(
                "extra arguments: %s" % " ".join(self.unmatched_positional),
                values=tuple(self.unmatched_positional),
            ))
        else:
            words = (*self.node.full_name, self.unmatched_positional[0])
            self.errors.append(ToolNotFoundError(
                "tool not found: %s" % " ".join(words),
                values=words,
                suggestions=self._tool_suggestions(words[-1]),
            ))

    def _tool_suggestions(self, word):
        if self.loader is None:
            return ()
        names = (node.simple_name for node in self.loader.list_subtools(self.node.full_name))
        return tuple(suggest(word, names))

    def _finish_flag_groups(self):
        for group in self.node.flag_groups:
            self.errors.extend(group.validation_errors(self.seen_flag_keys))


__all__ = (
    # Classes
    "ArgParser",
)
