r"""
Armada schema elements: flags, positional arguments and flag groups.

Overview
- FlagSyntax
  • One textual form of a flag, parsed from conventional option-parser notation:
    "-x", "-xVAL", "-x VAL", "-x[VAL]", "-x [VAL]", "--name", "--[no-]name",
    "--name=VAL", "--name VAL", "--name=[VAL]", "--name[=VAL]", "--name [VAL]".
  • Syntaxes without a value marker are canonicalized from their siblings.
- Flag
  • A keyed flag made of one or more syntaxes, with an acceptor, a default and a
    handler deciding how repeated occurrences combine (SET or PUSH or a callable).
- FlagResolution
  • The result of matching one command-line token against flags: exact matches
    win over unique prefixes; several candidates mean the token is ambiguous.
- PositionalArg
  • A required, optional or remaining positional argument.
- FlagGroup
  • A cardinality constraint over member flags, checked once parsing ends:
    optional, required (required-all), exactly_one, at_most_one, at_least_one.

Representation
- SchemaType metaclass gives each element a __typename__ (camel-case split with
  hyphens), read-only properties for __introspectable__ fields, and stable
  __repr__/__rich_repr__ implementations.

Validation
- Illegal syntaxes, conflicting flag types and flag collisions raise
  ToolDefinitionError; these are schema (programmer) mistakes, never usage errors.
"""
import enum
import functools
import operator
import re

from . import acceptors
from .faults import FlagGroupError, ToolDefinitionError
from .utils import *


class SchemaType(type):
    """
    Metaclass that makes schema elements introspectable.

    Conventions
    - __typename__ is derived from the class name ("FlagGroup" -> "flag-group")
      and used in messages.
    - Every name in __introspectable__ gets a read-only property mirroring the
      private "_{name}" field, unless the class body defines that name itself.
    - __displayable__ (if set) narrows what __rich_repr__ shows.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            } | namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


@rename("SET")
def SET(value, previous, /):
    """Flag handler: the latest occurrence replaces the previous value."""
    return value


@rename("PUSH")
def PUSH(value, previous, /):
    """Flag handler: occurrences accumulate in a list, in command-line order."""
    return [*(previous if isinstance(previous, list) else ()), value]


def _resolve_handler(handler, /):
    match handler:
        case UnsetType() | None | "set":
            return SET
        case "push":
            return PUSH
        case _ if callable(handler):
            return handler
        case _:
            raise ToolDefinitionError("unknown flag handler %r" % (handler,))


def _sanitize_desc(cls, metadata, /):
    """Normalize 'desc' and 'long_desc' in place; descriptions are plain strings."""
    if not isinstance(desc := metadata["desc"], str | UnsetType):
        raise TypeError(f"{cls.__typename__} 'desc' must be a string")
    metadata["desc"] = coalesce(desc, "").strip()

    long_desc = metadata["long_desc"]
    if isinstance(long_desc, str):
        long_desc = (long_desc,)
    if not all(isinstance(line, str) for line in long_desc):
        raise TypeError(f"{cls.__typename__} 'long_desc' must be a string or strings")
    metadata["long_desc"] = tuple(long_desc)


_SYNTAXES = (
    # (pattern, style, flag type, value type)
    (re.compile(r"(?P<bare>-(?P<sort>[?\w]))"), "short", None, None),
    (re.compile(r"(?P<bare>-(?P<sort>[?\w]))(?P<delim> ?)\[(?P<label>\w+)\]"), "short", "value", "optional"),
    (re.compile(r"(?P<bare>-(?P<sort>[?\w]))\[(?P<delim> )(?P<label>\w+)\]"), "short", "value", "optional"),
    (re.compile(r"(?P<bare>-(?P<sort>[?\w]))(?P<delim> ?)(?P<label>\w+)"), "short", "value", "required"),
    (re.compile(r"--\[no-\](?P<sort>\w[?\w-]*)"), "long", "boolean", None),
    (re.compile(r"(?P<bare>--(?P<sort>\w[?\w-]*))"), "long", None, None),
    (re.compile(r"(?P<bare>--(?P<sort>\w[?\w-]*))(?P<delim>[= ])\[(?P<label>\w+)\]"), "long", "value", "optional"),
    (re.compile(r"(?P<bare>--(?P<sort>\w[?\w-]*))\[(?P<delim>[= ])(?P<label>\w+)\]"), "long", "value", "optional"),
    (re.compile(r"(?P<bare>--(?P<sort>\w[?\w-]*))(?P<delim>[= ])(?P<label>\w+)"), "long", "value", "required"),
)


class FlagSyntax(metaclass=SchemaType):
    """
    One textual form of a flag.

    Fields
    - original: the syntax as written by the tool author.
    - positive_flag / negative_flag: the literal flags it matches ("--[no-]x"
      yields both "--x" and "--no-x").
    - style: "short" or "long".
    - flag_type: "boolean", "value", or None until canonicalized.
    - value_type: "required" or "optional" for value flags.
    - value_delim: "" (attached), " " (separate token) or "=".
    - canonical: the normalized form used in help output.
    """

    __introspectable__ = (
        "original",
        "positive_flag",
        "negative_flag",
        "str_without_value",
        "sort_str",
        "style",
        "flag_type",
        "value_type",
        "value_delim",
        "value_label",
        "canonical",
    )
    __displayable__ = ("original", "flag_type", "value_type")

    def __init__(self, text, /):
        if not isinstance(text, str):
            raise TypeError(f"{type(self).__typename__} must be a string")
        for pattern, style, flag_type, value_type in _SYNTAXES:
            if match := pattern.fullmatch(text):
                break
        else:
            raise ToolDefinitionError("illegal flag syntax %r" % text)

        groups = match.groupdict()
        if flag_type == "boolean" and style == "long" and groups.get("bare") is None:
            self._positive_flag = "--" + groups["sort"]
            self._negative_flag = "--no-" + groups["sort"]
            self._str_without_value = text
        else:
            self._positive_flag = groups["bare"]
            self._negative_flag = None
            self._str_without_value = groups["bare"]

        self._original = text
        self._sort_str = groups["sort"]
        self._style = style
        self._flag_type = flag_type
        self._value_type = value_type
        self._value_delim = groups.get("delim")
        self._value_label = label.upper() if (label := groups.get("label")) else None
        self._canonical = text

    @property
    def flags(self):
        """Every literal flag string matched by this syntax."""
        return tuple(flag for flag in (self._positive_flag, self._negative_flag) if flag)

    def configure_canonical(self, flag_type, value_type, value_label, value_delim, /):
        """
        Adopt the canonical type of the owning flag when this syntax did not
        declare one itself ("-v" next to "--verbose=LEVEL").
        """
        if self._flag_type is not None:
            return
        self._flag_type = flag_type
        if flag_type != "value":
            return
        self._value_type = value_type
        if value_delim == "=" and self._style == "short":
            value_delim = ""
        elif value_delim == "" and self._style == "long":
            value_delim = "="
        self._value_delim = value_delim
        self._value_label = value_label
        label = f"[{value_label}]" if value_type == "optional" else value_label
        self._canonical = f"{self._str_without_value}{value_delim}{label}"


class FlagResolution:
    """
    Candidates for one command-line flag token.

    Exact matches replace any prefix matches collected so far; once an exact
    match exists, further prefix matches are ignored.
    """

    def __init__(self, string, /):
        self.string = string
        self.found_exact = False
        self._matches = []

    def add(self, flag, syntax, negative, exact, /):
        if exact and not self.found_exact:
            self._matches.clear()
            self.found_exact = True
        if exact or not self.found_exact:
            if not any(match[0] is flag and match[2] == negative for match in self._matches):
                self._matches.append((flag, syntax, negative))
        return self

    def merge(self, other, /):
        if other.string != self.string:
            raise ValueError("cannot merge resolutions of different strings")
        for flag, syntax, negative in other._matches:
            self.add(flag, syntax, negative, other.found_exact)
        return self

    @property
    def count(self):
        return len(self._matches)

    @property
    def found_unique(self):
        return self.count == 1

    @property
    def not_found(self):
        return self.count == 0

    @property
    def found_multiple(self):
        return self.count > 1

    @property
    def unique_flag(self):
        return self._matches[0][0] if self.found_unique else None

    @property
    def unique_flag_syntax(self):
        return self._matches[0][1] if self.found_unique else None

    @property
    def unique_flag_negative(self):
        return self._matches[0][2] if self.found_unique else None

    @property
    def matching_flag_strings(self):
        """The literal flags that matched, for ambiguity messages."""
        return tuple(
            syntax.negative_flag if negative else syntax.positive_flag
            for _, syntax, negative in self._matches
        )


class Flag(metaclass=SchemaType):
    """
    A keyed command-line flag.

    Construction
    - key: the data key the parsed value is stored under.
    - syntaxes: one or more FlagSyntax strings. When none are given, a default
      is derived from the key ("-k" for one character, "--kebab-key" otherwise),
      with " VALUE" appended when the acceptor or default implies a value.
    - accept: acceptor spec (see acceptors.create).
    - default: the value stored when the flag never appears.
    - handler: SET, PUSH, "set", "push", or a callable (value, previous).
    - used_flags: the owning node's list of taken flag strings. Colliding
      syntaxes raise ToolDefinitionError when report_collisions is set, and are
      silently dropped otherwise.

    Canonicalization
    - All syntaxes must agree on boolean vs value, and on required vs optional
      values; syntaxes that declared neither adopt the canonical choice.
    """

    __introspectable__ = (
        "key",
        "syntaxes",
        "acceptor",
        "default",
        "handler",
        "group",
        "display_name",
        "sort_str",
        "flag_type",
        "value_type",
        "value_label",
        "value_delim",
        "completion",
    )
    __displayable__ = ("key", "syntaxes", "flag_type", "value_type", "default", "desc")

    def __init__(
            self,
            key,
            /,
            *syntaxes,
            accept=Unset,
            default=None,
            handler=Unset,
            desc=Unset,
            long_desc=(),
            display_name=Unset,
            group=Unset,
            completion=Unset,
            used_flags=Unset,
            report_collisions=True,
    ):
        if not isinstance(key, str | enum.Enum) or not key:
            raise TypeError(f"{type(self).__typename__} key must be a non-empty string or an enum member")

        metadata = {"desc": desc, "long_desc": long_desc}
        _sanitize_desc(type(self), metadata)

        self._key = key
        self._acceptor = acceptors.create(accept)
        self._default = default
        self._handler = _resolve_handler(handler)
        self._group = coalesce(group)
        self._completion = coalesce(completion)
        self._desc = metadata["desc"]
        self._long_desc = metadata["long_desc"]
        self._syntaxes = [FlagSyntax(syntax) for syntax in syntaxes]

        if not self._syntaxes:
            self._create_default_syntax()
        self._remove_used_flags(used_flags, report_collisions)
        self._canonicalize()
        self._summarize(display_name)

    @property
    def desc(self):
        return self._desc

    @desc.setter
    def desc(self, value):
        if not isinstance(value, str):
            raise TypeError(f"{type(self).__typename__} 'desc' must be a string")
        self._desc = value

    @property
    def long_desc(self):
        return self._long_desc

    @long_desc.setter
    def long_desc(self, value):
        self._long_desc = (value,) if isinstance(value, str) else tuple(value)

    @property
    def effective_flags(self):
        """Every literal flag string this flag answers to."""
        return tuple(flag for syntax in self._syntaxes for flag in syntax.flags)

    @property
    def active(self):
        return bool(self._syntaxes)

    @property
    def short_syntaxes(self):
        return tuple(syntax for syntax in self._syntaxes if syntax.style == "short")

    @property
    def long_syntaxes(self):
        return tuple(syntax for syntax in self._syntaxes if syntax.style == "long")

    @property
    def canonical_syntax_strings(self):
        return tuple(syntax.canonical for syntax in self._syntaxes)

    def resolve(self, string, /):
        """Match a command-line token against this flag's syntaxes."""
        resolution = FlagResolution(string)
        for syntax in self._syntaxes:
            if syntax.positive_flag == string:
                resolution.add(self, syntax, False, True)
            elif syntax.negative_flag == string:
                resolution.add(self, syntax, True, True)
            elif syntax.positive_flag.startswith(string):
                resolution.add(self, syntax, False, False)
            elif syntax.negative_flag and syntax.negative_flag.startswith(string):
                resolution.add(self, syntax, True, False)
        return resolution

    def _create_default_syntax(self):
        key = self._key
        if not isinstance(key, str):
            return
        if len(key) == 1:
            syntax = "-" + key if re.fullmatch(r"[A-Za-z0-9?]", key) else None
        else:
            syntax = "--" + name if (name := kebab(key)) else None
        if syntax is None:
            return
        if self._implies_value():
            syntax += " VALUE"
        self._syntaxes.append(FlagSyntax(syntax))

    def _implies_value(self):
        return (
            self._acceptor.well_known not in ("default", "object", "boolean")
            or self._default not in (None, True, False)
        )

    def _remove_used_flags(self, used_flags, report_collisions):
        if used_flags is Unset:
            return
        kept = []
        for syntax in self._syntaxes:
            collisions = [flag for flag in syntax.flags if flag in used_flags]
            if collisions and report_collisions:
                raise ToolDefinitionError(
                    "cannot use flag %r because it is already assigned or reserved" % collisions[0]
                )
            if not collisions:
                kept.append(syntax)
        self._syntaxes = kept
        used_flags.extend(dict.fromkeys(self.effective_flags))

    def _canonicalize(self):
        flag_type = value_type = value_label = None
        value_delim = " "
        for syntax in (*reversed(self.short_syntaxes), *reversed(self.long_syntaxes)):
            if syntax.flag_type is None:
                continue
            if flag_type is not None and flag_type != syntax.flag_type:
                raise ToolDefinitionError("cannot have both value and boolean flags for %r" % self._key)
            flag_type = syntax.flag_type
            if flag_type != "value":
                continue
            if value_type is not None and value_type != syntax.value_type:
                raise ToolDefinitionError("cannot have both required and optional values for flag %r" % self._key)
            value_type = syntax.value_type
            value_label = syntax.value_label
            value_delim = syntax.value_delim

        if flag_type is None and self._implies_value():
            flag_type, value_type, value_label, value_delim = "value", "optional", "VALUE", " "
        flag_type = flag_type or "boolean"
        if flag_type == "value":
            value_type = value_type or "required"
        for syntax in self._syntaxes:
            syntax.configure_canonical(flag_type, value_type, value_label, value_delim)

        self._flag_type = flag_type
        self._value_type = value_type
        self._value_label = value_label
        self._value_delim = value_delim

    def _summarize(self, display_name):
        longs, shorts = self.long_syntaxes, self.short_syntaxes
        if display_name is not Unset:
            self._display_name = display_name
        elif longs or shorts:
            self._display_name = (longs or shorts)[0].canonical
        else:
            self._display_name = self._key
        self._sort_str = (longs or shorts)[0].sort_str if (longs or shorts) else ""


class PositionalArg(metaclass=SchemaType):
    """
    A positional argument: kind is "required", "optional" or "remaining".

    The display name defaults to the key upper-cased with "-" replaced by "_".
    A remaining argument collects every leftover token in a list and defaults
    to an empty list.
    """

    __introspectable__ = (
        "key",
        "kind",
        "acceptor",
        "default",
        "completion",
        "display_name",
    )

    KINDS = ("required", "optional", "remaining")

    def __init__(
            self,
            key,
            kind,
            /,
            *,
            accept=Unset,
            default=Unset,
            completion=Unset,
            display_name=Unset,
            desc=Unset,
            long_desc=(),
    ):
        if not isinstance(key, str | enum.Enum) or not key:
            raise TypeError(f"{type(self).__typename__} key must be a non-empty string or an enum member")
        if kind not in self.KINDS:
            raise ToolDefinitionError(f"{type(self).__typename__} kind must be one of {', '.join(self.KINDS)}")
        if display_name is not Unset and (not isinstance(display_name, str) or not display_name.strip()):
            raise TypeError(f"{type(self).__typename__} 'display_name' must be a non-empty string")

        metadata = {"desc": desc, "long_desc": long_desc}
        _sanitize_desc(type(self), metadata)

        self._key = key
        self._kind = kind
        self._acceptor = acceptors.create(accept)
        self._default = coalesce(default, [] if kind == "remaining" else None)
        self._completion = coalesce(completion)
        self._display_name = coalesce(display_name, str(getattr(key, "value", key)).upper().replace("-", "_"))
        self._desc = metadata["desc"]
        self._long_desc = metadata["long_desc"]

    @property
    def desc(self):
        return self._desc

    @desc.setter
    def desc(self, value):
        if not isinstance(value, str):
            raise TypeError(f"{type(self).__typename__} 'desc' must be a string")
        self._desc = value

    @property
    def long_desc(self):
        return self._long_desc

    @long_desc.setter
    def long_desc(self, value):
        self._long_desc = (value,) if isinstance(value, str) else tuple(value)


class FlagGroup(metaclass=SchemaType):
    """
    A cardinality constraint over member flags.

    Kinds
    - optional: no constraint (the node's default group).
    - required: every member must appear.
    - exactly_one: exactly one member must appear.
    - at_most_one: zero or one member may appear.
    - at_least_one: one or more members must appear.

    The description names the group in messages; it defaults to the group name,
    else "Required Flags" for required groups and "Flags" otherwise.
    """

    __introspectable__ = (
        "kind",
        "name",
        "flags",
    )
    __displayable__ = ("kind", "name", "desc")

    KINDS = ("optional", "required", "exactly_one", "at_most_one", "at_least_one")

    def __init__(self, kind="optional", /, *, name=Unset, desc=Unset, long_desc=()):
        if isinstance(kind, str):
            kind = kind.replace("-", "_")
        if kind not in self.KINDS:
            raise ToolDefinitionError(f"{type(self).__typename__} kind must be one of {', '.join(self.KINDS)}")
        if name is not Unset and not isinstance(name, str):
            raise TypeError(f"{type(self).__typename__} 'name' must be a string")

        metadata = {"desc": desc, "long_desc": long_desc}
        _sanitize_desc(type(self), metadata)

        self._kind = kind
        self._name = coalesce(name)
        self._flags = []
        self._desc = metadata["desc"] or coalesce(name, "Required Flags" if kind == "required" else "Flags")
        self._long_desc = metadata["long_desc"]

    @property
    def desc(self):
        return self._desc

    @desc.setter
    def desc(self, value):
        if not isinstance(value, str):
            raise TypeError(f"{type(self).__typename__} 'desc' must be a string")
        self._desc = value

    @property
    def long_desc(self):
        return self._long_desc

    def append(self, flag, /):
        if not isinstance(flag, Flag):
            raise TypeError(f"{type(self).__typename__} members must be flags")
        self._flags.append(flag)

    def sort(self):
        self._flags.sort(key=lambda flag: flag.sort_str)

    def __iter__(self):
        return iter(self._flags)

    def __len__(self):
        return len(self._flags)

    def __bool__(self):
        return True

    def validation_errors(self, seen_keys, /):
        """Return the FlagGroupError list for the flag keys seen during parsing."""
        seen = [flag for flag in self._flags if flag.key in seen_keys]
        members = ", ".join(flag.display_name for flag in self._flags)
        provided = ", ".join(flag.display_name for flag in seen)

        match self._kind:
            case "required":
                return [
                    FlagGroupError("flag %r is required" % flag.display_name, name=flag.display_name, group=self._desc)
                    for flag in self._flags if flag not in seen
                ]
            case "exactly_one" if len(seen) > 1:
                message = "exactly one flag out of group %r is required, but %d were provided: %s" % (
                    self._desc, len(seen), provided
                )
            case "exactly_one" if not seen:
                message = "exactly one flag out of group %r is required, but none were provided (choose from %s)" % (
                    self._desc, members
                )
            case "at_most_one" if len(seen) > 1:
                message = "at most one flag out of group %r is allowed, but %d were provided: %s" % (
                    self._desc, len(seen), provided
                )
            case "at_least_one" if not seen:
                message = "at least one flag out of group %r is required, but none were provided (choose from %s)" % (
                    self._desc, members
                )
            case _:
                return []
        return [FlagGroupError(message, group=self._desc, members=tuple(flag.display_name for flag in self._flags))]


__all__ = (
    # Classes
    "FlagSyntax",
    "FlagResolution",
    "Flag",
    "PositionalArg",
    "FlagGroup",

    # Handlers
    "SET",
    "PUSH",
)

del SchemaType
