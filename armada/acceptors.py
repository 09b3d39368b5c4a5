"""
Armada acceptors: validation and conversion of single raw tokens.

Overview
- Acceptor: the passthrough base; accepts any value unchanged.
- SimpleAcceptor: wraps a plain conversion function (raising means “rejected”).
- PatternAcceptor: a regular expression, optionally followed by a converter.
- EnumAcceptor: a fixed set of values compared by their string form, with
  edit-distance suggestions for near misses.
- RangeAcceptor: integers (or floats) constrained to a range.
- Well-known acceptors: STRING, INTEGER, FLOAT, NUMERIC, BOOLEAN, ARRAY,
  REGEXP, OBJECT (and DEFAULT, the passthrough).
- create(spec): turns a spec (acceptor, well-known name or type, pattern,
  collection, range, callable, or nothing) into an Acceptor.

Contract
- accept(raw) returns the converted value or raises ValueError.
- suggestions(raw) returns close alternatives, best first (may be empty).
- accept(None) is only reached for optional flag values that were omitted;
  acceptors return None unless they define a meaning for it (BOOLEAN and
  OBJECT treat it as True).
"""
import enum
import re
from collections.abc import Iterable

from .faults import ToolDefinitionError
from .utils import Unset, suggest


class Acceptor:
    """
    Passthrough acceptor, and the base class for all acceptors.

    type_desc is a short noun used when generating descriptions
    ("Sets the "name" option as type integer").
    """
    type_desc = "string"
    well_known = Unset

    def __init__(self, *, type_desc=Unset):
        if type_desc is not Unset:
            if not isinstance(type_desc, str) or not type_desc.strip():
                raise TypeError("acceptor 'type_desc' must be a non-empty string")
            self.type_desc = type_desc.strip()

    def accept(self, raw, /):
        return raw

    def suggestions(self, raw, /):
        return ()

    def __call__(self, raw, /):
        return self.accept(raw)

    def __repr__(self):
        return f"{type(self).__name__}(type_desc={self.type_desc!r})"


class SimpleAcceptor(Acceptor):
    """
    Accept whatever function(raw) returns; ValueError or TypeError rejects.

    None (an omitted optional value) is returned untouched unless accepts_none
    is set, in which case function decides what it means.
    """

    def __init__(self, function, /, *, type_desc=Unset, accepts_none=False):
        if not callable(function):
            raise TypeError("simple acceptor function must be callable")
        super().__init__(type_desc=type_desc)
        self.function = function
        self.accepts_none = bool(accepts_none)

    def accept(self, raw, /):
        if raw is None and not self.accepts_none:
            return None
        try:
            return self.function(raw)
        except (ValueError, TypeError) as exception:
            raise ValueError("value %r rejected by %s" % (raw, self.type_desc)) from exception


class PatternAcceptor(Acceptor):
    """Accept strings that fully match pattern; convert them with converter if given."""

    def __init__(self, pattern, /, converter=Unset, *, type_desc=Unset):
        if isinstance(pattern, str):
            pattern = re.compile(pattern)
        if not isinstance(pattern, re.Pattern):
            raise TypeError("pattern acceptor requires a string or compiled pattern")
        if converter is not Unset and not callable(converter):
            raise TypeError("pattern acceptor converter must be callable")
        super().__init__(type_desc=type_desc)
        self.pattern = pattern
        self.converter = converter

    def accept(self, raw, /):
        if raw is None:
            return None
        if not isinstance(raw, str) or not self.pattern.fullmatch(raw):
            raise ValueError("value %r does not match %s" % (raw, self.pattern.pattern))
        if self.converter is Unset:
            return raw
        try:
            return self.converter(raw)
        except (ValueError, TypeError) as exception:
            raise ValueError("value %r could not be converted" % raw) from exception


class EnumAcceptor(Acceptor):
    """
    Accept one of a fixed set of values.

    A token matches a value when it equals str(value) (or the member name, for
    enum.Enum members); the original value is returned.
    """
    type_desc = "value"

    def __init__(self, values, /, *, type_desc=Unset):
        if isinstance(values, type) and issubclass(values, enum.Enum):
            values = tuple(values)
        elif isinstance(values, str) or not isinstance(values, Iterable):
            raise TypeError("enum acceptor values must be an iterable of values")
        values = tuple(values)
        if not values:
            raise ValueError("enum acceptor requires at least one value")
        super().__init__(type_desc=type_desc)
        self.values = values

    @staticmethod
    def _label(value):
        return value.name if isinstance(value, enum.Enum) else str(value)

    def accept(self, raw, /):
        if raw is None:
            return None
        for value in self.values:
            if self._label(value) == raw:
                return value
        raise ValueError("value %r is not one of %s" % (raw, ", ".join(map(self._label, self.values))))

    def suggestions(self, raw, /):
        return tuple(suggest(str(raw), map(self._label, self.values)))


class RangeAcceptor(Acceptor):
    """
    Accept numbers within a range.

    A builtin range accepts integers in that range; a (low, high) pair accepts
    floats with low <= value <= high.
    """

    def __init__(self, bounds, /, *, type_desc=Unset):
        if isinstance(bounds, range):
            self.convert = int
            self.contains = bounds.__contains__
            default_desc = "integer"
        elif isinstance(bounds, tuple) and len(bounds) == 2:
            low, high = bounds
            self.convert = float
            self.contains = lambda value: low <= value <= high
            default_desc = "number"
        else:
            raise TypeError("range acceptor requires a range or a (low, high) tuple")
        super().__init__(type_desc=default_desc if type_desc is Unset else type_desc)
        self.bounds = bounds

    def accept(self, raw, /):
        if raw is None:
            return None
        value = self.convert(raw)
        if not self.contains(value):
            raise ValueError("value %r is out of range" % raw)
        return value


_TRUE_STRINGS = ("+", "true", "yes")
_FALSE_STRINGS = ("-", "false", "no", "nil", "none")


def _boolean(raw):
    if raw is None:
        return True
    if lowered := raw.lower():
        if any(candidate.startswith(lowered) for candidate in _TRUE_STRINGS):
            return True
        if any(candidate.startswith(lowered) for candidate in _FALSE_STRINGS):
            return False
    raise ValueError("value %r is not a boolean" % raw)


def _nonempty(raw):
    if not raw:
        raise ValueError("empty string")
    return raw


def _numeric(raw):
    try:
        return int(raw)
    except ValueError:
        return float(raw)


def _well_known(name, acceptor, /):
    acceptor.well_known = name
    return acceptor


DEFAULT = _well_known("default", Acceptor())
OBJECT = _well_known("object", SimpleAcceptor(lambda raw: True if raw is None else raw, accepts_none=True))
STRING = _well_known("string", SimpleAcceptor(_nonempty, type_desc="nonempty string"))
INTEGER = _well_known("integer", PatternAcceptor(r"[+-]?\d(_?\d)*", int, type_desc="integer"))
FLOAT = _well_known("float", SimpleAcceptor(float, type_desc="floating point number"))
NUMERIC = _well_known("numeric", SimpleAcceptor(_numeric, type_desc="number"))
BOOLEAN = _well_known("boolean", SimpleAcceptor(_boolean, type_desc="boolean", accepts_none=True))
ARRAY = _well_known("array", SimpleAcceptor(lambda raw: raw.split(","), type_desc="string array"))
REGEXP = _well_known("regexp", SimpleAcceptor(re.compile, type_desc="regular expression"))

_WELL_KNOWN = {
    "default": DEFAULT,
    "object": OBJECT,
    "string": STRING,
    "integer": INTEGER,
    "float": FLOAT,
    "numeric": NUMERIC,
    "boolean": BOOLEAN,
    "array": ARRAY,
    "regexp": REGEXP,
    object: OBJECT,
    str: STRING,
    int: INTEGER,
    float: FLOAT,
    bool: BOOLEAN,
    list: ARRAY,
    re.Pattern: REGEXP,
}


def create(spec=Unset, /, *, type_desc=Unset):
    """
    Resolve an acceptor spec into an Acceptor.

    Resolution order
    - Unset or None: DEFAULT (passthrough string).
    - an Acceptor instance: returned as-is.
    - a well-known name ("integer", "float", ...) or type (int, float, str,
      bool, list, re.Pattern, object): the matching well-known acceptor.
    - a compiled pattern: PatternAcceptor.
    - an enum.Enum subclass, list, tuple, set or frozenset: EnumAcceptor.
    - a range: RangeAcceptor.
    - any other callable: SimpleAcceptor.

    Raises
    - ToolDefinitionError: when the spec matches none of the above.
    """
    if spec is Unset or spec is None:
        return DEFAULT
    if isinstance(spec, Acceptor):
        return spec
    try:
        acceptor = _WELL_KNOWN.get(spec)
    except TypeError:
        acceptor = None
    if acceptor is not None:
        return acceptor
    if isinstance(spec, re.Pattern):
        return PatternAcceptor(spec, type_desc=type_desc)
    if isinstance(spec, type) and issubclass(spec, enum.Enum):
        return EnumAcceptor(spec, type_desc=type_desc)
    if isinstance(spec, list | tuple | set | frozenset):
        return EnumAcceptor(spec, type_desc=type_desc)
    if isinstance(spec, range):
        return RangeAcceptor(spec, type_desc=type_desc)
    if callable(spec):
        return SimpleAcceptor(spec, type_desc=type_desc)
    if isinstance(spec, str):
        raise ToolDefinitionError("unknown acceptor %r" % spec)
    raise ToolDefinitionError("illegal acceptor %r" % (spec,))


__all__ = (
    # Classes
    "Acceptor",
    "SimpleAcceptor",
    "PatternAcceptor",
    "EnumAcceptor",
    "RangeAcceptor",

    # Well-known acceptors
    "DEFAULT",
    "OBJECT",
    "STRING",
    "INTEGER",
    "FLOAT",
    "NUMERIC",
    "BOOLEAN",
    "ARRAY",
    "REGEXP",

    # Functions
    "create",
)
