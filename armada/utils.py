"""
Armada utilities (internal helpers, carefully exposed)

Scope
- Small building blocks shared by the schema, loader, parser and middleware layers.
- Stable enough to be imported by tool authors, but designed for the package itself.

Overview
- UnsetType / Unset
  • Singleton sentinel meaning “value not provided”, distinct from None.
- coalesce(value, default=None)
  • Replace Unset with a concrete default while keeping None/0/""/[] untouched.
- rename(callable, name) / @rename("name")
  • Give generated closures (continuations, bound capabilities) a readable name.
- mirror("attr")
  • Read-only property over a private backing field, returning container copies.
- pluralize(text)
  • English pluralization for counted labels in messages ("2 flags").
- suggest(word, candidates)
  • Edit-distance "did you mean" candidates, closest first.
- kebab(text)
  • Normalize an identifier into a lowercase, hyphenated flag name.
"""
import builtins
import difflib
import functools
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Sentinel type for a value that was not provided.

    Characteristics
    - Boolean-false, but distinct from None and 0.
    - repr() is "Unset".
    - Singleton, and sealed against subclassing.
    """

    def __or__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Return object, or default when object is the Unset sentinel.

    Falsey values such as None, 0, "" or [] are preserved as-is.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - rename(callable, name) -> callable
    - rename(name) -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Recursively copy containers so callers cannot mutate internal state.

    Tuples stay tuples (they are already immutable); other sequences become
    lists, mappings become dicts and sets become sets.
    """
    if isinstance(object, tuple):
        return object
    if isinstance(object, Sequence) and not isinstance(object, str):
        return list(map(_immortalize, object))
    elif isinstance(object, Mapping):
        return dict(zip(object.keys(), map(_immortalize, object.values())))
    elif isinstance(object, Set):
        return set(map(_immortalize, object))
    return object


def mirror(name, /):
    """
    Define a read-only property that mirrors the private attribute "_{name}".

    Container values are returned as fresh copies (see _immortalize), so the
    public view never aliases the backing field.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def pluralize(text, /):
    """
    Best-effort English pluralizer for the last word of a label.

    Behavior
    - Returns the input unchanged for empty strings and uncountable nouns.
    - Keeps the casing style of the pluralized word and any surrounding text.
    - Covers the regular suffix rules (s/sh/ch/x/z, consonant+y, f/fe) and a
      handful of irregular forms.

    Examples
    - pluralize("flag")          -> "flags"
    - pluralize("Entry")         -> "Entries"
    - pluralize("tool argument") -> "tool arguments"
    """
    if not isinstance(text, str):
        raise TypeError("pluralize() argument must be a string")
    if not (match := re.search(r'(\S+)(\s*)$', text)):
        return text

    head, last, trail = text[:match.start(1)], match.group(1), match.group(2)
    lower = last.lower()

    irregulars = {
        "person": "people",
        "child": "children",
        "index": "indices",
        "matrix": "matrices",
        "analysis": "analyses",
        "criterion": "criteria",
    }
    if lower in {"series", "species", "information", "data", "metadata"}:
        plural = lower
    elif lower in irregulars:
        plural = irregulars[lower]
    elif lower.endswith(("s", "sh", "ch", "x", "z")):
        plural = lower + "es"
    elif lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        plural = lower[:-1] + "ies"
    elif lower.endswith("fe") and len(lower) > 2:
        plural = lower[:-2] + "ves"
    elif lower.endswith("f") and len(lower) > 1 and not lower.endswith("ff"):
        plural = lower[:-1] + "ves"
    else:
        plural = lower + "s"

    if last.isupper() and len(last) > 1:
        plural = plural.upper()
    elif last[:1].isupper():
        plural = plural[:1].upper() + plural[1:]
    return head + plural + trail


def suggest(word, candidates, /, *, limit=5, cutoff=0.6):
    """
    Return the candidates closest to word by edit-distance ratio, best first.

    Candidates are stringified and deduplicated; an exact match is never
    suggested back to the user.
    """
    if not isinstance(word, str):
        raise TypeError("suggest() first argument must be a string")
    pool = list(dict.fromkeys(str(candidate) for candidate in candidates if str(candidate) != word))
    return difflib.get_close_matches(word, pool, limit, cutoff)


def kebab(text, /):
    """
    Convert an identifier like "dry_run" or "DryRun" into "dry-run".

    Characters that cannot appear in a flag name are dropped, as are leading
    hyphens.
    """
    text = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "-", str(text)).lower().replace("_", "-")
    return re.sub(r"[^a-z0-9-]", "", text).lstrip("-")


Unset = UnsetType()
"""
Sentinel for “not provided”.

Use it as a default when None is a meaningful user value; materialize it with
coalesce(value, default).
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "pluralize",
    "suggest",
    "kebab",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
