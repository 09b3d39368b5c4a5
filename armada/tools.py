"""
Armada tool nodes: one named point in the tool hierarchy.

Overview
- ToolNode
  • Aggregates the schema of a tool (flags, flag groups, positional arguments,
    default data), its descriptions, its handlers (run, interrupt, usage error),
    its provenance and the middleware stack it was configured with.
  • A node without a run handler is a namespace; it is still valid and shows
    help by default (via middleware).
  • Nodes are mutable while a source defines them and while middleware
    configures them; finish() freezes the schema. Later modifications raise
    ToolDefinitionError.
- Mixin
  • A named capability set: functions bound to the run Context as methods,
    an optional initializer (runs before the handler) and an optional inclusion
    hook (runs against the node when the mixin is included).

Lookup rules
- Named acceptors and mixins registered on a node are visible to the node and
  its descendants; lookup walks the parent chain set by the loader.
"""
import copy
import functools
import operator
import re

from . import acceptors
from .arguments import Flag, FlagGroup, FlagResolution, PositionalArg
from .faults import ToolDefinitionError
from .utils import *


class NodeType(type):
    """
    Metaclass for tool nodes and mixins.

    Provides __typename__, read-only mirrors of __introspectable__ fields and
    __repr__/__rich_repr__ over __displayable__ (or __introspectable__).
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


class Mixin(metaclass=NodeType):
    """
    A reusable capability set.

    Parameters
    - name: optional registry name (used by ToolNode.add_mixin / include_mixin).
    - initializer: callable(context, **options) run before the tool's handler.
    - inclusion: callable(node, **options) run when the mixin is included.
    - capabilities: functions (context, *args, **kwargs) exposed as methods of
      the Context during a run.

    Example
        greeting = Mixin("greeting")

        @greeting.capability
        def greet(context, name):
            context.logger.info("hello %s", name)
    """

    __introspectable__ = (
        "name",
        "capabilities",
        "initializer",
        "inclusion",
    )

    def __init__(self, name=Unset, /, *, initializer=Unset, inclusion=Unset, **capabilities):
        if name is not Unset and not isinstance(name, str):
            raise TypeError(f"{type(self).__typename__} name must be a string")
        for hook, label in ((initializer, "initializer"), (inclusion, "inclusion")):
            if hook is not Unset and not callable(hook):
                raise TypeError(f"{type(self).__typename__} {label} must be callable")
        if not all(map(callable, capabilities.values())):
            raise TypeError(f"{type(self).__typename__} capabilities must be callable")
        self._name = coalesce(name)
        self._initializer = coalesce(initializer)
        self._inclusion = coalesce(inclusion)
        self._capabilities = dict(capabilities)

    def capability(self, function=Unset, /, *, name=Unset):
        """Register function as a capability; usable as @mixin.capability."""
        if function is Unset:
            return functools.partial(self.capability, name=name)
        if not callable(function):
            raise TypeError(f"{type(self).__typename__} capabilities must be callable")
        self._capabilities[coalesce(name, function.__name__)] = function
        return function

    def __deepcopy__(self, memo):
        return self


class ToolNode(metaclass=NodeType):
    """
    A tool (or namespace) at a name path.

    Fields
    - full_name: tuple of name segments; () is the root.
    - source_info: provenance (see sources.SourceInfo), or None for synthesized nodes.
    - priority: tier of the source that defined the node.
    - flags, flag_groups, required_args, optional_args, remaining_arg: the schema.
      The first flag group is the default (optional) group.
    - used_flags: every flag string taken or reserved on this node.
    - default_data: initial data map for a parse (flag and argument defaults).
    - run_handler / interrupt_handler / usage_error_handler: callables(context).
    - delegate_target: name path of the tool this one runs instead, if any.
    - mixins / initializers: included mixins and their pending initializers.
    - middleware_stack: snapshot of the middleware the node was configured with.
    - parent: the parent node (set by the loader), used for named lookups.
    """

    __introspectable__ = (
        "full_name",
        "source_info",
        "priority",
        "flags",
        "flag_groups",
        "required_args",
        "optional_args",
        "remaining_arg",
        "used_flags",
        "default_data",
        "run_handler",
        "interrupt_handler",
        "usage_error_handler",
        "delegate_target",
        "mixins",
        "initializers",
        "middleware_stack",
        "finished",
    )
    __displayable__ = ("full_name", "desc", "flags", "runnable", "source_info")

    def __init__(self, full_name=(), /, *, source_info=None, priority=0):
        if isinstance(full_name, str) or not all(isinstance(segment, str) and segment for segment in full_name):
            raise TypeError(f"{type(self).__typename__} name must be a sequence of non-empty strings")
        self._full_name = tuple(full_name)
        self._source_info = source_info
        self._priority = priority
        self._desc = ""
        self._long_desc = ()
        self._flags = []
        self._flag_groups = [FlagGroup("optional")]
        self._required_args = []
        self._optional_args = []
        self._remaining_arg = None
        self._used_flags = []
        self._default_data = {}
        self._run_handler = None
        self._interrupt_handler = None
        self._usage_error_handler = None
        self._delegate_target = None
        self._mixins = []
        self._initializers = []
        self._capabilities = {}
        self._acceptors = {}
        self._named_mixins = {}
        self._middleware_stack = ()
        self._context_directory = None
        self._settings = {
            "enforce_flags_before_args": False,
            "require_exact_flag_match": False,
            "argument_parsing_disabled": False,
        }
        self._finished = False
        self.parent = None

    def __deepcopy__(self, memo):
        # Copies never share schema containers; handlers and the parent link are shared.
        clone = copy.copy(self)
        memo[id(self)] = clone
        for name, value in vars(self).items():
            if name != "parent":
                setattr(clone, name, copy.deepcopy(value, memo))
        return clone

    # Identity

    @property
    def is_root(self):
        return not self._full_name

    @property
    def simple_name(self):
        return self._full_name[-1] if self._full_name else ""

    @property
    def display_name(self):
        return " ".join(self._full_name)

    @property
    def runnable(self):
        return self._run_handler is not None or self._delegate_target is not None

    @property
    def context_directory(self):
        """Directory the tool was defined in (overridable), or None."""
        if self._context_directory is not None:
            return self._context_directory
        return getattr(self._source_info, "context_directory", None)

    @context_directory.setter
    def context_directory(self, value):
        self._check_definition_state()
        self._context_directory = value

    @property
    def settings(self):
        return dict(self._settings)

    @property
    def enforce_flags_before_args(self):
        return self._settings["enforce_flags_before_args"]

    @property
    def require_exact_flag_match(self):
        return self._settings["require_exact_flag_match"]

    @property
    def argument_parsing_disabled(self):
        return self._settings["argument_parsing_disabled"]

    # Descriptions (also written by middleware during configuration)

    @property
    def desc(self):
        return self._desc

    @desc.setter
    def desc(self, value):
        self._check_definition_state()
        if not isinstance(value, str):
            raise TypeError(f"{type(self).__typename__} 'desc' must be a string")
        self._desc = value.strip()

    @property
    def long_desc(self):
        return self._long_desc

    @long_desc.setter
    def long_desc(self, value):
        self._check_definition_state()
        value = (value,) if isinstance(value, str) else tuple(value)
        if not all(isinstance(line, str) for line in value):
            raise TypeError(f"{type(self).__typename__} 'long_desc' must be a string or strings")
        self._long_desc = value

    # Schema

    @property
    def positional_args(self):
        return (*self._required_args, *self._optional_args, *filter(None, (self._remaining_arg,)))

    def flag(self, key, /):
        """Return the flag stored under key, or None."""
        return next((flag for flag in self._flags if flag.key == key), None)

    def flag_group(self, name, /):
        """Return the flag group called name, or None."""
        return next((group for group in self._flag_groups if group.name == name), None)

    def add_flag(
            self,
            key,
            /,
            *syntaxes,
            accept=Unset,
            default=Unset,
            handler=Unset,
            report_collisions=True,
            group=Unset,
            desc=Unset,
            long_desc=(),
            display_name=Unset,
            completion=Unset,
    ):
        """
        Add a flag to the node.

        Behavior
        - With no syntaxes, a default syntax is derived from key.
        - Syntaxes already taken raise ToolDefinitionError, or are silently
          dropped with report_collisions=False; a flag left without syntaxes is
          not added, but its default is still recorded.
        - group may be a FlagGroup of this node or the name of one.
        - accept may name an acceptor registered on this node or an ancestor.
        """
        self._check_definition_state()
        group = self._resolve_group(group)
        default = coalesce(default)
        flag = Flag(
            key,
            *syntaxes,
            accept=self._resolve_acceptor(accept),
            default=default,
            handler=handler,
            desc=desc,
            long_desc=long_desc,
            display_name=display_name,
            group=group,
            completion=completion,
            used_flags=self._used_flags,
            report_collisions=report_collisions,
        )
        if flag.active:
            self._flags.append(flag)
            group.append(flag)
        self._default_data[key] = default
        return flag

    def disable_flag(self, *flags):
        """Reserve flag strings so no flag can be defined with them."""
        self._check_definition_state()
        for flag in flags:
            if not isinstance(flag, str) or not re.fullmatch(r"-[?\w]|--\w[?\w-]*", flag):
                raise ToolDefinitionError("illegal flag %r" % (flag,))
            if flag in self._used_flags:
                raise ToolDefinitionError("cannot disable flag %r because it is already assigned or reserved" % flag)
            self._used_flags.append(flag)

    def add_flag_group(self, kind="optional", /, *, name=Unset, desc=Unset, long_desc=(), report_collisions=True, prepend=False):
        """Add a flag group; an existing group with the same name is a collision."""
        self._check_definition_state()
        if name is not Unset and (existing := self.flag_group(name)) is not None:
            if report_collisions:
                raise ToolDefinitionError("flag group %r already exists" % name)
            return existing
        group = FlagGroup(kind, name=name, desc=desc, long_desc=long_desc)
        if prepend:
            self._flag_groups.insert(0, group)
        else:
            self._flag_groups.append(group)
        return group

    def add_required_arg(self, key, /, *, accept=Unset, display_name=Unset, desc=Unset, long_desc=(), completion=Unset):
        self._check_definition_state()
        if self._optional_args or self._remaining_arg:
            raise ToolDefinitionError("required argument %r must precede optional and remaining arguments" % key)
        return self._add_positional(self._required_args, key, "required", accept, Unset, display_name, desc, long_desc, completion)

    def add_optional_arg(self, key, /, *, default=Unset, accept=Unset, display_name=Unset, desc=Unset, long_desc=(), completion=Unset):
        self._check_definition_state()
        if self._remaining_arg:
            raise ToolDefinitionError("optional argument %r must precede the remaining arguments" % key)
        return self._add_positional(self._optional_args, key, "optional", accept, default, display_name, desc, long_desc, completion)

    def set_remaining_args(self, key, /, *, default=Unset, accept=Unset, display_name=Unset, desc=Unset, long_desc=(), completion=Unset):
        self._check_definition_state()
        if self._remaining_arg:
            raise ToolDefinitionError("remaining arguments are already captured by %r" % self._remaining_arg.key)
        argument = self._add_positional([], key, "remaining", accept, default, display_name, desc, long_desc, completion)
        self._remaining_arg = argument
        return argument

    def _add_positional(self, bucket, key, kind, accept, default, display_name, desc, long_desc, completion):
        if any(argument.key == key for argument in self.positional_args):
            raise ToolDefinitionError("argument key %r is already defined on tool %r" % (key, self.display_name))
        argument = PositionalArg(
            key,
            kind,
            accept=self._resolve_acceptor(accept),
            default=default,
            display_name=display_name,
            desc=desc,
            long_desc=long_desc,
            completion=completion,
        )
        bucket.append(argument)
        self._default_data[key] = copy.copy(argument.default)
        return argument

    def set_default(self, key, value, /):
        """Seed a data key (used by builders and middleware)."""
        self._check_definition_state()
        self._default_data[key] = value

    def resolve_flag(self, string, /):
        """Resolve a flag token against every flag of the node."""
        resolution = None
        for flag in self._flags:
            candidate = flag.resolve(string)
            resolution = candidate if resolution is None else resolution.merge(candidate)
        if resolution is None or (self.require_exact_flag_match and not resolution.found_exact):
            return FlagResolution(string)
        return resolution

    def _resolve_group(self, group):
        match group:
            case UnsetType() | None:
                return self._flag_groups[0]
            case str():
                if (found := self.flag_group(group)) is None:
                    raise ToolDefinitionError("no flag group named %r on tool %r" % (group, self.display_name))
                return found
            case FlagGroup() if any(candidate is group for candidate in self._flag_groups):
                return group
            case _:
                raise ToolDefinitionError("flag group %r does not belong to tool %r" % (group, self.display_name))

    # Settings

    def configure(self, **settings):
        """Toggle parsing settings (enforce_flags_before_args, ...)."""
        self._check_definition_state()
        for name, value in settings.items():
            if name not in self._settings:
                raise ToolDefinitionError("unknown tool setting %r" % name)
            self._settings[name] = bool(value)

    # Handlers

    @property
    def handlers(self):
        return {
            "run": self._run_handler,
            "interrupt": self._interrupt_handler,
            "usage_error": self._usage_error_handler,
        }

    def set_handler(self, kind, handler, /):
        """Set the run, interrupt or usage_error handler."""
        self._check_definition_state()
        if not callable(handler):
            raise TypeError(f"{type(self).__typename__} {kind} handler must be callable")
        match kind:
            case "run":
                if self._delegate_target is not None:
                    raise ToolDefinitionError("tool %r already delegates to %r" % (self.display_name, " ".join(self._delegate_target)))
                self._run_handler = handler
            case "interrupt":
                self._interrupt_handler = handler
            case "usage_error":
                self._usage_error_handler = handler
            case _:
                raise ToolDefinitionError("unknown handler kind %r" % (kind,))

    def delegate_to(self, target, /):
        """
        Run the tool at target (a name path) with this tool's arguments.

        Argument parsing is disabled so every argument reaches the target.
        """
        self._check_definition_state()
        target = tuple(target.split()) if isinstance(target, str) else tuple(target)
        if target == self._full_name:
            raise ToolDefinitionError("tool %r cannot delegate to itself" % self.display_name)
        if self._run_handler is not None:
            raise ToolDefinitionError("tool %r already has a run handler" % self.display_name)
        self._delegate_target = target
        self._settings["argument_parsing_disabled"] = True

    # Named acceptors and mixins

    def add_acceptor(self, name, spec, /, *, type_desc=Unset):
        self._check_definition_state()
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__typename__} acceptor name must be a string")
        self._acceptors[name] = acceptors.create(spec, type_desc=type_desc)

    def lookup_acceptor(self, name, /):
        node = self
        while node is not None:
            if name in node._acceptors:
                return node._acceptors[name]
            node = node.parent
        return None

    def add_mixin(self, name, mixin, /):
        self._check_definition_state()
        if not isinstance(mixin, Mixin):
            raise TypeError(f"{type(self).__typename__} mixins must be Mixin instances")
        self._named_mixins[name] = mixin

    def lookup_mixin(self, name, /):
        node = self
        while node is not None:
            if name in node._named_mixins:
                return node._named_mixins[name]
            node = node.parent
        return None

    def include_mixin(self, mixin, /, **options):
        """
        Include a mixin (or the name of one) into this tool.

        Capabilities become methods of the run Context; the initializer is
        queued with options; the inclusion hook runs now against the node.
        Including the same mixin twice has no effect.
        """
        self._check_definition_state()
        if isinstance(mixin, str):
            if (found := self.lookup_mixin(mixin)) is None:
                raise ToolDefinitionError("mixin %r not found" % mixin)
            mixin = found
        if not isinstance(mixin, Mixin):
            raise TypeError(f"{type(self).__typename__} mixins must be Mixin instances or names")
        if any(included is mixin for included in self._mixins):
            return
        self._mixins.append(mixin)
        self._capabilities.update(mixin.capabilities)
        if mixin.initializer is not None:
            self._initializers.append((mixin.initializer, dict(options)))
        if mixin.inclusion is not None:
            mixin.inclusion(self, **options)

    @property
    def capabilities(self):
        return dict(self._capabilities)

    def _resolve_acceptor(self, accept):
        if isinstance(accept, str) and (named := self.lookup_acceptor(accept)) is not None:
            return named
        return acceptors.create(accept)

    # Lifecycle

    def finish(self, middleware_stack=()):
        """Freeze the schema once configuration is complete."""
        if self._finished:
            return
        self._middleware_stack = tuple(middleware_stack)
        self._finished = True

    def _check_definition_state(self):
        if self._finished:
            raise ToolDefinitionError("tool %r is already finished and cannot be modified" % self.display_name)


__all__ = (
    # Classes
    "ToolNode",
    "Mixin",
)

del NodeType
