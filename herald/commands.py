"""
Herald command layer: declare, compose and look up chat commands.

What this module provides
- Command: wraps a handler into a routable chat command with:
  • a label and aliases (matched case-insensitively),
  • ordered positional Argument declarations,
  • per-command filters,
  • declarative permission requirements (bot_requires / user_requires),
  • a typing-indicator opt-out (typing=False),
  • one level of sub-commands reachable by label (parent/child hierarchy).
- Registry: ordered set of top-level commands with collision checks and resolution.
- command(...): create a Command or a decorator that produces one.

Core ideas
- Declarative metadata: everything the router needs is a read-only field on the
  Command; nothing is discovered by inspecting the handler at dispatch time.
- Immutable after registration: public fields are frozen views; once the owning
  registry is frozen, no sub-command can be attached anymore.
- First structural match wins: resolution walks registration order, it does not rank.

Quick start
    from herald import command, Argument, Capability

    @command(
        aliases={"b"},
        arguments=[Argument("user", type="user")],
        bot_requires=[Capability.BAN_MEMBERS],
        user_requires=[Capability.BAN_MEMBERS],
    )
    async def ban(context, args):
        return "banned %s" % args["user"]

    @ban.command
    def list(context, args):
        ...
"""
import functools
import inspect
import logging
import operator
import re
import threading
from collections.abc import Iterable

from .arguments import Argument
from .utils import *

logger = logging.getLogger(__name__)

# Guards copy-on-write updates of every command's children mapping.
_children_lock = threading.Lock()


class CommandType(type):
    """
    Metaclass that gives commands a readable repr and read-only metadata properties.

    Responsibilities
    - Expose selected fields as read-only properties using mirror() for all names
      listed in __introspectable__.
    - Provide stable, readable __repr__/__rich_repr__ for diagnostics (rich.pretty).

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens).
    - __displayable__ (if set) narrows which properties are shown by __rich_repr__;
      otherwise __introspectable__ is used.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            """
            Example
            - command(label='ban', aliases=frozenset({'b'}), ...)
            """
            return "%s(%s)" % (
                type(self).__typename__,
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                object = getattr(self, name)
                # Children and parents print by label to keep the output finite.
                if name == "parent":
                    object = object.label if object else None
                elif name == "children":
                    object = tuple(child.label for child in object.values())
                yield name, object
        self.__rich_repr__ = __rich_repr__

        return self


def _process_handler(cls, metadata):
    """
    Resolve the invocable of a handler: the callable itself, or its bound 'handle'.
    """
    handler = metadata["handler"]
    if hasattr(handler, "handle") and callable(handler.handle) and not inspect.isroutine(handler):
        metadata["invocable"] = handler.handle
    elif callable(handler):
        metadata["invocable"] = handler
    else:
        raise TypeError(f"{cls.__typename__} 'handler' must be callable or provide a 'handle' method")


def _process_names(cls, metadata):
    """
    Validate the label and aliases.

    Rules
    - label/aliases are non-empty strings without whitespace or quotes (they must
      survive tokenization as a single token).
    - aliases are unique (case-insensitive) and differ from the label.
    """
    def _check(name, what):
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} {what} must be a string")
        elif not (name := name.strip()):
            raise ValueError(f"{cls.__typename__} {what} cannot be empty")
        elif re.search(r"""[\s"']""", name):
            raise ValueError(f"{cls.__typename__} {what} {name!r} cannot contain whitespace or quotes")
        return name

    metadata["label"] = label = _check(metadata["label"], "label")

    if isinstance(metadata["aliases"], str) or not isinstance(metadata["aliases"], Iterable):
        raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")

    seen = {fold(label)}
    aliases = []
    for alias in metadata["aliases"]:
        alias = _check(alias, "alias")
        if fold(alias) in seen:
            raise ValueError(f"{cls.__typename__} alias {alias!r} collides with another name of {label!r}")
        seen.add(fold(alias))
        aliases.append(alias)
    metadata["aliases"] = frozenset(aliases)


def _process_arguments(cls, metadata):
    """
    Validate argument declarations.

    Rules
    - every item is an Argument.
    - keys are unique.
    - a required argument cannot follow an optional one (positional binding would be
      ambiguous otherwise).
    """
    if not isinstance(metadata["arguments"], Iterable):
        raise TypeError(f"{cls.__typename__} 'arguments' must be an iterable of arguments")

    arguments = []
    optional = None
    for argument in metadata["arguments"]:
        if not isinstance(argument, Argument):
            raise TypeError(f"{cls.__typename__} 'arguments' must be an iterable of arguments")
        if any(argument.key == other.key for other in arguments):
            raise ValueError(f"{cls.__typename__} argument key {argument.key!r} is already in use")
        if argument.required and optional:
            raise ValueError(
                f"{cls.__typename__} required argument {argument.key!r} cannot follow optional argument {optional!r}"
            )
        if not argument.required:
            optional = argument.key
        arguments.append(argument)
    metadata["arguments"] = tuple(arguments)


def _process_filters(cls, metadata):
    if not isinstance(metadata["filters"], Iterable):
        raise TypeError(f"{cls.__typename__} 'filters' must be an iterable of callables")
    filters = tuple(metadata["filters"])
    if not all(map(callable, filters)):
        raise TypeError(f"{cls.__typename__} 'filters' must be an iterable of callables")
    metadata["filters"] = filters


def _process_requirements(cls, metadata):
    """
    Normalize bot_requires/user_requires into ordered, duplicate-free tuples.

    Order is kept because the permission gate reports the first missing capability.
    """
    for name in ("bot_requires", "user_requires"):
        if isinstance(metadata[name], str) or not isinstance(metadata[name], Iterable):
            raise TypeError(f"{cls.__typename__} {name!r} must be an iterable of capabilities")
        capabilities = []
        for capability in metadata[name]:
            if not isinstance(capability, str):
                raise TypeError(f"{cls.__typename__} {name!r} must be an iterable of capabilities")
            if capability not in capabilities:
                capabilities.append(capability)
        metadata[name] = tuple(capabilities)


def _attach_to_parent(self, parent):
    """
    Register this command under its parent, enforcing unique names among siblings.

    Label and aliases must not collide (case-insensitive) with any label or alias of
    another sub-command of the same parent.
    """
    if parent is Unset:
        return
    names = {fold(self.label), *map(fold, self.aliases)}
    with _children_lock:
        if parent._sealed:
            raise RuntimeError(f"{type(self).__typename__} {parent.label!r} is registered and frozen")
        for sibling in parent._children.values():
            if names & {fold(sibling.label), *map(fold, sibling.aliases)}:
                raise ValueError(
                    f"{type(self).__typename__} subcommand name {self.label!r} collides with {sibling.label!r}"
                )
        parent._children = parent._children | {fold(self.label): self}


class Command(metaclass=CommandType):
    """
    Routable chat command bound to a handler.

    Responsibilities
    - Introspection: exposes metadata (label, aliases, arguments, requirements...) as
      read-only properties.
    - Composition: supports parent/child hierarchies to model sub-commands.
    - Invocation: acts as a callable forwarding (context, args) to the handler.

    Handler contract
    - handler(context, args) -> reply value | None, or an object whose handle(context,
      args) has that shape. Coroutine functions are awaited by the router.
    """

    __introspectable__ = (
        "label",
        "aliases",
        "descr",
        "arguments",
        "filters",
        "bot_requires",
        "user_requires",
        "typing",
        "handler",
        "parent",
        "children",
    )

    __displayable__ = (
        "label",
        "aliases",
        "descr",
        "arguments",
        "bot_requires",
        "user_requires",
        "typing",
        "parent",
        "children",
    )

    @property
    def root(self):
        """
        Return the top-level command of this hierarchy.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the ancestry from the top-level command to this command as a tuple.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def usage(self):
        """
        Human-readable invocation form, e.g. "ban <user> [reason]".
        """
        return " ".join([*(step.label for step in self.path), *(argument.metavar for argument in self.arguments)])

    def __init__(
            self,
            handler,
            /,
            label=Unset,
            aliases=(),
            arguments=(),
            filters=(),
            bot_requires=(),
            user_requires=(),
            *,
            typing=True,
            descr=Unset,
            parent=Unset,
    ):
        """
        Construct a Command from a handler.

        Parameters
        - handler: Callable | object with handle(context, args)
        - label: str | Unset
          Canonical name. Unset falls back to the handler's __name__.
        - aliases: Iterable[str]
          Additional names, matched like the label at top level only.
        - arguments: Iterable[Argument]
          Positional arguments in binding order.
        - filters: Iterable[Callable[[CommandCall, Context, ArgumentMap], Any]]
          Pre-execution hooks run after the router-level filters.
        - bot_requires / user_requires: Iterable[Capability | str]
          Capabilities the bot / the caller must hold.
        - typing: bool
          Whether the router shows a typing indicator while the handler runs.
        - descr: str | Unset
          Short description; Unset falls back to the handler docstring.
        - parent: Command | Unset
          Parent under which to attach this command as a sub-command.

        Raises
        - TypeError/ValueError on invalid metadata or name collisions with siblings.
        - RuntimeError when the parent is already frozen by its registry.
        """
        if not isinstance(parent, Command | Unset):
            raise TypeError(f"{type(self).__typename__} 'parent' must be a command")

        metadata = {
            "handler": handler,
            "label": coalesce(label, getattr(handler, "__name__", Unset)),
            "aliases": aliases,
            "descr": coalesce(descr, inspect.getdoc(handler) if callable(handler) else None),
            "arguments": arguments,
            "filters": filters,
            "bot_requires": bot_requires,
            "user_requires": user_requires,
            "typing": bool(typing),
            "parent": coalesce(parent),
        }
        if metadata["label"] is Unset:
            raise TypeError(f"{type(self).__typename__} 'label' is required when the handler has no __name__")
        if isinstance(metadata["descr"], str):
            metadata["descr"] = metadata["descr"].strip().splitlines()[0] if metadata["descr"].strip() else None

        _process_handler(type(self), metadata)
        _process_names(type(self), metadata)
        _process_arguments(type(self), metadata)
        _process_filters(type(self), metadata)
        _process_requirements(type(self), metadata)

        self._invocable = metadata.pop("invocable")
        self._children = {}
        self._sealed = False
        for name, object in metadata.items():
            setattr(self, "_" + name, object)

        _attach_to_parent(self, parent)

    def __call__(self, context, args):
        """
        Forward to the handler; the result may be awaitable.
        """
        return self._invocable(context, args)

    def matches(self, token, /):
        """
        True when token equals the label or any alias, ignoring case.
        """
        return fold(token) in {fold(self.label), *map(fold, self.aliases)}

    def child(self, token, /):
        """
        Direct sub-command whose label equals token (ignoring case); aliases and deeper
        levels are never considered. Returns None on a miss.
        """
        return self._children.get(fold(token))

    def command(self, handler=Unset, /, *args, **kwargs):
        """
        Create a sub-command under this command (decorator friendly).

        Same invocation modes as command(...), with parent=self injected.
        """
        return command(handler, *args, parent=self, **kwargs)

    def _seal(self):
        with _children_lock:
            self._sealed = True
        for child in self._children.values():
            child._seal()


class Registry:
    """
    Ordered set of top-level commands.

    rules
    - labels and aliases are unique across top-level commands (case-insensitive).
    - only parentless commands can be registered.
    - registration uses copy-on-write under a lock; resolve() reads a snapshot, so a
      late registration never disturbs an in-flight lookup.
    - freeze() closes registration and seals every registered hierarchy.
    """

    def __init__(self, commands=(), /):
        self._commands = ()
        self._frozen = False
        self._lock = threading.Lock()
        for command in commands:
            self.register(command)

    @property
    def frozen(self):
        return self._frozen

    def register(self, command, /):
        if not isinstance(command, Command):
            raise TypeError("registry can only register commands")
        if command.parent:
            raise ValueError("subcommand %r cannot be registered at top level" % command.label)

        names = {fold(command.label), *map(fold, command.aliases)}
        with self._lock:
            if self._frozen:
                raise RuntimeError("command registry is frozen")
            for other in self._commands:
                if other is command:
                    raise ValueError("command %r is already registered" % command.label)
                if names & {fold(other.label), *map(fold, other.aliases)}:
                    raise ValueError("command name %r collides with %r" % (command.label, other.label))
            self._commands = self._commands + (command,)
        logger.debug("registered command %r", command.label)
        return command

    def freeze(self):
        with self._lock:
            self._frozen = True
            commands = self._commands
        for command in commands:
            command._seal()
        return self

    def get(self, token, default=None, /):
        """
        First top-level command whose label or alias equals token (ignoring case).
        """
        for command in self._commands:
            if command.matches(token):
                return command
        return default

    def resolve(self, tokens, /):
        """
        Resolve tokens to (command, remaining tokens), or None when nothing matches.

        steps
        - the first token is matched against labels and aliases of the top-level
          commands in registration order; the first match wins.
        - when at least one token remains, it is matched against the direct sub-command
          labels of the matched command; on a hit that sub-command is the target and
          the token is consumed, on a miss the tokens stay the parent's arguments.
        """
        if not tokens:
            return None
        label, *rest = tokens
        if (command := self.get(label)) is None:
            return None
        if rest and (child := command.child(rest[0])) is not None:
            return child, tuple(rest[1:])
        return command, tuple(rest)

    def __iter__(self):
        return iter(self._commands)

    def __len__(self):
        return len(self._commands)

    def __contains__(self, command):
        return command in self._commands


def command(handler=Unset, /, *args, **kwargs):
    """
    Create a Command or return a decorator to build it later.

    Invocation modes
    - Direct: cmd = command(func, label="x", ...)
    - Decorator: @command / @command(label="x", ...)

    Returns
    - Command | Callable[[Callable], Command]
    """
    @rename("command")
    def wrapper(handler, /):
        if not callable(handler) and not hasattr(handler, "handle"):
            raise TypeError("@command() must be applied to a callable or a handler object")
        return Command(handler, *args, **kwargs)

    return wrapper(handler) if handler is not Unset else wrapper


__all__ = (
    "Command",
    "Registry",
    "command",
)

# Remove the internal metaclass from the module namespace to avoid accidental
# exposure in docs, autocompletion, or star-imports. Not part of the public API.
del CommandType
