r"""
Herald argument specifications, factories and binding.

Overview
- Argument: positional argument declaration of a command (key, factory type name,
  required/optional). Order of declaration is binding order.
- ArgumentMap: immutable mapping key -> converted value handed to filters and handlers.
- Factories: registry from a type name to a conversion function (str -> value) with a
  two-phase lifecycle (open for registration, then frozen).
- factories: the process-wide default registry with the built-in types.
- bind(command, tokens): arity check + index-aligned conversion into an ArgumentMap.

Built-in types
- string               the token unchanged
- number (int, integer) base-10 integer ("-12", "+7", "42")
- float                decimal number
- boolean (bool)       yes/no, true/false, on/off, 1/0 (case-insensitive)
- user                 a mention "<@123>", "<@!123>" or "@name"; yields the id or the name

Metadata (sanitized on construction)
- key: non-empty, starts with a letter, letters/digits/underscores/hyphens after.
- type: non-empty factory type name (looked up when binding).
- required: bool.
- descr: Unset | str (short help), non-empty when provided.

Quick example:
    >>> from herald.arguments import Argument, factories
    >>> Argument("count", type="number", required=False)
    argument(key='count', type='number', required=False, descr=None)
    >>> @factories.register("color")
    ... def color(token):
    ...     ...
"""
import functools
import logging
import operator
import re
import threading
from collections.abc import Mapping

from .faults import WrongArgumentNumberError, BadArgumentTypeError
from .utils import *

logger = logging.getLogger(__name__)


class ArgumentType(type):
    """
    Metaclass giving argument specs a stable repr and read-only metadata properties.

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in messages.
    - every name listed in __introspectable__ is exposed through mirror().
    """
    __introspectable__ = ()

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
            return "%s(%s)" % (
                type(self).__typename__,
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in type(self).__introspectable__:
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


class Argument(metaclass=ArgumentType):
    """
    Positional argument declaration.

    An argument binds the token at its declaration index (after the command label, and
    after the sub-command label when one matched). The token is converted by the factory
    registered under 'type'.
    """

    __introspectable__ = (
        "key",
        "type",
        "required",
        "descr",
    )

    __slots__ = ("_key", "_type", "_required", "_descr")

    def __init__(self, key, /, type="string", required=True, descr=Unset):
        if not isinstance(key, str):
            raise TypeError("argument 'key' must be a string")
        elif not re.fullmatch(r"[^\W\d_][\w-]*", key := key.strip()):
            raise ValueError("argument 'key' must start with a letter and contain only letters, digits, '_' or '-'")

        if not isinstance(type, str):
            raise TypeError("argument 'type' must be a factory name")
        elif not (type := type.strip()):
            raise ValueError("argument 'type' cannot be empty")

        if not isinstance(descr, str | Unset):
            raise TypeError("argument 'descr' must be a string")
        elif isinstance(descr, str) and not (descr := descr.strip()):
            raise ValueError("argument 'descr' cannot be empty")

        self._key = key
        self._type = type
        self._required = bool(required)
        self._descr = coalesce(descr)

    @property
    def metavar(self):
        """
        Usage label: "<key>" when required, "[key]" when optional.
        """
        return ("<%s>" if self.required else "[%s]") % self.key

    def __eq__(self, other):
        if not isinstance(other, Argument):
            return NotImplemented
        return (self.key, self.type, self.required) == (other.key, other.type, other.required)

    def __hash__(self):
        return hash((self.key, self.type, self.required))


class ArgumentMap(Mapping):
    """
    Immutable mapping from argument key to its bound, converted value.

    Optional arguments that were not supplied are absent; use get(key, default).
    """
    __slots__ = ("_values",)

    def __init__(self, values=(), /):
        self._values = dict(values)

    def __getitem__(self, key):
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __repr__(self):
        return "argument-map(%s)" % ", ".join("%s=%r" % item for item in self._values.items())

    def __setattr__(self, name, value):
        if name in ArgumentMap.__slots__ and not hasattr(self, name):
            return object.__setattr__(self, name, value)
        raise AttributeError("argument-map is read-only")


class Factories:
    """
    Registry from a type name to a conversion function (str -> value).

    lifecycle
    - open: register()/alias() are allowed (startup/configuration phase).
    - frozen: after freeze(), registration raises RuntimeError; lookups keep working.

    concurrency
    - registration swaps in a new dict under a lock (copy-on-write); lookups read the
      current dict without locking, so late registration never races a dispatch.

    factory contract
    - factory(token) -> value; may raise BadArgumentTypeError. ValueError/TypeError
      raised by a factory are converted to BadArgumentTypeError(token, name).
    """

    def __init__(self, source=Unset, /):
        if not isinstance(source, Factories | Unset):
            raise TypeError("factories source must be a factories registry")
        self._factories = dict(source._factories) if source is not Unset else {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self):
        return self._frozen

    def freeze(self):
        """
        Close registration; the registry is read-only from now on.
        """
        self._frozen = True
        return self

    def copy(self):
        """
        Return an open registry holding the same factories.
        """
        return Factories(self)

    def register(self, name, factory=Unset, /):
        """
        Register a factory under a type name, or return a decorator doing so.

        Forms
        - factories.register("color", parse_color)
        - @factories.register("color")
          def parse_color(token): ...

        Rules
        - name: non-empty string; re-registering a name replaces the factory.
        - factory: callable taking one string.
        """
        if not isinstance(name, str):
            raise TypeError("factory name must be a string")
        elif not (name := name.strip()):
            raise ValueError("factory name cannot be empty")

        if factory is Unset:
            @rename("register")
            def wrapper(factory, /):
                self.register(name, factory)
                return factory
            return wrapper

        if not callable(factory):
            raise TypeError("factory must be callable")

        with self._lock:
            if self._frozen:
                raise RuntimeError("factories registry is frozen")
            self._factories = self._factories | {name: factory}
        logger.debug("registered argument factory %r", name)
        return factory

    def alias(self, name, target, /):
        """
        Register name as another spelling of an already registered type.
        """
        try:
            factory = self._factories[target]
        except KeyError:
            raise KeyError("unknown argument type %r" % target) from None
        return self.register(name, factory)

    def __getitem__(self, name):
        try:
            return self._factories[name]
        except KeyError:
            raise KeyError("unknown argument type %r" % name) from None

    def __contains__(self, name):
        return name in self._factories

    def __iter__(self):
        return iter(self._factories)

    def __len__(self):
        return len(self._factories)

    def __repr__(self):
        return "factories(%s%s)" % (", ".join(self._factories), ", frozen" * self._frozen)

    def convert(self, name, token, /):
        """
        Run the factory registered under name on token.

        A factory failure surfaces as BadArgumentTypeError(token, name).
        """
        factory = self[name]
        try:
            return factory(token)
        except BadArgumentTypeError:
            raise
        except (ValueError, TypeError) as error:
            raise BadArgumentTypeError(token, name) from error


def bind(command, tokens, registry=Unset, /):
    """
    bind positional tokens to a command's declared arguments.

    rules
    - arity is checked first: fewer tokens than required arguments, or more tokens than
      declared arguments, raise WrongArgumentNumberError(command, len(tokens)).
    - token i is converted by the factory of argument i (index-aligned).
    - the first conversion failure raises BadArgumentTypeError; nothing partial escapes.
    - omitted optional arguments are absent from the resulting map.

    parameters
    - command: Command (anything exposing an 'arguments' sequence works).
    - tokens: Sequence[str]
    - registry: Factories (defaults to the process-wide 'factories').

    returns
    - ArgumentMap
    """
    registry = coalesce(registry, factories)
    tokens = tuple(tokens)
    arguments = command.arguments

    required = sum(argument.required for argument in arguments)
    if len(tokens) < required or len(tokens) > len(arguments):
        raise WrongArgumentNumberError(command, len(tokens))

    values = {}
    for argument, token in zip(arguments, tokens):
        values[argument.key] = registry.convert(argument.type, token)
    return ArgumentMap(values)


factories = Factories()
"""
Process-wide default registry, pre-populated with the built-in types.

Routers copy it on construction, so registering here only affects routers built later.
"""


@factories.register("string")
def _string(token, /):
    return token


@factories.register("number")
def _number(token, /):
    if not re.fullmatch(r"[+-]?\d+", token):
        raise BadArgumentTypeError(token, "number")
    return int(token)


@factories.register("float")
def _float(token, /):
    # float() accepts digit separators ("1_000")
    if "_" in token:
        raise BadArgumentTypeError(token, "float")
    try:
        return float(token)
    except ValueError:
        raise BadArgumentTypeError(token, "float") from None


@factories.register("boolean")
def _boolean(token, /):
    match fold(token):
        case "true" | "yes" | "on" | "1":
            return True
        case "false" | "no" | "off" | "0":
            return False
    raise BadArgumentTypeError(token, "boolean")


@factories.register("user")
def _user(token, /):
    if match := re.fullmatch(r"<@!?(\d+)>", token):
        return match[1]
    if match := re.fullmatch(r"@(\S+)", token):
        return match[1]
    raise BadArgumentTypeError(token, "user", "can't find user %r" % token)


# Aliases
factories.alias("integer", "number")
factories.alias("int", "number")
factories.alias("bool", "boolean")


__all__ = (
    "Argument",
    "ArgumentMap",
    "Factories",
    "factories",
    "bind",
)

# Remove the internal metaclass from the module namespace to avoid accidental
# exposure in docs, autocompletion, or star-imports. Not part of the public API.
del ArgumentType
