"""
Herald router: turn an incoming chat message into at most one command dispatch.

Pipeline (one call to handle())
    raw message
      → strip()      mention "<@id> " or configured prefix; anything else is ordinary chat
      → tokenize()   quoted runs are single tokens
      → resolve()    first token → top-level command, next token → direct sub-command label
      → bind()       arity check, then index-aligned conversion into an ArgumentMap
      → authorize()  bot capabilities, then caller capabilities
      → run()        router filters, then command filters; cancellation checked after
      → execute()    typing indicator, handler, message deletion, reply

Failure model
- ordinary chat (no prefix, prefix alone, unknown label) is silent: handle() returns
  None and nothing is logged above debug.
- any failure after resolution reaches the failure sink exactly once, with
  (context, command, args, error); the sink's own exceptions are logged and dropped.
- binding, permission and filter failures happen before any side effect on the chat.

Configuration
    router = Router("!", mention=True)
    router = Router(lambda context: guild_prefixes.get(context.guild), fallback=my_sink)
    router = Router(None)  # every message is a candidate
"""
import asyncio
import importlib
import logging
import re
import threading

from .arguments import Factories, bind, factories as _factories
from .commands import *
from .context import Capability
from .faults import ExceptionRouter, HandlerError, DeliveryError
from .filters import CommandCall, run
from .permissions import authorize
from .replies import reply
from .tokens import tokenize
from .utils import *

logger = logging.getLogger(__name__)


class Router:
    """
    Command router bound to a prefix provider, a factory registry and a failure sink.

    lifecycle
    - open: register()/command()/filter()/include() wire commands and filters.
    - frozen: after freeze(), registration raises RuntimeError; dispatch is unaffected.

    parameters
    - prefix: str | None | Callable[[Context], str | None]
      invocation prefix; None dispatches every message. A callable is consulted per
      message (it may be a coroutine function) and may itself return None.
    - mention: bool
      accept "<@id> command ..." and "<@!id> command ..." where id is context.self_id().
    - factories: Factories | Unset
      argument factories; defaults to a private copy of the process-wide registry.
    - fallback: Callable[[Context, Command, list[str], Exception], Any] | Unset
      failure sink; defaults to ExceptionRouter().
    - filters: Iterable[Callable[[CommandCall, Context, ArgumentMap], Any]]
      router-level filters, run before every command's own filters.
    """

    def __init__(self, prefix="!", *, mention=True, factories=Unset, fallback=Unset, filters=()):
        if isinstance(prefix, str):
            if not (prefix := prefix.strip()):
                raise ValueError("router 'prefix' cannot be empty (use None for prefix-less dispatch)")
        elif prefix is not None and not callable(prefix):
            raise TypeError("router 'prefix' must be a string, None or a callable")

        if not isinstance(factories, Factories | Unset):
            raise TypeError("router 'factories' must be a factories registry")

        if not callable(fallback := coalesce(fallback, ExceptionRouter())):
            raise TypeError("router 'fallback' must be callable")

        filters = tuple(filters)
        if not all(map(callable, filters)):
            raise TypeError("router 'filters' must be an iterable of callables")

        self._prefix = prefix
        self._mention = bool(mention)
        self._factories = factories if factories is not Unset else _factories.copy()
        self._fallback = fallback
        self._filters = filters
        self._registry = Registry()
        self._pending = set()
        self._lock = threading.Lock()

    @property
    def prefix(self):
        return self._prefix

    @property
    def factories(self):
        return self._factories

    @property
    def fallback(self):
        return self._fallback

    @property
    def filters(self):
        return self._filters

    @property
    def commands(self):
        return tuple(self._registry)

    @property
    def frozen(self):
        return self._registry.frozen

    def __repr__(self):
        return "router(prefix=%r, commands=%r%s)" % (
            self._prefix,
            tuple(command.label for command in self._registry),
            ", frozen" * self.frozen,
        )

    # --- wiring -----------------------------------------------------------

    def register(self, command, /):
        """
        Register a top-level command; returns it so register() works as a decorator.

        Every argument type of the command and of its sub-commands must already be
        registered in this router's factories (ValueError otherwise).
        """
        if isinstance(command, Command):
            self._check(command)
        return self._registry.register(command)

    def command(self, handler=Unset, /, *args, **kwargs):
        """
        Build a command with command(...) and register it (decorator friendly).

            @router.command(aliases={"p"})
            def ping(context, args):
                return "pong"
        """
        @rename("command")
        def wrapper(handler, /):
            return self.register(command(handler, *args, **kwargs))

        return wrapper(handler) if handler is not Unset else wrapper

    def filter(self, filter, /):
        """
        Append a router-level filter; returns it so filter() works as a decorator.
        """
        if not callable(filter):
            raise TypeError("router filter must be callable")
        with self._lock:
            if self.frozen:
                raise RuntimeError("router is frozen")
            self._filters = self._filters + (filter,)
        return filter

    def include(self, *names):
        """
        Import modules by name and register their top-level commands.

        Every module-level Command without a parent that is not registered yet is picked
        up, in module order then definition order.

            router.include("bot.commands.admin", "bot.commands.fun")

        returns
        - list[Command]: the commands registered by this call.
        """
        included = []
        for name in names:
            module = importlib.import_module(name)
            for object in vars(module).values():
                if isinstance(object, Command) and not object.parent and object not in self._registry:
                    included.append(self.register(object))
            logger.debug("included %d command(s) from %s", len(included), name)
        return included

    def freeze(self):
        """
        Close registration of commands, sub-commands, filters and argument factories.

        Sub-commands attached after registration are checked for unknown argument
        types here.
        """
        with self._lock:
            for command in self._registry:
                self._check(command)
            self._registry.freeze()
            self._factories.freeze()
        return self

    def _check(self, command):
        for argument in command.arguments:
            if argument.type not in self._factories:
                raise ValueError("command %r: unknown argument type %r" % (command.label, argument.type))
        for child in command.children.values():
            self._check(child)

    # --- dispatch ---------------------------------------------------------

    async def strip(self, context, /):
        """
        Return the invocation text of the message, or None when it is not an invocation.

        rules
        - the message is trimmed first.
        - a leading mention of the bot followed by whitespace wins over the prefix.
        - otherwise the message must start with the prefix and carry something after it.
        - a None prefix accepts every non-empty message as is.
        """
        content = (await settle(context.raw_message()) or "").strip()
        if not content:
            return None

        if self._mention and content.startswith("<@"):
            if (self_id := await settle(context.self_id())) is not None:
                if match := re.fullmatch(r"<@!?%s>\s+(.*)" % re.escape(str(self_id)), content, re.DOTALL):
                    return match[1].strip() or None

        prefix = self._prefix
        if callable(prefix):
            prefix = await settle(prefix(context))

        if prefix is None:
            return content
        if not content.startswith(prefix):
            return None
        return content[len(prefix):].strip() or None

    def resolve(self, tokens, /):
        """
        Resolve tokens to (command, remaining tokens), or None when nothing matches.
        """
        return self._registry.resolve(tokens)

    async def handle(self, context, /):
        """
        Dispatch one incoming message.

        returns
        - None when the message is not a command invocation.
        - the CommandCall of the dispatch otherwise (inspect call.cancelled to learn
          whether a filter vetoed it). Failures are reported to the sink, not raised.
        """
        if (content := await self.strip(context)) is None:
            return None

        tokens = tokenize(content)
        if (resolved := self.resolve(tokens)) is None:
            logger.debug("no command matches %r", tokens[0] if tokens else content)
            return None

        command, args = resolved
        call = CommandCall(command)
        logger.debug("dispatching %r with %r", " ".join(step.label for step in command.path), args)
        try:
            arguments = bind(command, args, self._factories)
            await authorize(command, context)
            if not await run(self._filters + command.filters, call, context, arguments):
                return call
            await self.execute(call, context, arguments)
        except Exception as error:
            await self.report(context, command, list(args), error)
        return call

    async def execute(self, call, context, args, /):
        """
        Run the handler of call.command and deliver its reply.

        steps
        - show the typing indicator unless the command opted out (best-effort).
        - call the handler; a raise becomes HandlerError.
        - request deletion of the triggering message when the bot may manage messages.
        - normalize the result with reply() and send it; a failure becomes DeliveryError.

        returns
        - the raw handler result.
        """
        command = call.command
        if command.typing:
            try:
                await settle(context.send_typing())
            except Exception:
                logger.debug("typing indicator failed for %r", command.label, exc_info=True)

        try:
            result = await settle(command(context, args))
        except Exception as error:
            raise HandlerError(error) from error

        if await settle(context.system_has(Capability.MESSAGE_MANAGE)):
            self._discard(context)

        try:
            if (response := reply(result)) is not None:
                await settle(context.send(response))
        except Exception as error:
            raise DeliveryError(error) from error
        return result

    async def report(self, context, command, args, error, /):
        """
        Hand a dispatch failure to the sink; the sink's own failures are logged only.
        """
        try:
            await settle(self._fallback(context, command, args, error))
        except Exception:
            logger.exception("failure sink raised while reporting %s", type(error).__name__)

    async def drain(self):
        """
        Wait for the pending message deletions (shutdown and tests).
        """
        while pending := {task for task in self._pending if not task.done()}:
            await asyncio.wait(pending)

    def _discard(self, context):
        async def delete():
            try:
                await settle(context.delete_message())
            except Exception:
                logger.debug("could not delete the triggering message", exc_info=True)

        task = asyncio.ensure_future(delete())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


__all__ = (
    "Router",
)
