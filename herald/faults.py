"""
Herald faults (dispatch errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every failure a dispatch can
  surface. Codes are grouped by pipeline stage to keep copy consistent and make
  logs/searches predictable.
- CommandException: base type that carries message + options and knows how to render
  itself as plain chat text (explain()) or as a rich renderable (__rich__).
- The concrete taxonomy: WrongArgumentNumberError, BadArgumentTypeError,
  BotNotAllowedError, UserNotAllowedError, HandlerError, DeliveryError.
- ExceptionRouter: the default sink that receives exactly one failure per dispatch.

What is *not* a fault
- A message that does not resolve to a command (ordinary chat) is silent: the router
  returns None and nothing reaches the sink.

Integration
- The router catches every failure of a dispatch and calls its sink once with
  (context, command, args, error). The sink decides how the failure is surfaced.
- Hosts can remap code labels with a __codes__ mapping and override palette entries
  with a __styles__ mapping in __main__.
"""
import logging
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from .replies import reply
from .utils import *

logger = logging.getLogger(__name__)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the router (stable identifiers).

    grouping (by pipeline stage)
    - binding (112xx)
      • WRONG_ARGUMENT_NUMBER, BAD_ARGUMENT_TYPE
    - permissions (113xx)
      • BOT_NOT_ALLOWED, USER_NOT_ALLOWED
    - execution (114xx)
      • HANDLER_FAILURE, DELIVERY_FAILURE

    normalize() allows host remapping to custom labels while keeping code-stability.
    """
    # --- binding errors (112xx) ---
    WRONG_ARGUMENT_NUMBER       = 11201
    BAD_ARGUMENT_TYPE           = 11202

    # --- permission errors (113xx) ---
    BOT_NOT_ALLOWED             = 11301
    USER_NOT_ALLOWED            = 11302

    # --- execution errors (114xx) ---
    HANDLER_FAILURE             = 11401
    DELIVERY_FAILURE            = 11402

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class CommandException(Exception):
    """
    base class of every routed dispatch failure.

    a fault carries a human message plus read-only options; the options always include
    'code' (FaultCode), 'title' and 'hint' so sinks can build a user-facing explanation
    without knowing the concrete type.
    """
    code = None
    title = "command failure"

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        self.message = coalesce(message, "")
        self.options = MappingProxyType({
            "code": type(self).code,
            "title": type(self).title,
            "hint": None,
        } | options)

    def __str__(self):
        return self.message

    def explain(self):
        """
        one-line, chat-friendly explanation: "<title>: <message> (<hint>)".
        """
        text = "%s: %s" % (self.options["title"], self.message)
        if self.options["hint"]:
            text += " (%s)" % self.options["hint"]
        return text

    def render(self, *, colorful=True, fancy=False):
        """
        build a rich renderable for consoles and logs.

        palette keys: code, error-title, error-message, hint-arrow, hint
        (override any of them through __styles__ in __main__).
        """
        styles = defaultdict(str, {
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        } | getattr(__import__("__main__"), "__styles__", {}))

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            return Text(str(fragment), styles[style] if colorful else "")

        code = self.options["code"]
        header = Text.assemble(
            "[ ",
            text(code.normalize() if code else "-", "code"),
            " | ",
            text(self.options["title"].title(), "error-title"),
            " ]"
        )
        message = text(self.message, "error-message")
        parts = [message]
        if self.options["hint"]:
            parts.append(Text.assemble(text(" → ", "hint-arrow"), text(self.options["hint"], "hint")))

        if fancy:
            return Panel(Group(*parts), title=header, title_align="left")
        return Group(header, *parts)

    def __rich__(self):
        return self.render()


class WrongArgumentNumberError(CommandException):
    """
    the supplied token count does not fit the command's declared arguments.
    """
    code = FaultCode.WRONG_ARGUMENT_NUMBER
    title = "wrong number of arguments"

    def __init__(self, command, supplied, /, **options):
        self.command = command
        self.supplied = supplied
        required = sum(argument.required for argument in command.arguments)
        declared = len(command.arguments)
        if required == declared:
            expected = "exactly %d" % declared
        else:
            expected = "%d to %d" % (required, declared)
        super().__init__(
            "%r takes %s argument%s but %d %s given" % (
                command.label, expected, "" if declared == 1 else "s", supplied, "was" if supplied == 1 else "were"
            ),
            hint="usage: %s" % command.usage,
            **options
        )


class BadArgumentTypeError(CommandException):
    """
    a factory could not convert the supplied token to the declared type.
    """
    code = FaultCode.BAD_ARGUMENT_TYPE
    title = "bad argument type"

    def __init__(self, value, type, /, message=Unset, **options):
        self.value = value
        self.type = type
        super().__init__(
            coalesce(message, "%r is not a valid %s" % (value, type)),
            hint="expected a value of type %r" % type,
            **options
        )


class BotNotAllowedError(CommandException):
    """
    the system lacks a capability the command declares as required of itself.
    """
    code = FaultCode.BOT_NOT_ALLOWED
    title = "missing bot permission"

    def __init__(self, capability, /, **options):
        self.capability = capability
        super().__init__(
            "i need the %r permission to do that" % str(capability),
            hint="ask an administrator to grant it",
            **options
        )


class UserNotAllowedError(CommandException):
    """
    the caller lacks a capability the command declares as required of them.
    """
    code = FaultCode.USER_NOT_ALLOWED
    title = "missing permission"

    def __init__(self, capability, /, **options):
        self.capability = capability
        super().__init__(
            "you need the %r permission to do that" % str(capability),
            **options
        )


class HandlerError(CommandException):
    """
    the command handler raised; the original exception is kept as cause and __cause__.

    side effects the handler produced before failing are not rolled back.
    """
    code = FaultCode.HANDLER_FAILURE
    title = "command failed"

    def __init__(self, cause, /, **options):
        self.cause = cause
        self.__cause__ = cause
        super().__init__("an unexpected error occurred while running the command", **options)


class DeliveryError(CommandException):
    """
    the handler succeeded but its reply could not be sent.
    """
    code = FaultCode.DELIVERY_FAILURE
    title = "reply failed"

    def __init__(self, cause, /, **options):
        self.cause = cause
        self.__cause__ = cause
        super().__init__("the command ran but its reply could not be delivered", **options)


class ExceptionRouter:
    """
    default failure sink: log the fault and explain it to the caller.

    contract
    - called exactly once per failed dispatch with (context, command, args, error).
    - command is the resolved Command (never None: unresolved chat is not a failure).
    - args is the raw token list handed to the binder.

    behavior
    - CommandException subclasses other than HandlerError are expected, user-caused
      faults: logged at warning level and answered with fault.explain().
    - a HandlerError whose cause is itself a CommandException (a handler rejecting its
      input) is treated like that cause.
    - other HandlerErrors and foreign exceptions are bugs: logged with traceback and
      answered with a generic explanation (never the exception text).
    - reply=False keeps the sink silent towards the chat (logging only).
    """

    def __init__(self, *, reply=True):
        self.reply = bool(reply)

    async def __call__(self, context, command, args, error):
        if isinstance(error, HandlerError) and isinstance(error.cause, CommandException):
            logger.warning("command %r rejected: %s", command.label, error.cause.message)
            explanation = error.cause.explain()
        elif isinstance(error, HandlerError | DeliveryError):
            logger.error("command %r failed", command.label, exc_info=error.cause)
            explanation = error.explain()
        elif isinstance(error, CommandException):
            logger.warning("command %r rejected: %s", command.label, error.message)
            explanation = error.explain()
        else:
            logger.error("command %r raised %s", command.label, type(error).__name__, exc_info=error)
            explanation = "command failed: an unexpected error occurred while running the command"

        if self.reply and not isinstance(error, DeliveryError):
            await settle(context.send(reply(explanation)))


__all__ = (
    "FaultCode",
    "CommandException",
    "WrongArgumentNumberError",
    "BadArgumentTypeError",
    "BotNotAllowedError",
    "UserNotAllowedError",
    "HandlerError",
    "DeliveryError",
    "ExceptionRouter",
)
