"""
Herald console context: a Context implementation backed by a rich console.

Useful to try a router from a terminal and to drive it from tests: every reply is
rendered on the console and recorded in 'sent'; deletions and typing indicators are
recorded too.

    console = Console()
    context = ConsoleContext("!ping", console=console, caller={Capability.MESSAGE_SEND})
    await router.handle(context)
"""
from rich.console import Console
from rich.text import Text

from .context import Capability
from .replies import ReplyKind
from .utils import *


class ConsoleContext:
    """
    Context for a single console message.

    parameters
    - message: str
      the raw message text.
    - console: rich.console.Console | Unset
      output console; a default Console() when Unset.
    - caller: Iterable[Capability | str]
      capabilities of the person typing.
    - system: Iterable[Capability | str] | Unset
      capabilities of the bot; every well-known Capability when Unset.
    - self_id: str
      id answered by self_id(), so "<@id> ping" works on the console too.
    """

    def __init__(self, message, /, *, console=Unset, caller=(), system=Unset, self_id="0"):
        if not isinstance(message, str):
            raise TypeError("console context message must be a string")
        self.message = message
        self.console = console if console is not Unset else Console()
        self.caller = frozenset(map(str, caller))
        self.system = frozenset(map(str, coalesce(system, Capability)))
        self.id = str(self_id)
        self.sent = []
        self.deleted = False
        self.typing = 0

    def raw_message(self):
        return self.message

    def self_id(self):
        return self.id

    def caller_has(self, capability):
        return str(capability) in self.caller or str(Capability.ADMINISTRATOR) in self.caller

    def system_has(self, capability):
        return str(capability) in self.system or str(Capability.ADMINISTRATOR) in self.system

    def send(self, reply):
        match reply.kind:
            case ReplyKind.STRUCTURED:
                self.console.print(reply.payload)
            case ReplyKind.TEXT:
                self.console.print(Text(reply.payload))
            case _:
                raise ValueError("unsupported reply kind %r" % reply.kind)
        self.sent.append(reply)

    def delete_message(self):
        self.deleted = True
        self.console.print(Text("(message deleted)", style="dim"))

    def send_typing(self):
        self.typing += 1


__all__ = (
    "ConsoleContext",
)
