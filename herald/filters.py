"""
Herald filter chain.

A filter is a callable filter(call, context, args) -> Any (sync or async) that runs
after the arguments are bound and the permissions are granted, and before the handler.
Filters can veto the invocation with call.cancel(); a raise aborts the dispatch.

Semantics
- every filter runs, in order, even after one of them cancelled the call.
- the first raise stops the chain and is routed to the failure sink as-is.
- the router checks call.cancelled once, after the whole chain ran.
"""
import logging

from .utils import *

logger = logging.getLogger(__name__)


class CommandCall:
    """
    Per-dispatch invocation record handed to every filter.

    attributes
    - command: the resolved Command (the sub-command when one matched).
    - cancelled: True once any filter called cancel(); never reset.
    """
    __slots__ = ("_command", "cancelled")

    def __init__(self, command, /):
        self._command = command
        self.cancelled = False

    @property
    def command(self):
        return self._command

    def cancel(self):
        self.cancelled = True

    def __repr__(self):
        return "command-call(command=%r, cancelled=%r)" % (self._command.label, self.cancelled)


async def run(filters, call, context, args, /):
    """
    run every filter in order with (call, context, args); awaitable results are awaited.

    returns
    - bool: True when the call survived the chain (not cancelled).
    """
    for filter in filters:
        cancelled = call.cancelled
        await settle(filter(call, context, args))
        if call.cancelled and not cancelled:
            logger.debug("command %r cancelled by %r", call.command.label, getattr(filter, "__name__", filter))
    return not call.cancelled


__all__ = (
    "CommandCall",
    "run",
)
