"""
Herald permission gate.

A command declares what the bot must be allowed to do (bot_requires) and what the
caller must be allowed to do (user_requires). The gate checks the bot first, then the
caller, each list in declaration order, and raises on the first missing capability.
"""
import logging

from .faults import BotNotAllowedError, UserNotAllowedError
from .utils import *

logger = logging.getLogger(__name__)


async def authorize(command, context, /):
    """
    enforce the capability requirements of command against context.

    errors
    - BotNotAllowedError(capability) for the first capability the system lacks.
    - UserNotAllowedError(capability) for the first capability the caller lacks; only
      checked once every system capability is present.
    """
    for capability in command.bot_requires:
        if not await settle(context.system_has(capability)):
            logger.debug("command %r: system lacks %r", command.label, str(capability))
            raise BotNotAllowedError(capability)

    for capability in command.user_requires:
        if not await settle(context.caller_has(capability)):
            logger.debug("command %r: caller lacks %r", command.label, str(capability))
            raise UserNotAllowedError(capability)


__all__ = (
    "authorize",
)
