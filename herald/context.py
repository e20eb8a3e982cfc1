"""
Herald collaborator interfaces.

The router never talks to a chat platform directly; it talks to a Context built by the
platform adapter for every incoming message. Every method may be a plain function or a
coroutine function: the router awaits whatever is awaitable.

Context
- raw_message() -> str                 the untouched message content
- self_id() -> str                     id of the bot account (for "<@id>" mentions)
- caller_has(capability) -> bool       permission lookup for the message author
- system_has(capability) -> bool       permission lookup for the bot itself
- send(reply: Reply) -> None           deliver a reply (dispatch on reply.kind)
- delete_message() -> None             delete the triggering message
- send_typing() -> None                show a typing indicator

Prefix provider
- a static string, None (prefix-less dispatch), or a callable(context) -> str | None.

Capability
- well-known capability names as a StrEnum; plain strings work everywhere a
  capability is expected, so adapters may use their own vocabulary.
"""
from enum import StrEnum
from typing import Protocol, runtime_checkable


class Capability(StrEnum):
    ADMINISTRATOR = "administrator"
    MESSAGE_MANAGE = "message-manage"
    MESSAGE_SEND = "message-send"
    MESSAGE_EMBED = "message-embed"
    BAN_MEMBERS = "ban-members"
    KICK_MEMBERS = "kick-members"
    MANAGE_CHANNELS = "manage-channels"
    MANAGE_ROLES = "manage-roles"
    MANAGE_NICKNAMES = "manage-nicknames"
    VOICE_CONNECT = "voice-connect"


@runtime_checkable
class Context(Protocol):
    def raw_message(self): ...
    def self_id(self): ...
    def caller_has(self, capability): ...
    def system_has(self, capability): ...
    def send(self, reply): ...
    def delete_message(self): ...
    def send_typing(self): ...


__all__ = (
    "Capability",
    "Context",
)
