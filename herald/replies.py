"""
Herald replies: the value a handler hands back, as a tagged union.

Shapes
- Reply(ReplyKind.STRUCTURED, payload): a rich, pre-formatted response (e.g. an Embed),
  delivered to the context as-is.
- Reply(ReplyKind.TEXT, payload): plain display text.
- None: nothing to send.

Normalization (reply())
- None stays None.
- a Reply is passed through.
- objects implementing __reply__() decide their own tag (Embed does).
- anything else becomes TEXT with str(value) as payload.

Contexts receive Reply values and dispatch on reply.kind, never on the payload type.
"""
from enum import Enum
from typing import NamedTuple

from rich.panel import Panel
from rich.text import Text


class ReplyKind(Enum):
    STRUCTURED = "structured"
    TEXT = "text"


class Reply(NamedTuple):
    kind: ReplyKind
    payload: object

    def __reply__(self):
        return self


class Field(NamedTuple):
    name: str
    value: str
    inline: bool = False


class Embed(NamedTuple):
    """
    structured chat reply: title, description, fields and an optional color/footer.

    Embed is immutable; with_field() returns a new embed, which keeps handler code
    builder-like without a separate builder type.
    """
    title: str | None = None
    description: str | None = None
    fields: tuple = ()
    color: str | None = None
    footer: str | None = None

    def with_field(self, name, value, inline=False):
        return self._replace(fields=self.fields + (Field(str(name), str(value), bool(inline)),))

    def __reply__(self):
        return Reply(ReplyKind.STRUCTURED, self)

    def __rich__(self):
        body = Text()
        if self.description:
            body.append(self.description)
        for field in self.fields:
            if body:
                body.append("\n")
            body.append(field.name, style="bold")
            body.append(": " if field.inline else "\n")
            body.append(field.value)
        return Panel(
            body,
            title=self.title,
            title_align="left",
            subtitle=self.footer,
            subtitle_align="right",
            border_style=self.color or "none",
        )


def reply(value, /):
    """
    normalize a handler result into a Reply (or None when there is nothing to send).
    """
    if value is None:
        return None
    if hasattr(value, "__reply__") and callable(value.__reply__):
        result = value.__reply__()
        if not isinstance(result, Reply):
            raise TypeError("__reply__() non-reply returned")
        return result
    return Reply(ReplyKind.TEXT, str(value))


__all__ = (
    "ReplyKind",
    "Reply",
    "Field",
    "Embed",
    "reply",
)
