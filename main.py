import asyncio
import logging
import random

from rich.console import Console
from rich.logging import RichHandler

from herald import *

__styles__ = {
    "error-title": "bold red",
}

console = Console()
router = Router("!")


@router.command(aliases={"h", "?"})
def help(context, args):
    """List the available commands."""
    embed = Embed(title="commands", footer="prefix: %s" % router.prefix, color="cyan")
    for command in router.commands:
        embed = embed.with_field(command.usage, command.descr or "-")
        for child in command.children.values():
            embed = embed.with_field(child.usage, child.descr or "-")
    return embed


@router.command
def ping(context, args):
    """Check that the bot is alive."""
    return "pong"


@router.command(
    arguments=[Argument("user", type="user"), Argument("reason", required=False)],
    bot_requires=[Capability.BAN_MEMBERS],
    user_requires=[Capability.BAN_MEMBERS],
)
async def ban(context, args):
    """Ban a member."""
    return "banned %s (%s)" % (args["user"], args.get("reason", "no reason given"))


@ban.command(label="list")
def banned(context, args):
    """Show the banned members."""
    return Embed(title="banned members", description="nobody yet")


@router.command(arguments=[Argument("sides", type="number", required=False)])
def roll(context, args):
    """Roll a die."""
    sides = args.get("sides", 6)
    if sides < 1:
        raise BadArgumentTypeError(str(sides), "number", "a die needs at least one side")
    return "rolled %d" % random.randint(1, sides)


@router.command(arguments=[Argument("text")], typing=False)
def say(context, args):
    """Repeat a (quoted) text."""
    return args["text"]


async def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[RichHandler(console=console)])
    router.freeze()
    console.print(router)
    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold]> [/]")
        except (EOFError, KeyboardInterrupt):
            break
        await router.handle(ConsoleContext(line, console=console, caller={Capability.BAN_MEMBERS}))
        await router.drain()


if __name__ == '__main__':
    asyncio.run(main())
