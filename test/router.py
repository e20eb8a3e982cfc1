"""
Router behavioral tests (prefixes, dispatch pipeline, failure routing, side effects).

Scope
- Validate that ordinary chat (no prefix, prefix alone, unknown label) is silent.
- Validate mention, callable and prefix-less invocation forms.
- Validate the pipeline order: bind, authorize, filters, typing, handler, deletion, reply.
- Validate that every failure reaches the sink exactly once and that local failures
  leave no side effect on the chat.

Conventions
- Test method names follow CamelCase per project convention.
- Contexts are ConsoleContext instances writing to an in-memory console.
"""

from __future__ import annotations

import asyncio
import importlib
import io
import sys
import tempfile
import textwrap
import threading
import unittest
from pathlib import Path
from unittest import IsolatedAsyncioTestCase

from rich.console import Console

from herald import (
    Argument,
    ArgumentMap,
    BadArgumentTypeError,
    BotNotAllowedError,
    Capability,
    ConsoleContext,
    DeliveryError,
    Embed,
    Factories,
    HandlerError,
    Reply,
    ReplyKind,
    Router,
    UserNotAllowedError,
    WrongArgumentNumberError,
)


def make(message, **options):
    return ConsoleContext(message, console=Console(file=io.StringIO()), **options)


class Sink:
    """Failure sink recording every report."""

    def __init__(self):
        self.calls = []

    def __call__(self, context, command, args, error):
        self.calls.append((command, args, error))


class TestRouterBase(IsolatedAsyncioTestCase):
    def setUp(self):
        self.sink = Sink()
        self.router = Router("!", fallback=self.sink)
        self.seen = []

        @self.router.command(aliases={"h"})
        def help(context, args):
            self.seen.append("help")
            return "commands: help, ping"

        @self.router.command
        async def ping(context, args):
            self.seen.append("ping")
            return "pong"

        @self.router.command(arguments=[Argument("left", type="number"), Argument("right", type="number")])
        def add(context, args):
            self.seen.append(dict(args))
            return args["left"] + args["right"]

        @self.router.command(
            arguments=[Argument("user", type="user"), Argument("reason", required=False)],
            bot_requires=[Capability.BAN_MEMBERS],
            user_requires=[Capability.BAN_MEMBERS, Capability.KICK_MEMBERS],
        )
        def ban(context, args):
            self.seen.append(dict(args))
            return "banned %s" % args["user"]

        @ban.command(label="list")
        def banned(context, args):
            self.seen.append("list")
            return Embed(title="banned", description="nobody")

        @self.router.command(arguments=[Argument("text")], typing=False)
        def say(context, args):
            return args["text"]

        @self.router.command
        def quiet(context, args):
            self.seen.append("quiet")

        @self.router.command
        def broken(context, args):
            raise ZeroDivisionError("boom")

        self.ban = ban
        self.banned = banned
        self.broken = broken


class TestPrefixes(TestRouterBase):
    """Invocation detection."""

    async def testNoPrefixIsSilent(self):
        context = make("hello there")
        self.assertIsNone(await self.router.handle(context))
        self.assertEqual(context.sent, [])
        self.assertEqual(self.sink.calls, [])
        self.assertEqual(self.seen, [])

    async def testPrefixAloneIsSilent(self):
        for message in ("!", "  !  "):
            context = make(message)
            self.assertIsNone(await self.router.handle(context))
            self.assertEqual(context.sent, [])
            self.assertEqual(context.typing, 0)
        self.assertEqual(self.sink.calls, [])

    async def testUnknownLabelIsSilent(self):
        context = make("!nope 1 2")
        self.assertIsNone(await self.router.handle(context))
        self.assertEqual(context.sent, [])
        self.assertEqual(self.sink.calls, [])

    async def testLabelIsCaseInsensitive(self):
        for message in ("!HELP", "!help", "!Help", "!h"):
            self.assertIsNotNone(await self.router.handle(make(message)))
        self.assertEqual(self.seen, ["help"] * 4)

    async def testMentionForms(self):
        for message in ("<@0> ping", "<@!0>   ping", "  <@0>\nping"):
            self.assertIsNotNone(await self.router.handle(make(message)))
        self.assertEqual(self.seen, ["ping"] * 3)

    async def testMentionAloneIsSilent(self):
        self.assertIsNone(await self.router.handle(make("<@0>")))

    async def testMentionOfSomeoneElseIsSilent(self):
        self.assertIsNone(await self.router.handle(make("<@7> ping")))

    async def testMentionDisabled(self):
        router = Router("!", mention=False)
        router.register(self.router.commands[1])
        self.assertIsNone(await router.handle(make("<@0> ping")))

    async def testCallablePrefix(self):
        async def prefix(context):
            return "?"

        router = Router(prefix, fallback=self.sink)
        router.register(self.router.commands[1])
        self.assertIsNotNone(await router.handle(make("?ping")))
        self.assertIsNone(await router.handle(make("!ping")))

    async def testPrefixlessDispatch(self):
        router = Router(None, fallback=self.sink)
        router.register(self.router.commands[1])
        self.assertIsNotNone(await router.handle(make("ping")))
        self.assertIsNone(await router.handle(make("hello")))

    async def testStrip(self):
        self.assertEqual(await self.router.strip(make("!  ban @bob  ")), "ban @bob")
        self.assertIsNone(await self.router.strip(make("ban @bob")))

    async def testEmptyPrefixRejected(self):
        with self.assertRaises(ValueError):
            Router("  ")


class TestDispatch(TestRouterBase):
    """Successful dispatches and their side effects."""

    async def testTextReply(self):
        context = make("!ping")
        call = await self.router.handle(context)
        await self.router.drain()
        self.assertFalse(call.cancelled)
        self.assertIs(call.command, self.router.commands[1])
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "pong")])
        self.assertEqual(context.typing, 1)
        self.assertTrue(context.deleted)

    async def testNonStringResultIsStringified(self):
        context = make("!add 2 3")
        await self.router.handle(context)
        self.assertEqual(self.seen, [{"left": 2, "right": 3}])
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "5")])

    async def testStructuredReply(self):
        context = make("!ban list", caller={Capability.BAN_MEMBERS})
        call = await self.router.handle(context)
        self.assertIs(call.command, self.banned)
        self.assertEqual(context.sent[0].kind, ReplyKind.STRUCTURED)
        self.assertEqual(context.sent[0].payload.title, "banned")

    async def testNoneResultSendsNothing(self):
        context = make("!quiet")
        await self.router.handle(context)
        self.assertEqual(self.seen, ["quiet"])
        self.assertEqual(context.sent, [])

    async def testMentionArgumentBindsUserName(self):
        context = make("!ban @alice", caller={Capability.ADMINISTRATOR})
        await self.router.handle(context)
        self.assertEqual(self.seen, [{"user": "alice"}])
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "banned alice")])
        self.assertEqual(self.sink.calls, [])

    async def testQuotedArgument(self):
        context = make('!say "hello world"')
        await self.router.handle(context)
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "hello world")])

    async def testTypingOptOut(self):
        context = make("!say hi")
        await self.router.handle(context)
        self.assertEqual(context.typing, 0)

    async def testNoDeletionWithoutMessageManage(self):
        context = make("!ping", system={Capability.MESSAGE_SEND})
        await self.router.handle(context)
        await self.router.drain()
        self.assertFalse(context.deleted)
        self.assertEqual(len(context.sent), 1)

    async def testDeletionFailureIsNotEscalated(self):
        class Stubborn(ConsoleContext):
            def delete_message(self):
                raise PermissionError("nope")

        context = Stubborn("!ping", console=Console(file=io.StringIO()))
        with self.assertLogs("herald.router", "DEBUG"):
            await self.router.handle(context)
            await self.router.drain()
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "pong")])
        self.assertEqual(self.sink.calls, [])


class TestFailures(TestRouterBase):
    """Failures are routed once, and local ones have no side effect."""

    def assertNoSideEffects(self, context):
        self.assertEqual(context.sent, [])
        self.assertEqual(context.typing, 0)
        self.assertFalse(context.deleted)
        self.assertEqual(self.seen, [])

    async def testTooFewArguments(self):
        context = make("!add 1")
        await self.router.handle(context)
        await self.router.drain()
        self.assertEqual(len(self.sink.calls), 1)
        command, args, error = self.sink.calls[0]
        self.assertEqual(command.label, "add")
        self.assertEqual(args, ["1"])
        self.assertIsInstance(error, WrongArgumentNumberError)
        self.assertNoSideEffects(context)

    async def testTooManyArguments(self):
        context = make("!add 1 2 3")
        await self.router.handle(context)
        self.assertEqual(len(self.sink.calls), 1)
        self.assertIsInstance(self.sink.calls[0][2], WrongArgumentNumberError)
        self.assertNoSideEffects(context)

    async def testUnexpectedArgument(self):
        await self.router.handle(make("!ping extra"))
        self.assertIsInstance(self.sink.calls[0][2], WrongArgumentNumberError)
        self.assertEqual(str(self.sink.calls[0][2]), "'ping' takes exactly 0 arguments but 1 was given")

    async def testBadArgumentType(self):
        context = make("!add 1 two")
        await self.router.handle(context)
        error = self.sink.calls[0][2]
        self.assertIsInstance(error, BadArgumentTypeError)
        self.assertEqual((error.value, error.type), ("two", "number"))
        self.assertNoSideEffects(context)

    async def testBotPermissionCheckedFirst(self):
        context = make("!ban @alice", system={Capability.MESSAGE_MANAGE})
        await self.router.handle(context)
        error = self.sink.calls[0][2]
        self.assertIsInstance(error, BotNotAllowedError)
        self.assertEqual(error.capability, Capability.BAN_MEMBERS)
        self.assertNoSideEffects(context)

    async def testUserPermissionsInDeclarationOrder(self):
        context = make("!ban @alice", caller={Capability.BAN_MEMBERS})
        await self.router.handle(context)
        error = self.sink.calls[0][2]
        self.assertIsInstance(error, UserNotAllowedError)
        self.assertEqual(error.capability, Capability.KICK_MEMBERS)
        self.assertNoSideEffects(context)

    async def testSubcommandReportedToSink(self):
        await self.router.handle(make("!ban list extra", caller={Capability.ADMINISTRATOR}))
        command, args, error = self.sink.calls[0]
        self.assertIs(command, self.banned)
        self.assertEqual(args, ["extra"])
        self.assertIsInstance(error, WrongArgumentNumberError)

    async def testHandlerFailure(self):
        context = make("!broken")
        call = await self.router.handle(context)
        await self.router.drain()
        self.assertIsNotNone(call)
        self.assertEqual(len(self.sink.calls), 1)
        command, args, error = self.sink.calls[0]
        self.assertIs(command, self.broken)
        self.assertIsInstance(error, HandlerError)
        self.assertIsInstance(error.cause, ZeroDivisionError)
        self.assertIs(error.__cause__, error.cause)
        self.assertEqual(context.sent, [])
        self.assertFalse(context.deleted)

    async def testHandlerRaisedFaultReachesCaller(self):
        router = Router("!")

        @router.command(arguments=[Argument("sides", type="number")])
        def roll(context, args):
            raise BadArgumentTypeError(str(args["sides"]), "number", "a die needs at least one side")

        context = make("!roll 0")
        with self.assertLogs("herald.faults", "WARNING"):
            await router.handle(context)
        self.assertEqual(len(context.sent), 1)
        self.assertEqual(
            context.sent[0].payload,
            "bad argument type: a die needs at least one side (expected a value of type 'number')",
        )

    async def testDeliveryFailure(self):
        class Mute(ConsoleContext):
            def send(self, reply):
                raise ConnectionError("gone")

        context = Mute("!ping", console=Console(file=io.StringIO()))
        await self.router.handle(context)
        self.assertEqual(len(self.sink.calls), 1)
        error = self.sink.calls[0][2]
        self.assertIsInstance(error, DeliveryError)
        self.assertIsInstance(error.cause, ConnectionError)

    async def testSinkFailureIsLogged(self):
        def sink(context, command, args, error):
            raise RuntimeError("sink down")

        router = Router("!", fallback=sink)
        router.register(self.router.commands[2])
        with self.assertLogs("herald.router", "ERROR"):
            self.assertIsNotNone(await router.handle(make("!add 1")))

    async def testDefaultSinkExplainsToCaller(self):
        router = Router("!")
        router.register(self.router.commands[2])
        context = make("!add 1")
        with self.assertLogs("herald.faults", "WARNING"):
            await router.handle(context)
        self.assertEqual(len(context.sent), 1)
        self.assertEqual(context.sent[0].kind, ReplyKind.TEXT)
        self.assertTrue(context.sent[0].payload.startswith("wrong number of arguments: "))


class TestFilters(TestRouterBase):
    """Router and command filters."""

    async def testCancelSkipsHandlerButNotLaterFilters(self):
        order = []

        def veto(call, context, args):
            order.append("veto")
            call.cancel()

        async def audit(call, context, args):
            order.append(("audit", call.cancelled))

        self.router.filter(veto)
        self.router.filter(audit)
        context = make("!ping")
        call = await self.router.handle(context)
        self.assertTrue(call.cancelled)
        self.assertEqual(order, ["veto", ("audit", True)])
        self.assertEqual(self.seen, [])
        self.assertEqual(context.sent, [])
        self.assertEqual(context.typing, 0)
        self.assertEqual(self.sink.calls, [])

    async def testRouterFiltersRunBeforeCommandFilters(self):
        order = []
        router = Router("!", fallback=self.sink, filters=[lambda call, context, args: order.append("router")])

        @router.command(filters=[lambda call, context, args: order.append("command")])
        def ping(context, args):
            order.append("handler")

        await router.handle(make("!ping"))
        self.assertEqual(order, ["router", "command", "handler"])

    async def testFilterSeesBoundArguments(self):
        captured = []
        self.router.filter(lambda call, context, args: captured.append((call.command.label, dict(args))))
        await self.router.handle(make("!add 4 5"))
        self.assertEqual(captured, [("add", {"left": 4, "right": 5})])

    async def testFilterRaiseStopsChainAndIsRouted(self):
        order = []

        def guard(call, context, args):
            order.append("guard")
            raise PermissionError("cooldown")

        self.router.filter(guard)
        self.router.filter(lambda call, context, args: order.append("after"))
        context = make("!ping")
        await self.router.handle(context)
        self.assertEqual(order, ["guard"])
        self.assertEqual(len(self.sink.calls), 1)
        self.assertIsInstance(self.sink.calls[0][2], PermissionError)
        self.assertEqual(context.sent, [])


class TestConcurrency(IsolatedAsyncioTestCase):
    """Unrelated dispatches interleaving on one router."""

    async def testInterleavedDispatchesKeepTheirOwnArguments(self):
        router = Router("!")
        calls = []

        @router.command(arguments=[Argument("value", type="number")])
        async def echo(context, args):
            await asyncio.sleep(0.001 * (20 - args["value"]))
            return "echo %d" % args["value"]

        router.filter(lambda call, context, args: calls.append((call, args)))
        router.freeze()

        contexts = [make("!echo %d" % value) for value in range(20)]
        results = await asyncio.gather(*(router.handle(context) for context in contexts))
        await router.drain()

        for value, context in enumerate(contexts):
            self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "echo %d" % value)])
        self.assertEqual(len({id(call) for call in results}), 20)
        self.assertEqual(len({id(args) for call, args in calls}), 20)
        self.assertTrue(all(isinstance(args, ArgumentMap) for call, args in calls))
        self.assertEqual(sorted(args["value"] for call, args in calls), list(range(20)))


class TestLifecycle(TestRouterBase):
    """Registration, freezing and module discovery."""

    async def testFreeze(self):
        self.router.freeze()
        self.assertTrue(self.router.frozen)
        self.assertTrue(self.router.factories.frozen)
        with self.assertRaises(RuntimeError):
            self.router.command(lambda context, args: None, label="late")
        with self.assertRaises(RuntimeError):
            self.router.filter(lambda call, context, args: None)
        with self.assertRaises(RuntimeError):
            self.ban.command(lambda context, args: None, label="late")
        self.assertIsNotNone(await self.router.handle(make("!ping")))

    async def testOwnFactories(self):
        registry = Factories()
        registry.register("number", lambda token: len(token))
        router = Router("!", factories=registry, fallback=self.sink)
        router.register(self.router.commands[2])
        context = make("!add aa bbb")
        await router.handle(context)
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "5")])

    async def testFactoriesAreCopiedPerRouter(self):
        self.router.factories.register("color", str)
        self.assertNotIn("color", Router().factories)

    async def testUnknownArgumentTypeRejectedOnRegister(self):
        router = Router("!", fallback=self.sink)
        with self.assertRaises(ValueError):
            router.command(lambda context, args: None, label="paint", arguments=[Argument("shade", type="color")])
        self.assertEqual(router.commands, ())

    async def testUnknownSubcommandArgumentTypeRejectedOnFreeze(self):
        self.banned.command(lambda context, args: None, label="since", arguments=[Argument("when", type="date")])
        with self.assertRaises(ValueError):
            self.router.freeze()
        self.assertFalse(self.router.frozen)
        self.router.factories.register("date", str)
        self.router.freeze()
        self.assertTrue(self.router.frozen)

    async def testConcurrentFilterRegistration(self):
        def register():
            for _ in range(50):
                self.router.filter(lambda call, context, args: None)

        threads = [threading.Thread(target=register) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(self.router.filters), 400)

    async def testInclude(self):
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        package = Path(directory.name, "heraldincluded")
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "commands.py").write_text(textwrap.dedent("""
            from herald import command

            @command
            def alpha(context, args):
                return "a"

            @alpha.command
            def inner(context, args):
                return "i"

            @command(aliases={"b"})
            def beta(context, args):
                return "b"
        """))
        sys.path.insert(0, directory.name)
        self.addCleanup(sys.path.remove, directory.name)
        self.addCleanup(sys.modules.pop, "heraldincluded.commands", None)
        self.addCleanup(sys.modules.pop, "heraldincluded", None)
        importlib.invalidate_caches()

        router = Router("!", fallback=self.sink)
        included = router.include("heraldincluded.commands")
        self.assertEqual([command.label for command in included], ["alpha", "beta"])
        self.assertEqual(router.include("heraldincluded.commands"), [])
        context = make("!B")
        await router.handle(context)
        self.assertEqual(context.sent, [Reply(ReplyKind.TEXT, "b")])


if __name__ == "__main__":
    unittest.main()
