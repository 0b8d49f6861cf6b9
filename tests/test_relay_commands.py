from __future__ import annotations

import unittest
from types import SimpleNamespace

try:
    import discord
    from discord.ext import commands
except ModuleNotFoundError:
    discord = None
    commands = None

if commands is not None:
    from dispatch.core import DispatchResult
    from misc.commands.command_deps import CommandDeps
    from misc.commands.command_deps import CommandGates
    from misc.commands.commands_relay import register as register_relay


class RecordingDispatch:
    def __init__(self):
        self.events = []

    async def handle(self, event):
        self.events.append(event)
        return DispatchResult(identity=event.identity, text=f"handled {event.command}", state="replying")


class FakeCtx:
    def __init__(self, author_id: int = 555):
        self.author = SimpleNamespace(id=author_id)
        self.channel = SimpleNamespace(id=1)
        self.message = SimpleNamespace(guild=None, channel=self.channel)


@unittest.skipIf(commands is None, "discord.py not installed")
class RelayCommandsTests(unittest.IsolatedAsyncioTestCase):
    def _bot(self, *, allowed=True):
        self.dispatch = RecordingDispatch()
        self.sent: list[tuple[object, str]] = []

        async def send_chunked(channel, text):
            self.sent.append((channel, text))

        bot = commands.Bot(command_prefix="/", intents=discord.Intents.none())
        register_relay(
            bot,
            deps=CommandDeps(dispatch=self.dispatch, send_chunked=send_chunked),
            gates=CommandGates(in_allowed_channel=lambda ctx: allowed),
        )
        return bot

    async def test_every_relay_command_is_registered(self):
        bot = self._bot()
        for name in ("help", "start", "ping", "clear", "adduser", "removeuser", "listusers", "addadmin", "removeadmin", "listadmins"):
            self.assertIsNotNone(bot.get_command(name), name)

    async def test_command_becomes_inbound_event(self):
        bot = self._bot()
        ctx = FakeCtx(author_id=1)
        await bot.get_command("adduser").callback(ctx, raw="555 friend")

        event = self.dispatch.events[0]
        self.assertEqual(event.identity, 1)
        self.assertEqual(event.kind, "command")
        self.assertEqual(event.command, "adduser")
        self.assertEqual(event.payload, "555 friend")
        self.assertEqual(self.sent, [(ctx.channel, "handled adduser")])

    async def test_disallowed_channel_is_silent(self):
        bot = self._bot(allowed=False)
        await bot.get_command("ping").callback(FakeCtx())
        self.assertEqual(self.dispatch.events, [])
        self.assertEqual(self.sent, [])


if __name__ == "__main__":
    unittest.main()
