from __future__ import annotations

from discord.ext import commands
from dispatch.commands import RELAY_COMMANDS
from dispatch.core import KIND_COMMAND
from dispatch.core import InboundEvent
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    # The relay owns /help; drop discord.py's default if the bot was built with it.
    if bot.get_command("help") is not None:
        bot.remove_command("help")

    def _make_callback(name: str):
        async def _callback(ctx: commands.Context, *, raw: str = ""):
            if not gates.in_allowed_channel(ctx):
                return
            event = InboundEvent(
                identity=int(ctx.author.id),
                kind=KIND_COMMAND,
                payload=raw or "",
                command=name,
            )
            result = await deps.dispatch.handle(event)
            print(f"[Relay] command={name} user={int(ctx.author.id)} state={result.state} error={result.error}")
            await deps.send_chunked(ctx.channel, result.text)

        _callback.__name__ = f"relay_{name}"
        return _callback

    for command in RELAY_COMMANDS:
        bot.command(name=command.name, help=command.description)(_make_callback(command.name))
