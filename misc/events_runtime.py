from __future__ import annotations

import discord
from discord.ext import commands
from dispatch.commands import parse_command_text
from dispatch.core import KIND_COMMAND
from dispatch.core import KIND_TEXT
from dispatch.core import KIND_VOICE
from dispatch.core import InboundEvent
from misc.discord_gates import find_voice_attachment
from misc.discord_gates import message_in_allowed_channels
from misc.mention_routes import ROUTE_COMMAND
from misc.mention_routes import ROUTE_IGNORE
from misc.mention_routes import ROUTE_VOICE
from misc.mention_routes import classify_message_route
from misc.mention_routes import strip_bot_mention
from misc.runtime_deps import RuntimeDeps


async def build_inbound_event(
    message: discord.Message,
    route: str,
    bot_user_id: int | None,
    prefix: str = "/",
) -> InboundEvent:
    identity = int(message.author.id)
    text = strip_bot_mention(message.content or "", bot_user_id)
    if route == ROUTE_COMMAND:
        name, args = parse_command_text(text, prefix) or ("", "")
        return InboundEvent(identity=identity, kind=KIND_COMMAND, payload=args, command=name)
    if route == ROUTE_VOICE:
        attachment = find_voice_attachment(message)
        audio = await attachment.read()
        return InboundEvent(
            identity=identity,
            kind=KIND_VOICE,
            payload=audio,
            filename=getattr(attachment, "filename", None),
        )
    return InboundEvent(
        identity=identity,
        kind=KIND_TEXT,
        payload=text,
    )


async def relay_message(message: discord.Message, *, deps: RuntimeDeps, bot_user_id: int | None, route: str) -> None:
    try:
        event = await build_inbound_event(message, route, bot_user_id, deps.command_prefix)
    except discord.HTTPException as e:
        print(f"[Relay] could not download attachment user={message.author.id}: {e}")
        await message.channel.send(deps.replies.transcription_failed)
        return

    async with message.channel.typing():
        result = await deps.dispatch.handle(event)

    print(
        f"[Relay] user={event.identity} kind={event.kind} state={result.state} "
        f"path={'>'.join(result.states)} error={result.error}"
    )
    if result.transcript:
        await deps.send_chunked(message.channel, deps.replies.voice_transcript.format(text=result.transcript))
    await deps.send_chunked(message.channel, result.text)


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Relay is online as {bot.user}")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return
        if not message_in_allowed_channels(message, deps.allowed_channel_ids):
            return

        bot_user_id = int(bot.user.id) if bot.user else None
        route = classify_message_route(
            message.content or "",
            prefix=deps.command_prefix,
            has_voice=find_voice_attachment(message) is not None,
            in_dm=getattr(message, "guild", None) is None,
            mentioned=bool(bot.user and bot.user in message.mentions),
            bot_user_id=bot_user_id,
        )
        if route == ROUTE_IGNORE:
            return
        if route == ROUTE_COMMAND and (message.content or "").lstrip().startswith(deps.command_prefix):
            await bot.process_commands(message)
            return

        try:
            await relay_message(message, deps=deps, bot_user_id=bot_user_id, route=route)
        except Exception as e:
            print(f"[Relay] unhandled error user={message.author.id}: {e!r}")
            await message.channel.send(deps.replies.upstream_failed)
