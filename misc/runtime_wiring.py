from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_relay import register as register_relay
from misc.discord_gates import message_in_allowed_channels
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    dispatch,
    replies,
    send_chunked,
    allowed_channel_ids: frozenset[int],
    command_prefix: str,
) -> None:
    def in_allowed_channel(ctx) -> bool:
        return message_in_allowed_channels(ctx.message, allowed_channel_ids)

    register_relay(
        bot,
        deps=CommandDeps(
            dispatch=dispatch,
            send_chunked=send_chunked,
            command_prefix=command_prefix,
        ),
        gates=CommandGates(
            in_allowed_channel=in_allowed_channel,
        ),
    )
    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            dispatch=dispatch,
            send_chunked=send_chunked,
            replies=replies,
            allowed_channel_ids=allowed_channel_ids,
            command_prefix=command_prefix,
        ),
    )
