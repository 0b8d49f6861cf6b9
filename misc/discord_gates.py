from __future__ import annotations

import discord


def message_in_allowed_channels(message: discord.Message, allowed_channel_ids: set[int] | frozenset[int]) -> bool:
    # DMs are always served; guild channels only when listed.
    if getattr(message, "guild", None) is None:
        return True

    channel_id = int(getattr(message.channel, "id", 0) or 0)
    if channel_id in allowed_channel_ids:
        return True
    # thread: allow if parent is allowed
    if isinstance(message.channel, discord.Thread) and message.channel.parent:
        return int(message.channel.parent.id) in allowed_channel_ids
    return False


def is_voice_attachment(attachment) -> bool:
    checker = getattr(attachment, "is_voice_message", None)
    if callable(checker) and checker():
        return True
    content_type = str(getattr(attachment, "content_type", "") or "").lower()
    return content_type.startswith("audio/")


def find_voice_attachment(message: discord.Message):
    for attachment in getattr(message, "attachments", None) or []:
        if is_voice_attachment(attachment):
            return attachment
    return None
