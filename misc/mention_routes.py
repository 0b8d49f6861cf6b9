from __future__ import annotations

import re

ROUTE_COMMAND = "command"
ROUTE_VOICE = "voice"
ROUTE_TEXT = "text"
ROUTE_IGNORE = "ignore"


def strip_bot_mention(content: str, bot_user_id: int | None) -> str:
    text = content or ""
    if bot_user_id:
        text = re.sub(rf"<@!?\s*{int(bot_user_id)}\s*>", "", text)
    return text.strip()


def classify_message_route(
    content: str,
    *,
    prefix: str,
    has_voice: bool,
    in_dm: bool,
    mentioned: bool,
    bot_user_id: int | None = None,
) -> str:
    """
    Decide how an incoming Discord message enters dispatch.
    Guild messages are only answered when the bot is mentioned; commands work anywhere,
    including "@bot /clear".
    """
    text = strip_bot_mention(content, bot_user_id)
    if prefix and text.startswith(prefix):
        return ROUTE_COMMAND
    if not in_dm and not mentioned:
        return ROUTE_IGNORE
    if has_voice:
        return ROUTE_VOICE
    return ROUTE_TEXT
