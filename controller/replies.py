from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass(slots=True)
class RelayReplies:
    version: str = "replies_v1"
    welcome: str = (
        "👋 Welcome! Send me a text message to chat, or a voice message and I'll transcribe it first.\n"
        "Use {prefix}help to see all commands."
    )
    help_header: str = "Supported commands:"
    pong: str = "I'm online!"
    not_whitelisted: str = "⚠️ You are not allowed to use this bot. Ask an admin to add you to the whitelist."
    not_admin: str = "⚠️ You need admin rights to do that."
    not_super_admin: str = "⚠️ Only super admins can manage admins."
    storage_failed: str = "Something went wrong while saving or loading data. Please try again later."
    upstream_failed: str = "Something went wrong while generating a reply. Please try again later."
    transcription_failed: str = "Sorry, I couldn't transcribe that voice message."
    empty_message: str = "I didn't catch any text in that message."
    unknown_command: str = "Unknown command. Use {prefix}help to see what I can do."
    history_cleared: str = "Chat history cleared."
    voice_transcript: str = "🎙️ Voice message: {text}"

    def denial_for(self, reason: str | None, action: str | None = None) -> str:
        if reason == "not_whitelisted":
            return self.not_whitelisted
        if action == "manage_admins":
            return self.not_super_admin
        return self.not_admin


def load_replies(path: str | Path | None) -> tuple[RelayReplies, str | None]:
    """
    Returns (replies, warning_message). warning_message is None on clean load.
    Keys missing from the file keep their built-in text.
    """
    defaults = RelayReplies()
    if not path:
        return (defaults, "Replies path missing; using built-in defaults.")

    p = Path(path)
    if not p.exists():
        return (defaults, f"Replies file not found at {p}; using built-in defaults.")

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8"))
    except Exception as exc:
        return (defaults, f"Failed to read replies from {p}: {exc}; using built-in defaults.")

    if not isinstance(payload, dict):
        return (defaults, f"Invalid replies format in {p}; using built-in defaults.")

    values: dict[str, Any] = {}
    for f in fields(RelayReplies):
        raw = payload.get(f.name)
        text = str(raw).strip() if raw is not None else ""
        if text:
            values[f.name] = text
    return (RelayReplies(**values), None)
