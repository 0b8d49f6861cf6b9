from __future__ import annotations

import asyncio
import importlib
from types import SimpleNamespace


class _DummyCompletions:
    def create(self, *args, **kwargs):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="smoke reply"))]
        )


class _DummyTranscriptions:
    def create(self, *args, **kwargs):
        return SimpleNamespace(text="smoke transcript")


class _DummyClient:
    def __init__(self):
        self.chat = SimpleNamespace(completions=_DummyCompletions())
        self.audio = SimpleNamespace(transcriptions=_DummyTranscriptions())


async def _noop_async(*args, **kwargs):
    return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install requirements and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from bot import build_dispatch
    from config.settings import load_settings
    from controller.replies import RelayReplies
    from db.factory import open_store
    from dispatch.commands import RELAY_COMMANDS
    from dispatch.core import InboundEvent
    from misc.runtime_wiring import wire_bot_runtime

    settings = load_settings(
        {
            "DISCORD_TOKEN": "smoke",
            "OPENAI_API_KEY": "smoke",
            "RELAY_DATABASE_URL": "sqlite::memory:",
            "RELAY_SUPER_ADMIN_IDS": "1",
        }
    )
    store = open_store(settings.database_url)
    replies = RelayReplies()
    dispatch = build_dispatch(settings, store=store, client=_DummyClient(), replies=replies)

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix=settings.command_prefix, intents=intents, help_command=None)
    wire_bot_runtime(
        bot,
        dispatch=dispatch,
        replies=replies,
        send_chunked=_noop_async,
        allowed_channel_ids=settings.allowed_channel_ids,
        command_prefix=settings.command_prefix,
    )

    missing = [c.name for c in RELAY_COMMANDS if bot.get_command(c.name) is None]
    if missing:
        print(f"Smoke wiring check failed: commands not registered: {', '.join(missing)}")
        return 1

    async def _round_trip():
        await dispatch.handle(InboundEvent(identity=1, kind="command", payload="555", command="adduser"))
        text = await dispatch.handle(InboundEvent(identity=555, kind="text", payload="hello"))
        voice = await dispatch.handle(InboundEvent(identity=555, kind="voice", payload=b"OggS"))
        return text, voice

    try:
        text, voice = asyncio.run(_round_trip())
    finally:
        store.close()

    if text.text != "smoke reply" or voice.transcript != "smoke transcript":
        print(f"Smoke wiring check failed: text={text.state}/{text.error} voice={voice.state}/{voice.error}")
        return 1

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
