import discord
from discord.ext import commands
from dotenv import load_dotenv
from openai import OpenAI
from common.errors import ConfigurationError
from config.settings import load_settings
from config.settings import mask_database_url
from controller.access import AccessController
from controller.replies import load_replies
from db.factory import open_store
from dispatch.core import DispatchCore
from memory.conversation import ConversationManager
from misc.discord_text import send_chunked
from misc.runtime_wiring import wire_bot_runtime
from upstream.openai_client import complete_chat
from upstream.openai_client import transcribe_audio


def build_dispatch(settings, *, store, client, replies) -> DispatchCore:
    access = AccessController(store, settings.super_admin_ids)
    conversation = ConversationManager(
        store,
        max_messages=settings.context_max_messages,
        max_age_seconds=settings.context_max_age_hours * 3600,
    )

    async def complete(messages):
        return await complete_chat(
            client,
            model=settings.openai_model,
            messages=messages,
            temperature=settings.temperature,
        )

    async def transcribe(audio: bytes, filename: str) -> str:
        return await transcribe_audio(
            client,
            model=settings.transcribe_model,
            audio=audio,
            filename=filename,
        )

    return DispatchCore(
        access=access,
        conversation=conversation,
        store=store,
        replies=replies,
        complete_func=complete,
        transcribe_func=transcribe,
        system_prompt=settings.system_prompt,
        command_prefix=settings.command_prefix,
        serialize_per_identity=settings.serialize_per_user,
    )


def main() -> None:
    # =========================
    # ENV
    # =========================
    load_dotenv()
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"[CFG] {e}")
        raise SystemExit(1)

    print(
        f"[CFG] model={settings.openai_model} transcribe={settings.transcribe_model} "
        f"context={settings.context_max_messages} super_admins={len(settings.super_admin_ids)} "
        f"db={mask_database_url(settings.database_url)}"
    )

    # =========================
    # DB
    # =========================
    try:
        store = open_store(settings.database_url)
    except ConfigurationError as e:
        print(f"[DB] {e}")
        raise SystemExit(1)

    replies, replies_warning = load_replies(settings.replies_path)
    if replies_warning:
        print(f"[CFG] {replies_warning}")
    print(f"[CFG] replies version={replies.version}")

    client = OpenAI(api_key=settings.openai_api_key)
    dispatch = build_dispatch(settings, store=store, client=client, replies=replies)

    # =========================
    # DISCORD BOT
    # =========================
    intents = discord.Intents.default()
    intents.message_content = True

    bot = commands.Bot(
        command_prefix=settings.command_prefix,
        intents=intents,
        help_command=None,
    )

    wire_bot_runtime(
        bot,
        dispatch=dispatch,
        replies=replies,
        send_chunked=send_chunked,
        allowed_channel_ids=settings.allowed_channel_ids,
        command_prefix=settings.command_prefix,
    )

    try:
        bot.run(settings.discord_token)
    finally:
        store.close()
        print("[DB] store closed")


if __name__ == "__main__":
    main()
