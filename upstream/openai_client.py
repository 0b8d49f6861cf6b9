from __future__ import annotations

import asyncio
from typing import Any

from common.errors import TranscriptionFailed
from common.errors import UpstreamError


async def complete_chat(
    client: Any,
    *,
    model: str,
    messages: list[dict[str, str]],
    temperature: float | None = None,
) -> str:
    kwargs: dict[str, Any] = {"model": model, "messages": messages}
    if temperature is not None:
        kwargs["temperature"] = float(temperature)
    try:
        resp = await asyncio.to_thread(client.chat.completions.create, **kwargs)
    except Exception as exc:
        print(f"[OpenAI] completion error model={model}: {exc}")
        raise UpstreamError(f"completion request failed: {exc}") from exc

    try:
        content = resp.choices[0].message.content
    except (AttributeError, IndexError, TypeError) as exc:
        raise UpstreamError("completion response had no choices") from exc
    text = (content or "").strip()
    if not text:
        raise UpstreamError("completion response was empty")
    return text


async def transcribe_audio(
    client: Any,
    *,
    model: str,
    audio: bytes,
    filename: str,
) -> str:
    if not audio:
        raise TranscriptionFailed("voice payload was empty")
    try:
        resp = await asyncio.to_thread(
            client.audio.transcriptions.create,
            model=model,
            file=(filename, audio),
        )
    except Exception as exc:
        print(f"[OpenAI] transcription error model={model} bytes={len(audio)}: {exc}")
        raise TranscriptionFailed(f"transcription request failed: {exc}") from exc

    text = (getattr(resp, "text", None) or "").strip()
    if not text:
        raise TranscriptionFailed("transcription response had no text")
    return text
