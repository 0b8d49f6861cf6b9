from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    dispatch: Any
    send_chunked: Callable
    replies: Any
    allowed_channel_ids: frozenset[int]
    command_prefix: str = "/"
