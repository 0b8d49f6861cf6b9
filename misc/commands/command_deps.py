from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable


def _default_true(*args, **kwargs) -> bool:
    return True


@dataclass(frozen=True)
class CommandDeps:
    dispatch: Any = None
    send_chunked: Callable | None = None
    command_prefix: str = "/"


@dataclass(frozen=True)
class CommandGates:
    in_allowed_channel: Callable[[Any], bool] = _default_true
