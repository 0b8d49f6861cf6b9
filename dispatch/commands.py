from __future__ import annotations

import re
from dataclasses import dataclass

from common.permissions import ACTION_CONVERSE
from common.permissions import ACTION_MANAGE_ADMINS
from common.permissions import ACTION_MANAGE_WHITELIST


@dataclass(frozen=True)
class RelayCommand:
    name: str
    action: str | None
    usage: str
    description: str

    def usage_for(self, prefix: str) -> str:
        return self.usage.format(prefix=prefix)


RELAY_COMMANDS: tuple[RelayCommand, ...] = (
    RelayCommand("help", None, "{prefix}help", "show this help"),
    RelayCommand("start", None, "{prefix}start", "start using the bot"),
    RelayCommand("ping", None, "{prefix}ping", "check that the bot is online"),
    RelayCommand("clear", ACTION_CONVERSE, "{prefix}clear", "clear your chat history"),
    RelayCommand("adduser", ACTION_MANAGE_WHITELIST, "{prefix}adduser <user id> [notes]", "whitelist a user (admins)"),
    RelayCommand("removeuser", ACTION_MANAGE_WHITELIST, "{prefix}removeuser <user id>", "remove a user from the whitelist (admins)"),
    RelayCommand("listusers", ACTION_MANAGE_WHITELIST, "{prefix}listusers", "list whitelisted users (admins)"),
    RelayCommand("addadmin", ACTION_MANAGE_ADMINS, "{prefix}addadmin <user id>", "add an admin (super admins)"),
    RelayCommand("removeadmin", ACTION_MANAGE_ADMINS, "{prefix}removeadmin <user id>", "remove an admin (super admins)"),
    # Listing admins is open to the admin tier, not only super admins.
    RelayCommand("listadmins", ACTION_MANAGE_WHITELIST, "{prefix}listadmins", "list admins (admins)"),
)

COMMANDS_BY_NAME: dict[str, RelayCommand] = {c.name: c for c in RELAY_COMMANDS}

# Both backends store ids as signed 64-bit integers.
MAX_USER_ID = 2**63 - 1

_MENTION_RE = re.compile(r"^<@!?(\d{1,19})>$")


def parse_command_text(text: str, prefix: str = "/") -> tuple[str, str] | None:
    """
    Split "/adduser@relaybot 555 notes" into ("adduser", "555 notes").
    Returns None when the text is not a command.
    """
    raw = (text or "").strip()
    if not prefix or not raw.startswith(prefix):
        return None
    body = raw[len(prefix):]
    parts = body.split(maxsplit=1)
    if not parts:
        return None
    name = parts[0].split("@", 1)[0].strip().lower()
    if not name:
        return None
    args = parts[1].strip() if len(parts) > 1 else ""
    return (name, args)


def normalize_command_name(name: str | None, prefix: str = "/") -> str:
    clean = (name or "").strip()
    if prefix and clean.startswith(prefix):
        clean = clean[len(prefix):]
    return clean.split("@", 1)[0].strip().lower()


def parse_user_id_arg(args: str) -> tuple[int | None, str]:
    """Returns (user_id, remainder). user_id is None when the first token is not an id."""
    parts = (args or "").strip().split(maxsplit=1)
    if not parts:
        return (None, "")
    token = parts[0]
    rest = parts[1].strip() if len(parts) > 1 else ""
    m = _MENTION_RE.match(token)
    if m:
        token = m.group(1)
    if not re.fullmatch(r"\d{1,19}", token):
        return (None, rest)
    user_id = int(token)
    if user_id <= 0 or user_id > MAX_USER_ID:
        return (None, rest)
    return (user_id, rest)
