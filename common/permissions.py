from __future__ import annotations

TIER_SUPER_ADMIN = "super_admin"
TIER_ADMIN = "admin"
TIER_WHITELISTED = "whitelisted"
TIER_NONE = "none"

# Highest first.
TIER_PRECEDENCE = (TIER_SUPER_ADMIN, TIER_ADMIN, TIER_WHITELISTED, TIER_NONE)

ACTION_CONVERSE = "converse"
ACTION_MANAGE_WHITELIST = "manage_whitelist"
ACTION_MANAGE_ADMINS = "manage_admins"

ACTIONS = (ACTION_CONVERSE, ACTION_MANAGE_WHITELIST, ACTION_MANAGE_ADMINS)

TIER_ALLOWED_ACTIONS: dict[str, frozenset[str]] = {
    TIER_SUPER_ADMIN: frozenset(ACTIONS),
    TIER_ADMIN: frozenset({ACTION_CONVERSE, ACTION_MANAGE_WHITELIST}),
    TIER_WHITELISTED: frozenset({ACTION_CONVERSE}),
    TIER_NONE: frozenset(),
}

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
MESSAGE_ROLES = (ROLE_USER, ROLE_ASSISTANT)
