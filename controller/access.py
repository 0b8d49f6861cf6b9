from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable

from common.errors import NotPermitted
from common.errors import NotWhitelisted
from common.permissions import ACTIONS
from common.permissions import TIER_ALLOWED_ACTIONS
from common.permissions import TIER_NONE
from common.permissions import TIER_SUPER_ADMIN


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    tier: str
    action: str
    reason: str | None = None


class AccessController:
    """
    Pure decision function over persisted tiers plus the configured super-admin set.

    Super-admin membership is checked first and never touches the store, so
    super-admins keep working while the database is down. Store errors from
    the tier lookup propagate unchanged.
    """

    def __init__(self, store, super_admin_ids: Iterable[int]):
        self._store = store
        self._super_admin_ids = frozenset(int(i) for i in super_admin_ids)

    @property
    def super_admin_ids(self) -> frozenset[int]:
        return self._super_admin_ids

    def is_super_admin(self, identity: int) -> bool:
        return int(identity) in self._super_admin_ids

    async def resolve_tier(self, identity: int) -> str:
        if self.is_super_admin(identity):
            return TIER_SUPER_ADMIN
        return await asyncio.to_thread(self._store.get_tier_sync, int(identity))

    async def authorize(self, identity: int, action: str) -> AccessDecision:
        if action not in ACTIONS:
            raise ValueError(f"unknown action class: {action!r}")
        tier = await self.resolve_tier(identity)
        if action in TIER_ALLOWED_ACTIONS.get(tier, frozenset()):
            return AccessDecision(allowed=True, tier=tier, action=action)
        reason = "not_whitelisted" if tier == TIER_NONE else "not_permitted"
        print(f"[Access] deny user={int(identity)} tier={tier} action={action} reason={reason}")
        return AccessDecision(allowed=False, tier=tier, action=action, reason=reason)

    async def require(self, identity: int, action: str) -> str:
        decision = await self.authorize(identity, action)
        if decision.allowed:
            return decision.tier
        if decision.reason == "not_whitelisted":
            raise NotWhitelisted(
                f"user {int(identity)} is not whitelisted",
                identity=int(identity),
                action=action,
            )
        raise NotPermitted(
            f"user {int(identity)} (tier={decision.tier}) may not {action}",
            identity=int(identity),
            action=action,
        )
