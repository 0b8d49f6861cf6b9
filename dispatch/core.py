from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from common.errors import StorageError
from common.errors import UpstreamError
from common.permissions import ACTION_CONVERSE
from config.defaults import VOICE_FILENAME_FALLBACK
from controller.replies import RelayReplies
from dispatch.commands import COMMANDS_BY_NAME
from dispatch.commands import RELAY_COMMANDS
from dispatch.commands import normalize_command_name
from dispatch.commands import parse_user_id_arg

KIND_TEXT = "text"
KIND_VOICE = "voice"
KIND_COMMAND = "command"
EVENT_KINDS = (KIND_TEXT, KIND_VOICE, KIND_COMMAND)

STATE_RECEIVED = "received"
STATE_AUTHORIZING = "authorizing"
STATE_REJECTED = "rejected"
STATE_CONTEXT_BUILDING = "context_building"
STATE_CALLING = "calling"
STATE_PERSISTING = "persisting"
STATE_REPLYING = "replying"


@dataclass
class _IdentityLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


CompleteFunc = Callable[[list[dict[str, str]]], Awaitable[str]]
TranscribeFunc = Callable[[bytes, str], Awaitable[str]]


@dataclass(frozen=True)
class InboundEvent:
    identity: int
    kind: str
    payload: str | bytes = ""
    command: str | None = None
    filename: str | None = None


@dataclass
class DispatchResult:
    identity: int
    text: str = ""
    state: str = STATE_RECEIVED
    states: list[str] = field(default_factory=lambda: [STATE_RECEIVED])
    error: str | None = None
    transcript: str | None = None

    def enter(self, state: str) -> None:
        self.state = state
        self.states.append(state)

    def finish(self, state: str, text: str, *, error: str | None = None) -> "DispatchResult":
        self.enter(state)
        self.text = text
        self.error = error
        return self


class DispatchCore:
    """
    Handles one inbound event end to end and returns the outbound reply.

    received -> authorizing -> rejected
                            -> context_building -> calling -> persisting -> replying
    Commands go from authorizing straight to their store mutation and replying.
    This is the only layer that turns errors into user-facing text.
    """

    def __init__(
        self,
        *,
        access,
        conversation,
        store,
        replies: RelayReplies,
        complete_func: CompleteFunc,
        transcribe_func: TranscribeFunc,
        system_prompt: str = "",
        command_prefix: str = "/",
        serialize_per_identity: bool = False,
    ):
        self.access = access
        self.conversation = conversation
        self.store = store
        self.replies = replies
        self.complete_func = complete_func
        self.transcribe_func = transcribe_func
        self.system_prompt = (system_prompt or "").strip()
        self.command_prefix = command_prefix or "/"
        self.serialize_per_identity = bool(serialize_per_identity)
        self._identity_locks: dict[int, _IdentityLock] = {}

    @contextlib.asynccontextmanager
    async def _serialized(self, identity: int):
        entry = self._identity_locks.get(identity)
        if entry is None:
            entry = self._identity_locks[identity] = _IdentityLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._identity_locks.pop(identity, None)

    def _prefixed(self, text: str) -> str:
        return text.replace("{prefix}", self.command_prefix)

    async def handle(self, event: InboundEvent) -> DispatchResult:
        identity = int(event.identity)
        result = DispatchResult(identity=identity)
        if event.kind not in EVENT_KINDS:
            raise ValueError(f"unknown event kind: {event.kind!r}")

        try:
            if event.kind == KIND_COMMAND:
                return await self._handle_command(event, result)
            if self.serialize_per_identity:
                async with self._serialized(identity):
                    return await self._handle_converse(event, result)
            return await self._handle_converse(event, result)
        except StorageError as exc:
            print(
                f"[Dispatch] storage error user={identity} kind={event.kind} "
                f"state={result.state} op={exc.operation}: {exc}"
            )
            return result.finish(STATE_REPLYING, self.replies.storage_failed, error=exc.code)

    # ---- converse path ----

    async def _handle_converse(self, event: InboundEvent, result: DispatchResult) -> DispatchResult:
        identity = result.identity

        result.enter(STATE_AUTHORIZING)
        decision = await self.access.authorize(identity, ACTION_CONVERSE)
        if not decision.allowed:
            return result.finish(
                STATE_REJECTED,
                self.replies.denial_for(decision.reason, decision.action),
                error=decision.reason,
            )

        result.enter(STATE_CONTEXT_BUILDING)
        if event.kind == KIND_VOICE:
            audio = event.payload if isinstance(event.payload, (bytes, bytearray)) else b""
            try:
                user_text = await self.transcribe_func(bytes(audio), event.filename or VOICE_FILENAME_FALLBACK)
            except UpstreamError as exc:
                print(f"[Dispatch] transcription failed user={identity}: {exc}")
                return result.finish(STATE_REJECTED, self.replies.transcription_failed, error="transcription_failed")
            result.transcript = user_text
        else:
            user_text = str(event.payload or "")
        user_text = user_text.strip()
        if not user_text:
            return result.finish(STATE_REJECTED, self.replies.empty_message, error="empty_message")

        history = await self.conversation.get_context(identity)
        messages: list[dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": user_text})

        result.enter(STATE_CALLING)
        try:
            reply = await self.complete_func(messages)
        except UpstreamError as exc:
            print(f"[Dispatch] completion failed user={identity} ctx={len(history)}: {exc}")
            return result.finish(STATE_REPLYING, self.replies.upstream_failed, error=exc.code)

        result.enter(STATE_PERSISTING)
        await self.conversation.record_turn(identity, user_text, reply)

        return result.finish(STATE_REPLYING, reply)

    # ---- command path ----

    async def _handle_command(self, event: InboundEvent, result: DispatchResult) -> DispatchResult:
        identity = result.identity
        name = normalize_command_name(event.command, self.command_prefix)
        args = str(event.payload or "").strip()
        command = COMMANDS_BY_NAME.get(name)
        if command is None:
            return result.finish(STATE_REPLYING, self._prefixed(self.replies.unknown_command), error="unknown_command")

        if command.action is not None:
            result.enter(STATE_AUTHORIZING)
            decision = await self.access.authorize(identity, command.action)
            if not decision.allowed:
                return result.finish(
                    STATE_REJECTED,
                    self.replies.denial_for(decision.reason, decision.action),
                    error=decision.reason,
                )

        handler = getattr(self, f"_cmd_{name}")
        text = await handler(identity, args)
        return result.finish(STATE_REPLYING, text)

    def _usage(self, name: str) -> str:
        return f"Please provide a valid user id. Usage: {COMMANDS_BY_NAME[name].usage_for(self.command_prefix)}"

    async def _cmd_help(self, identity: int, args: str) -> str:
        lines = [self._prefixed(self.replies.help_header)]
        for command in RELAY_COMMANDS:
            lines.append(f"{command.usage_for(self.command_prefix)} - {command.description}")
        return "\n".join(lines)

    async def _cmd_start(self, identity: int, args: str) -> str:
        return self._prefixed(self.replies.welcome)

    async def _cmd_ping(self, identity: int, args: str) -> str:
        return self.replies.pong

    async def _cmd_clear(self, identity: int, args: str) -> str:
        cleared = await self.conversation.clear(identity)
        print(f"[Dispatch] cleared history user={identity} messages={cleared}")
        return self.replies.history_cleared

    async def _cmd_adduser(self, identity: int, args: str) -> str:
        user_id, notes = parse_user_id_arg(args)
        if user_id is None:
            return self._usage("adduser")
        try:
            added = await asyncio.to_thread(
                self.store.upsert_whitelist_sync,
                user_id,
                added_by=identity,
                notes=notes or None,
            )
        except StorageError as exc:
            print(f"[Dispatch] adduser failed actor={identity} target={user_id}: {exc}")
            return f"❌ Failed to add user {user_id} to the whitelist. Please try again later."
        print(f"[Dispatch] whitelist add actor={identity} target={user_id} new={added}")
        if added:
            return f"✅ Added user {user_id} to the whitelist."
        return f"User {user_id} is already whitelisted."

    async def _cmd_removeuser(self, identity: int, args: str) -> str:
        user_id, _rest = parse_user_id_arg(args)
        if user_id is None:
            return self._usage("removeuser")
        try:
            removed = await asyncio.to_thread(self.store.remove_whitelist_sync, user_id)
        except StorageError as exc:
            print(f"[Dispatch] removeuser failed actor={identity} target={user_id}: {exc}")
            return f"❌ Failed to remove user {user_id} from the whitelist. Please try again later."
        print(f"[Dispatch] whitelist remove actor={identity} target={user_id} removed={removed}")
        if removed:
            return f"✅ Removed user {user_id} from the whitelist."
        return f"⚠️ User {user_id} is not on the whitelist."

    async def _cmd_listusers(self, identity: int, args: str) -> str:
        try:
            rows = await asyncio.to_thread(self.store.list_whitelist_sync)
        except StorageError as exc:
            print(f"[Dispatch] listusers failed actor={identity}: {exc}")
            return "❌ Failed to list whitelisted users. Please try again later."
        if not rows:
            return "The whitelist is empty."
        lines = [f"Whitelisted users ({len(rows)}):"]
        for row in rows:
            notes = row.get("notes")
            lines.append(f"- {row['user_id']}" + (f" ({notes})" if notes else ""))
        return "\n".join(lines)

    async def _cmd_addadmin(self, identity: int, args: str) -> str:
        user_id, _rest = parse_user_id_arg(args)
        if user_id is None:
            return self._usage("addadmin")
        try:
            added = await asyncio.to_thread(self.store.upsert_admin_sync, user_id, added_by=identity)
        except StorageError as exc:
            print(f"[Dispatch] addadmin failed actor={identity} target={user_id}: {exc}")
            return f"❌ Failed to add admin {user_id}. Please try again later."
        print(f"[Dispatch] admin add actor={identity} target={user_id} new={added}")
        if added:
            return f"✅ Added admin {user_id}."
        return f"User {user_id} is already an admin."

    async def _cmd_removeadmin(self, identity: int, args: str) -> str:
        user_id, _rest = parse_user_id_arg(args)
        if user_id is None:
            return self._usage("removeadmin")
        if self.access.is_super_admin(user_id):
            return f"⚠️ User {user_id} is a configured super admin and cannot be removed here."
        try:
            removed = await asyncio.to_thread(self.store.remove_admin_sync, user_id)
        except StorageError as exc:
            print(f"[Dispatch] removeadmin failed actor={identity} target={user_id}: {exc}")
            return f"❌ Failed to remove admin {user_id}. Please try again later."
        print(f"[Dispatch] admin remove actor={identity} target={user_id} removed={removed}")
        if removed:
            return f"✅ Removed admin {user_id}."
        return f"⚠️ User {user_id} is not an admin."

    async def _cmd_listadmins(self, identity: int, args: str) -> str:
        try:
            rows = await asyncio.to_thread(self.store.list_admins_sync)
        except StorageError as exc:
            print(f"[Dispatch] listadmins failed actor={identity}: {exc}")
            return "❌ Failed to list admins. Please try again later."
        lines = ["Admins:"]
        for user_id in sorted(self.access.super_admin_ids):
            lines.append(f"- {user_id} (super admin)")
        for row in rows:
            if row["user_id"] in self.access.super_admin_ids:
                continue
            lines.append(f"- {row['user_id']}")
        if len(lines) == 1:
            return "No admins configured."
        return "\n".join(lines)
