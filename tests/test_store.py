from __future__ import annotations

import asyncio
import sqlite3
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from persona_gateway.memory import GatewayStore  # noqa: E402
from persona_gateway.models import (  # noqa: E402
    BackendKind,
    BanRecord,
    ConversationSession,
    GuildOverrides,
    HistoryMessage,
    PersonaRecord,
    SessionTuning,
)

NOW = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


def _store(tmp_path: Path) -> GatewayStore:
    store = GatewayStore(tmp_path / "nested" / "gateway.db")
    asyncio.run(store.init())
    return store


def _session(session_id: int = 7001, channel_id: int = 11) -> ConversationSession:
    return ConversationSession(
        id=session_id,
        outbound_identity_id=session_id,
        outbound_secret="secret",
        call_prefix="..li",
        channel_id=channel_id,
        guild_id=22,
        persona_id="anon/lily",
        backend_kind=BackendKind.OPENAI,
        tuning=SessionTuning(temperature=1.05, max_tokens=200, model="gpt-test", system_prompt="prompt"),
        created_at=NOW,
        last_call_at=NOW,
    )


async def _prepare_session_parents(store: GatewayStore, channel_id: int = 11) -> None:
    await store.upsert_channel(channel_id, 22)
    await store.upsert_persona(PersonaRecord(id="anon/lily", name="Lily", greeting="Hi"))


def test_bans_round_trip_and_upsert(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> tuple[BanRecord | None, BanRecord | None]:
        await store.add_ban(BanRecord(user_id=5, banned_at=NOW, duration_hours=24))
        await store.add_ban(BanRecord(user_id=5, banned_at=NOW + timedelta(hours=1), duration_hours=48))
        stored = await store.get_ban(5)
        missing = await store.get_ban(6)
        return stored, missing

    stored, missing = asyncio.run(_run())

    assert stored is not None
    assert stored.duration_hours == 48
    assert stored.banned_at == NOW + timedelta(hours=1)
    assert missing is None


def test_lift_expired_bans_keeps_active_and_permanent(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> tuple[list[int], list[int]]:
        await store.add_ban(BanRecord(user_id=1, banned_at=NOW - timedelta(hours=25), duration_hours=24))
        await store.add_ban(BanRecord(user_id=2, banned_at=NOW - timedelta(hours=1), duration_hours=24))
        await store.add_ban(BanRecord(user_id=3, banned_at=NOW - timedelta(days=400), duration_hours=0))
        lifted = await store.lift_expired_bans(NOW.replace(tzinfo=None))
        remaining = [uid for uid in (1, 2, 3) if await store.get_ban(uid) is not None]
        return lifted, remaining

    lifted, remaining = asyncio.run(_run())

    assert lifted == [1]
    assert remaining == [2, 3]


def test_upsert_channel_is_idempotent(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> tuple[object, object, GuildOverrides | None]:
        first = await store.upsert_channel(11, 22)
        second = await store.upsert_channel(11, 22)
        return first, second, await store.get_guild_overrides(22)

    first, second, guild = asyncio.run(_run())

    assert first == second
    assert guild is not None
    assert guild.openai_model is None


def test_guild_overrides_round_trip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    overrides = GuildOverrides(
        guild_id=22,
        cai_user_token="tok",
        cai_plus_mode=True,
        openai_model="gpt-guild",
        openai_temperature=0.7,
        openai_max_tokens=300,
        messages_format="{{user}}: {{msg}}",
    )

    async def _run() -> GuildOverrides | None:
        await store.upsert_channel(11, 22)
        await store.set_guild_overrides(overrides)
        return await store.get_guild_overrides(22)

    assert asyncio.run(_run()) == overrides


def test_upsert_persona_keeps_previous_definition(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> PersonaRecord:
        await store.upsert_persona(PersonaRecord(id="anon/lily", name="Lily", greeting="Hi", definition="long def"))
        return await store.upsert_persona(PersonaRecord(id="anon/lily", name="Lily v2", greeting="Hello"))

    stored = asyncio.run(_run())

    assert stored.name == "Lily v2"
    assert stored.greeting == "Hello"
    assert stored.definition == "long def"


def test_save_session_stores_first_message_and_history_is_ordered(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> tuple[ConversationSession | None, list[HistoryMessage], list[ConversationSession]]:
        await _prepare_session_parents(store)
        await store.save_session(_session(), HistoryMessage(session_id=7001, role="assistant", content="Hi"))
        await store.append_history_message(7001, "user", "hello")
        await store.append_history_message(7001, "assistant", "how are you?")
        return await store.get_session(7001), await store.get_history(7001), await store.list_channel_sessions(11)

    loaded, history, listed = asyncio.run(_run())

    assert loaded is not None
    assert loaded.backend_kind is BackendKind.OPENAI
    assert loaded.tuning.model == "gpt-test"
    assert loaded.tuning.max_tokens == 200
    assert loaded.created_at == NOW
    assert [m.content for m in history] == ["Hi", "hello", "how are you?"]
    assert [m.ordinal for m in history] == sorted(m.ordinal for m in history)
    assert [s.id for s in listed] == [7001]


def test_save_session_rolls_back_when_first_message_fails(tmp_path: Path) -> None:
    store = _store(tmp_path)
    broken_first = HistoryMessage(session_id=7001, role="assistant", content=None)  # type: ignore[arg-type]

    async def _run() -> ConversationSession | None:
        await _prepare_session_parents(store)
        with pytest.raises(sqlite3.IntegrityError):
            await store.save_session(_session(), broken_first)
        return await store.get_session(7001)

    assert asyncio.run(_run()) is None


def test_delete_session_cascades_history(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> tuple[bool, list[HistoryMessage]]:
        await _prepare_session_parents(store)
        await store.save_session(_session(), HistoryMessage(session_id=7001, role="assistant", content="Hi"))
        deleted = await store.delete_session(7001)
        return deleted, await store.get_history(7001)

    deleted, history = asyncio.run(_run())

    assert deleted is True
    assert history == []


def test_update_history_message_rewrites_only_the_addressed_entry(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def _run() -> tuple[bool, bool, list[HistoryMessage]]:
        await _prepare_session_parents(store)
        await store.save_session(_session(), HistoryMessage(session_id=7001, role="assistant", content="Hi"))
        await store.append_history_message(7001, "user", "hello")
        reply = await store.append_history_message(7001, "assistant", "first take")
        updated = await store.update_history_message(7001, reply.ordinal, "second take")
        foreign = await store.update_history_message(7002, reply.ordinal, "nope")
        return updated, foreign, await store.get_history(7001)

    updated, foreign, history = asyncio.run(_run())

    assert updated is True
    assert foreign is False
    assert [m.content for m in history] == ["Hi", "hello", "second take"]


def test_schema_mismatch_requires_explicit_reset(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    conn = sqlite3.connect(store.db_path)
    try:
        conn.execute("PRAGMA user_version = 1")
        conn.commit()
    finally:
        conn.close()

    monkeypatch.delenv("GATEWAY_SQLITE_RESET_ON_SCHEMA_MISMATCH", raising=False)
    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(store.init())

    monkeypatch.setenv("GATEWAY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "1")
    asyncio.run(store.init())
    assert asyncio.run(store.get_ban(1)) is None
