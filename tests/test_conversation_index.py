import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from messaging_core.core.database import User
from messaging_core.core.dto import ConversationSummaryDTO, LatestMessageDTO
from messaging_core.core.errors import UserNotFoundError, WriteConflictError, ConversationNotFoundError
from messaging_core.core.gateways import ConversationIndexGateway

T0 = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _summary(conversation_id: str, text: str, name: str = "Bob", offset: int = 0) -> ConversationSummaryDTO:
    return ConversationSummaryDTO(
        id=conversation_id,
        other_user_key="b-x-com",
        name=name,
        latest_message=LatestMessageDTO(date=T0 + timedelta(seconds=offset), text=text)
    )


class _AlwaysStaleIndexGateway(ConversationIndexGateway):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0

    async def _read_entries(self, user_key):
        self.reads += 1
        return await super()._read_entries(user_key)

    async def _write_entries(self, user_key, entries, expected_version):
        return False


async def test_unknown_user_is_not_found(index_gateway):
    with pytest.raises(UserNotFoundError):
        await index_gateway.get_summaries("nobody-x-com")


async def test_known_user_without_conversations_is_empty(index_gateway, alice):
    assert await index_gateway.get_summaries(alice.identity_key) == []


async def test_upsert_appends_new_entries_in_order(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))
    await index_gateway.upsert_summary(alice.identity_key, _summary("c2", "two"))

    summaries = await index_gateway.get_summaries(alice.identity_key)
    assert [s.id for s in summaries] == ["c1", "c2"]


async def test_upsert_replaces_only_latest_message(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one", name="Bob"))
    await index_gateway.upsert_summary(alice.identity_key, _summary("c2", "other"))
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "newer", name="Robert", offset=5))

    summaries = await index_gateway.get_summaries(alice.identity_key)
    assert [s.id for s in summaries] == ["c1", "c2"]
    assert summaries[0].name == "Bob"
    assert summaries[0].latest_message.text == "newer"
    assert summaries[0].latest_message.date == T0 + timedelta(seconds=5)


async def test_upsert_for_unknown_user_fails(index_gateway):
    with pytest.raises(UserNotFoundError):
        await index_gateway.upsert_summary("nobody-x-com", _summary("c1", "one"))


async def test_remove_summary(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))
    await index_gateway.upsert_summary(alice.identity_key, _summary("c2", "two"))

    assert await index_gateway.remove_summary(alice.identity_key, "c1") is True
    assert [s.id for s in await index_gateway.get_summaries(alice.identity_key)] == ["c2"]


async def test_remove_missing_summary_is_noop(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))

    assert await index_gateway.remove_summary(alice.identity_key, "c9") is False
    assert len(await index_gateway.get_summaries(alice.identity_key)) == 1


async def test_mark_read(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))
    await index_gateway.mark_read(alice.identity_key, "c1")
    await index_gateway.mark_read(alice.identity_key, "c1")

    summary, = await index_gateway.get_summaries(alice.identity_key)
    assert summary.latest_message.is_read is True


async def test_mark_read_unknown_conversation(index_gateway, alice):
    with pytest.raises(ConversationNotFoundError):
        await index_gateway.mark_read(alice.identity_key, "c1")


async def test_malformed_entry_is_skipped_but_kept(index_gateway, db_manager, alice):
    broken = {"id": "c0", "other_user_email": "b-x-com"}
    async with db_manager.session() as session:
        await session.execute(
            update(User).where(User.identity_key == alice.identity_key).values(conversations=[broken])
        )

    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))

    assert [s.id for s in await index_gateway.get_summaries(alice.identity_key)] == ["c1"]
    async with db_manager.session() as session:
        user = await session.get(User, alice.identity_key)
        assert user.conversations[0] == broken
        assert user.index_version == 1


async def test_version_conflicts_exhaust_attempts(db_manager, logger, alice):
    gateway = _AlwaysStaleIndexGateway(db_manager, logger, max_write_attempts=3)

    with pytest.raises(WriteConflictError):
        await gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))
    assert gateway.reads == 3


async def test_concurrent_upserts_all_land(db_manager, logger, alice):
    gateway = ConversationIndexGateway(db_manager, logger, max_write_attempts=10)

    await asyncio.gather(*(
        gateway.upsert_summary(alice.identity_key, _summary(f"c{i}", str(i)))
        for i in range(5)
    ))

    summaries = await gateway.get_summaries(alice.identity_key)
    assert {s.id for s in summaries} == {f"c{i}" for i in range(5)}


async def test_upsert_keeps_newer_snapshot(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "newer", offset=5))
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "older", offset=1))

    summary, = await index_gateway.get_summaries(alice.identity_key)
    assert summary.latest_message.text == "newer"
    assert summary.latest_message.date == T0 + timedelta(seconds=5)


async def test_repeated_upsert_keeps_read_flag(index_gateway, alice):
    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))
    await index_gateway.mark_read(alice.identity_key, "c1")

    await index_gateway.upsert_summary(alice.identity_key, _summary("c1", "one"))

    summary, = await index_gateway.get_summaries(alice.identity_key)
    assert summary.latest_message.is_read is True
