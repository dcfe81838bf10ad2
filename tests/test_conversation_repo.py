"""Tests for conversation persistence."""

from datetime import timedelta

import pytest

from store_assistant.storage.conversation_repo import (
    MAX_CONTENT_LENGTH,
    ConversationRepository,
    sanitize_title,
)
from store_assistant.storage.store_queries import utcnow


@pytest.fixture
def repo(db):
    return ConversationRepository(db)


class TestConversations:
    async def test_create_and_get_with_messages(self, repo):
        conv = await repo.create_conversation(1, "Best sellers this week")
        await repo.append_message(conv.id, "user", "What sold best?")
        await repo.append_message(conv.id, "assistant", "Green Tea.")

        loaded = await repo.get_conversation(conv.id, 1)
        assert loaded.title == "Best sellers this week"
        assert [(m.role, m.content) for m in loaded.messages] == [
            ("user", "What sold best?"),
            ("assistant", "Green Tea."),
        ]

    async def test_create_raises_when_row_cannot_be_read_back(self, repo, monkeypatch):
        async def missing(conversation_id, user_id):
            return None

        monkeypatch.setattr(repo, "_fetch_conversation", missing)
        with pytest.raises(RuntimeError):
            await repo.create_conversation(1, "ghost")

    async def test_ownership_is_enforced(self, repo):
        conv = await repo.create_conversation(1, "mine")
        assert await repo.get_conversation(conv.id, 2) is None
        assert not await repo.is_owned_by(conv.id, 2)
        assert not await repo.delete_conversation(conv.id, 2)
        assert await repo.get_conversation(conv.id, 1) is not None

    async def test_list_newest_first(self, repo, db):
        first = await repo.create_conversation(1, "first")
        second = await repo.create_conversation(1, "second")
        await repo.create_conversation(2, "other user")
        await db.conn.execute(
            "UPDATE ai_conversations SET updated_at = ? WHERE id = ?", ("2999-01-01T00:00:00.000", first.id)
        )
        await db.conn.commit()

        listed = await repo.list_conversations(1)
        assert [c.id for c in listed] == [first.id, second.id]

    async def test_delete_cascades_messages(self, repo, db):
        conv = await repo.create_conversation(1, "bye")
        await repo.append_message(conv.id, "user", "hello")
        assert await repo.delete_conversation(conv.id, 1)

        cursor = await db.conn.execute("SELECT COUNT(*) FROM ai_messages WHERE conversation_id = ?", (conv.id,))
        assert (await cursor.fetchone())[0] == 0

    async def test_update_title(self, repo):
        conv = await repo.create_conversation(1, "old")
        assert await repo.update_title(conv.id, 1, "<b>new</b>")
        assert (await repo.get_conversation(conv.id, 1)).title == "new"
        assert not await repo.update_title(conv.id, 2, "hijack")

    async def test_cleanup_old_conversations(self, repo, db):
        old = await repo.create_conversation(1, "old")
        fresh = await repo.create_conversation(1, "fresh")
        await db.conn.execute(
            "UPDATE ai_conversations SET updated_at = ? WHERE id = ?",
            ((utcnow() - timedelta(days=45)).isoformat(), old.id),
        )
        await db.conn.commit()

        assert await repo.cleanup_old_conversations(30) == 1
        assert await repo.get_conversation(old.id, 1) is None
        assert await repo.get_conversation(fresh.id, 1) is not None

    async def test_usage_stats(self, repo):
        conv = await repo.create_conversation(1, "stats")
        await repo.append_message(conv.id, "user", "q")
        await repo.append_message(conv.id, "assistant", "a")
        await repo.create_conversation(2, "other")

        stats = await repo.usage_stats(utcnow() - timedelta(days=1), utcnow() + timedelta(days=1))
        assert stats.total_conversations == 2
        assert stats.unique_users == 2
        assert stats.total_messages == 2
        assert stats.user_messages == 1
        assert stats.average_messages_per_conversation == 1.0


class TestMessages:
    async def test_invalid_role_rejected(self, repo):
        conv = await repo.create_conversation(1, "x")
        with pytest.raises(ValueError):
            await repo.append_message(conv.id, "tool", "nope")

    async def test_content_sanitized(self, repo):
        conv = await repo.create_conversation(1, "x")
        message = await repo.append_message(conv.id, "user", "a\0b" + "c" * (MAX_CONTENT_LENGTH + 10))
        assert "\0" not in message.content
        assert message.content.endswith("[Content clipped: message too long]")

    async def test_function_data_round_trips(self, repo):
        conv = await repo.create_conversation(1, "x")
        message = await repo.append_message(
            conv.id, "assistant", "done", function_called="query_products", function_data={"keyword": "tea"}
        )
        assert message.function_called == "query_products"
        assert message.function_data == {"keyword": "tea"}


def test_sanitize_title():
    assert sanitize_title("  <i>Hi</i>\x07 there ") == "Hi there"
    assert sanitize_title("   ") is None
    assert len(sanitize_title("t" * 400)) == 255
