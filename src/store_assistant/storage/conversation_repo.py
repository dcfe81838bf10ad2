"""Conversation repository: ownership-checked CRUD over assistant transcripts."""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Optional

from store_assistant.core.types import Role
from store_assistant.log import get_logger
from store_assistant.storage.database import Database
from store_assistant.storage.models import Conversation, Message, UsageStats

logger = get_logger(__name__)

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f','now')"
_TAG_PATTERN = re.compile(r"<[^>]*>")
_CONTROL_PATTERN = re.compile(r"[\x00-\x1F\x7F]")
_VALID_ROLES = frozenset(r.value for r in Role)

MAX_TITLE_LENGTH = 255
MAX_CONTENT_LENGTH = 50000


def sanitize_title(title: Optional[str]) -> Optional[str]:
    """Strip markup and control characters and clip to the column width."""
    if title is None or not title.strip():
        return None
    title = _TAG_PATTERN.sub("", title)
    title = _CONTROL_PATTERN.sub("", title)
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return title.strip() or None


def sanitize_content(content: Optional[str]) -> str:
    if not content:
        return ""
    content = content.replace("\0", "")
    if len(content) > MAX_CONTENT_LENGTH:
        content = content[:MAX_CONTENT_LENGTH] + "\n[Content clipped: message too long]"
    return content


class ConversationRepository:
    """CRUD over conversations and their messages.

    Every read or delete is filtered by the owning ``user_id``; a conversation id
    alone is never enough to reach a record.
    """

    def __init__(self, db: Database):
        self._db = db

    async def create_conversation(self, user_id: int, title: Optional[str] = None) -> Conversation:
        cursor = await self._db.conn.execute(
            "INSERT INTO ai_conversations (user_id, title) VALUES (?, ?)",
            (user_id, sanitize_title(title)),
        )
        await self._db.conn.commit()
        conversation_id = cursor.lastrowid
        logger.info("conversation_created", conversation_id=conversation_id, user_id=user_id)
        conversation = await self._fetch_conversation(conversation_id, user_id)  # type: ignore[arg-type]
        if conversation is None:
            raise RuntimeError(f"Conversation {conversation_id} vanished after insert")
        return conversation

    async def append_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        function_called: Optional[str] = None,
        function_data: Optional[Any] = None,
    ) -> Message:
        """Append a message and bump the conversation's ``updated_at``."""
        if role not in _VALID_ROLES:
            raise ValueError(f"Invalid role: {role}")

        data_json = json.dumps(function_data, ensure_ascii=False) if function_data is not None else None
        cursor = await self._db.conn.execute(
            """INSERT INTO ai_messages (conversation_id, role, content, function_called, function_data)
               VALUES (?, ?, ?, ?, ?)""",
            (conversation_id, role, sanitize_content(content), function_called, data_json),
        )
        await self._db.conn.execute(
            f"UPDATE ai_conversations SET updated_at = {_NOW_SQL} WHERE id = ?",
            (conversation_id,),
        )
        await self._db.conn.commit()
        logger.debug("message_appended", conversation_id=conversation_id, role=role)

        row = await (await self._db.conn.execute(
            "SELECT * FROM ai_messages WHERE id = ?", (cursor.lastrowid,)
        )).fetchone()
        return self._row_to_message(row)

    async def list_conversations(self, user_id: int, limit: int = 50) -> list[Conversation]:
        """List a user's conversations, most recently updated first (messages not loaded)."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM ai_conversations
               WHERE user_id = ?
               ORDER BY updated_at DESC, id DESC
               LIMIT ?""",
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_conversation(row) for row in rows]

    async def get_conversation(self, conversation_id: int, user_id: int) -> Optional[Conversation]:
        """Fetch a conversation with its messages in insertion order, or None if not owned."""
        conversation = await self._fetch_conversation(conversation_id, user_id)
        if conversation is None:
            return None
        cursor = await self._db.conn.execute(
            "SELECT * FROM ai_messages WHERE conversation_id = ? ORDER BY id ASC",
            (conversation_id,),
        )
        conversation.messages = [self._row_to_message(row) for row in await cursor.fetchall()]
        return conversation

    async def is_owned_by(self, conversation_id: int, user_id: int) -> bool:
        return await self._fetch_conversation(conversation_id, user_id) is not None

    async def update_title(self, conversation_id: int, user_id: int, title: str) -> bool:
        cursor = await self._db.conn.execute(
            f"UPDATE ai_conversations SET title = ?, updated_at = {_NOW_SQL} WHERE id = ? AND user_id = ?",
            (sanitize_title(title), conversation_id, user_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    async def delete_conversation(self, conversation_id: int, user_id: int) -> bool:
        """Delete a conversation and (via cascade) its messages. Returns False if not owned."""
        cursor = await self._db.conn.execute(
            "DELETE FROM ai_conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        await self._db.conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("conversation_deleted", conversation_id=conversation_id, user_id=user_id)
        return deleted

    async def cleanup_old_conversations(self, days_old: int = 30) -> int:
        """Delete conversations not updated within ``days_old`` days."""
        cursor = await self._db.conn.execute(
            "DELETE FROM ai_conversations WHERE updated_at < strftime('%Y-%m-%dT%H:%M:%f','now', ?)",
            (f"-{days_old} days",),
        )
        await self._db.conn.commit()
        if cursor.rowcount:
            logger.info("conversations_cleaned_up", count=cursor.rowcount, days_old=days_old)
        return cursor.rowcount

    async def usage_stats(self, date_from: datetime, date_to: datetime) -> UsageStats:
        start, end = _ts(date_from), _ts(date_to)
        row = await (await self._db.conn.execute(
            """SELECT COUNT(*) AS total, COUNT(DISTINCT user_id) AS users
               FROM ai_conversations WHERE created_at >= ? AND created_at <= ?""",
            (start, end),
        )).fetchone()
        msg = await (await self._db.conn.execute(
            """SELECT COUNT(*) AS total,
                      SUM(CASE WHEN role = 'user' THEN 1 ELSE 0 END) AS user_count,
                      SUM(CASE WHEN role = 'assistant' THEN 1 ELSE 0 END) AS assistant_count
               FROM ai_messages WHERE created_at >= ? AND created_at <= ?""",
            (start, end),
        )).fetchone()

        conversations = row["total"] or 0
        messages = msg["total"] or 0
        return UsageStats(
            total_conversations=conversations,
            total_messages=messages,
            unique_users=row["users"] or 0,
            user_messages=msg["user_count"] or 0,
            assistant_messages=msg["assistant_count"] or 0,
            average_messages_per_conversation=messages / conversations if conversations else 0.0,
        )

    async def _fetch_conversation(self, conversation_id: int, user_id: int) -> Optional[Conversation]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM ai_conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        row = await cursor.fetchone()
        return self._row_to_conversation(row) if row else None

    @staticmethod
    def _row_to_conversation(row) -> Conversation:
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row) -> Message:
        data = row["function_data"]
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            function_called=row["function_called"],
            function_data=json.loads(data) if data else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )


def _ts(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S")
