"""
Conversation and Persona Store Implementation.

Sessions, turns and persona profiles belong to the chat and profile
collaborators. The reply pipeline only needs the narrow slice defined by
IConversationStore and IPersonaStore, implemented here on PostgreSQL.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from uuid import UUID

from ..domain.entities import ConversationTurn, PersonaProfile, Session, TurnRole
from ..domain.ports import IConversationStore, IPersonaStore
from .embedding import to_vector_literal
from .store import IAsyncDBPool

logger = logging.getLogger(__name__)


CONVERSATION_SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE IF NOT EXISTS chat_sessions (
    id UUID PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS chat_turns (
    id UUID PRIMARY KEY,
    session_id UUID NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    embedding vector({dimension}),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_chat_turns_session_created
    ON chat_turns (session_id, created_at);

CREATE TABLE IF NOT EXISTS persona_profiles (
    owner_id TEXT PRIMARY KEY,
    personality_traits JSONB NOT NULL DEFAULT '{{}}',
    communication_style JSONB NOT NULL DEFAULT '{{}}',
    interests JSONB NOT NULL DEFAULT '[]',
    preferences JSONB NOT NULL DEFAULT '{{}}',
    learned_facts JSONB NOT NULL DEFAULT '[]'
);
"""


async def ensure_conversation_schema(db_pool: IAsyncDBPool, dimension: int = 768) -> None:
    """Create the session, turn and persona tables if they do not exist."""
    async with db_pool.acquire() as conn:
        await conn.execute(CONVERSATION_SCHEMA_SQL.format(dimension=int(dimension)))


class ConversationStore(IConversationStore):
    """PostgreSQL-based session and turn store.

    Usage:
        store = ConversationStore(db_pool)
        session = await store.create_session(Session(owner_id="twin-1"))
        await store.add_turn(ConversationTurn(
            session_id=session.id, role=TurnRole.USER, content="Hi"
        ))
        history = await store.get_recent_turns(session.id, limit=20)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the conversation store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    async def create_session(self, session: Session) -> Session:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO chat_sessions (id, owner_id, title)
                VALUES ($1, $2, $3)
                RETURNING created_at, updated_at
                """,
                session.id,
                session.owner_id,
                session.title,
            )
            if row is not None:
                session.created_at = row["created_at"]
                session.updated_at = row["updated_at"]

        logger.info(f"Created session {session.id} for {session.owner_id}")
        return session

    async def get_session(self, session_id: UUID, owner_id: str) -> Optional[Session]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, owner_id, title, created_at, updated_at
                FROM chat_sessions
                WHERE id = $1 AND owner_id = $2
                """,
                session_id,
                owner_id,
            )

        if not row:
            return None
        return Session(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def update_title(self, session_id: UUID, owner_id: str, title: str) -> None:
        async with self.db.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE chat_sessions
                SET title = $1, updated_at = NOW()
                WHERE id = $2 AND owner_id = $3
                """,
                title,
                session_id,
                owner_id,
            )

        if result == "UPDATE 0":
            logger.warning(f"Session {session_id} not found when setting title")

    async def add_turn(self, turn: ConversationTurn) -> ConversationTurn:
        """Append a turn and touch the session's updated_at."""
        async with self.db.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO chat_turns (id, session_id, role, content, embedding)
                    VALUES ($1, $2, $3, $4, $5::vector)
                    RETURNING created_at
                    """,
                    turn.id,
                    turn.session_id,
                    turn.role.value,
                    turn.content,
                    to_vector_literal(turn.embedding),
                )
                await conn.execute(
                    "UPDATE chat_sessions SET updated_at = NOW() WHERE id = $1",
                    turn.session_id,
                )
                if row is not None:
                    turn.created_at = row["created_at"]

        logger.debug(f"Added {turn.role.value} turn to session {turn.session_id}")
        return turn

    async def get_recent_turns(
        self, session_id: UUID, limit: int = 20
    ) -> list[ConversationTurn]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, session_id, role, content, created_at
                FROM chat_turns
                WHERE session_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                session_id,
                limit,
            )

        # Reverse to get chronological order
        return [
            ConversationTurn(
                id=row["id"],
                session_id=row["session_id"],
                role=TurnRole(row["role"]),
                content=row["content"],
                created_at=row["created_at"],
            )
            for row in reversed(rows)
        ]

    async def attach_embedding(self, turn_id: UUID, embedding: list[float]) -> None:
        async with self.db.acquire() as conn:
            await conn.execute(
                "UPDATE chat_turns SET embedding = $1::vector WHERE id = $2",
                to_vector_literal(embedding),
                turn_id,
            )


def _json_field(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


class PersonaStore(IPersonaStore):
    """Read-only access to persona_profiles."""

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    async def get(self, owner_id: str) -> Optional[PersonaProfile]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT owner_id, personality_traits, communication_style,
                       interests, preferences, learned_facts
                FROM persona_profiles
                WHERE owner_id = $1
                """,
                owner_id,
            )

        if not row:
            return None
        return PersonaProfile(
            owner_id=row["owner_id"],
            personality_traits=_json_field(row["personality_traits"], {}),
            communication_style=_json_field(row["communication_style"], {}),
            interests=_json_field(row["interests"], []),
            preferences=_json_field(row["preferences"], {}),
            learned_facts=_json_field(row["learned_facts"], []),
        )
