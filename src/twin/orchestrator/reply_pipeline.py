"""
Retrieval-Augmented Reply Pipeline.

Handles one user utterance end to end:
1. Load (or open) the session and its recent history
2. Retrieve relevant memories (failure degrades to none)
3. Build the persona + memory context and generate the reply
4. Persist both turns (failure is logged, the reply still returns)
5. Queue background work: embed the user turn, run extraction

Only reply generation is fatal to the request.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from ..background_worker import BackgroundWorker
from ..domain.entities import (
    ConversationTurn,
    Memory,
    PersonaProfile,
    Session,
    TurnResult,
    TurnRole,
)
from ..domain.ports import IConversationStore, IGenerationProvider, IPersonaStore
from ..exceptions import ReplyGenerationError, SessionNotFoundError, ValidationError
from ..memory.embedding import EmbeddingService
from ..memory.extraction import ExtractionPipeline
from ..memory.manager import MemoryManager
from .prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

# Retrieval and history windows for the reply path
MEMORY_SEARCH_LIMIT = 5
MEMORY_MIN_SIMILARITY = 0.4
HISTORY_WINDOW = 20
EXTRACTION_HISTORY_WINDOW = 5
TITLE_MAX_LENGTH = 50


def make_session_title(utterance: str) -> str:
    """First 50 characters of the opening utterance, with '...' if cut."""
    text = utterance.strip()
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text


class ReplyPipeline:
    """Generates memory-grounded replies in the twin's voice.

    Usage:
        pipeline = ReplyPipeline(
            llm=generation_provider,
            memory_manager=manager,
            conversations=conversation_store,
            personas=persona_store,
            embeddings=embedding_service,
            extraction=extraction_pipeline,
            worker=background_worker,
        )
        result = await pipeline.handle_turn("twin-1", None, "I'm off hiking this weekend")
    """

    def __init__(
        self,
        llm: IGenerationProvider,
        memory_manager: MemoryManager,
        conversations: IConversationStore,
        personas: IPersonaStore,
        embeddings: EmbeddingService,
        extraction: ExtractionPipeline,
        worker: BackgroundWorker,
        prompt_builder: Optional[PromptBuilder] = None,
        history_window: int = HISTORY_WINDOW,
    ):
        self.llm = llm
        self.memory_manager = memory_manager
        self.conversations = conversations
        self.personas = personas
        self.embeddings = embeddings
        self.extraction = extraction
        self.worker = worker
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.history_window = history_window

    async def handle_turn(
        self,
        owner_id: str,
        session_id: Optional[UUID],
        utterance: str,
    ) -> TurnResult:
        """Answer one utterance.

        Args:
            owner_id: Twin owner
            session_id: Existing session, or None to open a new one
            utterance: User text

        Returns:
            TurnResult with the reply and the number of memories used

        Raises:
            ValidationError: Empty utterance
            SessionNotFoundError: session_id is unknown or not owner_id's
            ReplyGenerationError: The reply could not be generated
        """
        if not utterance or not utterance.strip():
            raise ValidationError("Message must not be empty", field="utterance")

        is_new_session = session_id is None
        if is_new_session:
            session = await self.conversations.create_session(Session(owner_id=owner_id))
            history: list[ConversationTurn] = []
        else:
            session = await self.conversations.get_session(session_id, owner_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            history = await self._get_history(session.id)

        memories = await self._get_memory_context(owner_id, utterance)
        persona = await self._get_persona(owner_id)
        context = self.prompt_builder.build(persona=persona, memories=memories)

        try:
            reply = await self.llm.generate_reply(context, history, utterance)
        except ReplyGenerationError:
            raise
        except Exception as e:
            logger.error(f"Reply generation failed for session {session.id}: {e}")
            raise ReplyGenerationError(f"Reply generation failed: {e}", cause=e)

        user_turn = await self._save_turn(session.id, TurnRole.USER, utterance)
        assistant_turn = await self._save_turn(session.id, TurnRole.ASSISTANT, reply)

        if is_new_session:
            try:
                await self.conversations.update_title(
                    session.id, owner_id, make_session_title(utterance)
                )
            except Exception as e:
                logger.warning(f"Failed to set title for session {session.id}: {e}")

        await self._schedule_background(owner_id, utterance, user_turn, history)

        return TurnResult(
            reply=reply,
            session_id=session.id,
            memories_used_count=len(memories),
            message_id=assistant_turn.id if assistant_turn else None,
        )

    async def _get_history(self, session_id: UUID) -> list[ConversationTurn]:
        try:
            return await self.conversations.get_recent_turns(
                session_id, limit=self.history_window
            )
        except Exception as e:
            logger.warning(
                f"History fetch failed for session {session_id}, "
                f"replying without it: {e}"
            )
            return []

    async def _get_memory_context(self, owner_id: str, utterance: str) -> list[Memory]:
        """Retrieve memories for the utterance; any failure yields none."""
        try:
            result = await self.memory_manager.search_memories(
                owner_id,
                utterance,
                limit=MEMORY_SEARCH_LIMIT,
                min_similarity=MEMORY_MIN_SIMILARITY,
            )
        except Exception as e:
            logger.warning(f"Memory search failed, replying without memories: {e}")
            return []
        return result.memories

    async def _get_persona(self, owner_id: str) -> PersonaProfile:
        try:
            persona = await self.personas.get(owner_id)
        except Exception as e:
            logger.warning(f"Persona lookup failed for {owner_id}: {e}")
            persona = None
        return persona or PersonaProfile(owner_id=owner_id)

    async def _save_turn(
        self, session_id: UUID, role: TurnRole, content: str
    ) -> Optional[ConversationTurn]:
        try:
            return await self.conversations.add_turn(
                ConversationTurn(session_id=session_id, role=role, content=content)
            )
        except Exception as e:
            logger.error(f"Failed to persist {role.value} turn for session {session_id}: {e}")
            return None

    async def _schedule_background(
        self,
        owner_id: str,
        utterance: str,
        user_turn: Optional[ConversationTurn],
        history: list[ConversationTurn],
    ) -> None:
        """Queue the post-reply jobs. Nothing here can fail the turn."""
        if user_turn is not None:
            try:
                await self.worker.submit(
                    self.attach_turn_embedding,
                    user_turn.id,
                    utterance,
                    name="attach_turn_embedding",
                )
            except Exception as e:
                logger.warning(f"Failed to queue turn embedding: {e}")

        try:
            await self.worker.submit(
                self.extraction.run,
                owner_id,
                utterance,
                list(history[-EXTRACTION_HISTORY_WINDOW:]),
                name="extract_knowledge",
            )
        except Exception as e:
            logger.warning(f"Failed to queue extraction: {e}")

    async def attach_turn_embedding(self, turn_id: UUID, text: str) -> bool:
        """Embed text and store the vector on the turn. False when skipped."""
        vector = await self.embeddings.embed(text)
        if vector is None:
            logger.debug(f"No embedding for turn {turn_id}, skipping")
            return False
        await self.conversations.attach_embedding(turn_id, vector)
        return True
