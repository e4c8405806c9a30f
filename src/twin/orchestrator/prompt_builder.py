"""
Prompt Builder for the reply pipeline.

Builds the system context block the twin speaks from: the base
instructions, the owner's persona profile, and the retrieved memories.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from ..domain.entities import Memory, PersonaProfile

logger = logging.getLogger(__name__)


BASE_TWIN_PROMPT = """You are the user's digital twin, an AI-powered personal clone. Your goal is to understand the user as well as possible and to think and speak the way they do.

CORE RULES:
1. Chat with the user naturally and warmly
2. Try to learn something new from every conversation (preferences, habits, ways of thinking)
3. Mirror the user's style while staying sincere
4. Ask clarifying questions when you are unsure
5. Keep answers short unless more detail is needed
6. Reply in the language the user writes in
7. Use your memories naturally; never say things like "according to my database\""""

CLOSING_NOTE = (
    "IMPORTANT: Weave the information above into the conversation naturally. "
    'Phrases like "As I remember..." or "You mentioned before..." are fine.'
)


def _as_json(value) -> str:
    return json.dumps(value, ensure_ascii=False)


class PromptBuilder:
    """Builds the reply context from persona and memories.

    Usage:
        builder = PromptBuilder()
        context = builder.build(persona=profile, memories=result.memories)
    """

    def __init__(self, base_prompt: str = BASE_TWIN_PROMPT):
        """Initialize the prompt builder.

        Args:
            base_prompt: Instructions placed at the top of every context
        """
        self.base_prompt = base_prompt

    def build_persona_section(self, persona: Optional[PersonaProfile]) -> str:
        """Render the persona profile; empty string for an empty profile."""
        if persona is None or persona.is_empty:
            return ""

        lines = []
        if persona.personality_traits:
            lines.append(f"Your personality traits: {_as_json(persona.personality_traits)}")
        if persona.communication_style:
            lines.append(f"Your communication style: {_as_json(persona.communication_style)}")
        if persona.interests:
            lines.append(f"Your interests: {', '.join(str(i) for i in persona.interests)}")
        if persona.learned_facts:
            lines.append(f"Things you have learned: {_as_json(persona.learned_facts)}")
        if persona.preferences:
            lines.append(f"Preferences: {_as_json(persona.preferences)}")
        return "USER PROFILE:\n" + "\n".join(lines)

    def build_memory_section(self, memories: Optional[list[Memory]]) -> str:
        """Render memories as '- [category] content' lines."""
        if not memories:
            return ""
        lines = [f"- [{m.category.value}] {m.content}" for m in memories]
        return "RELEVANT MEMORIES:\n" + "\n".join(lines)

    def build(
        self,
        persona: Optional[PersonaProfile] = None,
        memories: Optional[list[Memory]] = None,
    ) -> str:
        """Build the full context block.

        Args:
            persona: Owner's persona profile (None or empty is skipped)
            memories: Retrieved memories, in relevance order

        Returns:
            System context for generate_reply
        """
        sections = [self.base_prompt]

        persona_section = self.build_persona_section(persona)
        if persona_section:
            sections.append(persona_section)

        memory_section = self.build_memory_section(memories)
        if memory_section:
            sections.append(memory_section)

        if persona_section or memory_section:
            sections.append(CLOSING_NOTE)

        return "\n\n".join(sections)
