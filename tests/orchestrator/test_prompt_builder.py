"""Tests for the reply context builder."""

from src.twin.domain.entities import Memory, PersonaProfile
from src.twin.orchestrator.prompt_builder import (
    BASE_TWIN_PROMPT,
    CLOSING_NOTE,
    PromptBuilder,
)


def make_memory(content, category="fact"):
    return Memory(owner_id="twin-1", content=content, category=category)


class TestPromptBuilder:

    def test_base_prompt_only(self):
        context = PromptBuilder().build()

        assert context == BASE_TWIN_PROMPT
        assert CLOSING_NOTE not in context

    def test_empty_persona_is_skipped(self):
        context = PromptBuilder().build(persona=PersonaProfile(owner_id="twin-1"))

        assert "USER PROFILE" not in context

    def test_memory_lines_in_order(self):
        memories = [
            make_memory("I love jazz music", "preference"),
            make_memory("My sister lives in Izmir", "relationship"),
        ]

        section = PromptBuilder().build_memory_section(memories)

        assert section.splitlines() == [
            "RELEVANT MEMORIES:",
            "- [preference] I love jazz music",
            "- [relationship] My sister lives in Izmir",
        ]

    def test_persona_section(self):
        persona = PersonaProfile(
            owner_id="twin-1",
            personality_traits={"humor": "dry"},
            communication_style={"tone": "casual"},
            interests=["jazz", "hiking"],
            preferences={"drink": "çay"},
            learned_facts=["works as a nurse"],
        )

        section = PromptBuilder().build_persona_section(persona)

        assert section.startswith("USER PROFILE:")
        assert 'Your personality traits: {"humor": "dry"}' in section
        assert "Your interests: jazz, hiking" in section
        assert '"drink": "çay"' in section
        assert "works as a nurse" in section

    def test_full_context_ordering(self):
        persona = PersonaProfile(owner_id="twin-1", interests=["jazz"])
        context = PromptBuilder(base_prompt="BASE").build(
            persona=persona, memories=[make_memory("Runs daily", "habit")]
        )

        sections = context.split("\n\n")
        assert sections[0] == "BASE"
        assert sections[1].startswith("USER PROFILE:")
        assert sections[2].startswith("RELEVANT MEMORIES:")
        assert sections[3] == CLOSING_NOTE
