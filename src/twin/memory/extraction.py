"""
Background knowledge extraction.

After each turn the analysis model is asked for insights about the owner
and for memory-worthy facts. Its answer is decoded strictly by
decode_analysis, filtered by confidence/importance thresholds, and each
accepted item is persisted on its own so one bad row never loses the rest.

Extraction is best-effort: a failed completion, an undecodable answer or
a failed insert is logged and dropped. There is no retry.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..domain.entities import (
    AnalysisPayload,
    ConversationTurn,
    Insight,
    InsightCandidate,
    MemoryCandidate,
    MemoryCategory,
    MemorySource,
)
from ..domain.ports import IGenerationProvider, IInsightStore
from .manager import MAX_SUMMARY_LENGTH, MemoryManager

logger = logging.getLogger(__name__)

# Candidates must be strictly above these to be kept
MIN_INSIGHT_CONFIDENCE = 0.6
MIN_MEMORY_IMPORTANCE = 0.5


ANALYSIS_PROMPT = """Analyze the message below and infer what it reveals about the user.

MESSAGE: {message}
{history}
Return JSON in exactly this format:
{{
  "insights": [
    {{
      "category": "personality|preference|behavior|memory",
      "key": "detected_trait",
      "value": "value",
      "confidence": 0.0-1.0
    }}
  ],
  "memories": [
    {{
      "content": "information worth remembering (full sentence)",
      "summary": "short summary",
      "category": "fact|preference|experience|relationship|habit",
      "importance": 0.0-1.0
    }}
  ],
  "suggestedQuestions": ["clarifying questions to ask the user"]
}}

RULES:
- Only include certain or highly likely inferences
- Skip generic or vague information
- Save important personal details (names, dates, preferences) as memories
- If nothing meaningful can be inferred, return empty arrays"""


def build_analysis_prompt(utterance: str, recent_history: list[ConversationTurn]) -> str:
    """Render the analysis prompt for one utterance."""
    history = ""
    if recent_history:
        previous = [
            {"role": turn.role.value, "content": turn.content}
            for turn in recent_history
        ]
        history = f"\nPREVIOUS MESSAGES: {json.dumps(previous, ensure_ascii=False)}\n"
    return ANALYSIS_PROMPT.format(
        message=json.dumps(utterance, ensure_ascii=False),
        history=history,
    )


# ============================================
# Strict Decoding
# ============================================


@dataclass(frozen=True)
class Ok:
    value: AnalysisPayload


@dataclass(frozen=True)
class Err:
    reason: str


DecodeResult = Union[Ok, Err]

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class _DecodeError(ValueError):
    pass


def _find_json_object(text: str) -> Optional[dict]:
    """Locate the JSON object in a model answer.

    Tried in order: the whole text, a fenced code block, then the first
    position where a complete object decodes.
    """
    stripped = text.strip()
    try:
        data = json.loads(stripped)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    for block in _FENCE_RE.findall(stripped):
        try:
            data = json.loads(block.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    decoder = json.JSONDecoder()
    start = stripped.find("{")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(stripped, start)
        except json.JSONDecodeError:
            start = stripped.find("{", start + 1)
            continue
        if isinstance(data, dict):
            return data
        start = stripped.find("{", start + 1)
    return None


def _is_number(value: Any) -> bool:
    # json.loads accepts NaN and Infinity literals
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _require_str(item: dict, name: str, where: str) -> str:
    value = item.get(name)
    if not isinstance(value, str) or not value.strip():
        raise _DecodeError(f"{where}.{name} must be a non-empty string")
    return value.strip()


def _require_number(item: dict, name: str, where: str) -> float:
    value = item.get(name)
    if not _is_number(value):
        raise _DecodeError(f"{where}.{name} must be a number")
    return float(value)


def _require_list(data: dict, name: str) -> list:
    value = data.get(name, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise _DecodeError(f"{name} must be a list")
    return value


def _decode_insight(item: Any, index: int) -> InsightCandidate:
    where = f"insights[{index}]"
    if not isinstance(item, dict):
        raise _DecodeError(f"{where} must be an object")
    value = item.get("value")
    if isinstance(value, str):
        value = value.strip()
    elif _is_number(value) or isinstance(value, bool):
        value = json.dumps(value)
    else:
        raise _DecodeError(f"{where}.value must be a string, number or boolean")
    if not value:
        raise _DecodeError(f"{where}.value must not be empty")
    return InsightCandidate(
        category=_require_str(item, "category", where),
        key=_require_str(item, "key", where),
        value=value,
        confidence=_require_number(item, "confidence", where),
    )


def _decode_memory(item: Any, index: int) -> MemoryCandidate:
    where = f"memories[{index}]"
    if not isinstance(item, dict):
        raise _DecodeError(f"{where} must be an object")
    raw_category = _require_str(item, "category", where)
    try:
        category = MemoryCategory(raw_category.lower())
    except ValueError:
        raise _DecodeError(f"{where}.category '{raw_category}' is not a memory category")
    summary = item.get("summary")
    if summary is not None and not isinstance(summary, str):
        raise _DecodeError(f"{where}.summary must be a string")
    return MemoryCandidate(
        content=_require_str(item, "content", where),
        category=category,
        importance=_require_number(item, "importance", where),
        summary=summary.strip() if summary else None,
    )


def decode_analysis(text: Optional[str]) -> DecodeResult:
    """Decode an analysis answer into an AnalysisPayload.

    Returns Ok(payload) only when the answer holds a JSON object whose
    "insights" and "memories" lists (each optional) contain correctly
    typed entries. Anything else returns Err(reason); nothing is guessed.
    """
    if not text or not text.strip():
        return Err("empty response")

    data = _find_json_object(text)
    if data is None:
        return Err("no JSON object found")

    try:
        insights = tuple(
            _decode_insight(item, i)
            for i, item in enumerate(_require_list(data, "insights"))
        )
        memories = tuple(
            _decode_memory(item, i)
            for i, item in enumerate(_require_list(data, "memories"))
        )
        questions = _require_list(data, "suggestedQuestions")
        if not all(isinstance(q, str) for q in questions):
            raise _DecodeError("suggestedQuestions must be a list of strings")
    except _DecodeError as e:
        return Err(str(e))

    return Ok(AnalysisPayload(
        insights=insights,
        memories=memories,
        suggested_questions=tuple(q.strip() for q in questions if q.strip()),
    ))


# ============================================
# Pipeline
# ============================================


@dataclass(frozen=True)
class ExtractionOutcome:
    """What one extraction run stored.

    Attributes:
        insights_saved: Insights persisted
        memories_saved: Memories persisted
        skipped: Candidates dropped by a threshold or a failed insert
        error: Why the run produced nothing, if it failed as a whole
    """

    insights_saved: int = 0
    memories_saved: int = 0
    skipped: int = 0
    error: Optional[str] = None


class ExtractionPipeline:
    """Mines insights and memories from a conversation turn.

    Usage:
        pipeline = ExtractionPipeline(llm, memory_manager, insight_store)
        outcome = await pipeline.run("twin-1", "My sister Ayse lives in Izmir", history[-5:])
    """

    def __init__(
        self,
        llm: IGenerationProvider,
        memory_manager: MemoryManager,
        insight_store: IInsightStore,
        min_confidence: float = MIN_INSIGHT_CONFIDENCE,
        min_importance: float = MIN_MEMORY_IMPORTANCE,
    ):
        self.llm = llm
        self.memory_manager = memory_manager
        self.insight_store = insight_store
        self.min_confidence = min_confidence
        self.min_importance = min_importance

    async def run(
        self,
        owner_id: str,
        utterance: str,
        recent_history: list[ConversationTurn],
    ) -> ExtractionOutcome:
        """Analyze one utterance and persist what passes the thresholds.

        Never raises; failures are logged and reflected in the outcome.
        """
        prompt = build_analysis_prompt(utterance, recent_history)
        try:
            response = await self.llm.complete(
                prompt=prompt,
                max_tokens=1024,
                temperature=0.3,
            )
        except Exception as e:
            logger.warning(f"Analysis completion failed for {owner_id}: {e}")
            return ExtractionOutcome(error=f"completion failed: {e}")

        decoded = decode_analysis(response)
        if isinstance(decoded, Err):
            logger.warning(f"Discarding undecodable analysis for {owner_id}: {decoded.reason}")
            return ExtractionOutcome(error=decoded.reason)

        payload = decoded.value
        skipped = 0

        insights_saved = 0
        for candidate in payload.insights:
            if candidate.confidence <= self.min_confidence:
                skipped += 1
                continue
            try:
                await self.insight_store.insert(Insight(
                    owner_id=owner_id,
                    category=candidate.category,
                    key=candidate.key,
                    value=candidate.value,
                    confidence=candidate.confidence,
                    source=MemorySource.CHAT.value,
                ))
                insights_saved += 1
            except Exception as e:
                skipped += 1
                logger.warning(f"Failed to save insight '{candidate.key}': {e}")

        memories_saved = 0
        for candidate in payload.memories:
            if candidate.importance <= self.min_importance:
                skipped += 1
                continue
            try:
                await self.memory_manager.create_memory(
                    owner_id=owner_id,
                    content=candidate.content,
                    summary=candidate.summary[:MAX_SUMMARY_LENGTH] if candidate.summary else None,
                    category=candidate.category,
                    source=MemorySource.CHAT,
                    importance=candidate.importance,
                )
                memories_saved += 1
            except Exception as e:
                skipped += 1
                logger.warning(f"Failed to save extracted memory: {e}")

        logger.debug(
            f"Extraction for {owner_id}: {insights_saved} insights, "
            f"{memories_saved} memories, {skipped} skipped"
        )
        return ExtractionOutcome(
            insights_saved=insights_saved,
            memories_saved=memories_saved,
            skipped=skipped,
        )
