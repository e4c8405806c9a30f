"""Reply orchestration: prompt building and the retrieval-augmented reply pipeline."""

from .prompt_builder import PromptBuilder
from .reply_pipeline import ReplyPipeline, make_session_title

__all__ = [
    "PromptBuilder",
    "ReplyPipeline",
    "make_session_title",
]
