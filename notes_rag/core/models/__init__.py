"""Domain models."""
from .document import (
    Chunk,
    DocumentRef,
    HydeResult,
    ResultOrigin,
    SearchResult,
    normalize_similarity,
)
from .chat import Conversation, ConversationMessage
from .reflection import AnswerResult, ReflectionPhase, ReflectionState

__all__ = [
    "Chunk",
    "DocumentRef",
    "HydeResult",
    "ResultOrigin",
    "SearchResult",
    "normalize_similarity",
    "Conversation",
    "ConversationMessage",
    "AnswerResult",
    "ReflectionPhase",
    "ReflectionState",
]
