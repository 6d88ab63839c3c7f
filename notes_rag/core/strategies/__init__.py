"""Scoring functions and retrieval strategies."""
from .scoring import cosine, detect_language, is_cjk, lexical_similarity, word_jaccard
from .snippets import extract_snippet
from .retrieval import (
    DocumentCatalog,
    HostNativeSearchStrategy,
    LexicalSearchStrategy,
    RetrievalStrategy,
    VectorSearchStrategy,
)

__all__ = [
    "cosine",
    "detect_language",
    "is_cjk",
    "lexical_similarity",
    "word_jaccard",
    "extract_snippet",
    "DocumentCatalog",
    "HostNativeSearchStrategy",
    "LexicalSearchStrategy",
    "RetrievalStrategy",
    "VectorSearchStrategy",
]
