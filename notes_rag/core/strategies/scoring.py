"""Similarity scoring functions."""
import re
from typing import Sequence

import numpy as np

from ..errors import DimensionMismatch
from ..models.document import EXACT_MATCH_SIMILARITY

# CJK Unified Ideographs
_CJK_RE = re.compile(r"[\u4e00-\u9fff]")
_PUNCTUATION = "\"'.,;:!?()[]{}<>`*_"


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatch: Vectors have different lengths.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    value = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, value))


def is_cjk(text: str) -> bool:
    """True if text contains any CJK ideograph."""
    return _CJK_RE.search(text) is not None


def detect_language(text: str) -> str:
    """Return "chinese" when CJK ideographs exceed 15% of the text."""
    if not text:
        return "english"
    cjk_count = len(_CJK_RE.findall(text))
    return "chinese" if cjk_count / len(text) > 0.15 else "english"


def lexical_similarity(query: str, content: str) -> float:
    """Term-overlap similarity between a query and a document.

    CJK queries are not whitespace-delimited, so they are scored by
    substring containment, falling back to per-character overlap.
    """
    query_lower = query.lower().strip()
    content_lower = content.lower()
    if not query_lower:
        return 0.0

    if is_cjk(query_lower):
        if query_lower in content_lower:
            return EXACT_MATCH_SIMILARITY
        chars = {c for c in query_lower if not c.isspace()}
        if not chars:
            return 0.0
        matched = sum(1 for c in chars if c in content_lower)
        return matched / len(chars)

    query_terms = {_strip_punctuation(t) for t in query_lower.split()}
    query_terms = {t for t in query_terms if len(t) > 2}
    matched_terms = {t for t in query_terms if t in content_lower}
    return len(matched_terms) / max(len(query_terms), 1)


def word_jaccard(text_a: str, text_b: str, min_length: int = 4) -> float:
    """Jaccard similarity over lowercase words of at least min_length chars."""
    words_a = {w for w in text_a.lower().split() if len(w) >= min_length}
    words_b = {w for w in text_b.lower().split() if len(w) >= min_length}
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _strip_punctuation(token: str) -> str:
    return token.strip(_PUNCTUATION)
