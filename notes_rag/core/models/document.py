"""Document domain models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

HOST_NATIVE_SIMILARITY = 0.85
EXACT_MATCH_SIMILARITY = 0.9
FILENAME_MATCH_SIMILARITY = 0.8


class ResultOrigin(Enum):
    """Retrieval strategy that produced a result."""
    VECTOR = "vector"
    HOST_NATIVE = "host_native"
    LEXICAL = "lexical"


def normalize_similarity(origin: ResultOrigin, raw_score: float) -> float:
    """Map a strategy's raw score onto the shared similarity scale.

    Vector scores are cosine values and pass through (negative values are
    kept, they simply rank low). Host-native hits carry no score of their
    own and get a fixed high value. Lexical scores are already in [0, 1].
    """
    if origin is ResultOrigin.HOST_NATIVE:
        return HOST_NATIVE_SIMILARITY
    return float(raw_score)


@dataclass(frozen=True)
class DocumentRef:
    """Document handle owned by the document store."""
    id: str
    name: str
    path: str


@dataclass(frozen=True)
class SearchResult:
    """Search result from one retrieval strategy."""
    document: DocumentRef
    similarity: float
    content: str
    origin: ResultOrigin = ResultOrigin.VECTOR
    raw_score: Optional[float] = None

    @classmethod
    def from_origin(
        cls,
        document: DocumentRef,
        content: str,
        origin: ResultOrigin,
        raw_score: float,
    ) -> "SearchResult":
        return cls(
            document=document,
            similarity=normalize_similarity(origin, raw_score),
            content=content,
            origin=origin,
            raw_score=raw_score,
        )


@dataclass(frozen=True)
class Chunk:
    """Scored passage produced by the chunker."""
    text: str
    score: float = 0.0


@dataclass
class HydeResult:
    """Hypothetical answer and the vector hits it produced."""
    hypothetical_doc: str = ""
    results: list[SearchResult] = field(default_factory=list)
