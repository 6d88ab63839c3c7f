"""Semantic chunker - structure-aware splitting and query scoring."""

import logging
import re
from typing import Optional

from ..models.document import Chunk

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^#{1,6}\s+")
_RULE_RE = re.compile(r"^(-{3,}|\*{3,}|={3,})$")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?。！？])\s+")
_FENCE = "```"


class SemanticChunker:
    """Split documents on their natural structure and rank the pieces."""

    TERM_SCORE = 10
    HEADING_BONUS = 5
    SHORT_PENALTY = 5
    SHORT_CHUNK_LENGTH = 100
    MIN_TERM_LENGTH = 4

    def __init__(self, max_chunk_size: int = 1000):
        """Initialize chunker.

        Args:
            max_chunk_size: Maximum chunk size in characters.
        """
        self._max_chunk_size = max_chunk_size

    def chunk(
        self, text: str, query: str, max_chunk_size: Optional[int] = None
    ) -> list[Chunk]:
        """Split text into chunks sorted by relevance to the query.

        Args:
            text: Document text.
            query: Query used for scoring.
            max_chunk_size: Override maximum chunk size.

        Returns:
            Chunks, best first. Equal scores keep document order.
        """
        size = max_chunk_size or self._max_chunk_size

        try:
            pieces: list[str] = []
            for section in self._split_sections(text):
                if len(section) <= size:
                    pieces.append(section)
                else:
                    pieces.extend(self._pack_paragraphs(section, size))
            chunks = self._score(pieces, query)
        except Exception as e:
            logger.error(f"Chunking failed, using whole text: {e}")
            return [Chunk(text=text)]

        return sorted(chunks, key=lambda c: c.score, reverse=True)

    def top_chunks(self, text: str, query: str, n: int = 2) -> list[Chunk]:
        """Return the n best chunks."""
        return self.chunk(text, query)[:n]

    def _split_sections(self, text: str) -> list[str]:
        """Split on headings, horizontal rules and === separators.

        Headings open a new section and stay in it; rule lines are dropped.
        Nothing inside a fenced code block counts as a boundary.
        """
        sections: list[str] = []
        current: list[str] = []
        in_fence = False

        def flush() -> None:
            section = "\n".join(current).strip()
            if section:
                sections.append(section)
            current.clear()

        for line in text.splitlines():
            stripped = line.strip()

            if stripped.startswith(_FENCE):
                in_fence = not in_fence
                current.append(line)
                continue

            if not in_fence:
                if _RULE_RE.match(stripped):
                    flush()
                    continue
                if _HEADING_RE.match(line):
                    flush()

            current.append(line)

        flush()
        return sections

    def _split_paragraphs(self, section: str) -> list[str]:
        """Split on blank lines, keeping fenced code blocks whole."""
        paragraphs: list[str] = []
        current: list[str] = []
        in_fence = False

        for line in section.splitlines():
            if line.strip().startswith(_FENCE):
                in_fence = not in_fence

            if not line.strip() and not in_fence:
                if current:
                    paragraphs.append("\n".join(current).strip())
                    current = []
                continue

            current.append(line)

        if current:
            paragraphs.append("\n".join(current).strip())

        return [p for p in paragraphs if p]

    def _pack_paragraphs(self, section: str, size: int) -> list[str]:
        """Greedily pack paragraphs into chunks of at most size chars."""
        chunks: list[str] = []
        current = ""

        for para in self._split_paragraphs(section):
            if len(para) > size:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(self._split_long_paragraph(para, size))
                continue

            if current and len(current) + 2 + len(para) > size:
                chunks.append(current)
                current = para
            elif current:
                current += "\n\n" + para
            else:
                current = para

        if current:
            chunks.append(current)

        return chunks

    def _split_long_paragraph(self, para: str, size: int) -> list[str]:
        """Split an oversized paragraph on sentence boundaries.

        Code blocks and tables are returned whole.
        """
        lines = para.splitlines()
        if para.lstrip().startswith(_FENCE) or all(
            line.lstrip().startswith("|") for line in lines
        ):
            return [para]

        chunks: list[str] = []
        current = ""
        for sentence in _SENTENCE_SPLIT_RE.split(para):
            if not sentence:
                continue
            if current and len(current) + 1 + len(sentence) > size:
                chunks.append(current)
                current = sentence
            elif current:
                current += " " + sentence
            else:
                current = sentence

        if current:
            chunks.append(current)

        return chunks

    def _score(self, pieces: list[str], query: str) -> list[Chunk]:
        terms = [
            t.strip(".,;:!?\"'()")
            for t in dict.fromkeys(query.lower().split())
        ]
        terms = [t for t in dict.fromkeys(terms) if len(t) >= self.MIN_TERM_LENGTH]

        chunks = []
        for piece in pieces:
            lower = piece.lower()
            heading_lines = [
                line for line in lower.splitlines() if _HEADING_RE.match(line)
            ]
            score = 0
            for term in terms:
                if term in lower:
                    score += self.TERM_SCORE
                    if any(term in line for line in heading_lines):
                        score += self.HEADING_BONUS

            if len(piece) < self.SHORT_CHUNK_LENGTH:
                score -= self.SHORT_PENALTY

            chunks.append(Chunk(text=piece, score=float(score)))

        return chunks
