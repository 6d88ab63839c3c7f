"""Query optimizer - rewrites queries for retrieval."""

import logging
import re

from ..protocols.llm import LLMProtocol

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a search query optimization expert. Your task is to rewrite "
    "search queries to make them more effective for semantic search. "
    "Return ONLY the rewritten query without explanation or additional text."
)

USER_PROMPT = """Original query: "{query}"

Rewrite this query to be more effective for semantic search in a personal knowledge base. Add relevant keywords and context. Return ONLY the rewritten query, without any explanation."""

_PREFIX_RE = re.compile(r"^(rewritten|optimized|improved)\s+query\s*:\s*", re.IGNORECASE)
_QUOTES = "\"'“”‘’`"


class QueryOptimizer:
    """Rewrite user queries into a retrieval-friendly form."""

    MIN_QUERY_LENGTH = 10
    MIN_QUERY_WORDS = 3
    MIN_REWRITE_LENGTH = 3
    MAX_REWRITE_LENGTH = 200

    def __init__(self, llm: LLMProtocol | None):
        """Initialize optimizer.

        Args:
            llm: LLM client; None disables rewriting.
        """
        self._llm = llm

    def should_rewrite(self, query: str) -> bool:
        """Short queries are passed through unchanged."""
        return (
            len(query) >= self.MIN_QUERY_LENGTH
            and len(query.split()) >= self.MIN_QUERY_WORDS
        )

    async def rewrite(self, query: str) -> str:
        """Rewrite query, falling back to the original on any problem.

        Args:
            query: User query.

        Returns:
            Rewritten query or the original.
        """
        if not self.should_rewrite(query) or self._llm is None:
            return query

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": USER_PROMPT.format(query=query)},
        ]

        try:
            response = await self._llm.complete(messages)
        except Exception as e:
            logger.warning(f"Query rewrite failed, using original: {e}")
            return query

        cleaned = self.clean(response)
        if not cleaned or not (
            self.MIN_REWRITE_LENGTH <= len(cleaned) <= self.MAX_REWRITE_LENGTH
        ):
            logger.info(f"Discarded rewrite of '{query[:50]}': {cleaned[:60]!r}")
            return query

        logger.info(f"Rewritten query: '{cleaned}' (from: '{query}')")
        return cleaned

    @staticmethod
    def clean(response: str) -> str:
        """Strip quotes, prefixes and trailing punctuation from a rewrite."""
        text = (response or "").strip()
        # Quotes and prefixes can nest
        for _ in range(2):
            text = _PREFIX_RE.sub("", text).strip()
            text = text.strip(_QUOTES).rstrip(".;:,!").strip()
        return text
