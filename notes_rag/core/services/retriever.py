"""Retriever - ordered fallback across retrieval strategies."""

import logging
from typing import Optional

from ..models.document import SearchResult
from ..strategies.retrieval import RetrievalStrategy

logger = logging.getLogger(__name__)


class Retriever:
    """Run strategies in priority order until one returns results."""

    def __init__(self, strategies: list[RetrievalStrategy], default_limit: int = 5):
        """Initialize retriever.

        Args:
            strategies: Strategies, highest priority first.
            default_limit: Result limit when none is given.
        """
        self._strategies = strategies
        self._default_limit = default_limit

    @property
    def strategies(self) -> list[RetrievalStrategy]:
        return list(self._strategies)

    async def retrieve(
        self, query: str, limit: Optional[int] = None, scope: Optional[str] = None
    ) -> list[SearchResult]:
        """Retrieve documents for a query.

        Never raises: a failing strategy falls through to the next one and
        total failure returns an empty list.

        Args:
            query: Search query.
            limit: Maximum number of results.
            scope: Folder to search in; defaults to the configured scope.

        Returns:
            Results sorted by similarity, at most limit.
        """
        limit = limit or self._default_limit
        if not query or not query.strip():
            return []

        for strategy in self._strategies:
            try:
                results = await strategy.search(query, limit, scope=scope)
            except Exception as e:
                logger.error(f"{strategy.name} search failed: {e}")
                continue

            if results:
                results = sorted(results, key=lambda r: r.similarity, reverse=True)
                logger.info(
                    f"Retrieve: {strategy.name} returned {len(results[:limit])} "
                    f"docs for '{query[:50]}'"
                )
                return results[:limit]

            logger.info(f"{strategy.name} search found nothing, falling back")

        logger.info(f"Retrieve: no results for '{query[:50]}'")
        return []
