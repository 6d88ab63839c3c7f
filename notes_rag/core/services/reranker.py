"""Maximal Marginal Relevance reranker."""

import logging

from ..models.document import SearchResult
from ..strategies.scoring import word_jaccard

logger = logging.getLogger(__name__)


def unique_by_document(results: list[SearchResult]) -> list[SearchResult]:
    """Collapse results for the same document, keeping the best one.

    Order of first appearance is kept.
    """
    best: dict[str, SearchResult] = {}
    for result in results:
        key = result.document.id
        if key not in best or result.similarity > best[key].similarity:
            best[key] = result
    return list(best.values())


class MMRReranker:
    """Greedy relevance/diversity trade-off over a candidate set."""

    def rerank(
        self,
        candidates: list[SearchResult],
        query: str,
        lambda_: float = 0.5,
        k: int = 10,
    ) -> list[SearchResult]:
        """Select up to k diverse, relevant results.

        Args:
            candidates: Candidate results.
            query: Query text.
            lambda_: Relevance weight in [0, 1]; 1 means similarity only.
            k: Number of results to return.

        Returns:
            Selected results in selection order.
        """
        candidates = unique_by_document(candidates)
        if len(candidates) <= k:
            return candidates

        ranked = sorted(candidates, key=lambda r: r.similarity, reverse=True)
        selected = [ranked[0]]
        remaining = ranked[1:]

        while len(selected) < k and remaining:
            best_index = -1
            best_score = float("-inf")

            for i, candidate in enumerate(remaining):
                redundancy = max(
                    word_jaccard(candidate.content, s.content) for s in selected
                )
                score = lambda_ * candidate.similarity - (1 - lambda_) * redundancy
                if score > best_score:
                    best_score = score
                    best_index = i

            if best_index < 0:
                break

            selected.append(remaining.pop(best_index))

        logger.debug(
            f"MMR: {len(candidates)} -> {len(selected)} (lambda={lambda_})"
        )
        return selected
