"""Retrieval strategies: vector, host-native and lexical search."""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Optional

from ..errors import DimensionMismatch
from ..models.document import (
    FILENAME_MATCH_SIMILARITY,
    DocumentRef,
    ResultOrigin,
    SearchResult,
)
from ..protocols.document_store import DocumentStoreProtocol, NativeSearchProtocol
from .scoring import cosine, is_cjk, lexical_similarity
from .snippets import extract_snippet

if TYPE_CHECKING:
    from ..services.embedding_cache import EmbeddingCache

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".md", ".markdown", ".txt")


class DocumentCatalog:
    """Candidate documents for retrieval.

    The store lists everything; scope and extension filtering happen here.
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        scope: Optional[str] = None,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
    ):
        """Initialize catalog.

        Args:
            store: Document store.
            scope: Folder prefix to restrict retrieval to.
            extensions: Accepted file extensions.
        """
        self._store = store
        self._scope = scope.strip("/") if scope else None
        self._extensions = tuple(e.lower() for e in extensions)

    def _resolve_scope(self, scope: Optional[str]) -> Optional[str]:
        if scope is None:
            return self._scope
        return scope.strip("/") or None

    def accepts(self, ref: DocumentRef, scope: Optional[str] = None) -> bool:
        """True if ref has an accepted extension and lies inside the scope.

        A per-call scope replaces the configured one.
        """
        return self._matches(ref, self._resolve_scope(scope))

    def _matches(self, ref: DocumentRef, scope: Optional[str]) -> bool:
        path = ref.path.replace("\\", "/").lstrip("/")
        if PurePosixPath(path).suffix.lower() not in self._extensions:
            return False
        if scope and not (path == scope or path.startswith(scope + "/")):
            return False
        return True

    async def candidates(self, scope: Optional[str] = None) -> list[DocumentRef]:
        scope = self._resolve_scope(scope)
        refs = await self._store.list_documents(scope)
        return [r for r in refs if self._matches(r, scope)]

    async def read(self, ref: DocumentRef) -> str:
        return await self._store.read(ref)


class RetrievalStrategy(ABC):
    """Base class for retrieval strategies."""

    name = "base"

    @abstractmethod
    async def search(
        self, query: str, limit: int, scope: Optional[str] = None
    ) -> list[SearchResult]:
        """Return results sorted by similarity, at most limit."""
        ...


def _top(results: list[SearchResult], limit: int) -> list[SearchResult]:
    return sorted(results, key=lambda r: r.similarity, reverse=True)[:limit]


class VectorSearchStrategy(RetrievalStrategy):
    """Embedding similarity between the query and whole documents."""

    name = "vector"

    def __init__(
        self,
        cache: "EmbeddingCache",
        catalog: DocumentCatalog,
        threshold: float = 0.5,
        snippet_length: int = 1000,
        concurrency: int = 4,
    ):
        """Initialize strategy.

        Args:
            cache: Embedding cache.
            catalog: Candidate documents.
            threshold: Minimum cosine similarity (exclusive).
            snippet_length: Snippet length in characters.
            concurrency: Documents embedded at once.
        """
        self._cache = cache
        self._catalog = catalog
        self._threshold = threshold
        self._snippet_length = snippet_length
        self._concurrency = max(1, concurrency)

    async def search(
        self, query: str, limit: int, scope: Optional[str] = None
    ) -> list[SearchResult]:
        query_vector = await self._cache.get(query)
        documents = await self._catalog.candidates(scope)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def score(ref: DocumentRef) -> Optional[SearchResult]:
            async with semaphore:
                try:
                    content = await self._catalog.read(ref)
                    if not content.strip():
                        return None
                    vector = await self._cache.get(content)
                    similarity = cosine(query_vector, vector)
                except DimensionMismatch:
                    raise
                except Exception as e:
                    logger.warning(f"Vector search skipped {ref.path}: {e}")
                    return None

            if similarity <= self._threshold:
                return None

            return SearchResult.from_origin(
                document=ref,
                content=extract_snippet(content, query, self._snippet_length),
                origin=ResultOrigin.VECTOR,
                raw_score=similarity,
            )

        tasks = [asyncio.ensure_future(score(ref)) for ref in documents]
        try:
            scored = await asyncio.gather(*tasks)
        finally:
            # a mismatch aborts the whole search; stop the remaining documents
            for task in tasks:
                if not task.done():
                    task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
        results = [r for r in scored if r is not None]

        logger.info(
            f"Vector search: {len(results)}/{len(documents)} docs above "
            f"{self._threshold} for '{query[:50]}'"
        )
        return _top(results, limit)


class HostNativeSearchStrategy(RetrievalStrategy):
    """Delegate to the document store's own search, if there is one."""

    name = "host_native"

    def __init__(
        self,
        native_search: Optional[NativeSearchProtocol],
        catalog: DocumentCatalog,
        snippet_length: int = 1000,
    ):
        """Initialize strategy.

        Args:
            native_search: Host search; None disables the strategy.
            catalog: Candidate documents.
            snippet_length: Snippet length in characters.
        """
        self._native_search = native_search
        self._catalog = catalog
        self._snippet_length = snippet_length

    async def search(
        self, query: str, limit: int, scope: Optional[str] = None
    ) -> list[SearchResult]:
        if self._native_search is None:
            return []

        hits = await self._native_search.search(query)
        refs = [r for r in hits if self._catalog.accepts(r, scope)]

        results = []
        for rank, ref in enumerate(refs[:limit]):
            try:
                content = await self._catalog.read(ref)
            except Exception as e:
                logger.warning(f"Native search skipped {ref.path}: {e}")
                continue

            results.append(
                SearchResult.from_origin(
                    document=ref,
                    content=extract_snippet(content, query, self._snippet_length),
                    origin=ResultOrigin.HOST_NATIVE,
                    raw_score=1.0 / (rank + 1),
                )
            )

        logger.info(f"Native search: {len(results)} docs for '{query[:50]}'")
        return results


class LexicalSearchStrategy(RetrievalStrategy):
    """Term overlap between the query and each document."""

    name = "lexical"

    def __init__(
        self,
        catalog: DocumentCatalog,
        threshold: float = 0.1,
        cjk_threshold: float = 0.05,
        snippet_length: int = 1000,
    ):
        """Initialize strategy.

        Args:
            catalog: Candidate documents.
            threshold: Minimum score for non-CJK queries.
            cjk_threshold: Minimum score for CJK queries.
            snippet_length: Snippet length in characters.
        """
        self._catalog = catalog
        self._threshold = threshold
        self._cjk_threshold = cjk_threshold
        self._snippet_length = snippet_length

    async def search(
        self, query: str, limit: int, scope: Optional[str] = None
    ) -> list[SearchResult]:
        cjk = is_cjk(query)
        threshold = self._cjk_threshold if cjk else self._threshold
        query_lower = query.strip().lower()

        documents = await self._catalog.candidates(scope)
        results = []
        for ref in documents:
            try:
                content = await self._catalog.read(ref)
            except Exception as e:
                logger.warning(f"Lexical search skipped {ref.path}: {e}")
                continue

            score = lexical_similarity(query, content)
            # TODO: recalibrate the CJK filename boost against labelled queries
            if cjk and query_lower in ref.name.lower():
                score = max(score, FILENAME_MATCH_SIMILARITY)

            if score < threshold:
                continue

            results.append(
                SearchResult.from_origin(
                    document=ref,
                    content=extract_snippet(content, query, self._snippet_length),
                    origin=ResultOrigin.LEXICAL,
                    raw_score=score,
                )
            )

        logger.info(
            f"Lexical search: {len(results)}/{len(documents)} docs "
            f"(threshold={threshold}) for '{query[:50]}'"
        )
        return _top(results, limit)
