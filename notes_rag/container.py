import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_flags.add(interface)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


container = Container()


def build_embedder(settings: Settings):
    """Create the embedding provider selected in settings."""
    if settings.embedding_provider == "openai":
        from .infrastructure.embeddings.openai_embedder import OpenAIEmbedder

        return OpenAIEmbedder(
            base_url=settings.embedding_base_url,
            model=settings.embedding_model,
            api_key=settings.embedding_api_key,
            dimensions=settings.embedding_dimensions,
            timeout=settings.embedding_timeout,
        )

    if settings.embedding_provider == "sentence_transformer":
        from .infrastructure.embeddings.sentence_transformer import (
            SentenceTransformerEmbedder,
        )

        return SentenceTransformerEmbedder(
            settings.embedding_model, prefix=settings.embedding_prefix
        )

    raise ValueError(f"Unknown embedding provider: {settings.embedding_provider}")


def configure_container(settings: Settings, target: Container | None = None) -> Container:
    """Configure container with all dependencies.

    Args:
        settings: Application settings.
        target: Container to configure; defaults to the module container.

    Returns:
        Configured container.
    """
    from .core.protocols.document_store import DocumentStoreProtocol
    from .core.protocols.embedder import EmbedderProtocol
    from .core.protocols.llm import LLMProtocol
    from .core.services.answer_service import AnswerSynthesizer
    from .core.services.chunker import SemanticChunker
    from .core.services.embedding_cache import EmbeddingCache, MinIntervalLimiter
    from .core.services.hyde import HyDEGenerator
    from .core.services.query_optimizer import QueryOptimizer
    from .core.services.reranker import MMRReranker
    from .core.services.retriever import Retriever
    from .core.strategies.retrieval import (
        DocumentCatalog,
        HostNativeSearchStrategy,
        LexicalSearchStrategy,
        VectorSearchStrategy,
    )
    from .infrastructure.document_stores.filesystem import FileSystemDocumentStore
    from .infrastructure.llm.openai_client import OpenAIChatClient

    c = target if target is not None else container

    c.register(
        DocumentStoreProtocol,
        lambda: FileSystemDocumentStore(settings.docs_path),
        singleton=True,
    )

    c.register(EmbedderProtocol, lambda: build_embedder(settings), singleton=True)

    c.register(
        LLMProtocol,
        lambda: OpenAIChatClient(
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        ),
        singleton=True,
    )

    c.register(
        EmbeddingCache,
        lambda: EmbeddingCache(
            embedder=c.resolve(EmbedderProtocol),
            ttl=settings.embedding_cache_ttl,
            limiter=MinIntervalLimiter(settings.embedding_min_interval),
            timeout=settings.embedding_timeout,
        ),
        singleton=True,
    )

    c.register(
        DocumentCatalog,
        lambda: DocumentCatalog(
            store=c.resolve(DocumentStoreProtocol),
            scope=settings.docs_scope,
            extensions=tuple(settings.docs_extensions),
        ),
        singleton=True,
    )

    c.register(
        VectorSearchStrategy,
        lambda: VectorSearchStrategy(
            cache=c.resolve(EmbeddingCache),
            catalog=c.resolve(DocumentCatalog),
            threshold=settings.rag_vector_threshold,
            snippet_length=settings.rag_snippet_length,
            concurrency=settings.embedding_concurrency,
        ),
        singleton=True,
    )

    def make_retriever() -> Retriever:
        catalog = c.resolve(DocumentCatalog)
        store = c.resolve(DocumentStoreProtocol)
        native = store if settings.native_search_enabled else None
        return Retriever(
            strategies=[
                c.resolve(VectorSearchStrategy),
                HostNativeSearchStrategy(
                    native_search=native,
                    catalog=catalog,
                    snippet_length=settings.rag_snippet_length,
                ),
                LexicalSearchStrategy(
                    catalog=catalog,
                    threshold=settings.rag_lexical_threshold,
                    cjk_threshold=settings.rag_lexical_threshold_cjk,
                    snippet_length=settings.rag_snippet_length,
                ),
            ],
            default_limit=settings.rag_retrieve_k,
        )

    c.register(Retriever, make_retriever, singleton=True)

    c.register(
        AnswerSynthesizer,
        lambda: AnswerSynthesizer(
            llm=c.resolve(LLMProtocol),
            retriever=c.resolve(Retriever),
            query_optimizer=QueryOptimizer(c.resolve(LLMProtocol)),
            hyde=HyDEGenerator(
                llm=c.resolve(LLMProtocol),
                vector_search=c.resolve(VectorSearchStrategy),
                max_tokens=settings.rag_hyde_max_tokens,
            ),
            reranker=MMRReranker(),
            chunker=SemanticChunker(settings.chunk_size),
            document_store=c.resolve(DocumentStoreProtocol),
            limit=settings.rag_top_k,
            mmr_lambda=settings.rag_mmr_lambda,
            chunks_per_document=settings.chunks_per_document,
            max_rounds=settings.reflection_max_rounds,
            follow_up_limit=settings.reflection_follow_up_limit,
            follow_up_results=settings.reflection_follow_up_results,
        ),
        singleton=True,
    )

    logger.info("Container configured")
    return c
