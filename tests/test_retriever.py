import asyncio

import pytest

from notes_rag.core.errors import DimensionMismatch, ProviderError
from notes_rag.core.models.document import (
    FILENAME_MATCH_SIMILARITY,
    HOST_NATIVE_SIMILARITY,
    ResultOrigin,
    SearchResult,
)
from notes_rag.core.services.embedding_cache import EmbeddingCache
from notes_rag.core.services.retriever import Retriever
from notes_rag.core.strategies.retrieval import (
    DocumentCatalog,
    HostNativeSearchStrategy,
    LexicalSearchStrategy,
    RetrievalStrategy,
    VectorSearchStrategy,
)
from conftest import FakeEmbedder, FakeStore, make_ref

QUERY = "When was the treaty signed?"


def build_retriever(store, embedder, native=False):
    catalog = DocumentCatalog(store)
    cache = EmbeddingCache(embedder)
    return Retriever(
        strategies=[
            VectorSearchStrategy(cache, catalog),
            HostNativeSearchStrategy(store if native else None, catalog),
            LexicalSearchStrategy(catalog),
        ]
    )


class StaticStrategy(RetrievalStrategy):
    def __init__(self, name, results=None, error=None):
        self.name = name
        self._results = results or []
        self._error = error
        self.calls = 0

    async def search(self, query, limit, scope=None):
        self.calls += 1
        self.scope = scope
        if self._error is not None:
            raise self._error
        return list(self._results)


def result(path, similarity):
    return SearchResult(document=make_ref(path), similarity=similarity, content=path)


class TestDocumentCatalog:

    @pytest.mark.asyncio
    async def test_filters_extensions(self):
        store = FakeStore({"a.md": "x", "b.txt": "y", "c.pdf": "z", "d.MARKDOWN": "w"})
        refs = await DocumentCatalog(store).candidates()
        assert sorted(r.path for r in refs) == ["a.md", "b.txt", "d.MARKDOWN"]

    @pytest.mark.asyncio
    async def test_filters_scope(self):
        store = FakeStore({"work/a.md": "x", "workshop/b.md": "y", "home/c.md": "z"})
        refs = await DocumentCatalog(store, scope="/work/").candidates()
        assert [r.path for r in refs] == ["work/a.md"]

    @pytest.mark.asyncio
    async def test_call_scope_overrides_configured(self):
        store = FakeStore({"work/a.md": "x", "home/c.md": "z"})
        catalog = DocumentCatalog(store, scope="work")

        assert [r.path for r in await catalog.candidates("home")] == ["home/c.md"]
        assert not catalog.accepts(make_ref("work/a.md"), scope="home")
        assert catalog.accepts(make_ref("work/a.md"))


class TestVectorSearch:

    @pytest.mark.asyncio
    async def test_finds_treaty(self, treaty_store, cache, catalog):
        strategy = VectorSearchStrategy(cache, catalog)
        results = await strategy.search(QUERY, 5)

        assert [r.document.path for r in results] == ["history/treaty.md"]
        assert results[0].origin is ResultOrigin.VECTOR
        assert results[0].similarity > 0.5
        assert "1955" in results[0].content

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self, cache, catalog):
        strategy = VectorSearchStrategy(cache, catalog, threshold=1.0)
        assert await strategy.search(QUERY, 5) == []

    @pytest.mark.asyncio
    async def test_reuses_cached_embeddings(self, embedder, cache, catalog):
        strategy = VectorSearchStrategy(cache, catalog)
        await strategy.search(QUERY, 5)
        calls = len(embedder.calls)
        await strategy.search(QUERY, 5)
        assert len(embedder.calls) == calls

    @pytest.mark.asyncio
    async def test_unreadable_document_skipped(self, embedder):
        store = FakeStore(
            {"ok.md": "The treaty was signed.", "broken.md": "treaty"},
            failing={"broken.md"},
        )
        strategy = VectorSearchStrategy(EmbeddingCache(embedder), DocumentCatalog(store))
        results = await strategy.search("treaty signed", 5)
        assert [r.document.path for r in results] == ["ok.md"]

    @pytest.mark.asyncio
    async def test_dimension_mismatch_propagates(self, catalog):
        class ShiftingEmbedder:
            def __init__(self):
                self.size = 3

            async def embed(self, text):
                self.size += 1
                return [1.0] * self.size

        strategy = VectorSearchStrategy(EmbeddingCache(ShiftingEmbedder()), catalog)
        with pytest.raises(DimensionMismatch):
            await strategy.search(QUERY, 5)

    @pytest.mark.asyncio
    async def test_dimension_mismatch_cancels_other_documents(self):
        log = []

        class MixedEmbedder:
            async def embed(self, text):
                log.append(text)
                if text == "slow doc":
                    await asyncio.sleep(0.2)
                    log.append("slow finished")
                return [1.0, 0.0] if text == "bad doc" else [1.0, 0.0, 0.0]

        store = FakeStore({"bad.md": "bad doc", "slow.md": "slow doc"})
        strategy = VectorSearchStrategy(
            EmbeddingCache(MixedEmbedder()), DocumentCatalog(store)
        )
        with pytest.raises(DimensionMismatch):
            await strategy.search("query text", 5)

        await asyncio.sleep(0.3)
        assert "slow finished" not in log

    @pytest.mark.asyncio
    async def test_provider_failure_on_query_raises(self, catalog):
        strategy = VectorSearchStrategy(EmbeddingCache(FakeEmbedder(fail=True)), catalog)
        with pytest.raises(ProviderError):
            await strategy.search(QUERY, 5)


class TestHostNativeSearch:

    @pytest.mark.asyncio
    async def test_fixed_similarity(self, treaty_store, catalog):
        strategy = HostNativeSearchStrategy(treaty_store, catalog)
        results = await strategy.search("geneva", 5)

        assert len(results) == 1
        assert results[0].similarity == HOST_NATIVE_SIMILARITY
        assert results[0].origin is ResultOrigin.HOST_NATIVE
        assert results[0].raw_score == 1.0

    @pytest.mark.asyncio
    async def test_disabled_without_native_search(self, catalog):
        strategy = HostNativeSearchStrategy(None, catalog)
        assert await strategy.search("geneva", 5) == []

    @pytest.mark.asyncio
    async def test_hits_outside_catalog_dropped(self):
        store = FakeStore({"notes/a.md": "geneva", "notes/b.pdf": "geneva"})
        strategy = HostNativeSearchStrategy(store, DocumentCatalog(store))
        results = await strategy.search("geneva", 5)
        assert [r.document.path for r in results] == ["notes/a.md"]


class TestLexicalSearch:

    @pytest.mark.asyncio
    async def test_term_overlap(self, catalog):
        results = await LexicalSearchStrategy(catalog).search(QUERY, 5)

        assert [r.document.path for r in results] == ["history/treaty.md"]
        assert results[0].origin is ResultOrigin.LEXICAL
        assert results[0].similarity == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, catalog):
        strategy = LexicalSearchStrategy(catalog, threshold=0.8)
        assert len(await strategy.search(QUERY, 5)) == 1

    @pytest.mark.asyncio
    async def test_cjk_filename_boost(self):
        store = FakeStore({"笔记/条约.md": "内容与此无关", "其他.md": "完全不同"})
        strategy = LexicalSearchStrategy(DocumentCatalog(store))
        results = await strategy.search("条约", 5)

        assert results[0].document.path == "笔记/条约.md"
        assert results[0].similarity == pytest.approx(FILENAME_MATCH_SIMILARITY)

    @pytest.mark.asyncio
    async def test_cjk_exact_match(self):
        store = FakeStore({"a.md": "这个条约在日内瓦签署"})
        results = await LexicalSearchStrategy(DocumentCatalog(store)).search("条约", 5)
        assert results[0].similarity == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_unreadable_document_skipped(self):
        store = FakeStore({"a.md": "treaty", "b.md": "treaty"}, failing={"a.md"})
        results = await LexicalSearchStrategy(DocumentCatalog(store)).search("treaty", 5)
        assert [r.document.path for r in results] == ["b.md"]


class TestRetriever:

    @pytest.mark.asyncio
    async def test_vector_path(self, treaty_store, embedder):
        results = await build_retriever(treaty_store, embedder).retrieve(QUERY)

        assert len(results) == 1
        assert results[0].document.name == "treaty"
        assert results[0].origin is ResultOrigin.VECTOR

    @pytest.mark.asyncio
    async def test_falls_back_to_native_when_embedder_fails(self, treaty_store):
        retriever = build_retriever(treaty_store, FakeEmbedder(fail=True), native=True)
        results = await retriever.retrieve("Geneva")

        assert results[0].origin is ResultOrigin.HOST_NATIVE
        assert results[0].similarity == HOST_NATIVE_SIMILARITY

    @pytest.mark.asyncio
    async def test_falls_back_to_lexical_when_embedder_fails(self, treaty_store):
        retriever = build_retriever(treaty_store, FakeEmbedder(fail=True))
        results = await retriever.retrieve(QUERY)

        assert [r.document.path for r in results] == ["history/treaty.md"]
        assert results[0].origin is ResultOrigin.LEXICAL

    @pytest.mark.asyncio
    async def test_empty_query(self, treaty_store, embedder):
        assert await build_retriever(treaty_store, embedder).retrieve("   ") == []

    @pytest.mark.asyncio
    async def test_no_documents(self, embedder):
        assert await build_retriever(FakeStore({}), embedder).retrieve(QUERY) == []

    @pytest.mark.asyncio
    async def test_first_non_empty_strategy_wins(self):
        first = StaticStrategy("first")
        second = StaticStrategy("second", [result("a.md", 0.2), result("b.md", 0.7)])
        third = StaticStrategy("third", [result("c.md", 0.9)])

        results = await Retriever([first, second, third]).retrieve("query")

        assert [r.document.path for r in results] == ["b.md", "a.md"]
        assert third.calls == 0

    @pytest.mark.asyncio
    async def test_failing_strategy_falls_through(self):
        broken = StaticStrategy("broken", error=RuntimeError("down"))
        backup = StaticStrategy("backup", [result("a.md", 0.3)])

        results = await Retriever([broken, backup]).retrieve("query")
        assert [r.document.path for r in results] == ["a.md"]

    @pytest.mark.asyncio
    async def test_all_failing_returns_empty(self):
        strategies = [StaticStrategy(n, error=ProviderError(n)) for n in ("a", "b")]
        assert await Retriever(strategies).retrieve("query") == []

    @pytest.mark.asyncio
    async def test_limit_applied(self):
        many = StaticStrategy("many", [result(f"{i}.md", i / 10) for i in range(8)])
        results = await Retriever([many], default_limit=3).retrieve("query")
        assert [r.similarity for r in results] == [0.7, 0.6, 0.5]
        assert len(await Retriever([many]).retrieve("query", limit=6)) == 6

    @pytest.mark.asyncio
    async def test_scope_passed_to_strategies(self):
        strategy = StaticStrategy("only", [result("work/a.md", 0.4)])
        await Retriever([strategy]).retrieve("query", scope="work")
        assert strategy.scope == "work"

    @pytest.mark.asyncio
    async def test_scoped_lexical_retrieval(self):
        store = FakeStore({
            "work/treaty.md": "The treaty was signed in 1955.",
            "home/treaty.md": "The treaty was signed in 1955.",
        })
        retriever = build_retriever(store, FakeEmbedder(fail=True))
        results = await retriever.retrieve(QUERY, scope="home")
        assert [r.document.path for r in results] == ["home/treaty.md"]
