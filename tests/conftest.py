"""Shared fakes for pipeline tests."""
import re
from pathlib import PurePosixPath
from typing import Callable

import pytest

from notes_rag.core.errors import EmptyInputError, ProviderError
from notes_rag.core.models.document import DocumentRef
from notes_rag.core.services.embedding_cache import EmbeddingCache
from notes_rag.core.strategies.retrieval import DocumentCatalog

TREATY_TEXT = "The treaty was signed in 1955 in Geneva."
BANANA_TEXT = "Bananas are rich in potassium and grow well in tropical climates."


def make_ref(path: str) -> DocumentRef:
    return DocumentRef(id=path, name=PurePosixPath(path).stem, path=path)


class FakeStore:
    """In-memory document store with optional native search."""

    def __init__(self, documents: dict[str, str], failing: set[str] | None = None):
        self.documents = documents
        self.failing = failing or set()
        self.read_calls: list[str] = []

    async def list_documents(self, scope=None):
        return [make_ref(p) for p in self.documents]

    async def read(self, ref):
        self.read_calls.append(ref.path)
        if ref.path in self.failing:
            raise OSError(f"cannot read {ref.path}")
        return self.documents[ref.path]

    async def search(self, query):
        needle = query.lower()
        return [make_ref(p) for p, text in self.documents.items() if needle in text.lower()]


class FakeEmbedder:
    """Bag-of-words embedder; every new word gets its own dimension."""

    DIMENSIONS = 512

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[str] = []
        self._vocabulary: dict[str, int] = {}

    async def embed(self, text: str) -> list[float]:
        if not text.strip():
            raise EmptyInputError("empty")
        self.calls.append(text)
        if self.fail:
            raise ProviderError("quota exceeded")
        vector = [0.0] * self.DIMENSIONS
        for word in re.findall(r"\w+", text.lower()):
            index = self._vocabulary.setdefault(word, len(self._vocabulary))
            vector[index % self.DIMENSIONS] += 1.0
        return vector


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedLLM:
    """Chat client answering each prompt type with a scripted reply."""

    def __init__(
        self,
        rewrite: str = "",
        hypothetical: str = "",
        answers: list[str] | None = None,
        critiques: list[str] | None = None,
        fail_on: Callable[[str], bool] | None = None,
    ):
        self.rewrite = rewrite
        self.hypothetical = hypothetical
        self.answers = list(answers or ["The treaty was signed in 1955 [1] [High]."])
        self.critiques = list(critiques or ["No additional information needed."])
        self.fail_on = fail_on
        self.calls: list[tuple[str, list[dict]]] = []

    def _kind(self, messages: list[dict]) -> str:
        system = messages[0]["content"] if messages[0]["role"] == "system" else ""
        last = messages[-1]["content"]
        if system.startswith("You are a search query optimization expert"):
            return "rewrite"
        if system.startswith("Generate a detailed, factual passage"):
            return "hyde"
        if last.startswith("Evaluate your previous answer"):
            return "critique"
        if last.startswith("New information was found"):
            return "improve"
        return "answer"

    async def complete(self, prompt, max_tokens=None, on_chunk=None):
        messages = [{"role": "user", "content": prompt}] if isinstance(prompt, str) else prompt
        kind = self._kind(messages)
        self.calls.append((kind, messages))

        if self.fail_on is not None and self.fail_on(kind):
            raise ProviderError(f"{kind} failed")

        if kind == "rewrite":
            reply = self.rewrite
        elif kind == "hyde":
            reply = self.hypothetical
        elif kind == "critique":
            reply = self.critiques.pop(0) if len(self.critiques) > 1 else self.critiques[0]
        else:
            reply = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]

        if on_chunk is not None:
            for token in reply.split(" "):
                on_chunk(token + " ")
        return reply

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]


@pytest.fixture
def treaty_store():
    return FakeStore({"history/treaty.md": TREATY_TEXT, "food/bananas.md": BANANA_TEXT})


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def cache(embedder):
    return EmbeddingCache(embedder, limiter=None)


@pytest.fixture
def catalog(treaty_store):
    return DocumentCatalog(treaty_store)
