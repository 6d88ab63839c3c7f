import asyncio
import logging
from functools import cached_property

from sentence_transformers import SentenceTransformer

from ...core.errors import EmptyInputError, ProviderError

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder:
    def __init__(
        self,
        model_name: str = "intfloat/multilingual-e5-base",
        prefix: str = "",
    ):
        self._model_name = model_name
        self._prefix = prefix

    @cached_property
    def model(self) -> SentenceTransformer:
        logger.info(f"Loading embedding model: {self._model_name}")
        return SentenceTransformer(self._model_name)

    def warmup(self) -> None:
        _ = self.model
        logger.info("Embedding model warmed up")

    def encode(self, text: str) -> list[float]:
        return self.model.encode(f"{self._prefix}{text}", convert_to_numpy=True).tolist()

    async def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmptyInputError("Cannot embed empty text")
        try:
            return await asyncio.to_thread(self.encode, text)
        except Exception as e:
            raise ProviderError(f"Local embedding failed: {e}") from e
