"""Embedder protocol for dependency injection."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Protocol for embedding service."""

    async def embed(self, text: str) -> list[float]:
        """Encode text to an embedding vector.

        Args:
            text: Text to encode.

        Returns:
            Embedding vector.

        Raises:
            EmptyInputError: Text is empty or whitespace.
            ProviderError: The provider failed or returned no vector.
        """
        ...
