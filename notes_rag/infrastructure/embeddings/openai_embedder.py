import logging

from openai import AsyncOpenAI, OpenAIError

from ...core.errors import EmptyInputError, ProviderError

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Embeddings from an OpenAI-compatible /embeddings endpoint."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        model: str = "text-embedding-3-small",
        api_key: str = "",
        dimensions: int | None = None,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize embedder.

        Args:
            base_url: API URL.
            model: Embedding model name.
            api_key: API key.
            dimensions: Requested vector size, if the model supports it.
            timeout: Request timeout in seconds.
            client: Preconfigured client (tests).
        """
        self._client = client or AsyncOpenAI(
            base_url=base_url, api_key=api_key or "none", timeout=timeout
        )
        self._model = model
        self._dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed text.

        Raises:
            EmptyInputError: Text is empty or whitespace.
            ProviderError: Request failed or returned no embedding.
        """
        if not text or not text.strip():
            raise EmptyInputError("Cannot embed empty text")

        kwargs = {"model": self._model, "input": text}
        if self._dimensions:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)
        except OpenAIError as e:
            logger.error(f"[embed] {self._model} request failed: {e}")
            raise ProviderError(f"Embedding request failed: {e}") from e

        if not response.data or not response.data[0].embedding:
            raise ProviderError(f"Invalid embedding response from {self._model}")

        return list(response.data[0].embedding)
