import logging
from typing import Callable

from openai import AsyncOpenAI, OpenAIError

from ...core.errors import ProviderError

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """Chat completion client for OpenAI-compatible APIs (OpenAI, Ollama)."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        model: str = "qwen2.5:7b",
        api_key: str = "ollama",
        max_tokens: int = 1024,
        temperature: float = 0.1,
        timeout: float = 120.0,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize chat client.

        Args:
            base_url: API URL.
            model: Model name.
            api_key: API key (any non-empty value for Ollama).
            max_tokens: Default max response tokens.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
            client: Preconfigured client (tests).
        """
        self._client = client or AsyncOpenAI(
            base_url=base_url, api_key=api_key, timeout=timeout
        )
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def complete(
        self,
        prompt: str | list[dict],
        max_tokens: int | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> str:
        """Run one chat completion.

        Args:
            prompt: User prompt or role/content messages.
            max_tokens: Override max response tokens.
            on_chunk: Streaming callback; enables streaming when set.

        Returns:
            Response text.
        """
        if isinstance(prompt, str):
            messages = [{"role": "user", "content": prompt}]
        else:
            messages = list(prompt)

        try:
            if on_chunk is None:
                response = await self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    max_tokens=max_tokens or self._max_tokens,
                    temperature=self._temperature,
                )
                return response.choices[0].message.content or ""

            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens or self._max_tokens,
                temperature=self._temperature,
                stream=True,
            )

            parts: list[str] = []
            async for chunk in response:
                if not chunk.choices:
                    continue
                token = chunk.choices[0].delta.content
                if token:
                    parts.append(token)
                    on_chunk(token)
            return "".join(parts)

        except OpenAIError as e:
            logger.error(f"[chat] {self._model} request failed: {e}")
            raise ProviderError(f"Chat completion failed: {e}") from e
