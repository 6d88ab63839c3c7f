"""LLM protocol for dependency injection."""
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class LLMProtocol(Protocol):
    """Protocol for chat completion client."""

    async def complete(
        self,
        prompt: str | list[dict],
        max_tokens: int | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> str:
        """Run one chat completion.

        Args:
            prompt: Single user prompt or list of role/content messages.
            max_tokens: Override response token limit.
            on_chunk: Streaming callback, called once per text delta.

        Returns:
            Full response text.

        Raises:
            ProviderError: The provider failed.
        """
        ...
