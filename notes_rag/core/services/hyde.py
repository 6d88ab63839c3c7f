"""HyDE - hypothetical document embeddings."""

import logging
from typing import Optional

from ..models.document import HydeResult
from ..protocols.llm import LLMProtocol
from ..strategies.retrieval import VectorSearchStrategy

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Generate a detailed, factual passage that directly answers the user's "
    "question. Write as if you're a knowledgeable expert providing an ideal "
    "answer based on verified information. Include specific details, "
    "examples, and explanations. DO NOT include phrases like \"As an AI\" or "
    "\"According to my knowledge\". Write in a natural, informative style."
)


class HyDEGenerator:
    """Search with a model-written answer instead of the question."""

    MIN_DOC_LENGTH = 50

    def __init__(
        self,
        llm: LLMProtocol | None,
        vector_search: VectorSearchStrategy | None,
        max_tokens: int = 512,
    ):
        """Initialize generator.

        Args:
            llm: LLM client.
            vector_search: Vector strategy used with the hypothetical text.
            max_tokens: Length limit for the hypothetical passage.
        """
        self._llm = llm
        self._vector_search = vector_search
        self._max_tokens = max_tokens

    async def generate_hypothetical(
        self, query: str, limit: int = 5, scope: Optional[str] = None
    ) -> HydeResult:
        """Generate a hypothetical answer and search with it.

        Args:
            query: User (or rewritten) query.
            limit: Maximum number of results.
            scope: Folder to search in.

        Returns:
            Hypothetical passage and its vector hits; empty on failure.
        """
        if self._llm is None or self._vector_search is None:
            logger.info("HyDE requires LLM and vector search, skipping")
            return HydeResult()

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": query},
        ]

        try:
            hypothetical_doc = (
                await self._llm.complete(messages, max_tokens=self._max_tokens)
            ).strip()
        except Exception as e:
            logger.warning(f"HyDE generation failed: {e}")
            return HydeResult()

        if len(hypothetical_doc) < self.MIN_DOC_LENGTH:
            logger.info("HyDE passage too short, skipping")
            return HydeResult()

        try:
            results = await self._vector_search.search(
                hypothetical_doc, limit, scope=scope
            )
        except Exception as e:
            logger.warning(f"HyDE retrieval failed: {e}")
            return HydeResult(hypothetical_doc=hypothetical_doc)

        logger.info(f"HyDE retrieval returned {len(results)} results")
        return HydeResult(hypothetical_doc=hypothetical_doc, results=results)
