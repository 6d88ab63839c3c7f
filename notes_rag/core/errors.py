"""Error taxonomy for the retrieval pipeline."""


class RAGError(Exception):
    """Base class for pipeline errors."""


class ProviderError(RAGError):
    """Embedding, chat or network provider failure."""


class DimensionMismatch(RAGError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class EmptyInputError(RAGError):
    """Empty or whitespace-only text passed to the embedder."""
