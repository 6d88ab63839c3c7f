"""Protocol interfaces for dependency injection."""
from .embedder import EmbedderProtocol
from .llm import LLMProtocol
from .document_store import DocumentStoreProtocol, NativeSearchProtocol

__all__ = [
    "EmbedderProtocol",
    "LLMProtocol",
    "DocumentStoreProtocol",
    "NativeSearchProtocol",
]
