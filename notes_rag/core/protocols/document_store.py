"""Document store protocols for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.document import DocumentRef


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """Protocol for the host document store."""

    async def list_documents(self, scope: str | None = None) -> list[DocumentRef]:
        """List documents, optionally limited to a folder scope.

        Args:
            scope: Folder path prefix relative to the store root.

        Returns:
            Document references, recursively.
        """
        ...

    async def read(self, ref: DocumentRef) -> str:
        """Read full document content."""
        ...


@runtime_checkable
class NativeSearchProtocol(Protocol):
    """Protocol for the host's built-in search (optional)."""

    async def search(self, query: str) -> list[DocumentRef]:
        """Return documents matching the query, best first."""
        ...
