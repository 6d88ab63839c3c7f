import asyncio
import logging
from pathlib import Path

from ...core.models.document import DocumentRef

logger = logging.getLogger(__name__)


class FileSystemDocumentStore:
    """Notes folder as a document store, with a simple built-in search."""

    EXTENSIONS = {".txt", ".md", ".markdown"}

    def __init__(self, root: str | Path, encoding: str = "utf-8"):
        """Initialize store.

        Args:
            root: Notes folder.
            encoding: File encoding.
        """
        self._root = Path(root)
        self._encoding = encoding

    def _ref(self, file_path: Path) -> DocumentRef:
        relative = file_path.relative_to(self._root).as_posix()
        return DocumentRef(id=relative, name=file_path.stem, path=relative)

    def _list(self, scope: str | None) -> list[DocumentRef]:
        base = self._root / scope.strip("/") if scope else self._root
        if not base.is_dir():
            logger.warning(f"Docs path not found: {base}")
            return []
        refs = []
        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            # skip hidden files and folders (.obsidian, .git)
            if any(part.startswith(".") for part in path.relative_to(self._root).parts):
                continue
            refs.append(self._ref(path))
        return refs

    async def list_documents(self, scope: str | None = None) -> list[DocumentRef]:
        """List every file under the root (or scope folder), recursively."""
        return await asyncio.to_thread(self._list, scope)

    async def read(self, ref: DocumentRef) -> str:
        """Read document text."""
        path = self._root / ref.path
        return await asyncio.to_thread(path.read_text, encoding=self._encoding)

    def _search(self, query: str) -> list[DocumentRef]:
        needle = query.lower().strip()
        if not needle:
            return []

        name_hits, content_hits = [], []
        for ref in self._list(None):
            if Path(ref.path).suffix.lower() not in self.EXTENSIONS:
                continue
            if needle in ref.name.lower():
                name_hits.append(ref)
                continue
            try:
                text = (self._root / ref.path).read_text(encoding=self._encoding)
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Search skipped {ref.path}: {e}")
                continue
            if needle in text.lower():
                content_hits.append(ref)

        return name_hits + content_hits

    async def search(self, query: str) -> list[DocumentRef]:
        """Case-insensitive phrase search; filename matches first."""
        return await asyncio.to_thread(self._search, query)
