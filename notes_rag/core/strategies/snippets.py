"""Query-aware snippet extraction.

Picks the part of a document most relevant to a query and widens it so the
snippet starts and ends on paragraph or sentence boundaries. A snippet that
would cut a fenced code block in half is extended to include the whole
block.
"""
import re

_FENCE = "```"
_HEADING_RE = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_SENTENCE_END_RE = re.compile(r"[.!?。！？]\s")
_SNAP_WINDOW = 200


def extract_snippet(content: str, query: str, length: int = 1000) -> str:
    """Extract a snippet of about `length` characters relevant to `query`.

    Args:
        content: Full document text.
        query: Query text.
        length: Target snippet length.

    Returns:
        Snippet text; the whole content if it is already short enough.
    """
    if len(content) <= length:
        return content.strip()

    anchor = _find_anchor(content, query)
    window = min(_SNAP_WINDOW, length // 4)

    heading = _preceding_heading(content, anchor)
    if heading is not None and anchor - heading <= length // 2:
        start = heading
    else:
        start = _snap_start(content, max(0, anchor - length // 2), window)

    end = _snap_end(
        content, max(start, anchor) + 1, min(len(content), start + length), window
    )
    start, end = _balance_fences(content, start, end)
    return content[start:end].strip()


def _find_anchor(content: str, query: str) -> int:
    """Offset of the exact query, else of the best matching line."""
    content_lower = content.lower()
    query_lower = query.lower().strip()
    if not query_lower:
        return 0

    index = content_lower.find(query_lower)
    if index != -1:
        return index

    terms = {t.strip(".,;:!?\"'()") for t in query_lower.split()}
    terms = {t for t in terms if len(t) > 2}
    if not terms:
        return 0

    best_offset = 0
    best_score = 0.0
    offset = 0
    for line in content_lower.splitlines(keepends=True):
        score = float(sum(1 for t in terms if t in line))
        if score and _HEADING_RE.match(line):
            score += 0.5
        if score > best_score:
            best_score = score
            best_offset = offset
        offset += len(line)

    return best_offset


def _in_fence(content: str, position: int) -> bool:
    return content.count(_FENCE, 0, position) % 2 == 1


def _preceding_heading(content: str, anchor: int) -> int | None:
    """Start of the last heading line at or before anchor, outside code."""
    heading = None
    for match in _HEADING_RE.finditer(content, 0, anchor + 1):
        if not _in_fence(content, match.start()):
            heading = match.start()
    return heading


def _snap_start(content: str, start: int, window: int = _SNAP_WINDOW) -> int:
    if start == 0:
        return 0

    low = max(0, start - window)

    paragraph = content.rfind("\n\n", low, start)
    if paragraph != -1:
        return paragraph + 2

    sentence_ends = list(_SENTENCE_END_RE.finditer(content, low, start))
    if sentence_ends:
        return sentence_ends[-1].end()

    newline = content.rfind("\n", low, start)
    if newline != -1:
        return newline + 1

    return start


def _snap_end(
    content: str, floor: int, end: int, window: int = _SNAP_WINDOW
) -> int:
    """Pull end back to a boundary, never before floor."""
    if end >= len(content):
        return len(content)

    low = max(floor, end - window)

    paragraph = content.rfind("\n\n", low, end)
    if paragraph != -1:
        return paragraph

    sentence_ends = list(_SENTENCE_END_RE.finditer(content, low, end))
    if sentence_ends:
        return sentence_ends[-1].start() + 1

    newline = content.rfind("\n", low, end)
    if newline != -1:
        return newline

    return end


def _balance_fences(content: str, start: int, end: int) -> tuple[int, int]:
    """Move start/end so no fenced code block is cut."""
    if _in_fence(content, start):
        opening = content.rfind(_FENCE, 0, start)
        start = content.rfind("\n", 0, opening) + 1

    if content.count(_FENCE, start, end) % 2 == 1:
        closing = content.find(_FENCE, end)
        if closing == -1:
            end = len(content)
        else:
            line_end = content.find("\n", closing + len(_FENCE))
            end = len(content) if line_end == -1 else line_end

    return start, end
