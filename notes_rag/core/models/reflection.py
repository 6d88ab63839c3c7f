"""Reflection loop state."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .chat import Conversation
from .document import SearchResult


class ReflectionPhase(Enum):
    """Answer synthesizer states."""
    INIT = "init"
    GENERATING = "generating"
    REFLECTING = "reflecting"
    RETRIEVING_MORE = "retrieving_more"
    DONE = "done"


@dataclass
class ReflectionState:
    """Mutable state carried across reflection rounds."""
    query: str
    optimized_query: str = ""
    current_answer: str = ""
    round: int = 0
    context: str = ""
    sources: list[SearchResult] = field(default_factory=list)
    critique: str = ""
    follow_up_queries: list[str] = field(default_factory=list)
    new_information: str = ""
    initial_context: str = ""
    failed: bool = False
    scope: Optional[str] = None
    on_progress: Optional[Callable[[str, int], None]] = field(default=None, repr=False)
    phase: ReflectionPhase = ReflectionPhase.INIT
    conversation: Conversation = field(default_factory=Conversation)

    @property
    def has_answer(self) -> bool:
        return bool(self.current_answer.strip())


@dataclass
class AnswerResult:
    """Formatted answer plus the data it was built from."""
    text: str
    answer: str = ""
    sources: list[SearchResult] = field(default_factory=list)
    reflection_rounds: int = 0
