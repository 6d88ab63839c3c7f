"""Conversation models."""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ConversationMessage:
    """Chat message."""
    role: str  # "user" | "assistant" | "system"
    content: str


@dataclass
class Conversation:
    """Append-only transcript of one answer session."""
    messages: list[ConversationMessage] = field(default_factory=list)

    def add(self, role: str, content: str) -> None:
        """Append a message."""
        self.messages.append(ConversationMessage(role=role, content=content))

    def to_list(self) -> list[dict]:
        """Convert to list of dicts for LLM."""
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)
