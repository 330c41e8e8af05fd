"""Conversation history for the design chat.

This module stores every turn of the conversation, tags the narration turns
the assistant emits about pipeline progress as rhetorical, and formats the
real dialogue for the language-model extractor.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class MessageRole(str, Enum):
    """Role of a turn in the conversation."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationTurn:
    """A single turn in the conversation history.

    Attributes:
        role: Who produced the turn (user or assistant)
        content: The text content of the turn
        stage: Which stage was active when the turn was recorded
        rhetorical: True for narration (progress updates, upload receipts)
            that must not be fed back to the extractor
        timestamp: When the turn was created
        metadata: Optional additional data (e.g., error kind)
    """
    role: MessageRole
    content: str
    stage: Optional[str] = None
    rhetorical: bool = False
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert turn to dictionary format."""
        return {
            "role": self.role.value,
            "content": self.content,
            "stage": self.stage,
            "rhetorical": self.rhetorical,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationTurn":
        """Create turn from dictionary."""
        return cls(
            role=MessageRole(data["role"]),
            content=data["content"],
            stage=data.get("stage"),
            rhetorical=bool(data.get("rhetorical", False)),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
            metadata=data.get("metadata", {}),
        )


class ConversationHistory:
    """Append-only record of the conversation.

    Provides methods for:
    - Adding user and assistant turns with stage tracking
    - Retrieving the real dialogue without rhetorical narration
    - Formatting turns for LLM calls
    - Persisting and loading the transcript

    Example:
        history = ConversationHistory()
        history.add_user_message("A cozy cabin by a lake", stage="vision")
        history.add_assistant_message("Working on it...", stage="generation", rhetorical=True)

        # Only the first turn reaches the extractor
        turns = history.dialogue()
    """

    def __init__(self) -> None:
        self._turns: List[ConversationTurn] = []

    def add_message(
        self,
        role: MessageRole,
        content: str,
        stage: Optional[str] = None,
        rhetorical: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationTurn:
        """Append a new turn to the conversation.

        Args:
            role: Who produced the turn
            content: Turn text
            stage: Current stage key
            rhetorical: Whether the turn is narration
            metadata: Optional extra data

        Returns:
            The created ConversationTurn
        """
        turn = ConversationTurn(
            role=role,
            content=content,
            stage=stage,
            rhetorical=rhetorical,
            metadata=metadata or {},
        )
        self._turns.append(turn)
        return turn

    def add_user_message(self, content: str, stage: Optional[str] = None, rhetorical: bool = False) -> ConversationTurn:
        """Convenience method to add a user turn."""
        return self.add_message(MessageRole.USER, content, stage, rhetorical)

    def add_assistant_message(
        self,
        content: str,
        stage: Optional[str] = None,
        rhetorical: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationTurn:
        """Convenience method to add an assistant turn."""
        return self.add_message(MessageRole.ASSISTANT, content, stage, rhetorical, metadata)

    def get_all(self) -> List[ConversationTurn]:
        """Get all turns in order, narration included."""
        return list(self._turns)

    def dialogue(self, recent_count: Optional[int] = None) -> List[ConversationTurn]:
        """Get the non-rhetorical turns, optionally only the most recent ones."""
        turns = [t for t in self._turns if not t.rhetorical]
        if recent_count and recent_count < len(turns):
            turns = turns[-recent_count:]
        return turns

    def last_assistant_message(self) -> Optional[ConversationTurn]:
        for turn in reversed(self._turns):
            if turn.role == MessageRole.ASSISTANT:
                return turn
        return None

    def to_list(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self._turns]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "ConversationHistory":
        history = cls()
        history._turns = [ConversationTurn.from_dict(t) for t in data]
        return history

    def clear(self) -> None:
        """Drop every turn; only used when the user resets the session."""
        self._turns.clear()

    def save(self, path: Path) -> None:
        """Save the transcript to a JSON file.

        Args:
            path: File path to save to
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump({"messages": self.to_list()}, f, indent=2, default=str)

    def __len__(self) -> int:
        """Return number of turns."""
        return len(self._turns)

    def __bool__(self) -> bool:
        """Return True if there are any turns."""
        return len(self._turns) > 0
