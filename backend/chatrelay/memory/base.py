"""Conversation store interface and the in-memory implementation.

Conversations are append-only threads: turns are never edited or removed
individually, only the title changes and whole conversations are deleted.
"""

from __future__ import annotations

import abc
import logging
from typing import Optional

from chatrelay.models.conversations import (
    Conversation,
    ConversationSummary,
    Turn,
    TurnRole,
    utcnow,
)

logger = logging.getLogger(__name__)


class ConversationNotFoundError(LookupError):
    """Raised when appending to a conversation that does not exist."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


def summarize(conversation: Conversation) -> ConversationSummary:
    return ConversationSummary(
        id=conversation.id,
        title=conversation.title,
        owner=conversation.owner,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        preview=conversation.turns[0].content if conversation.turns else None,
    )


class ConversationStore(abc.ABC):
    """Persistence for conversations and their turns."""

    async def initialize(self) -> None:
        """Connect to the backing service. Called once at startup."""

    async def close(self) -> None:
        """Release connections. Called once at shutdown."""

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise if the store is unreachable."""

    @abc.abstractmethod
    async def create_conversation(
        self, content: str, title: str, owner: Optional[str] = None
    ) -> Conversation:
        """Create a conversation seeded with a single user turn."""

    @abc.abstractmethod
    async def append_turn(
        self, conversation_id: str, role: TurnRole, content: str
    ) -> Turn:
        """Append a turn and bump the conversation's ``updated_at``."""

    @abc.abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Return the conversation with its turns in chronological order."""

    @abc.abstractmethod
    async def list_conversations(
        self, owner: str, limit: int = 50
    ) -> list[ConversationSummary]:
        """Return the owner's conversations, most recently updated first."""

    @abc.abstractmethod
    async def search_conversations(
        self, owner: str, query: str, limit: int = 20
    ) -> list[ConversationSummary]:
        """Case-insensitive substring match on title or any turn content."""

    @abc.abstractmethod
    async def update_title(
        self, conversation_id: str, title: str
    ) -> Optional[Conversation]:
        """Replace the title. Returns ``None`` for unknown ids."""

    @abc.abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and all of its turns."""


class InMemoryConversationStore(ConversationStore):
    """Dict-backed store for development and tests.

    Returned objects are deep copies, so callers can never mutate stored
    turns in place.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}

    async def ping(self) -> None:
        return None

    async def create_conversation(
        self, content: str, title: str, owner: Optional[str] = None
    ) -> Conversation:
        conversation = Conversation(title=title, owner=owner)
        conversation.turns.append(
            Turn(conversation_id=conversation.id, role=TurnRole.USER, content=content)
        )
        self._conversations[conversation.id] = conversation
        logger.debug("Created conversation %s", conversation.id)
        return conversation.model_copy(deep=True)

    async def append_turn(
        self, conversation_id: str, role: TurnRole, content: str
    ) -> Turn:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        turn = Turn(conversation_id=conversation_id, role=role, content=content)
        conversation.turns.append(turn)
        conversation.updated_at = turn.created_at
        return turn

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def list_conversations(
        self, owner: str, limit: int = 50
    ) -> list[ConversationSummary]:
        owned = [c for c in self._conversations.values() if c.owner == owner]
        return [summarize(c) for c in self._by_recency(owned)[:limit]]

    async def search_conversations(
        self, owner: str, query: str, limit: int = 20
    ) -> list[ConversationSummary]:
        needle = query.lower()
        matches = [
            c
            for c in self._conversations.values()
            if c.owner == owner
            and (
                needle in c.title.lower()
                or any(needle in t.content.lower() for t in c.turns)
            )
        ]
        return [summarize(c) for c in self._by_recency(matches)[:limit]]

    async def update_title(
        self, conversation_id: str, title: str
    ) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        conversation.title = title
        conversation.updated_at = utcnow()
        return conversation.model_copy(deep=True)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    @staticmethod
    def _by_recency(conversations: list[Conversation]) -> list[Conversation]:
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)
