"""Stream relay between the chat API and the text-generation backend.

A relay request runs through::

    RESOLVING -> STREAMING -> FINALIZING -> DONE
        |            |
        +------------+--> ERRORED

``open()`` resolves (or creates) the conversation and persists the user
turn before any generation starts, so the user's message survives a failed
reply. ``stream()`` relays backend chunks one by one and writes the
assistant turn only after the backend finished cleanly; a backend error or
a closed/cancelled stream leaves no partial assistant turn behind.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional, Protocol

from chatrelay.memory.base import ConversationStore
from chatrelay.models.conversations import TurnRole, placeholder_title
from chatrelay.relay.tasks import BackgroundTaskRegistry

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    def stream(
        self,
        message: str,
        history: list[dict[str, str]],
        *,
        use_web_search: bool = False,
    ) -> AsyncIterator[str]: ...

    async def generate_title(self, message: str) -> str: ...


class RelayState(str, Enum):
    RESOLVING = "resolving"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


class EmptyMessageError(ValueError):
    """The user message was empty or whitespace only."""


class ConversationAccessError(PermissionError):
    """The conversation belongs to a different owner."""


@dataclass
class RelayTurn:
    """Per-request relay state."""

    conversation_id: str
    is_new_chat: bool
    message: str
    history: list[dict[str, str]]
    use_web_search: bool = False
    state: RelayState = RelayState.RESOLVING
    chunks: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class StreamRelay:
    """Relays one user message to the generator and persists the exchange."""

    def __init__(
        self,
        store: ConversationStore,
        generator: TextGenerator,
        tasks: BackgroundTaskRegistry,
    ) -> None:
        self._store = store
        self._generator = generator
        self._tasks = tasks

    async def open(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        *,
        use_web_search: bool = False,
        owner: Optional[str] = None,
    ) -> RelayTurn:
        """Resolve or create the conversation and persist the user turn.

        An unknown ``conversation_id`` starts a new conversation. A newly
        created conversation gets its title generated in the background.

        Raises:
            EmptyMessageError: ``message`` is blank; nothing is written.
            ConversationAccessError: the conversation has another owner.
        """
        if not message or not message.strip():
            raise EmptyMessageError("Message must not be empty")

        conversation = None
        if conversation_id:
            conversation = await self._store.get_conversation(conversation_id)

        if conversation is not None:
            if conversation.owner and conversation.owner != owner:
                raise ConversationAccessError(conversation.id)
            history = conversation.history()
            await self._store.append_turn(conversation.id, TurnRole.USER, message)
            turn = RelayTurn(
                conversation_id=conversation.id,
                is_new_chat=False,
                message=message,
                history=history,
                use_web_search=use_web_search,
            )
        else:
            conversation = await self._store.create_conversation(
                message, placeholder_title(message), owner
            )
            turn = RelayTurn(
                conversation_id=conversation.id,
                is_new_chat=True,
                message=message,
                history=[],
                use_web_search=use_web_search,
            )
            self._tasks.spawn(
                self._update_title(conversation.id, message),
                name=f"title-{conversation.id}",
            )

        logger.info(
            "Relay resolved conversation %s (new=%s, history=%d turns)",
            turn.conversation_id,
            turn.is_new_chat,
            len(turn.history),
        )
        return turn

    async def stream(self, turn: RelayTurn) -> AsyncIterator[str]:
        """Yield backend chunks in order, then persist the assistant turn."""
        turn.state = RelayState.STREAMING
        try:
            async for chunk in self._generator.stream(
                turn.message, turn.history, use_web_search=turn.use_web_search
            ):
                turn.chunks.append(chunk)
                yield chunk
        except (asyncio.CancelledError, GeneratorExit):
            turn.state = RelayState.ERRORED
            logger.info(
                "Stream for conversation %s closed early after %d chunks",
                turn.conversation_id,
                len(turn.chunks),
            )
            raise
        except Exception:
            turn.state = RelayState.ERRORED
            logger.exception(
                "Generation failed mid-stream for conversation %s",
                turn.conversation_id,
            )
            raise

        turn.state = RelayState.FINALIZING
        try:
            await self._store.append_turn(
                turn.conversation_id, TurnRole.ASSISTANT, turn.text
            )
        except Exception:
            turn.state = RelayState.ERRORED
            logger.exception(
                "Failed to persist assistant turn for conversation %s",
                turn.conversation_id,
            )
            raise
        turn.state = RelayState.DONE
        logger.info(
            "Persisted assistant turn for conversation %s (%d chars)",
            turn.conversation_id,
            len(turn.text),
        )

    async def _update_title(self, conversation_id: str, message: str) -> None:
        title = await self._generator.generate_title(message)
        await self._store.update_title(conversation_id, title)
        logger.info("Conversation %s titled %r", conversation_id, title)
