"""Conversation, turn and request/response models for the chat API."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

PLACEHOLDER_TITLE_LENGTH = 50

# Out-of-band metadata on the streamed chat response
CHAT_ID_HEADER = "X-Chat-Id"
NEW_CHAT_HEADER = "X-Is-New-Chat"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def placeholder_title(message: str) -> str:
    """Title shown until the summarised title arrives."""
    if len(message) > PLACEHOLDER_TITLE_LENGTH:
        return message[:PLACEHOLDER_TITLE_LENGTH] + "..."
    return message


class TurnRole(str, Enum):
    """Conversation participant."""

    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One persisted message in a conversation. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    conversation_id: str
    role: TurnRole
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class Conversation(BaseModel):
    """A persisted, ordered thread of turns."""

    id: str = Field(default_factory=new_id)
    title: str
    owner: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    turns: list[Turn] = Field(default_factory=list)

    def history(self) -> list[dict[str, str]]:
        """Role-tagged turns in chronological order."""
        return [{"role": t.role.value, "content": t.content} for t in self.turns]


class ConversationSummary(BaseModel):
    """Row for list and search views."""

    id: str
    title: str
    owner: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    preview: Optional[str] = None


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    use_web_search: bool = Field(default=False, alias="useWebSearch")


class TitleUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class TranscriptionResponse(BaseModel):
    text: str


class SpeechRequest(BaseModel):
    text: str = ""
    voice: Optional[str] = None


class SpeechResponse(BaseModel):
    """Synthesised audio, base64 encoded."""

    model_config = ConfigDict(populate_by_name=True)

    audio_content: str = Field(alias="audioContent")
    mime_type: str = Field(alias="mimeType")
