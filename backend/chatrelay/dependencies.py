"""Dependency injection providers for FastAPI."""

from typing import Optional

from fastapi import Depends, Header

from chatrelay.agent.generator import ResponseGenerator
from chatrelay.config import settings
from chatrelay.memory.base import ConversationStore, InMemoryConversationStore
from chatrelay.memory.chat_store import MongoConversationStore
from chatrelay.relay.stream_relay import StreamRelay, TextGenerator
from chatrelay.relay.tasks import BackgroundTaskRegistry
from chatrelay.voice.stt import Transcriber
from chatrelay.voice.tts import TextToSpeech

# Global singleton instances (safe for a single event loop)
_store: ConversationStore | None = None
_generator: ResponseGenerator | None = None
_tasks: BackgroundTaskRegistry | None = None
_transcriber: Transcriber | None = None
_tts: TextToSpeech | None = None


def get_conversation_store() -> ConversationStore:
    """Return the singleton store selected by ``settings.storage_backend``."""
    global _store
    if _store is None:
        if settings.storage_backend == "memory":
            _store = InMemoryConversationStore()
        else:
            _store = MongoConversationStore(
                settings.mongodb_uri, settings.mongodb_database
            )
    return _store


def get_generator() -> ResponseGenerator:
    global _generator
    if _generator is None:
        _generator = ResponseGenerator()
    return _generator


def get_background_tasks() -> BackgroundTaskRegistry:
    global _tasks
    if _tasks is None:
        _tasks = BackgroundTaskRegistry()
    return _tasks


def get_transcriber() -> Transcriber:
    global _transcriber
    if _transcriber is None:
        _transcriber = Transcriber()
    return _transcriber


def get_tts() -> TextToSpeech:
    """Return the singleton TTS client. ``initialize()`` runs in the lifespan."""
    global _tts
    if _tts is None:
        _tts = TextToSpeech()
    return _tts


def get_stream_relay(
    store: ConversationStore = Depends(get_conversation_store),
    generator: TextGenerator = Depends(get_generator),
    tasks: BackgroundTaskRegistry = Depends(get_background_tasks),
) -> StreamRelay:
    return StreamRelay(store, generator, tasks)


def get_current_owner(
    x_user_id: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Identity of the caller as forwarded by the auth layer, if any."""
    return x_user_id or None
