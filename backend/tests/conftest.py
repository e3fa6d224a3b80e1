"""Shared test fixtures for the chat relay backend."""

import os

os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")

import base64
from collections.abc import AsyncGenerator
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chatrelay.dependencies import (
    get_background_tasks,
    get_conversation_store,
    get_generator,
    get_transcriber,
    get_tts,
)
from chatrelay.main import app
from chatrelay.memory.base import InMemoryConversationStore
from chatrelay.relay.stream_relay import StreamRelay
from chatrelay.relay.tasks import BackgroundTaskRegistry
from chatrelay.voice.tts import TextToSpeech

PCM_B64 = base64.b64encode(b"\x00\x01" * 32).decode("ascii")
PCM_MIME = "audio/L16;codec=pcm;rate=24000"


class FakeGenerator:
    """Stands in for Gemini: yields fixed chunks, optionally failing part way."""

    def __init__(
        self,
        chunks: tuple[str, ...] = ("Hi", " there!"),
        *,
        fail_after: Optional[int] = None,
        title: str = "Friendly greeting",
        title_error: Optional[Exception] = None,
    ) -> None:
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.title = title
        self.title_error = title_error
        self.calls: list[dict] = []
        self.title_calls: list[str] = []

    async def stream(self, message, history, *, use_web_search=False):
        self.calls.append(
            {
                "message": message,
                "history": list(history),
                "use_web_search": use_web_search,
            }
        )
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("generation backend failed")
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise RuntimeError("generation backend failed")

    async def generate_title(self, message: str) -> str:
        self.title_calls.append(message)
        if self.title_error:
            raise self.title_error
        return self.title


class FakeTranscriber:
    def __init__(self, text: str = "Hello there", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def transcribe(self, audio_b64: str, mime_type: str = "audio/webm") -> str:
        self.calls.append((audio_b64, mime_type))
        if self.error:
            raise self.error
        return self.text


def gemini_tts_handler(request: httpx.Request) -> httpx.Response:
    """Mimic the Gemini ``generateContent`` TTS response."""
    return httpx.Response(
        200,
        json={
            "candidates": [
                {
                    "content": {
                        "parts": [{"inlineData": {"mimeType": PCM_MIME, "data": PCM_B64}}]
                    }
                }
            ]
        },
    )


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def tasks() -> BackgroundTaskRegistry:
    return BackgroundTaskRegistry()


@pytest.fixture
def relay(store, generator, tasks) -> StreamRelay:
    return StreamRelay(store, generator, tasks)


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest_asyncio.fixture
async def tts() -> AsyncGenerator[TextToSpeech, None]:
    client = TextToSpeech(transport=httpx.MockTransport(gemini_tts_handler))
    await client.initialize()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def client(
    store, generator, tasks, transcriber, tts
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    app.dependency_overrides[get_conversation_store] = lambda: store
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_background_tasks] = lambda: tasks
    app.dependency_overrides[get_transcriber] = lambda: transcriber
    app.dependency_overrides[get_tts] = lambda: tts

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await tasks.drain()
    app.dependency_overrides.clear()
