"""Tests for the HTTP client voice mode uses, run against the real app."""

import base64
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chatrelay.main import app
from chatrelay.voice.client import VoiceApiClient, VoiceApiError

from conftest import PCM_B64, PCM_MIME


@pytest_asyncio.fixture
async def voice_client(client: AsyncClient) -> AsyncGenerator[VoiceApiClient, None]:
    """Client wired to the app with the same overrides as ``client``."""
    async with VoiceApiClient(
        "http://test", user_id="alice", transport=ASGITransport(app=app)
    ) as api:
        yield api


@pytest.mark.asyncio
async def test_reply_collects_stream_and_chat_metadata(
    voice_client: VoiceApiClient, store
) -> None:
    chunks: list[str] = []
    reply = await voice_client.reply("Hello", on_chunk=chunks.append)

    assert reply.is_new_chat is True
    assert reply.text == "Hi there!"
    assert "".join(chunks) == "Hi there!"

    conversation = await store.get_conversation(reply.chat_id)
    assert conversation.owner == "alice"


@pytest.mark.asyncio
async def test_reply_continues_chat(voice_client: VoiceApiClient, generator) -> None:
    first = await voice_client.reply("Hello")
    second = await voice_client.reply(
        "search for flights", first.chat_id, use_web_search=True
    )

    assert second.chat_id == first.chat_id
    assert second.is_new_chat is False
    assert generator.calls[1]["use_web_search"] is True


@pytest.mark.asyncio
async def test_reply_with_empty_message_raises(voice_client: VoiceApiClient) -> None:
    with pytest.raises(VoiceApiError) as excinfo:
        await voice_client.reply("   ")
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_transcribe_uploads_audio(voice_client: VoiceApiClient, transcriber) -> None:
    text = await voice_client.transcribe(b"RIFF....WAVEfmt ", "audio/wav")

    assert text == "Hello there"
    ((audio_b64, mime_type),) = transcriber.calls
    assert base64.b64decode(audio_b64) == b"RIFF....WAVEfmt "
    assert mime_type == "audio/wav"


@pytest.mark.asyncio
async def test_synthesize_decodes_audio(voice_client: VoiceApiClient) -> None:
    speech = await voice_client.synthesize("Hi!", "Breeze")

    assert speech.audio == base64.b64decode(PCM_B64)
    assert speech.mime_type == PCM_MIME


@pytest.mark.asyncio
async def test_synthesize_error_carries_message(voice_client: VoiceApiClient) -> None:
    with pytest.raises(VoiceApiError) as excinfo:
        await voice_client.synthesize("", "Breeze")
    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "No text provided"


@pytest.mark.asyncio
async def test_fetch_title(voice_client: VoiceApiClient, tasks) -> None:
    reply = await voice_client.reply("Hello")
    await tasks.drain()

    assert await voice_client.fetch_title(reply.chat_id) == "Friendly greeting"
    assert await voice_client.fetch_title("missing") is None
