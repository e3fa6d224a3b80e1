"""Tests for the speech-to-text and text-to-speech endpoints."""

import base64

import httpx
import pytest
from httpx import AsyncClient

from chatrelay.dependencies import get_tts
from chatrelay.main import app
from chatrelay.voice.tts import TextToSpeech

from conftest import PCM_B64, PCM_MIME


@pytest.mark.asyncio
async def test_stt_transcribes_upload(client: AsyncClient, transcriber) -> None:
    response = await client.post(
        "/api/voice/stt",
        files={"audio": ("recording.webm", b"\x1aE\xdf\xa3webm", "audio/webm")},
    )
    assert response.status_code == 200
    assert response.json() == {"text": "Hello there"}

    ((audio_b64, mime_type),) = transcriber.calls
    assert base64.b64decode(audio_b64) == b"\x1aE\xdf\xa3webm"
    assert mime_type == "audio/webm"


@pytest.mark.asyncio
async def test_stt_defaults_unknown_content_type_to_webm(
    client: AsyncClient, transcriber
) -> None:
    await client.post(
        "/api/voice/stt",
        files={"audio": ("blob", b"data", "application/octet-stream")},
    )
    assert transcriber.calls[0][1] == "audio/webm"


@pytest.mark.asyncio
async def test_stt_without_audio_is_client_error(client: AsyncClient, transcriber) -> None:
    response = await client.post("/api/voice/stt", data={"other": "field"})
    assert response.status_code == 400
    assert response.json()["detail"] == "No audio file provided"

    response = await client.post(
        "/api/voice/stt", files={"audio": ("empty.webm", b"", "audio/webm")}
    )
    assert response.status_code == 400
    assert transcriber.calls == []


@pytest.mark.asyncio
async def test_stt_failure_is_server_error(client: AsyncClient, transcriber) -> None:
    transcriber.error = RuntimeError("model unavailable")

    response = await client.post(
        "/api/voice/stt", files={"audio": ("a.webm", b"data", "audio/webm")}
    )
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to transcribe audio"


@pytest.mark.asyncio
async def test_tts_returns_base64_audio(client: AsyncClient) -> None:
    response = await client.post("/api/voice/tts", json={"text": "Hi!", "voice": "Kore"})
    assert response.status_code == 200
    assert response.json() == {"audioContent": PCM_B64, "mimeType": PCM_MIME}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"text": ""}, {"text": "   "}, {}])
async def test_tts_without_text_is_client_error(client: AsyncClient, body) -> None:
    response = await client.post("/api/voice/tts", json=body)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_tts_upstream_error_is_passed_through(client: AsyncClient) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429, json={"error": {"code": 429, "message": "Resource exhausted"}}
        )

    failing = TextToSpeech(transport=httpx.MockTransport(handler))
    await failing.initialize()
    app.dependency_overrides[get_tts] = lambda: failing
    try:
        response = await client.post("/api/voice/tts", json={"text": "Hi!"})
    finally:
        await failing.close()

    assert response.status_code == 429
    assert response.json() == {"error": "Resource exhausted"}
