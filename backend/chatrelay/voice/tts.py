"""Gemini text-to-speech via the REST API with API key authentication.

The preview TTS model only exposes ``generateContent`` over REST, so the
request is made directly with httpx. The response carries the audio inline
as base64 (16-bit PCM, 24 kHz mono, mime ``audio/L16;codec=pcm;rate=24000``)
which is passed through to the caller untouched.
"""

import logging
from dataclasses import dataclass

import httpx

from chatrelay.config import settings

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_AUDIO_MIME_TYPE = "audio/L16;codec=pcm;rate=24000"


class SpeechSynthesisError(Exception):
    """The TTS backend refused or failed the request."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class SynthesizedSpeech:
    audio_content: str  # base64
    mime_type: str


class TextToSpeech:
    """Text-to-Speech using the Gemini TTS REST API."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client: httpx.AsyncClient | None = None
        self._transport = transport
        self._model = settings.tts_model
        self._default_voice = settings.default_voice

    async def initialize(self) -> None:
        """Create the HTTP client."""
        self._client = httpx.AsyncClient(
            timeout=settings.upstream_timeout_seconds,
            transport=self._transport,
        )
        logger.info(
            "TextToSpeech initialized (REST API, model=%s, voice=%s)",
            self._model,
            self._default_voice,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("TextToSpeech closed")

    async def synthesize(self, text: str, voice: str | None = None) -> SynthesizedSpeech:
        """Synthesize ``text`` with a prebuilt Gemini voice.

        Args:
            text: Complete text to read aloud.
            voice: Gemini voice name (``Puck``, ``Kore``, ...).

        Returns:
            Base64 audio and its MIME type.

        Raises:
            SpeechSynthesisError: Upstream error status or no audio returned.
        """
        if not self._client:
            raise RuntimeError("TextToSpeech not initialized. Call initialize() first.")

        request_body = {
            "contents": [
                {"parts": [{"text": f"Read this text aloud naturally: {text}"}]}
            ],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {
                            "voiceName": voice or self._default_voice
                        }
                    }
                },
            },
        }

        response = await self._client.post(
            f"{GEMINI_API_URL}/{self._model}:generateContent",
            params={"key": settings.google_api_key},
            json=request_body,
        )

        if response.is_error:
            message = _error_message(response)
            logger.error("TTS API error %d: %s", response.status_code, message[:200])
            raise SpeechSynthesisError(response.status_code, message)

        data = response.json()
        inline = _find_inline_data(data)
        if not inline or not inline.get("data"):
            logger.error("No audio content in Gemini response: %s", str(data)[:200])
            raise SpeechSynthesisError(500, "No audio generated")

        speech = SynthesizedSpeech(
            audio_content=inline["data"],
            mime_type=inline.get("mimeType") or DEFAULT_AUDIO_MIME_TYPE,
        )
        logger.info(
            "TTS synthesized %d base64 chars (%s) for text: '%s'",
            len(speech.audio_content),
            speech.mime_type,
            text[:60],
        )
        return speech


def _find_inline_data(data: dict) -> dict | None:
    candidates = data.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        if part.get("inlineData"):
            return part["inlineData"]
    return None


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or "TTS failed"
    except ValueError:
        return response.text or "TTS failed"
