"""HTTP client for the chat relay API, used by voice mode.

Implements the ``VoiceBackend`` protocol on top of the public endpoints:
``/api/voice/stt``, ``/api/chat`` (streamed) and ``/api/voice/tts``.
"""

from __future__ import annotations

import base64
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import httpx

from chatrelay.models.conversations import CHAT_ID_HEADER, NEW_CHAT_HEADER
from chatrelay.voice.controller import ChatReply, SpeechAudio
from chatrelay.voice.voices import resolve_voice

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
}


class VoiceApiError(Exception):
    """The relay API answered with an error status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass
class ChatStream:
    """An open streamed reply."""

    chat_id: str
    is_new_chat: bool
    chunks: AsyncIterator[str]


class VoiceApiClient:
    """Async client for the relay's HTTP surface."""

    def __init__(
        self,
        base_url: str,
        *,
        user_id: Optional[str] = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"X-User-Id": user_id} if user_id else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "VoiceApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # VoiceBackend
    # ------------------------------------------------------------------

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        extension = _EXTENSIONS.get(mime_type.split(";")[0], "bin")
        response = await self._client.post(
            "/api/voice/stt",
            files={"audio": (f"recording.{extension}", audio, mime_type)},
        )
        _raise_for_error(response)
        return response.json().get("text", "")

    async def reply(
        self,
        text: str,
        chat_id: Optional[str] = None,
        *,
        use_web_search: bool = False,
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> ChatReply:
        """Send a message and collect the whole streamed reply."""
        parts: list[str] = []
        async with self.stream_message(
            text, chat_id, use_web_search=use_web_search
        ) as stream:
            async for chunk in stream.chunks:
                parts.append(chunk)
                if on_chunk:
                    on_chunk(chunk)
        return ChatReply(
            chat_id=stream.chat_id, is_new_chat=stream.is_new_chat, text="".join(parts)
        )

    async def synthesize(self, text: str, voice: Optional[str]) -> SpeechAudio:
        response = await self._client.post(
            "/api/voice/tts",
            json={"text": text, "voice": resolve_voice(voice)},
        )
        _raise_for_error(response)
        data = response.json()
        return SpeechAudio(
            audio=base64.b64decode(data["audioContent"]),
            mime_type=data.get("mimeType", "audio/wav"),
        )

    async def fetch_title(self, chat_id: str) -> Optional[str]:
        response = await self._client.get(f"/api/chats/{chat_id}")
        if response.status_code == 404:
            return None
        _raise_for_error(response)
        return response.json()["chat"].get("title")

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def stream_message(
        self,
        text: str,
        chat_id: Optional[str] = None,
        *,
        use_web_search: bool = False,
    ) -> AsyncIterator[ChatStream]:
        """Open ``POST /api/chat`` and expose the reply chunks as they arrive.

        Usage::

            async with client.stream_message("Hello") as stream:
                async for chunk in stream.chunks:
                    render(chunk)
        """
        payload = {"message": text, "chatId": chat_id, "useWebSearch": use_web_search}
        async with self._client.stream("POST", "/api/chat", json=payload) as response:
            if response.is_error:
                await response.aread()
                _raise_for_error(response)
            yield ChatStream(
                chat_id=response.headers.get(CHAT_ID_HEADER, ""),
                is_new_chat=response.headers.get(NEW_CHAT_HEADER, "").lower() == "true",
                chunks=response.aiter_text(),
            )


def _raise_for_error(response: httpx.Response) -> None:
    if not response.is_error:
        return
    try:
        body = response.json()
        message = body.get("error") or body.get("detail") or response.reason_phrase
    except ValueError:
        message = response.text or response.reason_phrase
    logger.warning("Relay API %s returned %d: %s", response.url.path, response.status_code, message)
    raise VoiceApiError(response.status_code, str(message))
