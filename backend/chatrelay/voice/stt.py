"""Speech-to-text through Gemini's multimodal input.

Gemini accepts recorded audio inline (base64 + MIME type), so browser
recordings such as ``audio/webm`` can be transcribed without re-encoding.
"""

import base64
import logging

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from chatrelay.agent.generator import content_text
from chatrelay.agent.prompts import TRANSCRIBE_PROMPT
from chatrelay.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "audio/webm"


class Transcriber:
    """Transcribe complete recordings with Gemini."""

    def __init__(self, llm: ChatGoogleGenerativeAI | None = None) -> None:
        self._llm = llm or ChatGoogleGenerativeAI(
            model=settings.gemini_model,
            google_api_key=settings.google_api_key,
            temperature=0.0,
        )

    async def transcribe(self, audio_b64: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        """Transcribe a base64-encoded recording.

        Args:
            audio_b64: The whole recording, base64 encoded.
            mime_type: Container/codec of the recording.

        Returns:
            The spoken text, stripped. Empty when nothing was said.
        """
        if not audio_b64:
            return ""

        message = HumanMessage(
            content=[
                {"type": "text", "text": TRANSCRIBE_PROMPT},
                {
                    "type": "media",
                    "mime_type": mime_type or DEFAULT_MIME_TYPE,
                    "data": base64.b64decode(audio_b64),
                },
            ]
        )

        try:
            result = await self._llm.ainvoke([message])
        except Exception as e:
            logger.error("STT transcription failed: %s", e)
            raise

        transcript = content_text(result.content).strip()
        logger.info("STT transcribed: '%s'", transcript[:80])
        return transcript
