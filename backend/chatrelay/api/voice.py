"""Speech-to-text and text-to-speech endpoints used by voice mode."""

from __future__ import annotations

import base64
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from chatrelay.dependencies import get_transcriber, get_tts
from chatrelay.models.conversations import (
    SpeechRequest,
    SpeechResponse,
    TranscriptionResponse,
)
from chatrelay.voice.stt import DEFAULT_MIME_TYPE, Transcriber
from chatrelay.voice.tts import SpeechSynthesisError, TextToSpeech
from chatrelay.voice.voices import resolve_voice

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/stt", response_model=TranscriptionResponse)
async def speech_to_text(
    audio: Optional[UploadFile] = File(default=None),
    transcriber: Transcriber = Depends(get_transcriber),
) -> TranscriptionResponse:
    """Transcribe one recorded utterance sent as the multipart ``audio`` field."""
    if audio is None:
        raise HTTPException(status_code=400, detail="No audio file provided")

    payload = await audio.read()
    if not payload:
        raise HTTPException(status_code=400, detail="No audio file provided")

    audio_b64 = base64.b64encode(payload).decode("ascii")
    mime_type = audio.content_type or DEFAULT_MIME_TYPE
    if mime_type == "application/octet-stream":
        mime_type = DEFAULT_MIME_TYPE

    try:
        text = await transcriber.transcribe(audio_b64, mime_type)
    except Exception:
        logger.exception("STT error (%d bytes, %s)", len(payload), mime_type)
        raise HTTPException(status_code=500, detail="Failed to transcribe audio")

    return TranscriptionResponse(text=text)


@router.post("/tts", response_model=SpeechResponse)
async def text_to_speech(
    body: SpeechRequest,
    tts: TextToSpeech = Depends(get_tts),
):
    """Synthesize the full reply text with the requested voice."""
    if not body.text or not body.text.strip():
        raise HTTPException(status_code=400, detail="No text provided")

    try:
        speech = await tts.synthesize(body.text, resolve_voice(body.voice))
    except SpeechSynthesisError as exc:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    except Exception:
        logger.exception("TTS handler error")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    return SpeechResponse(audio_content=speech.audio_content, mime_type=speech.mime_type)
