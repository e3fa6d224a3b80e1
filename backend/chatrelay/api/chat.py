"""Streaming chat endpoint.

Protocol:
    Client sends JSON: {"message": "...", "chatId": "..." | null, "useWebSearch": bool}
    Server streams the assistant reply as ``text/plain`` and reports the
    resolved conversation in the ``X-Chat-Id`` / ``X-Is-New-Chat`` headers.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from chatrelay.dependencies import get_current_owner, get_stream_relay
from chatrelay.models.conversations import (
    CHAT_ID_HEADER,
    NEW_CHAT_HEADER,
    ChatRequest,
)
from chatrelay.relay.stream_relay import (
    ConversationAccessError,
    EmptyMessageError,
    StreamRelay,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
async def send_message(
    body: ChatRequest,
    relay: StreamRelay = Depends(get_stream_relay),
    owner: Optional[str] = Depends(get_current_owner),
) -> StreamingResponse:
    """Relay one message and stream the reply as it is generated.

    The user turn is persisted before generation starts. The first chunk is
    awaited before the response begins so an unreachable backend still
    yields a proper 500; later failures abort the body instead.
    """
    try:
        turn = await relay.open(
            body.message,
            body.chat_id,
            use_web_search=body.use_web_search,
            owner=owner,
        )
    except EmptyMessageError:
        raise HTTPException(status_code=400, detail="Message is required")
    except ConversationAccessError:
        raise HTTPException(status_code=403, detail="Unauthorized")
    except Exception:
        logger.exception("Chat API error while resolving conversation")
        raise HTTPException(status_code=500, detail="Failed to process chat")

    chunks = relay.stream(turn)
    try:
        first: str | None = await chunks.__anext__()
    except StopAsyncIteration:
        first = None
    except Exception:
        logger.exception("Chat API error before streaming for %s", turn.conversation_id)
        raise HTTPException(status_code=500, detail="Failed to process chat")

    return StreamingResponse(
        _relay_body(first, chunks),
        media_type="text/plain; charset=utf-8",
        headers={
            CHAT_ID_HEADER: turn.conversation_id,
            NEW_CHAT_HEADER: "true" if turn.is_new_chat else "false",
        },
    )


async def _relay_body(first: str | None, rest: AsyncIterator[str]) -> AsyncIterator[str]:
    if first is None:
        return
    yield first
    async for chunk in rest:
        yield chunk
