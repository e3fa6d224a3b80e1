"""Conversation management endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chatrelay.dependencies import get_conversation_store, get_current_owner
from chatrelay.memory.base import ConversationStore
from chatrelay.models.conversations import Conversation, TitleUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_owned_or_404(
    store: ConversationStore, chat_id: str, owner: Optional[str]
) -> Conversation:
    """Load a conversation the caller may access.

    Anonymous conversations (no owner) are readable by anyone holding the id.
    """
    conversation = await store.get_conversation(chat_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    if conversation.owner and conversation.owner != owner:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return conversation


@router.get("")
async def list_chats(
    store: ConversationStore = Depends(get_conversation_store),
    owner: Optional[str] = Depends(get_current_owner),
) -> dict[str, Any]:
    """Return the caller's conversations, most recently updated first.

    Anonymous callers have no persisted list and always get an empty one.
    """
    if not owner:
        return {"chats": []}
    try:
        chats = await store.list_conversations(owner)
    except Exception:
        logger.exception("Failed to fetch chats for %s", owner)
        raise HTTPException(status_code=500, detail="Failed to fetch chats")
    return {"chats": chats}


@router.get("/search")
async def search_chats(
    q: str = Query(default=""),
    store: ConversationStore = Depends(get_conversation_store),
    owner: Optional[str] = Depends(get_current_owner),
) -> dict[str, Any]:
    """Search the caller's conversations by title or message text."""
    if not owner or not q.strip():
        return {"chats": []}
    try:
        chats = await store.search_conversations(owner, q.strip())
    except Exception:
        logger.exception("Failed to search chats for %s", owner)
        raise HTTPException(status_code=500, detail="Failed to search chats")
    return {"chats": chats}


@router.get("/{chat_id}")
async def get_chat(
    chat_id: str,
    store: ConversationStore = Depends(get_conversation_store),
    owner: Optional[str] = Depends(get_current_owner),
) -> dict[str, Any]:
    """Return one conversation with its turns in chronological order."""
    conversation = await _get_owned_or_404(store, chat_id, owner)
    return {"chat": conversation}


@router.patch("/{chat_id}")
async def rename_chat(
    chat_id: str,
    body: TitleUpdate,
    store: ConversationStore = Depends(get_conversation_store),
    owner: Optional[str] = Depends(get_current_owner),
) -> dict[str, Any]:
    """Replace a conversation's title."""
    await _get_owned_or_404(store, chat_id, owner)
    updated = await store.update_title(chat_id, body.title.strip())
    if updated is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"chat": updated}


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: str,
    store: ConversationStore = Depends(get_conversation_store),
    owner: Optional[str] = Depends(get_current_owner),
) -> dict[str, Any]:
    """Delete a conversation and its history."""
    await _get_owned_or_404(store, chat_id, owner)
    if not await store.delete_conversation(chat_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    logger.info("Deleted conversation %s", chat_id)
    return {"success": True}
