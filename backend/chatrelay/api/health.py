"""Health check endpoint for infrastructure monitoring."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from chatrelay.config import Settings, get_settings
from chatrelay.dependencies import get_conversation_store
from chatrelay.memory.base import ConversationStore

logger = logging.getLogger(__name__)
router = APIRouter()


async def _check_store(store: ConversationStore) -> dict[str, Any]:
    """Ping the conversation store and return status."""
    try:
        await store.ping()
        return {"status": "healthy"}
    except Exception as exc:
        logger.warning("Conversation store health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


@router.get("")
async def health_check(
    settings: Settings = Depends(get_settings),
    store: ConversationStore = Depends(get_conversation_store),
) -> dict[str, Any]:
    """Return aggregate health of all backend services."""
    services = {
        "store": {
            "backend": settings.storage_backend,
            **await _check_store(store),
        },
    }

    overall = (
        "healthy"
        if all(s["status"] == "healthy" for s in services.values())
        else "degraded"
    )

    return {
        "status": overall,
        "services": services,
    }
