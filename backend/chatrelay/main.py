"""FastAPI application entry point with lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.api.router import api_router
from chatrelay.config import settings
from chatrelay.dependencies import (
    get_background_tasks,
    get_conversation_store,
    get_tts,
)
from chatrelay.models.conversations import CHAT_ID_HEADER, NEW_CHAT_HEADER

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logger.info("Starting %s (%s)...", settings.app_name, settings.environment)

    store = get_conversation_store()
    await store.initialize()
    logger.info("Conversation store initialized (%s)", settings.storage_backend)

    tts = get_tts()
    await tts.initialize()

    yield

    # Cleanup
    await get_background_tasks().cancel_all()
    await tts.close()
    await store.close()
    logger.info("Chat relay backend shut down cleanly")


app = FastAPI(
    title=f"{settings.app_name} API",
    description="Streaming chat relay with conversation history and voice mode",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CHAT_ID_HEADER, NEW_CHAT_HEADER],
)

# Mount API routes
app.include_router(api_router, prefix="/api")

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
