"""Central API router that aggregates all route modules."""

from fastapi import APIRouter

from chatrelay.api.chat import router as chat_router
from chatrelay.api.chats import router as chats_router
from chatrelay.api.health import router as health_router
from chatrelay.api.voice import router as voice_router

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(chats_router, prefix="/chats", tags=["chats"])
api_router.include_router(voice_router, prefix="/voice", tags=["voice"])
