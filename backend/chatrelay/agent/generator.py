"""Gemini text generation for the chat relay.

Wraps ``ChatGoogleGenerativeAI`` with the calls the relay needs:
streamed replies (optionally grounded with Google Search) and one-shot
title summarisation.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from chatrelay.agent.prompts import build_title_prompt, clean_title
from chatrelay.config import settings

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_TOOL = {"google_search": {}}


def content_text(content: Any) -> str:
    """Flatten a LangChain message ``content`` into plain text.

    Gemini chunks are usually strings but may arrive as a list of content
    blocks (text parts mixed with grounding metadata).
    """
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def to_langchain_messages(history: list[dict[str, str]]) -> list[BaseMessage]:
    """Convert role-tagged history into LangChain messages."""
    messages: list[BaseMessage] = []
    for entry in history:
        if entry["role"] == "assistant":
            messages.append(AIMessage(content=entry["content"]))
        else:
            messages.append(HumanMessage(content=entry["content"]))
    return messages


class ResponseGenerator:
    """Streams chat replies and writes conversation titles with Gemini."""

    def __init__(self, llm: ChatGoogleGenerativeAI | None = None) -> None:
        self._llm = llm or ChatGoogleGenerativeAI(
            model=settings.gemini_model,
            google_api_key=settings.google_api_key,
            temperature=0.7,
        )
        self._search_llm = self._llm.bind_tools([GOOGLE_SEARCH_TOOL])
        logger.info("ResponseGenerator initialised with model=%s", settings.gemini_model)

    async def stream(
        self,
        message: str,
        history: list[dict[str, str]],
        *,
        use_web_search: bool = False,
    ) -> AsyncIterator[str]:
        """Yield reply text fragments in the order Gemini produces them.

        Args:
            message: The new user message.
            history: Prior turns as ``{"role", "content"}`` dicts, oldest first.
            use_web_search: Ground the reply with Google Search.

        Yields:
            Non-empty text fragments.
        """
        messages = to_langchain_messages(history)
        messages.append(HumanMessage(content=message))
        model = self._search_llm if use_web_search else self._llm

        async for chunk in model.astream(messages):
            text = content_text(chunk.content)
            if text:
                yield text

    async def generate_title(self, message: str) -> str:
        """Return a short descriptive title for a conversation's first message."""
        result = await self._llm.ainvoke([HumanMessage(content=build_title_prompt(message))])
        return clean_title(content_text(result.content), message)
