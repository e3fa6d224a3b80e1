"""MongoDB conversation store with one document per conversation.

Every conversation lives in one document with its turns embedded in
chronological order, so loading a thread is a single ``find_one`` and
appending a turn is a single atomic ``$push``.

Document schema::

    {
        "conversation_id": "4f1c...",
        "title": "Planning a trip to Lisbon",
        "owner": "user-42",            # null for anonymous chats
        "created_at": ISODate("2026-02-08T10:30:00Z"),
        "updated_at": ISODate("2026-02-08T10:30:02Z"),
        "turns": [
            {
                "id": "a1b2...",
                "role": "user",
                "content": "Hello!",
                "created_at": ISODate("2026-02-08T10:30:00Z")
            },
            {
                "id": "c3d4...",
                "role": "assistant",
                "content": "Hi there!",
                "created_at": ISODate("2026-02-08T10:30:02Z")
            }
        ]
    }

Two simultaneous appends to the same conversation are not serialised here;
``$push`` keeps each append atomic but their relative order is whichever
write MongoDB applies first.
"""

from __future__ import annotations

import logging
import re
from datetime import timezone
from typing import Any, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import DESCENDING, ReturnDocument

from chatrelay.memory.base import (
    ConversationNotFoundError,
    ConversationStore,
)
from chatrelay.models.conversations import (
    Conversation,
    ConversationSummary,
    Turn,
    TurnRole,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

COLLECTION_NAME = "conversations"

_SUMMARY_PROJECTION = {
    "_id": 0,
    "conversation_id": 1,
    "title": 1,
    "owner": 1,
    "created_at": 1,
    "updated_at": 1,
    "turns": {"$slice": 1},
}


def _aware(value):
    # pymongo returns naive UTC datetimes unless tz_aware is set
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _turn_to_doc(turn: Turn) -> dict[str, Any]:
    return {
        "id": turn.id,
        "role": turn.role.value,
        "content": turn.content,
        "created_at": turn.created_at,
    }


def _doc_to_turn(conversation_id: str, entry: dict[str, Any]) -> Turn:
    return Turn(
        id=entry.get("id") or new_id(),
        conversation_id=conversation_id,
        role=TurnRole(entry.get("role", "user")),
        content=entry.get("content", ""),
        created_at=_aware(entry.get("created_at")) or utcnow(),
    )


def _doc_to_conversation(doc: dict[str, Any]) -> Conversation:
    conversation_id = doc["conversation_id"]
    return Conversation(
        id=conversation_id,
        title=doc.get("title", ""),
        owner=doc.get("owner"),
        created_at=_aware(doc["created_at"]),
        updated_at=_aware(doc["updated_at"]),
        turns=[_doc_to_turn(conversation_id, t) for t in doc.get("turns", [])],
    )


def _doc_to_summary(doc: dict[str, Any]) -> ConversationSummary:
    turns = doc.get("turns") or []
    return ConversationSummary(
        id=doc["conversation_id"],
        title=doc.get("title", ""),
        owner=doc.get("owner"),
        created_at=_aware(doc["created_at"]),
        updated_at=_aware(doc["updated_at"]),
        preview=turns[0].get("content") if turns else None,
    )


class MongoConversationStore(ConversationStore):
    """Conversation persistence on MongoDB via motor.

    Lifecycle:
        store = MongoConversationStore(uri, database)
        await store.initialize()   # call once at startup
        ...
        await store.close()        # call once at shutdown
    """

    def __init__(
        self,
        connection_string: str,
        database_name: str,
        collection_name: str = COLLECTION_NAME,
    ) -> None:
        self._connection_string = connection_string
        self._database_name = database_name
        self._collection_name = collection_name
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._client is not None:
            logger.warning("MongoConversationStore already initialized - skipping")
            return

        logger.info("Connecting to MongoDB database %s", self._database_name)
        self._client = AsyncIOMotorClient(
            self._connection_string,
            serverSelectionTimeoutMS=5_000,
        )
        self._db = self._client[self._database_name]
        await self.ping()

        collection = self.collection
        await collection.create_index("conversation_id", unique=True)
        await collection.create_index([("owner", 1), ("updated_at", DESCENDING)])
        logger.info("MongoDB connection established")

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")

    async def ping(self) -> None:
        if self._client is None:
            raise RuntimeError(
                "MongoConversationStore not initialized - call initialize() first"
            )
        await self._client.admin.command("ping")

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._db is None:
            raise RuntimeError(
                "MongoConversationStore not initialized - call initialize() first"
            )
        return self._db[self._collection_name]

    # ------------------------------------------------------------------
    # ConversationStore interface
    # ------------------------------------------------------------------

    async def create_conversation(
        self, content: str, title: str, owner: Optional[str] = None
    ) -> Conversation:
        conversation = Conversation(title=title, owner=owner)
        conversation.turns.append(
            Turn(conversation_id=conversation.id, role=TurnRole.USER, content=content)
        )
        await self.collection.insert_one(
            {
                "conversation_id": conversation.id,
                "title": conversation.title,
                "owner": conversation.owner,
                "created_at": conversation.created_at,
                "updated_at": conversation.updated_at,
                "turns": [_turn_to_doc(t) for t in conversation.turns],
            }
        )
        logger.debug("Created conversation %s", conversation.id)
        return conversation

    async def append_turn(
        self, conversation_id: str, role: TurnRole, content: str
    ) -> Turn:
        turn = Turn(conversation_id=conversation_id, role=role, content=content)
        result = await self.collection.update_one(
            {"conversation_id": conversation_id},
            {
                "$push": {"turns": _turn_to_doc(turn)},
                "$set": {"updated_at": turn.created_at},
            },
        )
        if result.matched_count == 0:
            raise ConversationNotFoundError(conversation_id)
        return turn

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        doc = await self.collection.find_one(
            {"conversation_id": conversation_id}, {"_id": 0}
        )
        return _doc_to_conversation(doc) if doc else None

    async def list_conversations(
        self, owner: str, limit: int = 50
    ) -> list[ConversationSummary]:
        cursor = (
            self.collection.find({"owner": owner}, _SUMMARY_PROJECTION)
            .sort("updated_at", DESCENDING)
            .limit(limit)
        )
        return [_doc_to_summary(doc) async for doc in cursor]

    async def search_conversations(
        self, owner: str, query: str, limit: int = 20
    ) -> list[ConversationSummary]:
        pattern = {"$regex": re.escape(query), "$options": "i"}
        cursor = (
            self.collection.find(
                {
                    "owner": owner,
                    "$or": [{"title": pattern}, {"turns.content": pattern}],
                },
                _SUMMARY_PROJECTION,
            )
            .sort("updated_at", DESCENDING)
            .limit(limit)
        )
        return [_doc_to_summary(doc) async for doc in cursor]

    async def update_title(
        self, conversation_id: str, title: str
    ) -> Optional[Conversation]:
        doc = await self.collection.find_one_and_update(
            {"conversation_id": conversation_id},
            {"$set": {"title": title, "updated_at": utcnow()}},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        return _doc_to_conversation(doc) if doc else None

    async def delete_conversation(self, conversation_id: str) -> bool:
        result = await self.collection.delete_one({"conversation_id": conversation_id})
        return result.deleted_count > 0
