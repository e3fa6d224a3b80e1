"""Tests for conversation listing, search, rename and delete."""

import pytest
from httpx import AsyncClient

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


async def _start_chat(client: AsyncClient, message: str, headers=None) -> str:
    response = await client.post("/api/chat", json={"message": message}, headers=headers)
    assert response.status_code == 200
    return response.headers["x-chat-id"]


@pytest.mark.asyncio
async def test_anonymous_list_is_empty(client: AsyncClient) -> None:
    await _start_chat(client, "Hello")

    response = await client.get("/api/chats")
    assert response.status_code == 200
    assert response.json() == {"chats": []}


@pytest.mark.asyncio
async def test_list_is_scoped_and_most_recent_first(client: AsyncClient) -> None:
    older = await _start_chat(client, "First topic", ALICE)
    newer = await _start_chat(client, "Second topic", ALICE)
    await _start_chat(client, "Bob's topic", BOB)

    response = await client.get("/api/chats", headers=ALICE)
    ids = [chat["id"] for chat in response.json()["chats"]]
    assert ids == [newer, older]

    # Continuing the older chat moves it to the top
    await client.post(
        "/api/chat", json={"message": "More", "chatId": older}, headers=ALICE
    )
    response = await client.get("/api/chats", headers=ALICE)
    assert [chat["id"] for chat in response.json()["chats"]] == [older, newer]


@pytest.mark.asyncio
async def test_list_includes_first_message_preview(client: AsyncClient) -> None:
    await _start_chat(client, "What is a monad?", ALICE)

    (chat,) = (await client.get("/api/chats", headers=ALICE)).json()["chats"]
    assert chat["preview"] == "What is a monad?"


@pytest.mark.asyncio
async def test_search_matches_title_and_content(client: AsyncClient, tasks) -> None:
    by_content = await _start_chat(client, "Tell me about Kubernetes pods", ALICE)
    await tasks.drain()
    await _start_chat(client, "Something else entirely", ALICE)
    await tasks.drain()

    response = await client.get("/api/chats/search", params={"q": "kubernetes"}, headers=ALICE)
    assert [chat["id"] for chat in response.json()["chats"]] == [by_content]

    # Every chat got the generated title
    response = await client.get("/api/chats/search", params={"q": "GREETING"}, headers=ALICE)
    assert len(response.json()["chats"]) == 2


@pytest.mark.asyncio
async def test_search_with_blank_query_returns_nothing(client: AsyncClient) -> None:
    await _start_chat(client, "Hello", ALICE)
    response = await client.get("/api/chats/search", params={"q": "  "}, headers=ALICE)
    assert response.json() == {"chats": []}


@pytest.mark.asyncio
async def test_get_chat_returns_turns_in_order(client: AsyncClient) -> None:
    chat_id = await _start_chat(client, "Hello", ALICE)

    response = await client.get(f"/api/chats/{chat_id}", headers=ALICE)
    assert response.status_code == 200
    chat = response.json()["chat"]
    assert chat["id"] == chat_id
    assert [(t["role"], t["content"]) for t in chat["turns"]] == [
        ("user", "Hello"),
        ("assistant", "Hi there!"),
    ]


@pytest.mark.asyncio
async def test_get_unknown_chat_is_404(client: AsyncClient) -> None:
    response = await client.get("/api/chats/missing", headers=ALICE)
    assert response.status_code == 404
    assert response.json()["detail"] == "Chat not found"


@pytest.mark.asyncio
async def test_other_users_chat_is_forbidden(client: AsyncClient) -> None:
    chat_id = await _start_chat(client, "Private", ALICE)

    assert (await client.get(f"/api/chats/{chat_id}", headers=BOB)).status_code == 403
    assert (await client.delete(f"/api/chats/{chat_id}", headers=BOB)).status_code == 403
    response = await client.post(
        "/api/chat", json={"message": "Hi", "chatId": chat_id}, headers=BOB
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rename_chat(client: AsyncClient) -> None:
    chat_id = await _start_chat(client, "Hello", ALICE)

    response = await client.patch(
        f"/api/chats/{chat_id}", json={"title": "  Renamed  "}, headers=ALICE
    )
    assert response.status_code == 200
    assert response.json()["chat"]["title"] == "Renamed"

    response = await client.patch(f"/api/chats/{chat_id}", json={"title": ""}, headers=ALICE)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_chat(client: AsyncClient, store) -> None:
    chat_id = await _start_chat(client, "Hello", ALICE)

    response = await client.delete(f"/api/chats/{chat_id}", headers=ALICE)
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert await store.get_conversation(chat_id) is None

    assert (await client.delete(f"/api/chats/{chat_id}", headers=ALICE)).status_code == 404
