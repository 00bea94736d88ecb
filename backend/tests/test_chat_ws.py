"""WebSocket integration tests for authentication, presence, and room messaging."""

from __future__ import annotations

import asyncio

import app.models  # noqa: F401
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from starlette.websockets import WebSocketDisconnect

from app.models.message import Message
from app.models.user import Base
from app.routers.ws import router as ws_router
from app.services.auth_service import create_access_token
from app.services.chat_hub import ChatHub
from tests.conftest import create_user


def _run(coro):
    return asyncio.run(coro)


async def _create_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _list_messages(session_factory: async_sessionmaker[AsyncSession], room: str) -> list[Message]:
    async with session_factory() as db:
        result = await db.execute(select(Message).where(Message.room == room))
        return list(result.scalars().all())


def _make_ws_app() -> FastAPI:
    app = FastAPI()
    app.include_router(ws_router)
    return app


@pytest.fixture
def ws_env(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Fresh hub, SQLite database, and two registered users."""
    db_path = tmp_path / "ws.sqlite3"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    _run(_create_tables(engine))

    alice = _run(create_user(session_factory, "alice"))
    bob = _run(create_user(session_factory, "bob"))

    hub = ChatHub(session_factory)
    monkeypatch.setattr("app.routers.ws.chat_hub", hub)

    tokens = {
        "alice": create_access_token(str(alice.id)),
        "bob": create_access_token(str(bob.id)),
    }
    with TestClient(_make_ws_app()) as client:
        yield client, tokens, session_factory, hub

    _run(engine.dispose())


def _receive_until(ws, event_type: str, limit: int = 20) -> list[dict]:
    """Read events until one of ``event_type`` arrives; return all read."""
    seen: list[dict] = []
    for _ in range(limit):
        event = ws.receive_json()
        seen.append(event)
        if event["type"] == event_type:
            return seen
    raise AssertionError(f"{event_type} not received, got {[e['type'] for e in seen]}")


def test_ws_rejects_invalid_token_with_auth_close_code(ws_env) -> None:
    client, _tokens, _factory, hub = ws_env

    with client.websocket_connect("/ws/chat?token=garbage") as ws:
        event = ws.receive_json()
        assert event == {
            "type": "error",
            "code": "invalid_token",
            "message": "Authentication failed: invalid token",
        }
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
        assert exc_info.value.code == 4001

    assert len(hub.registry) == 0


def test_ws_auth_frame_admits_connection(ws_env) -> None:
    client, tokens, _factory, _hub = ws_env

    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "auth", "token": tokens["alice"]})
        snapshot = ws.receive_json()
        assert snapshot["type"] == "presenceSnapshot"
        assert [entry["username"] for entry in snapshot["users"]] == ["alice"]
        assert snapshot["users"][0]["room"] is None


def test_ws_join_send_and_leave_flow(ws_env) -> None:
    client, tokens, session_factory, hub = ws_env

    with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as alice:
        _receive_until(alice, "presenceSnapshot")
        alice.send_json({"type": "joinRoom", "room": "general"})
        roster = _receive_until(alice, "roomRosterUpdate")[-1]
        assert roster["room"] == "general"
        assert [entry["username"] for entry in roster["users"]] == ["alice"]
        _receive_until(alice, "presenceSnapshot")

        with client.websocket_connect(f"/ws/chat?token={tokens['bob']}") as bob:
            _receive_until(bob, "presenceSnapshot")
            bob.send_json({"type": "joinRoom", "room": "general"})

            alice_events = _receive_until(alice, "presenceSnapshot")
            assert [e["type"] for e in alice_events] == [
                "roomRosterUpdate",
                "userJoined",
                "presenceSnapshot",
            ]
            assert alice_events[1]["user"]["username"] == "bob"
            assert [entry["username"] for entry in alice_events[0]["users"]] == ["alice", "bob"]
            _receive_until(bob, "presenceSnapshot")

            alice.send_json({"type": "sendMessage", "room": "general", "text": "hello bob"})
            alice_message = _receive_until(alice, "newMessage")[-1]["message"]
            bob_message = _receive_until(bob, "newMessage")[-1]["message"]

            assert alice_message == bob_message
            assert alice_message["text"] == "hello bob"
            assert alice_message["room"] == "general"
            assert alice_message["sender"]["username"] == "alice"
            assert alice_message["reply_to"] is None

        left = _receive_until(alice, "userLeft")[-1]
        assert left["user"]["username"] == "bob"
        assert left["room"] == "general"
        roster_after = _receive_until(alice, "roomRosterUpdate")[-1]
        assert [entry["username"] for entry in roster_after["users"]] == ["alice"]

    stored = _run(_list_messages(session_factory, "general"))
    assert [message.text for message in stored] == ["hello bob"]
    assert len(hub.registry) == 0


def test_ws_frame_errors_stay_on_the_sender(ws_env) -> None:
    client, tokens, _factory, _hub = ws_env

    with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as ws:
        _receive_until(ws, "presenceSnapshot")

        ws.send_text("not json")
        assert ws.receive_json()["code"] == "invalid_format"

        ws.send_json({"type": "sendMessage", "room": "general", "text": "too early"})
        error = ws.receive_json()
        assert error["type"] == "messageError"
        assert error["code"] == "not_in_room"

        ws.send_json({"type": "dance"})
        assert ws.receive_json()["code"] == "unknown_event"

        ws.send_json({"type": "joinRoom", "room": "   "})
        assert ws.receive_json()["code"] == "invalid_room"


def test_ws_enforces_connection_limit(ws_env, monkeypatch: pytest.MonkeyPatch) -> None:
    client, tokens, _factory, _hub = ws_env
    monkeypatch.setattr("app.services.connection_registry.settings.max_ws_connections_per_user", 1)

    with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as first:
        _receive_until(first, "presenceSnapshot")
        with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as second:
            event = second.receive_json()
            assert event["code"] == "too_many_connections"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                second.receive_json()
            assert exc_info.value.code == 4002


def test_ws_send_rate_limit_reports_to_sender(ws_env, monkeypatch: pytest.MonkeyPatch) -> None:
    client, tokens, session_factory, _hub = ws_env
    monkeypatch.setattr("app.services.rate_limiter.settings.rate_limit_connection_per_minute", 2)

    with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as ws:
        _receive_until(ws, "presenceSnapshot")
        ws.send_json({"type": "joinRoom", "room": "general"})
        _receive_until(ws, "roomRosterUpdate")
        _receive_until(ws, "presenceSnapshot")

        for text in ("one", "two", "three"):
            ws.send_json({"type": "sendMessage", "room": "general", "text": text})
        events = _receive_until(ws, "messageError")

        assert [e["message"]["text"] for e in events if e["type"] == "newMessage"] == ["one", "two"]
        assert events[-1]["code"] == "rate_limited"

    stored = _run(_list_messages(session_factory, "general"))
    assert sorted(message.text for message in stored) == ["one", "two"]


def test_ws_malformed_send_frame_is_reported(ws_env) -> None:
    client, tokens, _factory, _hub = ws_env

    with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as ws:
        _receive_until(ws, "presenceSnapshot")
        ws.send_json({"type": "sendMessage", "room": "general", "text": 42})
        error = ws.receive_json()
        assert error == {
            "type": "messageError",
            "code": "invalid_message",
            "message": "Invalid message format",
        }


def test_ws_user_lookup_outage_closes_with_auth_code(ws_env, monkeypatch: pytest.MonkeyPatch) -> None:
    from sqlalchemy.exc import OperationalError

    client, tokens, _factory, hub = ws_env

    class _BrokenSession:
        async def __aenter__(self):
            raise OperationalError("SELECT", {}, Exception("database unavailable"))

        async def __aexit__(self, *exc_info):
            return False

    monkeypatch.setattr(hub.gate, "_session_factory", lambda: _BrokenSession())

    with client.websocket_connect(f"/ws/chat?token={tokens['alice']}") as ws:
        event = ws.receive_json()
        assert event["type"] == "error"
        assert event["code"] == "auth_unavailable"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
        assert exc_info.value.code == 4001
