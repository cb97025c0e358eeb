"""
Tests for the message event stream endpoint.

The stream never ends on its own, so the app is driven at the ASGI level
and the client disconnects once the event it waits for has arrived.
Database, event bus and provider transport are swapped for test ones.
"""
import asyncio
import json
import uuid

import httpx
import pytest

from app.api.deps import get_event_bus, get_http_transport, get_session_factory
from app.core.database import get_db
from app.main import app

from conftest import openai_reply, status_reply


@pytest.fixture
def stream_app(session_factory, bus):
    """Point the app at the per-test database and bus."""

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    overrides = {
        get_db: override_db,
        get_session_factory: lambda: session_factory,
        get_event_bus: lambda: bus,
    }
    app.dependency_overrides.update(overrides)
    yield app
    for dependency in overrides:
        app.dependency_overrides.pop(dependency, None)
    app.dependency_overrides.pop(get_http_transport, None)


def use_transport(transport):
    app.dependency_overrides[get_http_transport] = lambda: transport


class EventStreamClient:
    """Minimal ASGI client reading SSE frames until a terminal event."""

    def __init__(self, path: str, user_id: str, until: str):
        self.path = path
        self.user_id = user_id
        self.until = until
        self.status = None
        self.content_type = None
        self.events: list[dict] = []
        self.message_id = None
        self._buffer = ""
        self._finished = asyncio.Event()
        self._request_sent = False

    async def receive(self):
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await self._finished.wait()
        return {"type": "http.disconnect"}

    async def send(self, message):
        if message["type"] == "http.response.start":
            self.status = message["status"]
            headers = dict(message.get("headers", []))
            self.content_type = headers.get(b"content-type", b"").decode()
            if self.status != 200:
                self._finished.set()
            return

        self._buffer += message.get("body", b"").decode()
        *frames, self._buffer = self._buffer.split("\n\n")
        for frame in frames:
            assert frame.startswith("data: ")
            event = json.loads(frame[len("data: "):])
            self.events.append(event)
            if event["kind"] == self.until:
                self._finished.set()
        if not message.get("more_body", False):
            self._finished.set()

    async def run(self):
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": self.path,
            "raw_path": self.path.encode(),
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"test"), (b"x-user-id", self.user_id.encode())],
            "client": ("testclient", 50000),
            "server": ("test", 80),
        }
        await app(scope, self.receive, self.send)


async def wait_for_subscriber(bus, chat_id):
    for _ in range(200):
        if bus.subscriber_count(chat_id):
            return
        await asyncio.sleep(0.01)
    raise AssertionError("stream never subscribed")


async def follow_send(bus, chat, until: str) -> EventStreamClient:
    """Open the stream, send one message and collect events until `until`."""
    stream = EventStreamClient(f"/api/chats/{chat.id}/messages/stream", chat.user_id, until)
    task = asyncio.create_task(stream.run())
    await wait_for_subscriber(bus, chat.id)

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        response = await client.post(
            f"/api/chats/{chat.id}/messages",
            json={"content": "Hi", "apiKey": "sk-user-key", "modelId": "gpt-4o"},
            headers={"X-User-Id": chat.user_id},
        )
    assert response.status_code == 202
    stream.message_id = response.json()["messageId"]

    await asyncio.wait_for(task, timeout=5)
    return stream


async def test_stream_delivers_appends_then_done(stream_app, bus, chat):
    use_transport(openai_reply("Hello", " there"))

    stream = await follow_send(bus, chat, until="done")

    assert stream.status == 200
    assert stream.content_type.startswith("text/event-stream")
    assert [event["kind"] for event in stream.events] == ["append", "append", "done"]
    assert [event["fragment"] for event in stream.events[:2]] == ["Hello", " there"]
    assert [event["content"] for event in stream.events] == ["Hello", "Hello there", "Hello there"]
    assert {event["messageId"] for event in stream.events} == {stream.message_id}
    assert {event["chatId"] for event in stream.events} == {str(chat.id)}

    # Disconnect releases the subscription
    assert bus.subscriber_count(chat.id) == 0


async def test_stream_delivers_error_notice(stream_app, bus, chat):
    use_transport(status_reply(401, {"error": {"message": "Incorrect API key provided"}}))

    stream = await follow_send(bus, chat, until="error")

    (event,) = stream.events
    assert event["kind"] == "error"
    assert event["content"].startswith("Error: Failed to connect to the AI service")


async def test_stream_of_foreign_chat_is_not_found(stream_app, bus, chat):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        foreign = await client.get(
            f"/api/chats/{chat.id}/messages/stream",
            headers={"X-User-Id": f"user-{uuid.uuid4().hex[:8]}"},
        )
        missing = await client.get(
            f"/api/chats/{uuid.uuid4()}/messages/stream",
            headers={"X-User-Id": chat.user_id},
        )
        anonymous = await client.get(f"/api/chats/{chat.id}/messages/stream")

    assert foreign.status_code == 404
    assert missing.status_code == 404
    assert anonymous.status_code == 401
    assert bus.subscriber_count(chat.id) == 0
