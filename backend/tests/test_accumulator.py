"""
Tests for incremental message persistence and change events.
"""
import uuid

import pytest

from app.models.message import Message, MessageRole
from app.services.streaming import EventKind, StreamAccumulator


async def fragments(*parts):
    for part in parts:
        yield part


@pytest.fixture
async def placeholder(session_factory, chat):
    async with session_factory() as session:
        message = Message(chat_id=chat.id, role=MessageRole.ASSISTANT.value, content="")
        session.add(message)
        await session.commit()
        return message


async def load_content(session_factory, message_id):
    async with session_factory() as session:
        message = await session.get(Message, message_id)
        return message.content


async def test_consume_concatenates_in_order(session_factory, bus, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)

    text = await accumulator.consume(placeholder.id, fragments("The ", "quick ", "fox"))

    assert text == "The quick fox"
    assert await load_content(session_factory, placeholder.id) == "The quick fox"


async def test_empty_fragments_are_ignored(session_factory, bus, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)

    assert await accumulator.append(placeholder.id, "") is None
    text = await accumulator.consume(placeholder.id, fragments("a", "", "b"))

    assert text == "ab"


async def test_replay_appends_twice(session_factory, bus, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)

    await accumulator.consume(placeholder.id, fragments("x", "y"))
    await accumulator.consume(placeholder.id, fragments("x", "y"))

    assert await load_content(session_factory, placeholder.id) == "xyxy"


async def test_missing_message_is_skipped(session_factory, bus):
    accumulator = StreamAccumulator(session_factory, bus)

    assert await accumulator.append(uuid.uuid4(), "lost") is None
    assert await accumulator.consume(uuid.uuid4(), fragments("a")) == ""


async def test_subscribers_see_each_append(session_factory, bus, chat, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)

    async with bus.subscribe(chat.id) as queue:
        await accumulator.consume(placeholder.id, fragments("Hel", "lo"))
        events = [queue.get_nowait() for _ in range(queue.qsize())]

    assert [event.kind for event in events] == [EventKind.APPEND, EventKind.APPEND, EventKind.DONE]
    assert [event.fragment for event in events[:2]] == ["Hel", "lo"]
    assert [event.content for event in events] == ["Hel", "Hello", "Hello"]
    assert events[0].to_dict()["messageId"] == str(placeholder.id)
    assert bus.subscriber_count(chat.id) == 0


async def test_error_notice_replaces_empty_content(session_factory, bus, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)

    content = await accumulator.append_error(placeholder.id, "Error: something broke.")

    assert content == "Error: something broke."


async def test_error_notice_follows_partial_content(session_factory, bus, chat, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)
    await accumulator.append(placeholder.id, "Partial answer")

    async with bus.subscribe(chat.id) as queue:
        content = await accumulator.append_error(placeholder.id, "Error: something broke.")
        event = queue.get_nowait()

    assert content == "Partial answer\n\nError: something broke."
    assert event.kind == EventKind.ERROR
    assert await load_content(session_factory, placeholder.id) == content


async def test_events_are_scoped_to_chat(session_factory, bus, placeholder):
    accumulator = StreamAccumulator(session_factory, bus)

    async with bus.subscribe(uuid.uuid4()) as queue:
        await accumulator.append(placeholder.id, "text")
        assert queue.empty()
