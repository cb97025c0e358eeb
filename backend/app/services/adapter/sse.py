"""
Server-sent events reader for streaming provider responses.
"""
from typing import AsyncIterator

DONE_SENTINEL = "[DONE]"


def _data_payload(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for any other line."""
    line = line.rstrip("\r")
    if not line.startswith("data:"):
        return None
    payload = line[5:]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload


async def iter_sse_data(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Yield the `data:` payloads of an SSE body.

    Text chunks may split lines anywhere; partial lines are buffered
    until their newline arrives. Iteration ends at the `[DONE]` frame or
    when the body is exhausted.

    Args:
        chunks: Decoded text chunks of the response body

    Yields:
        Raw payload strings (usually JSON documents)
    """
    buffer = ""
    async for chunk in chunks:
        buffer += chunk
        lines = buffer.split("\n")
        buffer = lines.pop()

        for line in lines:
            payload = _data_payload(line)
            if payload is None or not payload.strip():
                continue
            if payload.strip() == DONE_SENTINEL:
                return
            yield payload

    # Body ended without a trailing newline
    payload = _data_payload(buffer)
    if payload and payload.strip() and payload.strip() != DONE_SENTINEL:
        yield payload
