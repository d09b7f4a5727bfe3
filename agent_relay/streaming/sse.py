"""SSE (Server-Sent Events) parsing utilities."""

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass


@dataclass(frozen=True)
class SSEEvent:
    """A single dispatched event: its name and joined ``data`` lines."""

    event: str
    data: str


async def parse_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """Parse an event stream into events, in the order they arrive.

    Follows the text/event-stream framing: fields accumulate until a blank
    line dispatches the event, ``data`` lines are joined with newlines,
    comment lines (leading ``:``) are ignored and the event name defaults to
    ``message``. A trailing event without a final blank line is dispatched
    when the stream ends. Named events are dispatched even without data.
    """
    event_name = ""
    data_lines: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line:
            if data_lines or event_name:
                yield SSEEvent(event=event_name or "message", data="\n".join(data_lines))
            event_name = ""
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)

    if data_lines or event_name:
        yield SSEEvent(event=event_name or "message", data="\n".join(data_lines))
