"""
MODULE OVERVIEW:
The incremental text/event-stream frame parser.

WHAT IS HAPPENING HERE:
The network hands us text in arbitrary fragments that ignore line and event
boundaries. `FrameParser.feed()` keeps the unterminated tail of the last
fragment in `_pending`, processes every complete line, and returns the events
whose terminating blank line has arrived. Nothing here blocks and nothing here
raises: unknown fields, lines without a colon and stray blank lines are simply
skipped, which is how the browser EventSource API treats them too.
"""
from typing import Iterable, Iterator

from authsse.shared.models import DEFAULT_EVENT_TYPE, EventRecord


class FrameParser:
    def __init__(self):
        self._pending = ""
        self._event_type: str | None = None
        self._data: list[str] = []
        self._id: str | None = None

    def feed(self, chunk: str) -> list[EventRecord]:
        """Consume one text fragment and return the events it completed, in order."""
        lines = (self._pending + chunk).split("\n")
        # The last segment has not seen its terminator yet.
        self._pending = lines.pop()

        records = []
        for line in lines:
            record = self._process_line(line)
            if record is not None:
                records.append(record)
        return records

    def reset(self) -> None:
        """Drop any half-received line and event."""
        self._pending = ""
        self._clear()

    def _clear(self) -> None:
        self._event_type = None
        self._data = []
        self._id = None

    def _process_line(self, line: str) -> EventRecord | None:
        if line.endswith("\r"):
            line = line[:-1]

        if line.strip() == "":
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if not sep:
            return None
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_type = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            self._id = value
        elif field == "retry":
            # Reconnection is left to the caller, so the hint is not used.
            pass
        return None

    def _dispatch(self) -> EventRecord | None:
        data = "\n".join(self._data)
        record = None
        if data:
            record = EventRecord(
                event_type=self._event_type or DEFAULT_EVENT_TYPE,
                data=data,
                id=self._id,
            )
        self._clear()
        return record


def iter_records(chunks: Iterable[str]) -> Iterator[EventRecord]:
    """Parse a finite sequence of fragments; a trailing unterminated event is dropped."""
    parser = FrameParser()
    for chunk in chunks:
        yield from parser.feed(chunk)
