"""
MODULE OVERVIEW:
The typed data structures shared by the parser, the connection manager and the
demo server, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`EventRecord` is what a subscriber receives: one blank-line delimited block of
the text/event-stream format. `data` stays an opaque string; `json_data()` is only a
convenience for callers who know their payloads are JSON.
"""
import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

DEFAULT_EVENT_TYPE = "message"


class EventRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: str = DEFAULT_EVENT_TYPE
    data: str
    id: str | None = None

    def json_data(self) -> Any:
        return json.loads(self.data)


# WHAT IS HAPPENING HERE:
# The lifecycle of one subscription attempt. CLOSED, FAILED and CANCELLED are
# terminal: a new attempt always gets a new ConnectionManager.
class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.CLOSED, ConnectionState.FAILED, ConnectionState.CANCELLED)
