import asyncio
from typing import AsyncIterator, Callable, Iterable

import httpx
import pytest

from authsse.shared.models import ConnectionState, EventRecord


def sse_response(chunks: Iterable[bytes] | AsyncIterator[bytes], status_code: int = 200) -> httpx.Response:
    if not hasattr(chunks, "__aiter__"):
        chunks = _aiter(list(chunks))
    return httpx.Response(status_code, headers={"content-type": "text/event-stream"}, content=chunks)


async def _aiter(chunks: list[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


def static_token(value: str = "secret"):
    async def get_token() -> str:
        return value
    return get_token


class Recorder:
    """Collects everything a subscription reports."""

    def __init__(self):
        self.messages: list[EventRecord] = []
        self.errors: list[Exception] = []
        self.states: list[ConnectionState] = []
        self.first_message = asyncio.Event()

    def on_message(self, record: EventRecord):
        self.messages.append(record)
        self.first_message.set()

    def on_error(self, error: Exception):
        self.errors.append(error)

    def on_state_change(self, state: ConnectionState):
        self.states.append(state)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
