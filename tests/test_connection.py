import asyncio

import httpx
import pytest

from conftest import mock_client, sse_response, static_token
from authsse.client.connection import CancelToken, ConnectionManager
from authsse.shared.errors import ConnectError, CredentialError, StreamReadError
from authsse.shared.models import ConnectionState, EventRecord


def make_manager(handler, recorder, get_token=None, url="/api/streams"):
    return ConnectionManager(
        url,
        get_token or static_token(),
        recorder.on_message,
        recorder.on_error,
        on_state_change=recorder.on_state_change,
        client=mock_client(handler),
    )


@pytest.mark.asyncio
async def test_streams_events_until_end_of_stream(recorder):
    seen = {}

    def handler(request: httpx.Request):
        seen["authorization"] = request.headers["authorization"]
        seen["accept"] = request.headers["accept"]
        return sse_response([b"event: state\ndata: hello\nid: 1\n\n", b"data: dangling"])

    manager = make_manager(handler, recorder)
    manager.start()
    await manager.wait()

    assert seen == {"authorization": "Bearer secret", "accept": "text/event-stream"}
    assert recorder.messages == [EventRecord(event_type="state", data="hello", id="1")]
    assert recorder.errors == []
    assert recorder.states == [ConnectionState.CONNECTING, ConnectionState.STREAMING, ConnectionState.CLOSED]
    assert manager.stats["events_received"] == 1
    assert manager.stats["bytes_received"] > 0


@pytest.mark.asyncio
async def test_fragments_split_mid_line(recorder):
    manager = make_manager(lambda request: sse_response([b"data: par", b"t1\n", b"\n"]), recorder)
    manager.start()
    await manager.wait()

    assert recorder.messages == [EventRecord(data="part1")]


@pytest.mark.asyncio
async def test_multibyte_character_split_across_reads(recorder):
    body = "data: héllo\n\n".encode("utf-8")
    split = body.index("é".encode("utf-8")) + 1
    manager = make_manager(lambda request: sse_response([body[:split], body[split:]]), recorder)
    manager.start()
    await manager.wait()

    assert [m.data for m in recorder.messages] == ["héllo"]


@pytest.mark.asyncio
async def test_credential_failure_reports_once_without_request(recorder):
    requests = []

    def handler(request):
        requests.append(request)
        return sse_response([])

    async def failing_token():
        raise RuntimeError("token expired")

    manager = make_manager(handler, recorder, get_token=failing_token)
    manager.start()
    await manager.wait()

    assert requests == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], CredentialError)
    assert manager.state == ConnectionState.FAILED


@pytest.mark.asyncio
async def test_non_success_status_is_connect_error(recorder):
    manager = make_manager(lambda request: httpx.Response(401), recorder)
    manager.start()
    await manager.wait()

    assert len(recorder.errors) == 1
    error = recorder.errors[0]
    assert isinstance(error, ConnectError)
    assert error.status_code == 401
    assert recorder.messages == []
    assert manager.state == ConnectionState.FAILED


@pytest.mark.asyncio
async def test_transport_failure_is_connect_error(recorder):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    manager = make_manager(handler, recorder)
    manager.start()
    await manager.wait()

    assert [type(e) for e in recorder.errors] == [ConnectError]
    assert recorder.errors[0].status_code is None


@pytest.mark.asyncio
async def test_read_failure_reports_stream_read_error(recorder):
    async def body():
        yield b"data: a\n\n"
        raise httpx.ReadError("connection reset")

    manager = make_manager(lambda request: sse_response(body()), recorder)
    manager.start()
    await manager.wait()

    assert [m.data for m in recorder.messages] == ["a"]
    assert [type(e) for e in recorder.errors] == [StreamReadError]
    assert manager.state == ConnectionState.FAILED


@pytest.mark.asyncio
async def test_read_failure_after_cancel_is_suppressed(recorder):
    async def body():
        yield b"data: a\n\n"
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            raise httpx.ReadError("aborted")

    manager = make_manager(lambda request: sse_response(body()), recorder)
    token = manager.start()
    await recorder.first_message.wait()
    token.cancel()
    await manager.wait()

    assert recorder.errors == []
    assert manager.state == ConnectionState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_during_credential_wait_issues_no_request(recorder):
    requests = []
    waiting = asyncio.Event()

    def handler(request):
        requests.append(request)
        return sse_response([])

    async def slow_token():
        waiting.set()
        await asyncio.Event().wait()

    manager = make_manager(handler, recorder, get_token=slow_token)
    token = manager.start()
    await waiting.wait()
    token.cancel()
    await manager.wait()

    assert requests == []
    assert recorder.errors == []
    assert manager.state == ConnectionState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_before_task_runs(recorder):
    manager = make_manager(lambda request: sse_response([b"data: x\n\n"]), recorder)
    token = manager.start()
    token.cancel()
    await manager.wait()

    assert recorder.messages == []
    assert recorder.errors == []
    assert manager.state == ConnectionState.CANCELLED


@pytest.mark.asyncio
async def test_no_message_after_cancel_with_fragment_in_flight(recorder):
    requested_second = asyncio.Event()
    gate = asyncio.Event()

    async def body():
        yield b"data: par"
        requested_second.set()
        await gate.wait()
        yield b"t1\n\n"

    manager = make_manager(lambda request: sse_response(body()), recorder)
    token = manager.start()
    await requested_second.wait()
    token.cancel()
    gate.set()
    await manager.wait()

    assert recorder.messages == []
    assert recorder.errors == []
    assert manager.state == ConnectionState.CANCELLED


@pytest.mark.asyncio
async def test_on_message_errors_propagate(recorder):
    def explode(record):
        raise ValueError("bad payload")

    manager = ConnectionManager(
        "/api/streams",
        static_token(),
        explode,
        recorder.on_error,
        client=mock_client(lambda request: sse_response([b"data: x\n\n"])),
    )
    manager.start()

    with pytest.raises(ValueError):
        await manager.wait()
    assert recorder.errors == []
    assert manager.state == ConnectionState.FAILED


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited():
    received = []

    async def on_message(record):
        await asyncio.sleep(0)
        received.append(record.data)

    manager = ConnectionManager(
        "/api/streams",
        static_token(),
        on_message,
        client=mock_client(lambda request: sse_response([b"data: a\n\ndata: b\n\n"])),
    )
    manager.start()
    await manager.wait()

    assert received == ["a", "b"]


@pytest.mark.asyncio
async def test_manager_starts_only_once(recorder):
    manager = make_manager(lambda request: sse_response([]), recorder)
    manager.start()

    with pytest.raises(RuntimeError):
        manager.start()
    await manager.wait()


def test_cancel_token_is_one_shot():
    token = CancelToken()
    assert not token.cancelled

    token.cancel()
    token.cancel()

    assert token.cancelled
    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()


@pytest.mark.asyncio
@pytest.mark.parametrize("chunks", [
    [b"\xef\xbb\xbfdata: first\n\ndata: second\n\n"],
    [b"\xef", b"\xbb\xbfdata: first\n\n", b"data: second\n\n"],
])
async def test_leading_byte_order_mark_is_dropped(recorder, chunks):
    manager = make_manager(lambda request: sse_response(chunks), recorder)
    manager.start()
    await manager.wait()

    assert [m.data for m in recorder.messages] == ["first", "second"]


@pytest.mark.asyncio
async def test_byte_order_mark_mid_stream_is_kept(recorder):
    chunks = [b"data: a\n\n", "data: \ufeffb\n\n".encode("utf-8")]
    manager = make_manager(lambda request: sse_response(chunks), recorder)
    manager.start()
    await manager.wait()

    assert [m.data for m in recorder.messages] == ["a", "\ufeffb"]


@pytest.mark.asyncio
async def test_cancel_before_start_sticks(recorder):
    requests = []

    def handler(request):
        requests.append(request)
        return sse_response([b"data: x\n\n"])

    manager = make_manager(handler, recorder)
    manager.cancel()
    manager.start()
    await manager.wait()

    assert requests == []
    assert recorder.messages == []
    assert manager.state == ConnectionState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_before_task_runs_notifies_state(recorder):
    manager = make_manager(lambda request: sse_response([]), recorder)
    manager.start()
    manager.cancel()
    await manager.wait()

    assert recorder.states == [ConnectionState.CANCELLED]


@pytest.mark.asyncio
async def test_cancel_before_task_runs_awaits_async_state_callback():
    states = []
    notified = asyncio.Event()

    async def on_state_change(state):
        states.append(state)
        notified.set()

    manager = ConnectionManager(
        "/api/streams",
        static_token(),
        lambda record: None,
        on_state_change=on_state_change,
        client=mock_client(lambda request: sse_response([])),
    )
    manager.start()
    manager.cancel()
    await manager.wait()
    await asyncio.wait_for(notified.wait(), timeout=1)

    assert states == [ConnectionState.CANCELLED]
