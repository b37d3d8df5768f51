"""
MODULE OVERVIEW:
The Connection Manager: one authenticated SSE request, from token to teardown.

WHAT IS HAPPENING HERE:
The browser EventSource API cannot send an `Authorization` header, so we open
the stream ourselves with HTTPX and feed the raw body into `FrameParser`.
Each attempt is a single asyncio task that suspends in exactly two places:
while the token supplier runs and while the next body fragment is on its way.

Cancellation goes through a `CancelToken`. Cancelling it cancels the task, which
aborts whichever of those two awaits is pending, and the token is checked again
before every dispatch so a fragment that was already in flight is never
delivered. A cancelled attempt never calls `on_error`.
"""
import asyncio
import codecs
import inspect
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from authsse.client.parser import FrameParser
from authsse.shared.client_utils import bearer_headers, make_client_stats, utc_now_iso
from authsse.shared.config import settings
from authsse.shared.errors import ConnectError, CredentialError, SSEError, StreamReadError
from authsse.shared.models import ConnectionState, EventRecord

TokenSupplier = Callable[[], Awaitable[str]]
MessageCallback = Callable[[EventRecord], Any]
ErrorCallback = Callable[[SSEError], Any]
StateCallback = Callable[[ConnectionState], Any]


async def _invoke(callback: Callable[[Any], Any] | None, arg: Any) -> None:
    """Callbacks may be plain functions or coroutine functions."""
    if callback is None:
        return
    result = callback(arg)
    if inspect.isawaitable(result):
        await result


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class CancelToken:
    """One-shot cancellation signal owned by a single connection attempt."""

    def __init__(self):
        self._cancelled = False
        self._task: asyncio.Task | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self, task: asyncio.Task) -> None:
        self._task = task
        if self._cancelled:
            task.cancel()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        # From inside the task itself (a callback calling stop()) the flag is
        # enough: the loop checks it before the next dispatch and read.
        if self._task is not None and not self._task.done() and self._task is not _current_task():
            self._task.cancel()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError()


class ConnectionManager:
    def __init__(
        self,
        url: str,
        get_token: TokenSupplier,
        on_message: MessageCallback,
        on_error: ErrorCallback | None = None,
        *,
        on_state_change: StateCallback | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.get_token = get_token
        self.on_message = on_message
        self.on_error = on_error
        self.on_state_change = on_state_change

        self._client = client
        self._state = ConnectionState.IDLE
        self._token = CancelToken()
        self._task: asyncio.Task | None = None
        self._late_notification: asyncio.Future | None = None
        self.stats = make_client_stats()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def start(self) -> CancelToken:
        if self._task is not None:
            raise RuntimeError("ConnectionManager can only be started once")
        token = self._token
        self._task = asyncio.create_task(self._run(token))
        self._task.add_done_callback(self._on_task_done)
        token.attach(self._task)
        return token

    def cancel(self) -> None:
        """Cancel the attempt. Cancelling before `start()` sticks: the task is cancelled before it runs."""
        self._token.cancel()

    async def wait(self) -> None:
        """Wait for the attempt to finish; re-raises exceptions from `on_message`."""
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            self._task.result()

    def _on_task_done(self, task: asyncio.Task) -> None:
        # Cancelled before the coroutine got a chance to run, so _run never
        # reported a state; do it from here.
        if task.cancelled() and not self._state.is_terminal:
            self._state = ConnectionState.CANCELLED
            logger.debug(f"url={self.url} state={self._state.value}")
            self._notify_from_callback(self._state)

    def _notify_from_callback(self, state: ConnectionState) -> None:
        if self.on_state_change is None:
            return
        result = self.on_state_change(state)
        if inspect.isawaitable(result):
            self._late_notification = asyncio.ensure_future(result)

    async def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug(f"url={self.url} state={state.value}")
        await _invoke(self.on_state_change, state)

    async def _run(self, token: CancelToken) -> None:
        client = self._client
        owns_client = client is None
        try:
            await self._set_state(ConnectionState.CONNECTING)
            credential = await self._acquire_token(token)
            if owns_client:
                client = httpx.AsyncClient(
                    base_url=settings.BASE_URL,
                    timeout=httpx.Timeout(settings.CONNECT_TIMEOUT_S, read=None),
                )
            await self._connect_and_stream(client, credential, token)
            await self._set_state(ConnectionState.CLOSED)
            logger.info(f"url={self.url} event=closed reason=end_of_stream")
        except asyncio.CancelledError:
            await self._set_state(ConnectionState.CANCELLED)
            logger.info(f"url={self.url} event=closed reason=cancelled")
        except SSEError as e:
            if token.cancelled:
                # Aborting a read often surfaces as a transport error.
                await self._set_state(ConnectionState.CANCELLED)
                logger.debug(f"url={self.url} event=suppressed_error error='{e}'")
                return
            await self._set_state(ConnectionState.FAILED)
            logger.warning(f"url={self.url} event=error type={type(e).__name__} error='{e}'")
            await _invoke(self.on_error, e)
        except Exception:
            await self._set_state(ConnectionState.FAILED)
            raise
        finally:
            if owns_client and client is not None:
                await client.aclose()

    async def _acquire_token(self, token: CancelToken) -> str:
        try:
            credential = await self.get_token()
        except Exception as e:
            raise CredentialError(f"Failed to acquire SSE token: {e}") from e
        token.raise_if_cancelled()
        return credential

    async def _connect_and_stream(self, client: httpx.AsyncClient, credential: str, token: CancelToken) -> None:
        logger.info(f"url={self.url} event=connecting")
        try:
            request = client.build_request("GET", self.url, headers=bearer_headers(credential))
            response = await client.send(request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ConnectError(f"SSE connection failed: {e}") from e

        try:
            if not response.is_success:
                raise ConnectError(
                    f"SSE connection failed: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )
            token.raise_if_cancelled()
            self.stats["connected_at"] = utc_now_iso()
            await self._set_state(ConnectionState.STREAMING)
            logger.info(f"url={self.url} event=connected status={response.status_code}")
            await self._read_loop(response, token)
        finally:
            await response.aclose()

    async def _read_loop(self, response: httpx.Response, token: CancelToken) -> None:
        parser = FrameParser()
        # text/event-stream is always UTF-8. The incremental decoder holds back
        # a multi-byte character split across two reads, and "utf-8-sig" drops
        # a byte-order mark at the very start of the stream only.
        decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
        chunks = response.aiter_bytes()

        while True:
            token.raise_if_cancelled()
            try:
                chunk = await anext(chunks)
            except StopAsyncIteration:
                break
            except httpx.HTTPError as e:
                raise StreamReadError(f"SSE stream read failed: {e}") from e
            token.raise_if_cancelled()
            self.stats["bytes_received"] += len(chunk)
            await self._dispatch(parser.feed(decoder.decode(chunk)), token)

        await self._dispatch(parser.feed(decoder.decode(b"", final=True)), token)
        # Whatever is left never saw its blank line.
        parser.reset()

    async def _dispatch(self, records: list[EventRecord], token: CancelToken) -> None:
        for record in records:
            token.raise_if_cancelled()
            self.stats["events_received"] += 1
            self.stats["last_event_at"] = utc_now_iso()
            logger.debug(f"url={self.url} event=message type={record.event_type} id={record.id}")
            await _invoke(self.on_message, record)
