"""
MODULE OVERVIEW:
The Subscription handle: what application code holds on to.

WHAT IS HAPPENING HERE:
A subscription owns at most one `ConnectionManager` at a time. `start()` always
stops the previous attempt before opening a new one, so a logical subscription
never has two reads in flight. `restart()` is the explicit "the URL or the token
supplier changed" path; nothing is re-run implicitly.
"""
import httpx
from loguru import logger

from authsse.client.connection import (
    ConnectionManager,
    ErrorCallback,
    MessageCallback,
    StateCallback,
    TokenSupplier,
)
from authsse.shared.models import ConnectionState


class Subscription:
    def __init__(
        self,
        url: str,
        get_token: TokenSupplier,
        on_message: MessageCallback,
        on_error: ErrorCallback | None = None,
        *,
        enabled: bool = True,
        on_state_change: StateCallback | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.get_token = get_token
        self.on_message = on_message
        self.on_error = on_error
        self.on_state_change = on_state_change
        self.enabled = enabled
        self._client = client
        self._manager: ConnectionManager | None = None

    @property
    def manager(self) -> ConnectionManager | None:
        return self._manager

    @property
    def state(self) -> ConnectionState:
        if self._manager is None:
            return ConnectionState.IDLE
        return self._manager.state

    @property
    def active(self) -> bool:
        return self._manager is not None and not self._manager.state.is_terminal

    def start(self) -> ConnectionManager | None:
        self.stop()
        if not self.enabled:
            logger.debug(f"url={self.url} event=skipped reason=disabled")
            return None

        self._manager = ConnectionManager(
            self.url,
            self.get_token,
            self.on_message,
            self.on_error,
            on_state_change=self.on_state_change,
            client=self._client,
        )
        self._manager.start()
        return self._manager

    def stop(self) -> None:
        if self._manager is None:
            return
        manager, self._manager = self._manager, None
        manager.cancel()
        logger.debug(f"url={self.url} event=stop state={manager.state.value}")

    def restart(
        self,
        url: str | None = None,
        get_token: TokenSupplier | None = None,
        enabled: bool | None = None,
    ) -> ConnectionManager | None:
        if url is not None:
            self.url = url
        if get_token is not None:
            self.get_token = get_token
        if enabled is not None:
            self.enabled = enabled
        return self.start()

    async def wait(self) -> None:
        if self._manager is not None:
            await self._manager.wait()

    async def __aenter__(self) -> "Subscription":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
