"""Authenticated Server-Sent Events client."""

from authsse.client.connection import CancelToken, ConnectionManager
from authsse.client.parser import FrameParser, iter_records
from authsse.client.subscription import Subscription
from authsse.shared.errors import ConnectError, CredentialError, SSEError, StreamReadError
from authsse.shared.models import ConnectionState, EventRecord

__all__ = [
    "CancelToken",
    "ConnectionManager",
    "ConnectionState",
    "ConnectError",
    "CredentialError",
    "EventRecord",
    "FrameParser",
    "SSEError",
    "StreamReadError",
    "Subscription",
    "iter_records",
]
