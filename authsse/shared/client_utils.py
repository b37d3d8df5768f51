from datetime import datetime, timezone


def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Every ConnectionManager calls this once in __init__.
    Keys: events_received, bytes_received, connected_at, last_event_at.
    """
    return {
        "events_received": 0,
        "bytes_received": 0,
        "connected_at": None,
        "last_event_at": None,
    }


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def bearer_headers(token: str) -> dict[str, str]:
    """Headers for an authenticated event-stream request."""
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "text/event-stream",
        "Cache-Control": "no-cache",
    }
