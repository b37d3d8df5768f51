"""
MODULE OVERVIEW:
A small FastAPI server to point the client at during development.

WHAT IS HAPPENING HERE:
`/api/streams` is an event stream guarded by a bearer token, which is exactly
the combination EventSource cannot talk to. Requests without the demo token get
a 401 before any stream is opened.
"""

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from authsse.server.dummy_data import state_event_generator
from authsse.shared.config import settings

bearer = HTTPBearer(auto_error=False)


async def require_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> str:
    if credentials is None or credentials.credentials != settings.DEMO_TOKEN:
        logger.warning("event=unauthorized path=/api/streams")
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
    return credentials.credentials


app = FastAPI(
    title="authsse demo",
    description="Bearer-protected Server-Sent Events feed",
    version="1.0.0",
)


@app.get("/api/streams", tags=["Streams"])
async def streams(limit: int | None = Query(None, ge=1), _token: str = Depends(require_token)):
    logger.info(f"event=connect path=/api/streams limit={limit}")
    return EventSourceResponse(state_event_generator(settings.DEMO_EVENT_INTERVAL_S, limit))


@app.get("/healthz", tags=["Ops"])
async def health_check():
    return {"status": "ok"}
