"""
MODULE OVERVIEW:
Application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every value can be overridden with an `AUTHSSE_` prefixed environment variable
or a `.env` file. Note there is deliberately no read timeout here: a quiet SSE
stream is a healthy stream, so only the connect phase is bounded.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Client
    BASE_URL: str = "http://localhost:12000"
    STREAM_PATH: str = "/api/streams"
    CONNECT_TIMEOUT_S: float = 10.0
    TOKEN: str | None = None

    # Demo server
    PORT: int = 12000
    DEMO_TOKEN: str = "demo-token"
    DEMO_EVENT_INTERVAL_S: float = 2.0

    class Config:
        env_prefix = "AUTHSSE_"
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
