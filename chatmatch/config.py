"""Runtime configuration read from the environment."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Matching service settings."""

    env: Optional[str]
    commit_hash: Optional[str]
    host: str
    port: int
    store_backend: str
    database_url: Optional[str]
    sql_debug: bool
    redis_url: Optional[str]
    queue_timeout_seconds: float
    match_debounce_seconds: float
    match_max_retries: int
    log_level: str

    @property
    def is_prod(self) -> bool:
        return self.env == "prod"


def load_settings() -> Settings:
    """Build settings from environment variables."""
    env = os.getenv("ENV")
    commit_hash = os.getenv("COMMIT_HASH")
    if not commit_hash and env == "prod":
        raise ValueError("COMMIT_HASH is required for production environments")

    store_backend = os.getenv("STORE_BACKEND", "memory").lower()
    if store_backend not in ("memory", "sql"):
        raise ValueError("STORE_BACKEND must be 'memory' or 'sql'")

    database_url = os.getenv("DATABASE_URL")
    if store_backend == "sql" and not database_url:
        raise ValueError("DATABASE_URL environment variable is required")

    return Settings(
        env=env,
        commit_hash=commit_hash,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        store_backend=store_backend,
        database_url=database_url,
        sql_debug=os.getenv("SQL_DEBUG", "false").lower() == "true",
        redis_url=os.getenv("REDIS_URL") or None,
        queue_timeout_seconds=float(os.getenv("QUEUE_TIMEOUT_SECONDS", "300")),
        match_debounce_seconds=float(os.getenv("MATCH_DEBOUNCE_SECONDS", "0.2")),
        match_max_retries=int(os.getenv("MATCH_MAX_RETRIES", "25")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once with a single stream handler."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
