"""Configuration for hookview.

Environment Variables:
    - HOOKVIEW_HOST: Interface to bind (default: 127.0.0.1)
    - HOOKVIEW_PORT: Port to listen on (default: 3456)
    - HOOKVIEW_LOG_FILE: JSONL hook log to tail
    - HOOKVIEW_DIST_DIR: Directory holding the bundled dashboard
    - HOOKVIEW_SHUTDOWN_TOKEN: Bearer token accepted by POST /shutdown

    Optional tuning:
    - HOOKVIEW_POLL_INTERVAL: Seconds between log file checks
    - HOOKVIEW_RATE_LIMIT_MAX_CONNECTIONS / HOOKVIEW_RATE_LIMIT_WINDOW_MS:
      SSE admission limits per client
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LOG_FILE = Path.home() / ".claude" / "hooks" / "hooks-log.txt"
STATIC_DIR = Path(__file__).parent / "static"


class ViewerConfig(BaseSettings):
    """hookview configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Server Settings
    # =========================================================================
    host: str = Field(
        default="127.0.0.1",
        description="Interface to bind (localhost only by default)",
    )
    port: int = Field(default=3456, ge=0, le=65535, description="Port to listen on")
    dist_dir: Path = Field(
        default=STATIC_DIR,
        description="Directory of the bundled single-page dashboard",
    )

    # =========================================================================
    # Log Tailing
    # =========================================================================
    log_file: Path = Field(
        default=DEFAULT_LOG_FILE,
        description="Append-only JSONL file written by the hook handlers",
    )
    poll_interval: float = Field(
        default=0.5,
        gt=0,
        description="Seconds between log file size checks",
    )

    # =========================================================================
    # Streaming / Security
    # =========================================================================
    rate_limit_max_connections: int = Field(
        default=10,
        ge=1,
        description="Max SSE connections admitted per client within the window",
    )
    rate_limit_window_ms: int = Field(
        default=60_000,
        ge=1,
        description="Sliding window length for SSE admission, in milliseconds",
    )
    subscriber_queue_size: int = Field(
        default=100,
        ge=1,
        description="Pending SSE frames per client before it is dropped as stuck",
    )
    keepalive_interval: float = Field(
        default=15.0,
        gt=0,
        description="Idle seconds before an SSE keepalive comment is sent",
    )
    shutdown_token: str | None = Field(
        default=None,
        description="Bearer token for POST /shutdown (unset disables shutdown)",
    )
    shutdown_delay: float = Field(
        default=0.1,
        ge=0,
        description="Seconds to wait after acknowledging /shutdown before stopping",
    )

    @property
    def origin(self) -> str:
        """Local origin allowed by CORS on the JSON API."""
        return f"http://localhost:{self.port}"
