"""
Client settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.

Every variable is prefixed with PMON_, e.g. PMON_BASE_URL=https://scada01:8443.
"""

from functools import lru_cache
from urllib.parse import urlsplit, urlunsplit

from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Client settings with defaults for a local development service."""

    # Service
    base_url: str = "http://localhost:8080"
    ws_path: str = "/project/ws"

    # Environment
    environment: str = "development"
    debug: bool = False

    # HTTP
    http_timeout: float = 30.0
    verify_tls: bool = True

    # Real-time channel
    ws_open_timeout: float = 10.0
    ws_heartbeat_interval: float = 30.0
    # Reconnect delay is base * multiplier ** attempt: 2s, 4s, 8s, 16s, 32s
    ws_reconnect_base_delay: float = 2.0
    ws_reconnect_multiplier: float = 2.0
    ws_max_reconnect_attempts: int = 5
    # Fraction of each delay randomized either way; 0 keeps the exact schedule
    ws_reconnect_jitter: float = 0.0

    # Log viewer polling fallback
    log_poll_interval: float = 3.0
    log_poll_limit: int = 1000

    # Server availability probe
    availability_check_interval: float = 2.0

    # Chunked uploads
    upload_chunk_size: int = 1024 * 1024  # 1 MiB
    upload_max_concurrent_chunks: int = 3
    upload_chunk_retries: int = 3
    upload_retry_delay: float = 1.0

    # Anti-forgery token
    token_refresh_margin: float = 60.0

    class Config:
        env_prefix = "PMON_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def ws_url(self) -> str:
        """Channel URL derived from base_url (http -> ws, https -> wss)."""
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, self.ws_path, "", ""))

    def validate_runtime(self) -> list[str]:
        """
        Validate settings that would make the session misbehave at runtime.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if urlsplit(self.base_url).scheme not in ("http", "https"):
            errors.append("BASE_URL must be an http:// or https:// URL")

        positive_intervals = {
            "HTTP_TIMEOUT": self.http_timeout,
            "WS_OPEN_TIMEOUT": self.ws_open_timeout,
            "WS_HEARTBEAT_INTERVAL": self.ws_heartbeat_interval,
            "WS_RECONNECT_BASE_DELAY": self.ws_reconnect_base_delay,
            "LOG_POLL_INTERVAL": self.log_poll_interval,
            "AVAILABILITY_CHECK_INTERVAL": self.availability_check_interval,
        }
        for name, value in positive_intervals.items():
            if value <= 0:
                errors.append(f"{name} must be positive")

        if self.ws_reconnect_multiplier < 1:
            errors.append("WS_RECONNECT_MULTIPLIER must be >= 1")
        if self.ws_max_reconnect_attempts < 0:
            errors.append("WS_MAX_RECONNECT_ATTEMPTS must not be negative")
        if not 0 <= self.ws_reconnect_jitter <= 1:
            errors.append("WS_RECONNECT_JITTER must be between 0 and 1")
        if self.upload_chunk_size < 1:
            errors.append("UPLOAD_CHUNK_SIZE must be at least 1 byte")
        if self.upload_max_concurrent_chunks < 1:
            errors.append("UPLOAD_MAX_CONCURRENT_CHUNKS must be >= 1")
        if self.upload_chunk_retries < 1:
            errors.append("UPLOAD_CHUNK_RETRIES must be >= 1")
        if self.upload_retry_delay < 0:
            errors.append("UPLOAD_RETRY_DELAY must not be negative")
        if self.token_refresh_margin < 0:
            errors.append("TOKEN_REFRESH_MARGIN must not be negative")

        return errors


@lru_cache
def get_settings() -> ClientSettings:
    """Get cached settings instance."""
    return ClientSettings()
