from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    All settings can be configured via ``RESTGATE_*`` environment variables
    or a .env file.

    The global bucket defaults to 50 uses per second. Deployments observed
    to allow a single use per short window can set
    ``RESTGATE_GLOBAL_BUCKET_CAPACITY=1`` and
    ``RESTGATE_GLOBAL_BUCKET_WINDOW=0.02``.
    """

    # Remote API
    api_base_url: str = "https://discord.com/api"
    api_version: int = 10
    library_version: str = "0.1.0"
    user_agent_url: str = "https://github.com/restgate/restgate"

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0  # Time to establish connection
    httpx_read_timeout: float = 30.0  # Time to read response data
    httpx_write_timeout: float = 10.0  # Time to send request data
    httpx_pool_timeout: float = 5.0  # Time to acquire connection from pool
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Rate limit buckets
    default_bucket_capacity: int = 1  # Unknown routes start optimistic at 1
    default_bucket_window: float = 1.0
    global_bucket_capacity: int = 50
    global_bucket_window: float = 1.0

    # Retry policy
    max_attempts: int = 3  # Executions allowed for transport and 5xx failures
    retry_base_delay: float = 0.5
    retry_max_delay: float = 10.0
    max_throttle_retries: int = 10  # Hard cap on 429 re-queues

    # GET response cache
    cache_enabled: bool = True
    cache_default_ttl: int = 300  # 5 minutes

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Serve requests from the in-process mock transport
    mock_transport: bool = False

    @field_validator(
        "default_bucket_capacity",
        "global_bucket_capacity",
        "max_attempts",
        "httpx_max_connections",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate capacities and limits are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator(
        "default_bucket_window",
        "global_bucket_window",
        "httpx_connect_timeout",
        "httpx_read_timeout",
    )
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        """Validate windows and timeouts are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("retry_base_delay", "retry_max_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        """Validate retry delays are not negative."""
        if v < 0:
            raise ValueError("retry delays must not be negative")
        return v

    @field_validator("max_throttle_retries")
    @classmethod
    def validate_throttle_cap(cls, v: int) -> int:
        """Validate the throttle cap is reasonable."""
        if v < 0:
            raise ValueError("max_throttle_retries must not be negative")
        if v > 1000:
            raise ValueError("max_throttle_retries should not exceed 1000")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(
        env_prefix="RESTGATE_", env_file=".env", extra="ignore"
    )


# Global settings instance
settings = Settings()
