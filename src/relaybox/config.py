from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    workers: int = 1  # each worker process owns an independent relay
    log_level: str = "INFO"

    # Mailbox expiry (seconds)
    data_ttl: float = 30.0
    frontend_data_ttl: float = 30.0
    sweep_interval: float = 25.0

    # Long-poll hold windows (seconds)
    poll_timeout: float = 20.0
    frontend_poll_timeout: float = 5.0
    disconnect_check_interval: float = 1.0

    # Request limits
    max_body_size: int = 2_048_576  # ~2 MB
    rate_limit_max: int = 20
    rate_limit_window: int = 60  # seconds

    # CORS (comma-separated origins, "*" allows any)
    cors_origins: str = "*"

    # Static display page
    static_dir: str = "public"

    # Mailbox backend ("redis" shares pending records across workers)
    mailbox_backend: Literal["memory", "redis"] = "memory"

    # Redis (optional: rate limiter and mailbox fall back to in-memory if not set)
    redis_url: str = ""

    # Push transport
    ws_path: str = "/ws"


settings = Settings()
