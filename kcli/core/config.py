# kcli/core/config.py
import json
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Tool settings loaded from environment variables (and .env).

    Notes
    -----
    - Broker addresses are NOT configured here; they come from the active
      environment in the environment store (see `kcli config`).
    - Every field can be overridden with a `KCLI_` prefixed variable, e.g.
        KCLI_TAIL_MAX_RECORDS=1000
    - `cors_allow_origins` accepts JSON array or comma-separated string.
    """
    model_config = SettingsConfigDict(
        env_prefix="KCLI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---------- Environment store ----------
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "kcli")

    # ---------- Kafka client ----------
    client_id: str = "kcli"
    kafka_api_version: str | None = None

    # Client timeouts (ms)
    request_timeout_ms: int = 20_000
    metadata_max_age_ms: int = 30_000
    api_version_auto_timeout_ms: int = 10_000

    # Admin connection retry
    admin_connect_max_tries: int = Field(default=3, ge=1)
    admin_connect_backoff_sec: float = Field(default=1.0, ge=0)

    # ---------- Tail ----------
    tail_poll_timeout_ms: int = Field(
        default=500, ge=0,
        description="How long one partition fetch may block waiting for data."
    )
    tail_max_records: int = Field(
        default=500, ge=1,
        description="Upper bound on records returned by one partition fetch."
    )
    tail_queue_size: int = Field(
        default=64, ge=1,
        description="Batches buffered between partition fetchers and the writer."
    )
    tail_idle_backoff_sec: float = Field(
        default=0.5, ge=0,
        description="Wait after an empty fetch before polling the partition again."
    )

    # ---------- Logging ----------
    log_level: str = "WARNING"

    # ---------- HTTP surface (kcli serve) ----------
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_allow_origins: list[str] | None = None

    @field_validator("cors_allow_origins", mode="before")
    def _parse_cors_origins(cls, v):
        """Accept JSON array or comma-separated string."""
        if v is None:
            return None
        if isinstance(v, str):
            try:
                parsed = json.loads(v)  # JSON array
                if isinstance(parsed, list):
                    return [str(s).strip() for s in parsed if str(s).strip()]
            except ValueError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.yaml"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
