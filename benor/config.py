"""
Runtime configuration for the consensus simulator.

Values come from environment variables prefixed with ``BENOR_`` or from a
``.env`` file; scenario presets (N, F, faulty set, initial bits) live in
``simulate_configs.py``.
"""

import logging
from functools import lru_cache

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Cluster-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="BENOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Node addressing: node i listens on base_node_port + i
    host: str = "127.0.0.1"
    base_node_port: int = Field(default=3000, ge=1, le=65535)

    # Transport
    request_timeout: float = Field(default=2.0, gt=0, description="Per-message HTTP timeout (s)")
    drop_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    min_delay: float = Field(default=0.0, ge=0.0)
    max_delay: float = Field(default=0.01, ge=0.0)

    # Bootstrap / run
    ready_poll_interval: float = Field(default=0.005, gt=0)
    run_timeout: float = Field(default=5.0, gt=0)

    log_level: str = "INFO"

    def node_url(self, node_id: int) -> str:
        return f"http://{self.host}:{self.base_node_port + node_id}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO"):
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
    )
