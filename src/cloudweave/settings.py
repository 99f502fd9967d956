"""
Runtime settings using Pydantic.

Provides environment-based configuration loading with the PULUMI_ prefix the
engine uses when it launches a program.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeSettings(BaseSettings):
    """Settings for one program run."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PULUMI_",
        extra="ignore",
    )

    # Stack identity
    project: str = ""
    stack: str = ""
    organization: str = ""

    # Execution
    dry_run: bool = False
    parallel: int = 16

    # Engine endpoints (host:port)
    monitor: str = ""
    engine: str = ""

    # Resolved stack configuration, JSON encoded in the environment
    config: dict[str, str] = {}
    config_secret_keys: list[str] = []

    # RPC behaviour
    rpc_timeout: float = 60.0
    retry_delays: list[float] = [0.2, 0.4, 0.8]

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> RuntimeSettings:
    """Get cached settings instance."""
    return RuntimeSettings()
