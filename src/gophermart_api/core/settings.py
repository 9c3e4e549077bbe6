from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    run_address: str = "0.0.0.0:8000"

    # Persistence
    database_url: str = Field(
        default="sqlite+aiosqlite:///./gophermart.db",
        validation_alias=AliasChoices("database_url", "database_uri"),
    )
    database_auto_create: bool = True
    database_echo: bool = False

    # Accrual reconciliation worker
    accrual_system_address: str = "http://localhost:8080"
    accrual_worker_enabled: bool = True
    accrual_request_timeout_seconds: float = 10.0
    accrual_backoff_base_seconds: float = 1.0
    accrual_backoff_max_seconds: float = 60.0
    accrual_pending_recheck_seconds: float = 1.0

    # Tracing
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    @field_validator("accrual_system_address", mode="before")
    @classmethod
    def _normalize_accrual_address(cls, value: object) -> str:
        address = str(value or "").strip().rstrip("/")
        if address and "://" not in address:
            # Accept bare host:port the way the accrual system is usually advertised.
            address = f"http://{address}"
        return address

    @field_validator(
        "accrual_backoff_base_seconds",
        "accrual_backoff_max_seconds",
        "accrual_pending_recheck_seconds",
    )
    @classmethod
    def _positive_backoff(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("back-off seconds must be positive")
        return value

    @property
    def run_host(self) -> str:
        host, _, _ = self.run_address.rpartition(":")
        return host or "0.0.0.0"

    @property
    def run_port(self) -> int:
        _, _, port = self.run_address.rpartition(":")
        return int(port) if port.isdigit() else 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
