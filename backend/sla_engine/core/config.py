"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    APP_NAME: str = "SLA Engine"
    ENV: str = "development"

    # Master database holds the tenant registry; each tenant has its own database.
    DATABASE_URL: str = "postgresql+psycopg://postgres@localhost:5432/sla_master"
    TENANT_DATABASE_URL_TEMPLATE: str = "postgresql+psycopg://postgres@localhost:5432/tenant_{tenant_code}"
    LOG_LEVEL: str = "INFO"

    INTERNAL_API_TOKEN: str = ""

    # worker
    SLA_WORKER_MODE: str = "once"
    SLA_CHECK_INTERVAL_SECONDS: int = 180
    SLA_TENANT_TIMEOUT_SECONDS: int = 60
    SLA_DEFAULT_TENANT_INTERVAL_SECONDS: int = 300
    SLA_MIN_TENANT_INTERVAL_SECONDS: int = 60
    SLA_DEFAULT_NEAR_BREACH_PERCENT: int = 85
    SLA_DEFAULT_PAST_BREACH_PERCENT: int = 120

    # classification backend
    AI_PROVIDER: str = "ollama"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1"
    AI_TIMEOUT_SECONDS: float = 60.0

    # pool ranking
    POOL_SCORE_BATCH_SIZE: int = 20
    POOL_SCORE_STALE_MINUTES: int = 5
    POOL_SCORE_DELAY_MS: int = 200
    POOL_ENTRY_SETTLE_MS: int = 100

    model_config = SettingsConfigDict(env_file=str(BASE_DIR / ".env"), env_file_encoding="utf-8")

    @property
    def daemon_mode(self) -> bool:
        return self.SLA_WORKER_MODE.strip().lower() == "daemon"


settings = Settings()
