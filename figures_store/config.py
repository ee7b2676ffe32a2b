"""Runtime settings read from environment variables."""

import os
from dataclasses import dataclass
from functools import lru_cache


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("DB_HOST")
    if not host:
        return Settings.database_url
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "figures")
    user = os.getenv("DB_USER", "figures_user")
    password = os.getenv("DB_PASSWORD", "figures-pass")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./figures_store.db"
    inventory_backend: str = "sql"  # sql | http | memory
    inventory_base_url: str = "http://inventory:9001"
    http_timeout_secs: float = 2.0
    http_retry_max: int = 3
    http_retry_backoff_base: float = 0.15
    http_retry_max_sleep: float = 0.5
    http_circuit_fail_threshold: int = 5
    http_circuit_reset_timeout: float = 30.0
    reserve_cas_retries: int = 5
    persist_timeout_secs: float = 5.0
    persist_retry_max: int = 2
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_database_url(),
            inventory_backend=os.getenv("INVENTORY_BACKEND", "sql").lower(),
            inventory_base_url=os.getenv("INVENTORY_BASE_URL", "http://inventory:9001"),
            http_timeout_secs=float(os.getenv("HTTP_TIMEOUT_SECS", "2.0")),
            http_retry_max=int(os.getenv("HTTP_RETRY_MAX", "3")),
            http_retry_backoff_base=float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15")),
            http_retry_max_sleep=float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5")),
            http_circuit_fail_threshold=int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5")),
            http_circuit_reset_timeout=float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30")),
            reserve_cas_retries=int(os.getenv("RESERVE_CAS_RETRIES", "5")),
            persist_timeout_secs=float(os.getenv("PERSIST_TIMEOUT_SECS", "5")),
            persist_retry_max=int(os.getenv("PERSIST_RETRY_MAX", "2")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
