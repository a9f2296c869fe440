from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "stateflow"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./stateflow.db"

    # Definitions: YAML file, or the definition tables when unset
    definitions_file: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    file_logging: bool = False

    # Audit queries
    default_page_size: int = 50
    max_page_size: int = 100
    export_limit: int = 10000  # rows per CSV export

    # Webhooks
    webhook_urls: str = ""
    webhook_timeout: int = 30
    webhook_max_retries: int = 3
    webhook_retry_delay: float = 2  # seconds, doubled per retry

    @property
    def webhook_urls_list(self) -> list[str]:
        return [url.strip() for url in self.webhook_urls.split(",") if url.strip()]

    model_config = SettingsConfigDict(
        env_prefix="STATEFLOW_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
