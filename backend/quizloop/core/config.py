from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./dev.db"

    # Oracle retry budget (provider, model and keys are read by llm_client)
    llm_max_retries: int = 2
    llm_retry_backoff_seconds: float = 0.5

    # Backfill
    backfill_max_attempts_per_item: int = 3
    backfill_context_size: int = 20      # recent question texts pulled from the DB
    backfill_context_window: int = 25    # in-loop dedup list is trimmed to this


settings = Settings()
