from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Service
    app_name: str = "LegacyLens"
    environment: str = "development"
    log_level: str = "INFO"

    # CORS
    backend_cors_origins: list[str] = ["http://localhost:3000"]

    # Record store: "json" or "sql"
    record_store_backend: str = "json"
    data_dir: str = "./data"
    scans_file: str = "scans.json"
    database_url: str = "sqlite:///./data/legacylens.db"

    # Cache (Redis is optional, local cache is always on)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379"
    cache_ttl_seconds: int = 3600

    # Analyzer strategy: "pattern", "ai" or "hybrid"
    analyzer_strategy: str = "pattern"
    hybrid_escalation_category: str = "security"
    hybrid_escalation_markers: list[str] = ["injection", "secret", "eval"]

    # GitHub
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    max_files_per_scan: int = 100
    file_batch_size: int = 10
    file_batch_pause_seconds: float = 0.5

    # Greptile
    greptile_api_key: str = ""
    greptile_api_url: str = "https://api.greptile.com/v2"
    greptile_poll_interval_seconds: float = 5.0
    greptile_index_timeout_seconds: float = 300.0
    greptile_reindex_delay_seconds: float = 30.0
    greptile_max_reindex_attempts: int = 2
    greptile_min_request_interval_seconds: float = 0.5

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.7
    openai_max_tokens: int = 500

    # Explain phase batching
    enrichment_batch_size: int = 5
    enrichment_batch_pause_seconds: float = 1.0

    # Progress channel
    progress_queue_size: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
