from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # External content orchestration
    web_browsing_enabled: bool = False
    max_external_sources: int = 5
    external_chunk_size: int = 3
    external_chunk_delay_seconds: float = 2.0

    # Web search
    web_search_enabled: bool = False
    web_search_provider: str = "duckduckgo"  # duckduckgo | brave | tavily | google | bing
    web_search_max_results: int = 10
    web_search_quality_threshold: float = 0.5
    web_search_timeout_seconds: float = 30.0
    web_search_rate_limit: int = 10
    web_search_rate_window_seconds: float = 60.0
    web_search_cache_ttl_seconds: float = 3600.0
    web_search_cache_max_entries: int = 100
    brave_api_key: str = ""
    tavily_api_key: str = ""

    # Remote browser automation service
    browser_api_base: str = "https://browserless.corrently.cloud"
    browser_api_key: str = ""
    browser_api_timeout_ms: int = 60000
    browser_max_commands: int = 50
    browser_max_concurrent_sessions: int = 3
    browser_retry_attempts: int = 2
    browser_retry_delay_seconds: float = 2.0
    browser_settle_delay_seconds: float = 3.0
    browser_take_screenshots: bool = True

    # Collections API (vector search backend)
    collections_api_base: str = "http://localhost:3000/api"
    collections_api_token: str = ""
    collections_api_timeout_seconds: float = 30.0

    # Shared memory / artifact store; empty keeps everything in-process
    shared_memory_api_base: str = ""
    shared_memory_api_token: str = ""

    # Agents
    project_id: str = "default"
    discovery_quality_threshold: float = 0.6
    discovery_max_sources: int = 50
    analysis_frameworks: str = "thematic,sentiment"
    dependency_timeout_seconds: float = 300.0
    dependency_poll_interval_seconds: float = 5.0

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def analysis_framework_list(self) -> list[str]:
        return [f.strip() for f in self.analysis_frameworks.split(",") if f.strip()]


settings = Settings()
