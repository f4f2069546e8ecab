from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "tournament-ingest"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    cron_secret: str | None = None
    admin_api_key: str | None = None
    tracking_query_params: str = "gclid,fbclid,mc_cid,mc_eid"
    crawl_default_status: str = "draft"
    fetch_timeout_seconds: float = 12.0
    fetch_min_html_bytes: int = 2048
    validation_timeout_seconds: float = 8.0
    search_timeout_seconds: float = 10.0
    dns_timeout_seconds: float = 5.0
    network_concurrency: int = 5
    sweep_batch_size: int = 50
    discovery_batch_size: int = 25
    enrichment_batch_size: int = 25
    enrichment_max_pages: int = 8
    search_provider: str = "serpapi"
    serpapi_api_key: str | None = None
    bing_search_api_key: str | None = None
    brave_search_api_key: str | None = None
    dead_domain_failure_threshold: int = 2
    dead_domain_recheck_hours: int = 72
    freshness_stale_after_hours: int = 24 * 30
    freshness_archive_after_hours: int = 24 * 120
    otel_enabled: bool = True
    otel_service_name: str = "tournament-ingest"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="TI_", extra="ignore")

    def tracking_keys(self) -> set[str]:
        return {item.strip().lower() for item in self.tracking_query_params.split(",") if item.strip()}


@lru_cache
def get_settings() -> Settings:
    return Settings()
