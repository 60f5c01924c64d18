from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing."""


class Settings(BaseSettings):
    environment: str = "dev"
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "REGWATCH_SUPABASE_URL"),
    )
    supabase_service_role_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "REGWATCH_SUPABASE_SERVICE_ROLE_KEY"),
    )
    documents_table: str = "reg_documents"
    versions_table: str = "reg_document_versions"
    snapshot_bucket: str = "regulations"
    batch_size: int = 20
    navigation_timeout_seconds: float = 60.0
    store_timeout_seconds: float = 30.0
    browser_headless: bool = True
    pdf_format: str = "A4"
    reconcile_batch_size: int = 500
    otel_enabled: bool = True
    otel_service_name: str = "regwatch-importer"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(
        env_prefix="REGWATCH_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def require_store_credentials(settings: Settings) -> tuple[str, str]:
    url = (settings.supabase_url or "").strip()
    key = (settings.supabase_service_role_key or "").strip()
    if not url or not key:
        raise ConfigurationError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
    return url, key
