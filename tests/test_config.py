import pytest

from regwatch.core.config import ConfigurationError, Settings, require_store_credentials


def test_settings_read_supabase_variables(monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
    monkeypatch.setenv("REGWATCH_BATCH_SIZE", "5")

    settings = Settings(_env_file=None)

    assert require_store_credentials(settings) == ("https://project.supabase.co", "service-key")
    assert settings.batch_size == 5


def test_settings_defaults_match_importer_contract(monkeypatch) -> None:
    monkeypatch.delenv("REGWATCH_BATCH_SIZE", raising=False)
    settings = Settings(_env_file=None)
    assert settings.batch_size == 20
    assert settings.navigation_timeout_seconds == 60.0
    assert settings.snapshot_bucket == "regulations"
    assert settings.pdf_format == "A4"


@pytest.mark.parametrize(
    ("url", "key"),
    [(None, "service-key"), ("https://project.supabase.co", None), ("", "service-key")],
)
def test_require_store_credentials_rejects_missing_values(url, key) -> None:
    settings = Settings(_env_file=None, supabase_url=url, supabase_service_role_key=key)
    with pytest.raises(ConfigurationError):
        require_store_credentials(settings)
