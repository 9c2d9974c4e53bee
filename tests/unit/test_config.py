import pytest

from linkedin_pulse.config import ConfigError, Settings

from conftest import TEST_KEY


def _settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "postgresql://localhost/pulse",
        "TOKEN_ENCRYPTION_KEY": TEST_KEY,
        "LINKEDIN_CLIENT_ID": "client-id",
        "LINKEDIN_CLIENT_SECRET": "client-secret",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_valid_configuration_passes():
    _settings().validate_runtime()


def test_missing_values_are_all_reported():
    settings = _settings(
        DATABASE_URL=None, TOKEN_ENCRYPTION_KEY=None, LINKEDIN_CLIENT_SECRET=None
    )

    with pytest.raises(ConfigError) as exc_info:
        settings.validate_runtime()

    problems = exc_info.value.problems
    assert "DATABASE_URL is not configured" in problems
    assert "TOKEN_ENCRYPTION_KEY is not configured" in problems
    assert "LINKEDIN_CLIENT_SECRET is not configured" in problems
    assert len(problems) == 3


@pytest.mark.parametrize(
    "key, message",
    [
        ("xyz", "TOKEN_ENCRYPTION_KEY must be a hex string"),
        ("00" * 16, "TOKEN_ENCRYPTION_KEY must decode to 32 bytes, got 16"),
    ],
)
def test_bad_encryption_key(key, message):
    with pytest.raises(ConfigError) as exc_info:
        _settings(TOKEN_ENCRYPTION_KEY=key).validate_runtime()

    assert exc_info.value.problems == [message]


def test_secrets_are_trimmed():
    settings = _settings(TOKEN_ENCRYPTION_KEY=f"{TEST_KEY}\n", LINKEDIN_CLIENT_ID="  id  ")

    assert settings.TOKEN_ENCRYPTION_KEY == TEST_KEY
    assert settings.LINKEDIN_CLIENT_ID == "id"
    settings.validate_runtime()


def test_non_positive_durations_rejected():
    with pytest.raises(ConfigError) as exc_info:
        _settings(SYNC_MAX_CONCURRENCY=0, SESSION_TTL_HOURS=-1).validate_runtime()

    assert "SYNC_MAX_CONCURRENCY must be positive" in exc_info.value.problems
    assert "SESSION_TTL_HOURS must be positive" in exc_info.value.problems


def test_derived_values():
    settings = _settings(TOKEN_REFRESH_SKEW_MINUTES=5, SESSION_TTL_HOURS=24)

    assert settings.refresh_skew_ms() == 5 * 60 * 1000
    assert settings.session_ttl_ms() == 24 * 60 * 60 * 1000


def test_redirect_uri_fallback():
    assert _settings().linkedin_redirect_uri() == "http://localhost:8000/auth/linkedin/callback"
    assert (
        _settings(LINKEDIN_REDIRECT_URI="https://app.example.com/cb").linkedin_redirect_uri()
        == "https://app.example.com/cb"
    )


def test_development_pool_config():
    config = _settings(environment="development").get_db_pool_config()
    assert config["max_size"] == 5

    config = _settings(environment="production", DB_POOL_MAX_SIZE=20).get_db_pool_config()
    assert config["max_size"] == 20
