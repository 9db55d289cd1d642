"""Settings tests."""

from datetime import timedelta

from userfeed.services.client import ServiceClient
from userfeed.settings import Settings, load_settings


def test_defaults():
    settings = Settings()

    assert settings.retry_attempt_count == 3
    assert settings.retry_exponential_base == 2.0
    assert settings.circuit_breaker_failure_threshold == 2
    assert settings.circuit_breaker_open_seconds == 30.0
    assert settings.user_cache_ttl == timedelta(minutes=10)
    assert settings.api_headers == {"x-api-key": "reqres-free-v1"}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EXTERNAL_API_BASE_URL", "http://localhost:8080/api/")
    monkeypatch.setenv("EXTERNAL_API_KEY_HEADER", "X-Token")
    monkeypatch.setenv("EXTERNAL_API_KEY_VALUE", "secret")
    monkeypatch.setenv("RETRY_ATTEMPT_COUNT", "5")
    monkeypatch.setenv("CIRCUIT_BREAKER_OPEN_SECONDS", "7.5")

    settings = load_settings()

    assert settings.external_api_base_url == "http://localhost:8080/api/"
    assert settings.api_headers == {"X-Token": "secret"}
    assert settings.retry_attempt_count == 5
    assert settings.circuit_breaker_open_seconds == 7.5


def test_client_picks_up_resilience_settings():
    settings = Settings.model_validate(
        {
            "RETRY_ATTEMPT_COUNT": "1",
            "RETRY_EXPONENTIAL_BASE": "3",
            "CIRCUIT_BREAKER_FAILURE_THRESHOLD": "4",
            "RESPONSE_TIMEOUT_MINUTES": "2",
        }
    )

    client = ServiceClient.from_settings(settings)
    breaker = client.circuit_breakers.get("users.get")

    assert client.base_url == settings.external_api_base_url
    assert breaker.config.failure_threshold == 4
    assert breaker.config.reset_timeout == timedelta(seconds=30)
    assert client._resilience_config.retry_attempt_count == 1
    assert client._resilience_config.exponential_base == 3
    assert client._resilience_config.response_timeout == timedelta(minutes=2)
