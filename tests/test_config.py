"""
Tests for settings loading and validation.
"""
import json

import pytest
from pydantic import ValidationError

from cropadvisor.core import config
from cropadvisor.core.config import (
    GatewaySettings,
    ProviderName,
    Settings,
    load_settings,
    load_thresholds_file,
)
from cropadvisor.core.exceptions import ConfigurationError


class TestDefaults:

    def test_default_settings(self):
        settings = Settings()

        assert settings.gateway.primary_provider == ProviderName.WEATHERAPI
        assert settings.gateway.fallback_enabled is True
        assert settings.gateway.retry_attempts == 3
        assert settings.gateway.timeout_seconds == 30.0
        assert settings.advisory.enabled is False
        assert settings.soil.nitrogen_range_pct == (0.0, 5.0)
        assert set(settings.providers) == set(ProviderName)

    def test_settings_are_frozen(self):
        settings = Settings()

        with pytest.raises(ValidationError):
            settings.gateway.retry_attempts = 5

    def test_provider_mapping_is_read_only(self):
        settings = Settings()

        with pytest.raises(TypeError):
            settings.providers[ProviderName.WEATHERAPI] = settings.providers[ProviderName.OPENWEATHER]

    def test_ordered_providers_primary_first(self):
        gateway = GatewaySettings(primary_provider=ProviderName.WEATHERSTACK)

        assert gateway.ordered_providers() == (
            ProviderName.WEATHERSTACK, ProviderName.WEATHERAPI, ProviderName.OPENWEATHER
        )

    def test_primary_must_be_in_order(self):
        with pytest.raises(ValidationError):
            GatewaySettings(
                provider_order=(ProviderName.WEATHERAPI,), primary_provider=ProviderName.OPENWEATHER
            )

    def test_duplicate_providers_rejected(self):
        with pytest.raises(ValidationError):
            GatewaySettings(provider_order=(ProviderName.WEATHERAPI, ProviderName.WEATHERAPI))

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"gateway": {"retries": 3}})


class TestLoadSettings:
    """Tests for load_settings() from an environment mapping."""

    def test_empty_environment_uses_defaults(self, caplog):
        with caplog.at_level("WARNING"):
            settings = load_settings({})

        assert settings.gateway.provider_order == Settings().gateway.provider_order
        assert all(p.api_key is None for p in settings.providers.values())
        assert "No weather provider API keys" in caplog.text

    def test_overrides(self):
        settings = load_settings({
            "CROPADVISOR_PROVIDER_ORDER": " openweather , weatherapi",
            "OPENWEATHER_API_KEY": "ow-key",
            "CROPADVISOR_RETRY_ATTEMPTS": "5",
            "CROPADVISOR_TIMEOUT_SECONDS": "12.5",
            "CROPADVISOR_FALLBACK_ENABLED": "no",
            "CROPADVISOR_DATABASE_URL": "sqlite:///tmp/weather.db",
        })

        assert settings.gateway.provider_order == (ProviderName.OPENWEATHER, ProviderName.WEATHERAPI)
        assert settings.gateway.primary_provider == ProviderName.OPENWEATHER
        assert settings.gateway.retry_attempts == 5
        assert settings.gateway.timeout_seconds == 12.5
        assert settings.gateway.fallback_enabled is False
        assert settings.providers[ProviderName.OPENWEATHER].api_key == "ow-key"
        assert settings.database_url == "sqlite:///tmp/weather.db"

    def test_provider_endpoint_and_switch(self):
        settings = load_settings({
            "CROPADVISOR_WEATHERSTACK_ENABLED": "off",
            "CROPADVISOR_OPENWEATHER_BASE_URL": "https://ow-proxy.internal.example",
            "CROPADVISOR_HISTORICAL_THROTTLE_SECONDS": "0.25",
        })

        assert settings.providers[ProviderName.WEATHERSTACK].enabled is False
        assert settings.providers[ProviderName.WEATHERAPI].enabled is True
        assert settings.providers[ProviderName.OPENWEATHER].base_url == "https://ow-proxy.internal.example"
        assert settings.providers[ProviderName.WEATHERAPI].base_url == "https://api.weatherapi.com/v1"
        assert settings.gateway.historical_throttle_seconds == 0.25

    def test_disabled_provider_key_does_not_count(self, caplog):
        with caplog.at_level("WARNING"):
            load_settings({"WEATHERAPI_API_KEY": "wa-key", "CROPADVISOR_WEATHERAPI_ENABLED": "false"})

        assert "No weather provider API keys" in caplog.text

    def test_explicit_primary(self):
        settings = load_settings({"CROPADVISOR_PRIMARY_PROVIDER": "WeatherStack"})

        assert settings.gateway.primary_provider == ProviderName.WEATHERSTACK
        assert settings.gateway.ordered_providers()[0] == ProviderName.WEATHERSTACK

    @pytest.mark.parametrize("environ", [
        {"CROPADVISOR_FALLBACK_ENABLED": "maybe"},
        {"CROPADVISOR_RETRY_ATTEMPTS": "three"},
        {"CROPADVISOR_RETRY_ATTEMPTS": "0"},
        {"CROPADVISOR_TIMEOUT_SECONDS": "-1"},
        {"CROPADVISOR_PRIMARY_PROVIDER": "accuweather"},
        {"CROPADVISOR_PROVIDER_ORDER": "weatherapi", "CROPADVISOR_PRIMARY_PROVIDER": "weatherstack"},
        {"CROPADVISOR_ADVISORY_ENABLED": "true"},
        {"CROPADVISOR_ADVISORY_ENABLED": "true", "CROPADVISOR_ADVISORY_BACKEND": "carrier-pigeon"},
        {"CROPADVISOR_OPENWEATHER_ENABLED": "sometimes"},
        {"CROPADVISOR_HISTORICAL_THROTTLE_SECONDS": "-0.1"},
    ], ids=[
        "bad-bool", "bad-int", "zero-attempts", "negative-timeout", "unknown-provider",
        "primary-outside-order", "advisory-without-url", "unknown-backend", "bad-provider-switch",
        "negative-throttle",
    ])
    def test_invalid_values(self, environ):
        with pytest.raises(ConfigurationError):
            load_settings(environ)

    def test_advisory_settings(self):
        settings = load_settings({
            "CROPADVISOR_ADVISORY_ENABLED": "1",
            "CROPADVISOR_ADVISORY_BACKEND": "openai",
            "CROPADVISOR_ADVISORY_API_KEY": "sk-test",
            "CROPADVISOR_ADVISORY_MODEL": "gpt-4o-mini",
        })

        assert settings.advisory.enabled
        assert settings.advisory.backend == "openai"
        assert settings.advisory.model == "gpt-4o-mini"


class TestThresholdsFile:
    """Tests for per-deployment threshold overrides."""

    def write(self, tmp_path, data):
        path = tmp_path / "thresholds.json"
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return str(path)

    def test_overrides_applied(self, tmp_path):
        path = self.write(tmp_path, {
            "weather": {"heat_stress_temp_c": 33.0, "drought_days": [35, 95]},
            "soil": {"nitrogen_critical_pct": 0.8},
        })

        settings = load_settings({"CROPADVISOR_THRESHOLDS_FILE": path})

        assert settings.weather.heat_stress_temp_c == 33.0
        assert settings.weather.drought_days == (35, 95)
        assert settings.soil.nitrogen_critical_pct == 0.8
        assert settings.soil.nitrogen_low_pct == 1.5

    @pytest.mark.parametrize("data", [
        {"pests": {"armyworm_threshold": 3}},
        {"soil": {"zinc_ppm": 1.0}},
        {"soil": {"nitrogen_critical_pct": 2.0}},
        {"soil": {"ph_range": [6.0, 11.0]}},
        [1, 2, 3],
        "{not json",
    ], ids=["unknown-section", "unknown-key", "unordered-nitrogen", "ph-band-outside-range",
            "not-an-object", "invalid-json"])
    def test_rejected(self, tmp_path, data):
        path = self.write(tmp_path, data)

        with pytest.raises(ConfigurationError):
            load_settings({"CROPADVISOR_THRESHOLDS_FILE": path})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_thresholds_file(str(tmp_path / "absent.json"))


class TestSettingsCache:

    def test_get_settings_cached_until_reset(self, monkeypatch):
        monkeypatch.setenv("CROPADVISOR_RETRY_ATTEMPTS", "4")
        config.reset_settings()
        try:
            first = config.get_settings()
            monkeypatch.setenv("CROPADVISOR_RETRY_ATTEMPTS", "2")

            assert config.get_settings() is first
            assert first.gateway.retry_attempts == 4

            config.reset_settings()
            assert config.get_settings().gateway.retry_attempts == 2
        finally:
            config.reset_settings()
