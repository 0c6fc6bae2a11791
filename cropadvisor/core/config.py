"""
Immutable configuration for cropadvisor.

Settings are built once (from the environment, optionally merged with a
JSON thresholds file) and threaded explicitly through the gateway and the
rule engine constructors. get_settings() caches one instance for callers
that do not wire settings themselves.
"""
import os
import json
import logging
from enum import Enum
from types import MappingProxyType
from typing import Dict, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cropadvisor.core.exceptions import ConfigurationError
from cropadvisor.services import recommendation_rules as rules

logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
    """Supported weather data providers."""
    WEATHERAPI = "weatherapi"
    OPENWEATHER = "openweather"
    WEATHERSTACK = "weatherstack"


DEFAULT_BASE_URLS = {
    ProviderName.WEATHERAPI: "https://api.weatherapi.com/v1",
    ProviderName.OPENWEATHER: "https://api.openweathermap.org",
    ProviderName.WEATHERSTACK: "http://api.weatherstack.com",
}

API_KEY_ENV_VARS = {
    ProviderName.WEATHERAPI: "WEATHERAPI_API_KEY",
    ProviderName.OPENWEATHER: "OPENWEATHER_API_KEY",
    ProviderName.WEATHERSTACK: "WEATHERSTACK_API_KEY",
}

_FROZEN = ConfigDict(frozen=True, extra="forbid")


# ==================== THRESHOLDS ====================

class WeatherThresholds(BaseModel):
    """Weather rule triggers. Day windows are inclusive."""
    model_config = _FROZEN

    heat_stress_temp_c: float = rules.HEAT_STRESS_TEMP_C
    heat_stress_days: Tuple[int, int] = rules.HEAT_STRESS_DAYS
    cold_stress_temp_c: float = rules.COLD_STRESS_TEMP_C
    cold_stress_before_day: int = rules.COLD_STRESS_BEFORE_DAY
    drought_rainfall_mm: float = rules.DROUGHT_RAINFALL_MM
    drought_days: Tuple[int, int] = rules.DROUGHT_DAYS
    waterlog_rainfall_mm: float = rules.WATERLOG_RAINFALL_MM
    disease_humidity_pct: float = rules.DISEASE_HUMIDITY_PCT
    disease_temp_c: float = rules.DISEASE_TEMP_C
    wind_damage_kmh: float = rules.WIND_DAMAGE_KMH


class SoilThresholds(BaseModel):
    """Soil classification bands."""
    model_config = _FROZEN

    nitrogen_range_pct: Tuple[float, float] = rules.NITROGEN_RANGE_PCT
    nitrogen_critical_pct: float = rules.NITROGEN_CRITICAL_PCT
    nitrogen_low_pct: float = rules.NITROGEN_LOW_PCT
    nitrogen_critical_days: Tuple[int, int] = rules.NITROGEN_CRITICAL_DAYS
    nitrogen_low_days: Tuple[int, int] = rules.NITROGEN_LOW_DAYS
    ph_range: Tuple[float, float] = rules.PH_RANGE
    ph_acidic: float = rules.PH_ACIDIC
    ph_alkaline: float = rules.PH_ALKALINE
    moisture_range_pct: Tuple[float, float] = rules.MOISTURE_RANGE_PCT
    moisture_deficit_pct: float = rules.MOISTURE_DEFICIT_PCT
    moisture_deficit_days: Tuple[int, int] = rules.MOISTURE_DEFICIT_DAYS
    moisture_excess_pct: float = rules.MOISTURE_EXCESS_PCT

    @model_validator(mode="after")
    def _check_bands(self):
        low, high = self.nitrogen_range_pct
        if not low <= self.nitrogen_critical_pct <= self.nitrogen_low_pct <= high:
            raise ValueError("nitrogen bands must be ordered inside nitrogen_range_pct")
        low, high = self.ph_range
        if not low <= self.ph_acidic <= self.ph_alkaline <= high:
            raise ValueError("pH bands must be ordered inside ph_range")
        low, high = self.moisture_range_pct
        if not low <= self.moisture_deficit_pct <= self.moisture_excess_pct <= high:
            raise ValueError("moisture bands must be ordered inside moisture_range_pct")
        return self


class GrowthStageWindows(BaseModel):
    """Fixed day windows for growth-stage reminders."""
    model_config = _FROZEN

    emergence: Tuple[int, int] = rules.GROWTH_STAGE_WINDOWS["emergence"]
    weed_control: Tuple[int, int] = rules.GROWTH_STAGE_WINDOWS["weed_control"]
    pre_tasseling: Tuple[int, int] = rules.GROWTH_STAGE_WINDOWS["pre_tasseling"]
    pollination: Tuple[int, int] = rules.GROWTH_STAGE_WINDOWS["pollination"]
    grain_filling: Tuple[int, int] = rules.GROWTH_STAGE_WINDOWS["grain_filling"]


class VarietyThresholds(BaseModel):
    model_config = _FROZEN

    drought_tolerant_rainfall_mm: float = rules.DROUGHT_TOLERANT_RAINFALL_MM
    short_maturity_days: int = rules.SHORT_MATURITY_DAYS
    harvest_prep_after_day: int = rules.SHORT_MATURITY_HARVEST_PREP_DAY


# ==================== SERVICES ====================

class ProviderSettings(BaseModel):
    """Credentials and endpoint for one weather provider."""
    model_config = _FROZEN

    name: ProviderName
    enabled: bool = True
    api_key: Optional[str] = None
    base_url: str


class GatewaySettings(BaseModel):
    model_config = _FROZEN

    provider_order: Tuple[ProviderName, ...] = (
        ProviderName.WEATHERAPI,
        ProviderName.OPENWEATHER,
        ProviderName.WEATHERSTACK,
    )
    primary_provider: ProviderName = ProviderName.WEATHERAPI
    fallback_enabled: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1.0)
    historical_throttle_seconds: float = Field(default=0.1, ge=0)

    @model_validator(mode="after")
    def _check_primary(self):
        if not self.provider_order:
            raise ValueError("provider_order must name at least one provider")
        if len(set(self.provider_order)) != len(self.provider_order):
            raise ValueError("provider_order contains duplicates")
        if self.primary_provider not in self.provider_order:
            raise ValueError(
                f"primary provider '{self.primary_provider.value}' is not in provider_order"
            )
        return self

    def ordered_providers(self) -> Tuple[ProviderName, ...]:
        """Primary first, then the remaining providers in configured order."""
        rest = tuple(p for p in self.provider_order if p != self.primary_provider)
        return (self.primary_provider,) + rest


class AdvisorySettings(BaseModel):
    """Optional remote advisory service."""
    model_config = _FROZEN

    enabled: bool = False
    backend: Literal["http", "openai"] = "http"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: str = "gpt-4o"
    timeout_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _check_endpoint(self):
        if self.enabled and self.backend == "http" and not self.base_url:
            raise ValueError("advisory base_url is required for the http backend")
        return self


def _default_providers() -> Dict[ProviderName, ProviderSettings]:
    return {
        name: ProviderSettings(name=name, base_url=url)
        for name, url in DEFAULT_BASE_URLS.items()
    }


class Settings(BaseModel):
    model_config = _FROZEN

    gateway: GatewaySettings = GatewaySettings()
    providers: Mapping[ProviderName, ProviderSettings] = Field(
        default_factory=_default_providers, validate_default=True
    )
    advisory: AdvisorySettings = AdvisorySettings()
    weather: WeatherThresholds = WeatherThresholds()
    soil: SoilThresholds = SoilThresholds()
    growth_stages: GrowthStageWindows = GrowthStageWindows()
    variety: VarietyThresholds = VarietyThresholds()
    database_url: str = "sqlite:///./cropadvisor.db"

    @field_validator("providers", mode="after")
    @classmethod
    def _freeze_providers(cls, value):
        return MappingProxyType(dict(value))

    @model_validator(mode="after")
    def _check_providers(self):
        missing = [p.value for p in self.gateway.provider_order if p not in self.providers]
        if missing:
            raise ValueError(f"no provider settings for: {', '.join(missing)}")
        return self


# ==================== LOADING ====================

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

THRESHOLD_SECTIONS = ("weather", "soil", "growth_stages", "variety")


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got '{raw}'")


def _parse_number(name: str, raw: str, cast):
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'")


def _parse_provider(name: str, raw: str) -> ProviderName:
    try:
        return ProviderName(raw.strip().lower())
    except ValueError:
        valid = ", ".join(p.value for p in ProviderName)
        raise ConfigurationError(f"{name}: unknown provider '{raw}' (expected one of {valid})")


def load_thresholds_file(path: str) -> Dict[str, dict]:
    """Read per-deployment threshold overrides from a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Thresholds file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Thresholds file {path} is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Thresholds file {path} must contain a JSON object")

    unknown = sorted(set(data) - set(THRESHOLD_SECTIONS))
    if unknown:
        raise ConfigurationError(f"Unknown sections in thresholds file: {', '.join(unknown)}")

    logger.info(f"Loaded threshold overrides from {path}: {', '.join(sorted(data))}")
    return data


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Raises:
        ConfigurationError: if any value is malformed or inconsistent
    """
    env = os.environ if environ is None else environ

    gateway: Dict[str, object] = {}
    if env.get("CROPADVISOR_PROVIDER_ORDER"):
        gateway["provider_order"] = tuple(
            _parse_provider("CROPADVISOR_PROVIDER_ORDER", item)
            for item in env["CROPADVISOR_PROVIDER_ORDER"].split(",")
            if item.strip()
        )
    if env.get("CROPADVISOR_PRIMARY_PROVIDER"):
        gateway["primary_provider"] = _parse_provider(
            "CROPADVISOR_PRIMARY_PROVIDER", env["CROPADVISOR_PRIMARY_PROVIDER"]
        )
    elif "provider_order" in gateway and gateway["provider_order"]:
        gateway["primary_provider"] = gateway["provider_order"][0]
    if env.get("CROPADVISOR_FALLBACK_ENABLED"):
        gateway["fallback_enabled"] = _parse_bool(
            "CROPADVISOR_FALLBACK_ENABLED", env["CROPADVISOR_FALLBACK_ENABLED"]
        )

    numeric_options = (
        ("CROPADVISOR_TIMEOUT_SECONDS", "timeout_seconds", float),
        ("CROPADVISOR_RETRY_ATTEMPTS", "retry_attempts", int),
        ("CROPADVISOR_RETRY_INITIAL_DELAY", "retry_initial_delay", float),
        ("CROPADVISOR_RETRY_MULTIPLIER", "retry_multiplier", float),
        ("CROPADVISOR_HISTORICAL_THROTTLE_SECONDS", "historical_throttle_seconds", float),
    )
    for var, field_name, cast in numeric_options:
        if env.get(var):
            gateway[field_name] = _parse_number(var, env[var], cast)

    providers = {}
    for name, url in DEFAULT_BASE_URLS.items():
        prefix = f"CROPADVISOR_{name.value.upper()}"
        provider: Dict[str, object] = {
            "name": name,
            "base_url": (env.get(f"{prefix}_BASE_URL") or url).strip(),
            "api_key": env.get(API_KEY_ENV_VARS[name]) or None,
        }
        if env.get(f"{prefix}_ENABLED"):
            provider["enabled"] = _parse_bool(f"{prefix}_ENABLED", env[f"{prefix}_ENABLED"])
        providers[name] = provider

    advisory: Dict[str, object] = {}
    if env.get("CROPADVISOR_ADVISORY_ENABLED"):
        advisory["enabled"] = _parse_bool(
            "CROPADVISOR_ADVISORY_ENABLED", env["CROPADVISOR_ADVISORY_ENABLED"]
        )
    for var, field_name in (
        ("CROPADVISOR_ADVISORY_BACKEND", "backend"),
        ("CROPADVISOR_ADVISORY_BASE_URL", "base_url"),
        ("CROPADVISOR_ADVISORY_API_KEY", "api_key"),
        ("CROPADVISOR_ADVISORY_MODEL", "model"),
    ):
        if env.get(var):
            advisory[field_name] = env[var].strip()

    data: Dict[str, object] = {
        "gateway": gateway,
        "providers": providers,
        "advisory": advisory,
    }
    if env.get("CROPADVISOR_THRESHOLDS_FILE"):
        data.update(load_thresholds_file(env["CROPADVISOR_THRESHOLDS_FILE"]))
    if env.get("CROPADVISOR_DATABASE_URL"):
        data["database_url"] = env["CROPADVISOR_DATABASE_URL"]

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid cropadvisor configuration: {e}") from e

    configured = [
        p.value for p in settings.gateway.provider_order
        if settings.providers[p].enabled and settings.providers[p].api_key
    ]
    if not configured:
        logger.warning("No weather provider API keys configured - weather fetches will return no data")

    return settings


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
