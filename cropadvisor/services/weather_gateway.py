"""
Weather acquisition gateway.

Delivers the freshest available observation for a farm despite provider
flakiness:

1. The primary provider is tried up to `retry_attempts` times, backing
   off exponentially between attempts, but only for transient errors.
2. If it fails or returns nothing and fallback is enabled, every other
   provider is tried exactly once, in configured order.
3. If all providers fail, weather operations return None (forecast: [])
   and alerts return []. Callers never see transport errors.

Every attempt is recorded in a FetchOutcome so failures stay diagnosable.
The gateway is a pure fetch service: it never touches persistence.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, TypeVar

from cropadvisor.core.config import Settings, get_settings
from cropadvisor.core.exceptions import ProviderError, classify_provider_error
from cropadvisor.models.domain import Farm, Location, Observation, WeatherAlert
from cropadvisor.services.observation_validator import ObservationValidator
from cropadvisor.services.weather_providers import WeatherProvider, build_providers

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProviderAttempt:
    """One call to one provider."""
    provider: str
    attempt: int
    elapsed_ms: float
    error: Optional[ProviderError] = None
    no_data: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.no_data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "attempt": self.attempt,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "succeeded": self.succeeded,
            "no_data": self.no_data,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class FetchOutcome:
    """Result of a gateway operation plus the trail of attempts behind it."""
    operation: str
    value: Any = None
    provider: Optional[str] = None
    attempts: List[ProviderAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.provider is not None

    @property
    def errors(self) -> List[ProviderError]:
        return [a.error for a in self.attempts if a.error is not None]

    def attempts_for(self, provider: str) -> List[ProviderAttempt]:
        return [a for a in self.attempts if a.provider == provider]


class WeatherGateway:
    """
    Resilient front door to the weather providers.

    Args:
        settings: Application settings (retry, fallback and provider order)
        providers: Adapters, primary first. Built from settings when omitted.
        validator: Observation validator
        sleep: Sleep function used for backoff (injectable for tests)
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        settings: Settings,
        providers: Optional[List[WeatherProvider]] = None,
        validator: Optional[ObservationValidator] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.settings = settings
        self.providers = providers if providers is not None else build_providers(settings)
        self.validator = validator or ObservationValidator()
        self.sleep = sleep
        self.clock = clock

        if len({id(p) for p in self.providers}) != len(self.providers):
            raise ValueError("Each provider in the chain must be a distinct adapter instance")

    # ==================== PUBLIC API ====================

    def fetch_current_weather(self, farm: Farm) -> Optional[Observation]:
        return self.fetch_current_weather_with_diagnostics(farm).value

    def fetch_weather_forecast(self, farm: Farm, days: int = 7) -> List[Observation]:
        return self.fetch_weather_forecast_with_diagnostics(farm, days).value

    def fetch_historical_weather(self, farm: Farm, day: date) -> Optional[Observation]:
        return self.fetch_historical_weather_with_diagnostics(farm, day).value

    def fetch_weather_alerts(self, farm: Farm) -> List[WeatherAlert]:
        return self.fetch_weather_alerts_with_diagnostics(farm).value

    def fetch_current_weather_with_diagnostics(self, farm: Farm) -> FetchOutcome:
        return self._fetch_observation(
            "current", farm, lambda provider, location: provider.fetch_current(location)
        )

    def fetch_historical_weather_with_diagnostics(self, farm: Farm, day: date) -> FetchOutcome:
        return self._fetch_observation(
            "historical", farm, lambda provider, location: provider.fetch_historical(location, day)
        )

    def fetch_weather_forecast_with_diagnostics(self, farm: Farm, days: int = 7) -> FetchOutcome:
        location = self._location_of(farm, "forecast")
        if location is None:
            return FetchOutcome(operation="forecast", value=[])

        def accept(forecast: List[Observation]) -> Optional[List[Observation]]:
            kept = [
                self.validator.sanitize(obs).for_farm(farm.id)
                for obs in forecast or []
                if self.validator.validate(obs)
            ]
            dropped = len(forecast or []) - len(kept)
            if dropped:
                logger.warning(f"Dropped {dropped} implausible forecast day(s) for farm {farm.name}")
            return kept or None

        outcome = self._run(
            "forecast",
            lambda provider: provider.fetch_forecast(location, days),
            accept,
        )
        if outcome.value is None:
            outcome.value = []
        return outcome

    def fetch_weather_alerts_with_diagnostics(self, farm: Farm) -> FetchOutcome:
        """Alerts are best effort: any failure ends in an empty list."""
        location = self._location_of(farm, "alerts")
        if location is None:
            return FetchOutcome(operation="alerts", value=[])

        outcome = self._run(
            "alerts",
            lambda provider: provider.fetch_alerts(location),
            lambda alerts: list(alerts or []),
        )
        if outcome.value is None:
            outcome.value = []
        return outcome

    # ==================== INTERNALS ====================

    def _location_of(self, farm: Farm, operation: str) -> Optional[Location]:
        location = farm.location
        if location is None:
            logger.warning(f"Farm {farm.name} (id={farm.id}) has no coordinates - skipping {operation} fetch")
        return location

    def _fetch_observation(
        self,
        operation: str,
        farm: Farm,
        call: Callable[[WeatherProvider, Location], Optional[Observation]]
    ) -> FetchOutcome:
        location = self._location_of(farm, operation)
        if location is None:
            return FetchOutcome(operation=operation)

        def accept(obs: Optional[Observation]) -> Optional[Observation]:
            if obs is None or not obs.has_measurements():
                return None
            if not self.validator.validate(obs):
                return None
            return self.validator.sanitize(obs).for_farm(farm.id)

        return self._run(operation, lambda provider: call(provider, location), accept)

    def _chain(self) -> List[WeatherProvider]:
        if self.settings.gateway.fallback_enabled:
            return list(self.providers)
        return list(self.providers[:1])

    def _run(
        self,
        operation: str,
        call: Callable[[WeatherProvider], T],
        accept: Callable[[T], Optional[T]]
    ) -> FetchOutcome:
        """
        Walk the provider chain until one provider yields acceptable data.

        `accept` returns the value to hand back, or None when the raw result
        carries no usable data.
        """
        gateway = self.settings.gateway
        outcome = FetchOutcome(operation=operation)
        chain = self._chain()

        if not chain:
            logger.warning(f"No weather providers configured for {operation}")
            return outcome

        for index, provider in enumerate(chain):
            name = provider.name.value
            max_attempts = gateway.retry_attempts if index == 0 else 1
            delay = gateway.retry_initial_delay

            if index == 1:
                logger.info(f"Primary provider {chain[0].name.value} gave no {operation} data, falling back")

            for attempt in range(1, max_attempts + 1):
                started = self.clock()
                error: Optional[ProviderError] = None
                value = None
                try:
                    value = accept(call(provider))
                except ProviderError as e:
                    error = e
                except Exception as e:
                    error = classify_provider_error(e, name, operation)
                elapsed_ms = (self.clock() - started) * 1000.0

                outcome.attempts.append(
                    ProviderAttempt(
                        provider=name,
                        attempt=attempt,
                        elapsed_ms=elapsed_ms,
                        error=error,
                        no_data=error is None and value is None,
                    )
                )

                if value is not None:
                    logger.info(
                        f"{operation} weather from {name} (attempt {attempt}) in {elapsed_ms:.0f}ms"
                    )
                    outcome.value = value
                    outcome.provider = name
                    return outcome

                if error is None:
                    logger.warning(f"{name} returned no usable {operation} data in {elapsed_ms:.0f}ms")
                    break

                logger.warning(
                    f"{name} {operation} attempt {attempt}/{max_attempts} failed "
                    f"in {elapsed_ms:.0f}ms: {error}"
                )
                if not error.retryable:
                    break
                if attempt < max_attempts:
                    self.sleep(delay)
                    delay *= gateway.retry_multiplier

        tried = ", ".join(p.name.value for p in chain)
        logger.warning(f"All weather providers failed for {operation} ({tried})")
        return outcome


# Singleton instance
_weather_gateway: Optional[WeatherGateway] = None


def get_weather_gateway() -> WeatherGateway:
    """Get or create the gateway built from process-wide settings."""
    global _weather_gateway
    if _weather_gateway is None:
        _weather_gateway = WeatherGateway(get_settings())
    return _weather_gateway
