"""
Weather provider adapters.

Each adapter translates one external JSON API into canonical Observation
and WeatherAlert records. All adapters expose the same capability set:

- fetch_current(location)            -> Optional[Observation]
- fetch_forecast(location, days)     -> List[Observation]
- fetch_historical(location, day)    -> Optional[Observation]
- fetch_alerts(location)             -> List[WeatherAlert]

Failures surface as ProviderError subclasses (see core.exceptions) so the
gateway can tell transient trouble from unsupported operations. Adapters
never retry on their own.
"""
import calendar
import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from cropadvisor.core.config import ProviderName, ProviderSettings, Settings
from cropadvisor.core.exceptions import (
    ProviderResponseError,
    UnsupportedOperationError,
    classify_provider_error,
)
from cropadvisor.models.domain import Location, Observation, WeatherAlert
from cropadvisor.schemas.provider_schemas import (
    OpenWeatherCurrentResponse,
    OpenWeatherForecastItem,
    OpenWeatherForecastResponse,
    OpenWeatherHistoricalResponse,
    OpenWeatherOneCallResponse,
    WeatherApiCurrentResponse,
    WeatherApiForecastDay,
    WeatherApiForecastResponse,
    WeatherstackCurrentResponse,
    WeatherstackError,
)

logger = logging.getLogger(__name__)

MS_TO_KMH = 3.6
METERS_PER_KM = 1000.0


def _local_date(timestamp: int, offset_seconds: int) -> date:
    """Calendar date of a UTC epoch timestamp at a fixed UTC offset."""
    return datetime.fromtimestamp(timestamp + offset_seconds, tz=timezone.utc).date()


def _local_iso(timestamp: int, offset_seconds: int) -> str:
    tz = timezone(timedelta(seconds=offset_seconds))
    return datetime.fromtimestamp(timestamp, tz=tz).isoformat()


def _date_from_localtime(localtime: Optional[str]) -> Optional[date]:
    """Parse the date part of a provider 'YYYY-MM-DD HH:MM' local time."""
    if not localtime:
        return None
    try:
        return date.fromisoformat(localtime.strip()[:10])
    except ValueError:
        return None


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class WeatherProvider:
    """
    Base class for provider adapters.

    Subclasses set `name` and `source` and override the operations they
    support; the rest raise UnsupportedOperationError.
    """

    name: ProviderName
    source: str

    def __init__(
        self,
        settings: ProviderSettings,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
        today: Callable[[], date] = date.today
    ):
        self.settings = settings
        self.timeout = timeout
        self.client = client or httpx.Client(timeout=timeout)
        self.today = today

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name.value}>"

    # ---- capability set ----

    def fetch_current(self, location: Location) -> Optional[Observation]:
        raise self._unsupported("current")

    def fetch_forecast(self, location: Location, days: int) -> List[Observation]:
        raise self._unsupported("forecast")

    def fetch_historical(self, location: Location, day: date) -> Optional[Observation]:
        raise self._unsupported("historical")

    def fetch_alerts(self, location: Location) -> List[WeatherAlert]:
        raise self._unsupported("alerts")

    def close(self) -> None:
        self.client.close()

    # ---- helpers ----

    def _unsupported(self, operation: str, reason: str = "operation not available") -> UnsupportedOperationError:
        return UnsupportedOperationError(reason, provider=self.name.value, operation=operation)

    def _get_json(self, operation: str, url: str, params: Dict[str, Any]) -> Any:
        if not self.settings.api_key:
            raise self._unsupported(operation, "no API key configured")

        logger.debug(f"{self.name.value} {operation}: GET {url}")
        try:
            response = self.client.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except Exception as e:
            raise classify_provider_error(e, self.name.value, operation, url) from e

    def _parse(self, model: Type[BaseModel], payload: Any, operation: str, url: Optional[str] = None):
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise classify_provider_error(e, self.name.value, operation, url) from e


class WeatherApiAdapter(WeatherProvider):
    """WeatherAPI.com: current, forecast (up to 10 days), history and alerts."""

    name = ProviderName.WEATHERAPI
    source = "WeatherAPI"
    MAX_FORECAST_DAYS = 10

    def _url(self, endpoint: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{endpoint}"

    def _params(self, location: Location, **extra) -> Dict[str, Any]:
        params = {"key": self.settings.api_key, "q": location.as_query()}
        params.update(extra)
        return params

    def _day_to_observation(self, forecast_day: WeatherApiForecastDay) -> Observation:
        day = forecast_day.day
        return Observation(
            date=forecast_day.date,
            source=self.source,
            min_temperature=day.mintemp_c,
            max_temperature=day.maxtemp_c,
            average_temperature=day.avgtemp_c,
            rainfall_mm=day.totalprecip_mm,
            humidity_percentage=day.avghumidity,
            wind_speed_kmh=day.maxwind_kph,
            uv_index=day.uv,
        )

    def fetch_current(self, location: Location) -> Optional[Observation]:
        url = self._url("current.json")
        payload = self._get_json("current", url, self._params(location, aqi="yes"))
        data = self._parse(WeatherApiCurrentResponse, payload, "current", url)
        current = data.current
        observed = _date_from_localtime(data.location.localtime if data.location else None)
        return Observation(
            date=observed or self.today(),
            source=self.source,
            average_temperature=current.temp_c,
            rainfall_mm=current.precip_mm,
            humidity_percentage=current.humidity,
            wind_speed_kmh=current.wind_kph,
            pressure_mb=current.pressure_mb,
            uv_index=current.uv,
            visibility_km=current.vis_km,
            cloud_cover=current.cloud,
        )

    def fetch_forecast(self, location: Location, days: int) -> List[Observation]:
        days = max(1, min(days, self.MAX_FORECAST_DAYS))
        url = self._url("forecast.json")
        payload = self._get_json(
            "forecast", url, self._params(location, days=days, aqi="no", alerts="yes")
        )
        data = self._parse(WeatherApiForecastResponse, payload, "forecast", url)
        return [self._day_to_observation(fd) for fd in data.forecast.forecastday]

    def fetch_historical(self, location: Location, day: date) -> Optional[Observation]:
        url = self._url("history.json")
        payload = self._get_json("historical", url, self._params(location, dt=day.isoformat()))
        data = self._parse(WeatherApiForecastResponse, payload, "historical", url)
        for forecast_day in data.forecast.forecastday:
            if forecast_day.date == day:
                return self._day_to_observation(forecast_day)
        return None

    def fetch_alerts(self, location: Location) -> List[WeatherAlert]:
        url = self._url("forecast.json")
        payload = self._get_json("alerts", url, self._params(location, days=1, alerts="yes"))
        data = self._parse(WeatherApiForecastResponse, payload, "alerts", url)
        if data.alerts is None:
            return []
        return [
            WeatherAlert(
                headline=alert.headline or "Weather alert",
                source=self.source,
                description=alert.desc,
                severity=alert.severity,
                urgency=alert.urgency,
                areas=alert.areas,
                effective=alert.effective,
                expires=alert.expires,
            )
            for alert in data.alerts.alert
        ]


class OpenWeatherAdapter(WeatherProvider):
    """
    OpenWeatherMap.

    Forecasts come as 3-hour slots (at most 40, i.e. 5 days) and are
    aggregated per local calendar date using the city's UTC offset.
    History and alerts use the One Call 3.0 API.
    """

    name = ProviderName.OPENWEATHER
    source = "OpenWeatherMap"
    SLOTS_PER_DAY = 8
    MAX_FORECAST_SLOTS = 40

    def _url(self, path: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{path}"

    def _params(self, location: Location, **extra) -> Dict[str, Any]:
        params = {
            "lat": location.latitude,
            "lon": location.longitude,
            "appid": self.settings.api_key,
            "units": "metric",
        }
        params.update(extra)
        return params

    def fetch_current(self, location: Location) -> Optional[Observation]:
        url = self._url("data/2.5/weather")
        payload = self._get_json("current", url, self._params(location))
        data = self._parse(OpenWeatherCurrentResponse, payload, "current", url)
        observed = _local_date(data.dt, data.timezone) if data.dt is not None else self.today()
        return Observation(
            date=observed,
            source=self.source,
            min_temperature=data.main.temp_min,
            max_temperature=data.main.temp_max,
            average_temperature=data.main.temp,
            rainfall_mm=data.rain.one_hour if data.rain else None,
            humidity_percentage=data.main.humidity,
            wind_speed_kmh=data.wind.speed * MS_TO_KMH if data.wind.speed is not None else None,
            pressure_mb=data.main.pressure,
            visibility_km=data.visibility / METERS_PER_KM if data.visibility is not None else None,
            cloud_cover=data.clouds.all,
        )

    def fetch_forecast(self, location: Location, days: int) -> List[Observation]:
        days = max(1, days)
        cnt = min(days * self.SLOTS_PER_DAY, self.MAX_FORECAST_SLOTS)
        url = self._url("data/2.5/forecast")
        payload = self._get_json("forecast", url, self._params(location, cnt=cnt))
        data = self._parse(OpenWeatherForecastResponse, payload, "forecast", url)

        buckets: "OrderedDict[date, List[OpenWeatherForecastItem]]" = OrderedDict()
        for item in sorted(data.list, key=lambda i: i.dt):
            buckets.setdefault(_local_date(item.dt, data.city.timezone), []).append(item)

        return [self._aggregate(day, items) for day, items in list(buckets.items())[:days]]

    def _aggregate(self, day: date, items: List[OpenWeatherForecastItem]) -> Observation:
        temps = [i.main.temp for i in items if i.main.temp is not None]
        humidity = [i.main.humidity for i in items if i.main.humidity is not None]
        winds = [i.wind.speed for i in items if i.wind.speed is not None]
        # Dry slots carry no "rain" object at all
        rainfall = sum(i.rain.three_hours for i in items if i.rain and i.rain.three_hours is not None)

        return Observation(
            date=day,
            source=self.source,
            min_temperature=min(temps) if temps else None,
            max_temperature=max(temps) if temps else None,
            average_temperature=_mean(temps),
            rainfall_mm=float(rainfall),
            humidity_percentage=_mean(humidity),
            wind_speed_kmh=max(winds) * MS_TO_KMH if winds else None,
        )

    def fetch_historical(self, location: Location, day: date) -> Optional[Observation]:
        timestamp = calendar.timegm(day.timetuple())
        url = self._url("data/3.0/onecall/timemachine")
        payload = self._get_json("historical", url, self._params(location, dt=timestamp))
        data = self._parse(OpenWeatherHistoricalResponse, payload, "historical", url)
        if not data.data:
            return None

        sample = data.data[0]
        return Observation(
            date=day,
            source=self.source,
            average_temperature=sample.temp,
            rainfall_mm=sample.rain.one_hour if sample.rain else None,
            humidity_percentage=sample.humidity,
            wind_speed_kmh=sample.wind_speed * MS_TO_KMH if sample.wind_speed is not None else None,
            pressure_mb=sample.pressure,
        )

    def fetch_alerts(self, location: Location) -> List[WeatherAlert]:
        url = self._url("data/3.0/onecall")
        payload = self._get_json(
            "alerts", url, self._params(location, exclude="minutely,hourly,daily")
        )
        data = self._parse(OpenWeatherOneCallResponse, payload, "alerts", url)
        return [
            WeatherAlert(
                headline=alert.event,
                source=self.source,
                description=alert.description,
                areas=f"{location.latitude}, {location.longitude}",
                effective=_local_iso(alert.start, data.timezone_offset),
                expires=_local_iso(alert.end, data.timezone_offset),
            )
            for alert in data.alerts
        ]


class WeatherstackAdapter(WeatherProvider):
    """
    Weatherstack: current conditions only.

    Forecast and historical data require a paid plan and alerts are not
    offered, so those operations are unsupported.
    """

    name = ProviderName.WEATHERSTACK
    source = "WeatherStack"

    def fetch_current(self, location: Location) -> Optional[Observation]:
        url = f"{self.settings.base_url.rstrip('/')}/current"
        params = {
            "access_key": self.settings.api_key,
            "query": location.as_query(),
            "units": "m",
        }
        payload = self._get_json("current", url, params)

        # Weatherstack reports API errors with HTTP 200
        if isinstance(payload, dict) and payload.get("success") is False:
            error = self._parse(WeatherstackError, payload.get("error") or {}, "current", url)
            raise ProviderResponseError(
                error.info or "request failed",
                provider=self.name.value,
                operation="current",
                url=url,
                context={"code": error.code, "type": error.type},
            )

        data = self._parse(WeatherstackCurrentResponse, payload, "current", url)
        current = data.current
        observed = _date_from_localtime(data.location.localtime if data.location else None)
        return Observation(
            date=observed or self.today(),
            source=self.source,
            average_temperature=current.temperature,
            rainfall_mm=current.precip,
            humidity_percentage=current.humidity,
            wind_speed_kmh=current.wind_speed,
            pressure_mb=current.pressure,
            uv_index=current.uv_index,
            visibility_km=current.visibility,
            cloud_cover=current.cloudcover,
        )

    def fetch_forecast(self, location: Location, days: int) -> List[Observation]:
        raise self._unsupported("forecast", "forecast requires a paid Weatherstack plan")

    def fetch_historical(self, location: Location, day: date) -> Optional[Observation]:
        raise self._unsupported("historical", "historical data requires a paid Weatherstack plan")


PROVIDER_ADAPTERS: Dict[ProviderName, Type[WeatherProvider]] = {
    ProviderName.WEATHERAPI: WeatherApiAdapter,
    ProviderName.OPENWEATHER: OpenWeatherAdapter,
    ProviderName.WEATHERSTACK: WeatherstackAdapter,
}


def build_providers(
    settings: Settings,
    clients: Optional[Dict[ProviderName, httpx.Client]] = None
) -> List[WeatherProvider]:
    """
    Instantiate one adapter per enabled provider, primary first.

    Args:
        settings: Application settings
        clients: Optional pre-built HTTP clients keyed by provider (tests)
    """
    clients = clients or {}
    providers = []
    for name in settings.gateway.ordered_providers():
        provider_settings = settings.providers[name]
        if not provider_settings.enabled:
            logger.info(f"Weather provider {name.value} disabled in settings")
            continue
        adapter_cls = PROVIDER_ADAPTERS[name]
        providers.append(
            adapter_cls(
                provider_settings,
                timeout=settings.gateway.timeout_seconds,
                client=clients.get(name),
            )
        )
    return providers
