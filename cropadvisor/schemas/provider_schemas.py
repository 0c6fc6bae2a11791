"""
Pydantic wire models for the external weather providers.

Only the fields the adapters consume are declared; everything else in
the payloads is ignored. A payload that does not fit these models is a
ProviderResponseError, not a crash.
"""
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ==================== WEATHERAPI.COM ====================

class WeatherApiLocation(WireModel):
    name: Optional[str] = None
    tz_id: Optional[str] = None
    localtime: Optional[str] = Field(None, description="Local time, 'YYYY-MM-DD HH:MM'")


class WeatherApiCurrent(WireModel):
    temp_c: Optional[float] = None
    precip_mm: Optional[float] = None
    humidity: Optional[float] = None
    wind_kph: Optional[float] = None
    pressure_mb: Optional[float] = None
    uv: Optional[float] = None
    vis_km: Optional[float] = None
    cloud: Optional[float] = None


class WeatherApiDay(WireModel):
    mintemp_c: Optional[float] = None
    maxtemp_c: Optional[float] = None
    avgtemp_c: Optional[float] = None
    totalprecip_mm: Optional[float] = None
    avghumidity: Optional[float] = None
    maxwind_kph: Optional[float] = None
    uv: Optional[float] = None


class WeatherApiForecastDay(WireModel):
    date: date
    day: WeatherApiDay


class WeatherApiForecast(WireModel):
    forecastday: List[WeatherApiForecastDay] = Field(default_factory=list)


class WeatherApiAlert(WireModel):
    headline: Optional[str] = None
    desc: Optional[str] = None
    severity: Optional[str] = None
    urgency: Optional[str] = None
    areas: Optional[str] = None
    effective: Optional[str] = None
    expires: Optional[str] = None


class WeatherApiAlerts(WireModel):
    alert: List[WeatherApiAlert] = Field(default_factory=list)


class WeatherApiCurrentResponse(WireModel):
    location: Optional[WeatherApiLocation] = None
    current: WeatherApiCurrent


class WeatherApiForecastResponse(WireModel):
    location: Optional[WeatherApiLocation] = None
    forecast: WeatherApiForecast
    alerts: Optional[WeatherApiAlerts] = None


# ==================== OPENWEATHERMAP ====================

class OpenWeatherMain(WireModel):
    temp: Optional[float] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    pressure: Optional[float] = None
    humidity: Optional[float] = None


class OpenWeatherWind(WireModel):
    speed: Optional[float] = Field(None, description="m/s with units=metric")


class OpenWeatherClouds(WireModel):
    all: Optional[float] = None


class OpenWeatherRain(WireModel):
    one_hour: Optional[float] = Field(None, alias="1h")
    three_hours: Optional[float] = Field(None, alias="3h")


class OpenWeatherCurrentResponse(WireModel):
    dt: Optional[int] = None
    timezone: int = Field(0, description="Shift in seconds from UTC")
    main: OpenWeatherMain
    wind: OpenWeatherWind = Field(default_factory=OpenWeatherWind)
    clouds: OpenWeatherClouds = Field(default_factory=OpenWeatherClouds)
    rain: Optional[OpenWeatherRain] = None
    visibility: Optional[float] = Field(None, description="meters")


class OpenWeatherForecastItem(WireModel):
    dt: int
    main: OpenWeatherMain
    wind: OpenWeatherWind = Field(default_factory=OpenWeatherWind)
    rain: Optional[OpenWeatherRain] = None


class OpenWeatherCity(WireModel):
    name: Optional[str] = None
    timezone: int = 0


class OpenWeatherForecastResponse(WireModel):
    list: List[OpenWeatherForecastItem] = Field(default_factory=list)
    city: OpenWeatherCity = Field(default_factory=OpenWeatherCity)


class OpenWeatherHistoricalData(WireModel):
    dt: int
    temp: Optional[float] = None
    pressure: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    rain: Optional[OpenWeatherRain] = None


class OpenWeatherHistoricalResponse(WireModel):
    timezone_offset: int = 0
    data: List[OpenWeatherHistoricalData] = Field(default_factory=list)


class OpenWeatherAlert(WireModel):
    sender_name: Optional[str] = None
    event: str
    start: int
    end: int
    description: Optional[str] = None


class OpenWeatherOneCallResponse(WireModel):
    timezone_offset: int = 0
    alerts: List[OpenWeatherAlert] = Field(default_factory=list)


# ==================== WEATHERSTACK ====================

class WeatherstackLocation(WireModel):
    name: Optional[str] = None
    localtime: Optional[str] = None


class WeatherstackCurrent(WireModel):
    temperature: Optional[float] = None
    precip: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = Field(None, description="km/h with units=m")
    pressure: Optional[float] = None
    uv_index: Optional[float] = None
    visibility: Optional[float] = Field(None, description="km with units=m")
    cloudcover: Optional[float] = None


class WeatherstackCurrentResponse(WireModel):
    location: Optional[WeatherstackLocation] = None
    current: WeatherstackCurrent


class WeatherstackError(WireModel):
    code: Optional[int] = None
    type: Optional[str] = None
    info: Optional[str] = None
