"""
Canonical in-memory records for cropadvisor.

These are independent of any provider wire format and of the database
tables: adapters produce them, the validator sanitizes them, the rule
engine consumes them and the repository maps them to rows.
"""
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class GrowthPhase(str, Enum):
    """Maize phenology, in chronological order."""
    GERMINATION = "GERMINATION"
    VEGETATIVE_EARLY = "VEGETATIVE_EARLY"
    VEGETATIVE_LATE = "VEGETATIVE_LATE"
    TASSELING = "TASSELING"
    GRAIN_FILLING = "GRAIN_FILLING"
    MATURITY = "MATURITY"
    POST_HARVEST = "POST_HARVEST"

    @property
    def order(self) -> int:
        return list(GrowthPhase).index(self)


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return list(Priority).index(self)


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def as_query(self) -> str:
        return f"{self.latitude},{self.longitude}"


@dataclass(frozen=True)
class Farm:
    id: int
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    elevation: Optional[float] = None

    @property
    def location(self) -> Optional[Location]:
        """Coordinates, or None when the farm has not been geolocated."""
        if self.latitude is None or self.longitude is None:
            return None
        return Location(self.latitude, self.longitude)


@dataclass(frozen=True)
class Variety:
    """Maize variety traits used by the growth-phase and variety rules."""
    name: str
    maturity_days: int
    optimal_temp_min: Optional[float] = None
    optimal_temp_max: Optional[float] = None
    drought_resistant: bool = False
    disease_resistance: Optional[str] = None


@dataclass(frozen=True)
class GrowingSession:
    id: int
    farm: Farm
    variety: Variety
    planting_date: date
    expected_harvest_date: Optional[date] = None
    actual_harvest_date: Optional[date] = None

    def days_since_planting(self, today: Optional[date] = None) -> int:
        """Elapsed days since planting, clamped at 0 for future plantings."""
        today = today or date.today()
        return max(0, (today - self.planting_date).days)


MEASUREMENT_FIELDS = (
    "min_temperature",
    "max_temperature",
    "average_temperature",
    "rainfall_mm",
    "humidity_percentage",
    "wind_speed_kmh",
    "solar_radiation",
    "pressure_mb",
    "uv_index",
    "visibility_km",
    "cloud_cover",
)


@dataclass(frozen=True)
class Observation:
    """
    One day of weather for one location.

    Every measurement is optional: None means the provider did not report
    the value, never zero.
    """
    date: date
    source: str
    farm_id: Optional[int] = None
    min_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    average_temperature: Optional[float] = None
    rainfall_mm: Optional[float] = None
    humidity_percentage: Optional[float] = None
    wind_speed_kmh: Optional[float] = None
    solar_radiation: Optional[float] = None
    pressure_mb: Optional[float] = None
    uv_index: Optional[float] = None
    visibility_km: Optional[float] = None
    cloud_cover: Optional[float] = None

    def has_measurements(self) -> bool:
        return any(getattr(self, name) is not None for name in MEASUREMENT_FIELDS)

    def for_farm(self, farm_id: int) -> "Observation":
        return replace(self, farm_id=farm_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass(frozen=True)
class SoilSample:
    farm_id: int
    sample_date: date
    soil_type: Optional[str] = None
    ph_level: Optional[float] = None
    organic_matter_percentage: Optional[float] = None
    nitrogen_content: Optional[float] = None
    phosphorus_content: Optional[float] = None
    potassium_content: Optional[float] = None
    moisture_content: Optional[float] = None


@dataclass(frozen=True)
class WeatherAlert:
    headline: str
    source: str
    description: Optional[str] = None
    severity: Optional[str] = None
    urgency: Optional[str] = None
    areas: Optional[str] = None
    effective: Optional[str] = None
    expires: Optional[str] = None


@dataclass(frozen=True)
class Recommendation:
    """
    A generated piece of agronomic guidance for one growing session.

    Priority, confidence and the texts are fixed at generation time; the
    grower only flips viewed/implemented, which yields a new copy.
    """
    session_id: int
    category: str
    title: str
    description: str
    priority: Priority
    confidence: float
    recommendation_date: date
    viewed: bool = False
    implemented: bool = False
    reasoning: Optional[str] = None
    action_items: Tuple[str, ...] = field(default_factory=tuple)
    expected_outcome: Optional[str] = None
    source: str = "local"

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.category, self.title)

    def mark_viewed(self) -> "Recommendation":
        return replace(self, viewed=True)

    def mark_implemented(self) -> "Recommendation":
        return replace(self, implemented=True)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["priority"] = self.priority.value
        data["recommendation_date"] = self.recommendation_date.isoformat()
        data["action_items"] = list(self.action_items)
        return data
