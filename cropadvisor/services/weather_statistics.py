"""
Weather statistics over a stored date range.

Aggregates a farm's observations between two dates (inclusive) and reports
how complete the stored record is. Aggregates are None when no stored
observation in the range reports the value.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from cropadvisor.models.domain import Observation
from cropadvisor.services.observation_repository import ObservationRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataQuality:
    """Percentages in [0, 100]; the field ones are None when there are no records."""
    completeness_pct: float
    temperature_pct: Optional[float] = None
    rainfall_pct: Optional[float] = None


@dataclass(frozen=True)
class WeatherStatistics:
    farm_id: int
    start: date
    end: date
    record_count: int
    data_quality: DataQuality
    average_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    min_temperature: Optional[float] = None
    total_rainfall: Optional[float] = None
    average_humidity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start"] = self.start.isoformat()
        data["end"] = self.end.isoformat()
        return data


def _values(observations: Sequence[Observation], name: str) -> List[float]:
    return [getattr(o, name) for o in observations if getattr(o, name) is not None]


def _share(part: int, whole: int) -> Optional[float]:
    return part / whole * 100.0 if whole else None


def summarize_observations(
    farm_id: int,
    start: date,
    end: date,
    observations: Sequence[Observation]
) -> WeatherStatistics:
    """
    Build statistics from observations already limited to [start, end].

    Temperature quality counts records with an average temperature;
    rainfall quality counts records with a rainfall amount.
    """
    if end < start:
        raise ValueError(f"end date {end} is before start date {start}")

    total_days = (end - start).days + 1
    count = len(observations)
    averages = _values(observations, "average_temperature")
    maxima = _values(observations, "max_temperature")
    minima = _values(observations, "min_temperature")
    rainfall = _values(observations, "rainfall_mm")
    humidity = _values(observations, "humidity_percentage")

    return WeatherStatistics(
        farm_id=farm_id,
        start=start,
        end=end,
        record_count=count,
        data_quality=DataQuality(
            completeness_pct=count / total_days * 100.0,
            temperature_pct=_share(len(averages), count),
            rainfall_pct=_share(len(rainfall), count),
        ),
        average_temperature=sum(averages) / len(averages) if averages else None,
        max_temperature=max(maxima) if maxima else None,
        min_temperature=min(minima) if minima else None,
        total_rainfall=sum(rainfall) if rainfall else None,
        average_humidity=sum(humidity) / len(humidity) if humidity else None,
    )


def get_weather_statistics(
    repository: ObservationRepository,
    farm_id: int,
    start: date,
    end: date
) -> WeatherStatistics:
    """Statistics for the observations stored for a farm between start and end."""
    observations = repository.find_observations_between(farm_id, start, end)
    stats = summarize_observations(farm_id, start, end, observations)
    logger.info(
        f"Weather statistics for farm {farm_id} {start}..{end}: {stats.record_count} record(s), "
        f"{stats.data_quality.completeness_pct:.0f}% complete"
    )
    return stats
