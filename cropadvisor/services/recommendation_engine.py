"""
Recommendation rule engine for maize growing sessions.

generate() turns the recent observation window, the latest soil sample
and the growth phase into a deduplicated list of Recommendation values.

When an advisory service is configured, it is asked first; any failure
there falls back to the local rule set. The local rule set is made of
four independent families:

- Weather: heat/cold stress, drought/waterlogging, disease risk, wind
- Soil: nitrogen, pH and moisture bands
- Growth stage: fixed day windows (emergence, weeding, tasseling, ...)
- Variety: drought tolerance note, early-harvest reminder

Soil values outside their plausible range match no band and raise
DataIntegrityError; callers decide whether to skip the session or halt.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from cropadvisor.core.config import Settings, SoilThresholds, get_settings
from cropadvisor.core.exceptions import AdvisoryServiceError, DataIntegrityError
from cropadvisor.models.domain import (
    GrowingSession,
    GrowthPhase,
    Observation,
    Priority,
    Recommendation,
    SoilSample,
)
from cropadvisor.schemas.advisory_schemas import (
    AdvisoryRequest,
    FarmLocationPayload,
    SoilPayload,
    VarietyPayload,
    WeatherPayload,
)
from cropadvisor.services.advisory_service import AdvisoryClient, build_advisory_client
from cropadvisor.services.growth_phase import calculate_growth_phase
from cropadvisor.services.recommendation_rules import RULE_CATALOG

logger = logging.getLogger(__name__)


# ==================== WEATHER AGGREGATION ====================

@dataclass(frozen=True)
class WeatherSummary:
    """Aggregates over an observation window. None means no day reported the value."""
    days: int
    avg_temperature: Optional[float] = None
    total_rainfall: Optional[float] = None
    avg_humidity: Optional[float] = None
    max_wind: Optional[float] = None

    @classmethod
    def from_observations(cls, observations: Sequence[Observation]) -> "WeatherSummary":
        def present(name: str) -> List[float]:
            return [getattr(o, name) for o in observations if getattr(o, name) is not None]

        temps = present("average_temperature")
        rain = present("rainfall_mm")
        humidity = present("humidity_percentage")
        wind = present("wind_speed_kmh")

        return cls(
            days=len(observations),
            avg_temperature=sum(temps) / len(temps) if temps else None,
            total_rainfall=sum(rain) if rain else None,
            avg_humidity=sum(humidity) / len(humidity) if humidity else None,
            max_wind=max(wind) if wind else None,
        )


def _in_window(days: int, window: Tuple[int, int]) -> bool:
    start, end = window
    return start <= days <= end


# ==================== SOIL CLASSIFICATION ====================

def classify_nitrogen(value: float, thresholds: SoilThresholds) -> str:
    """Band for a nitrogen reading in %: critical, low or adequate."""
    low, high = thresholds.nitrogen_range_pct
    if not low <= value < high:
        raise DataIntegrityError(
            f"Nitrogen content {value}% matches no classification band "
            f"(expected {low} <= N < {high})",
            field="nitrogen_content",
            value=value,
        )
    if value < thresholds.nitrogen_critical_pct:
        return "critical"
    if value <= thresholds.nitrogen_low_pct:
        return "low"
    return "adequate"


def classify_ph(value: float, thresholds: SoilThresholds) -> str:
    """Band for a soil pH reading: acidic, neutral or alkaline."""
    low, high = thresholds.ph_range
    if not low <= value <= high:
        raise DataIntegrityError(
            f"Soil pH {value} matches no classification band (expected {low}-{high})",
            field="ph_level",
            value=value,
        )
    if value < thresholds.ph_acidic:
        return "acidic"
    if value > thresholds.ph_alkaline:
        return "alkaline"
    return "neutral"


def classify_moisture(value: float, thresholds: SoilThresholds) -> str:
    """Band for a soil moisture reading in %: deficit, normal or excess."""
    low, high = thresholds.moisture_range_pct
    if not low <= value <= high:
        raise DataIntegrityError(
            f"Soil moisture {value}% matches no classification band (expected {low}-{high})",
            field="moisture_content",
            value=value,
        )
    if value < thresholds.moisture_deficit_pct:
        return "deficit"
    if value > thresholds.moisture_excess_pct:
        return "excess"
    return "normal"


# ==================== ENGINE ====================

def deduplicate(recommendations: Sequence[Recommendation]) -> List[Recommendation]:
    """Keep the first recommendation per (category, title)."""
    unique: Dict[Tuple[str, str], Recommendation] = {}
    for rec in recommendations:
        unique.setdefault(rec.key, rec)
    return list(unique.values())


class RecommendationEngine:
    """
    Stateless rule engine.

    Args:
        settings: Application settings (thresholds and advisory options)
        advisory_client: Remote advisory backend; built from settings when omitted
        today: Date provider (injectable for tests)
    """

    def __init__(
        self,
        settings: Settings,
        advisory_client: Optional[AdvisoryClient] = None,
        today: Callable[[], date] = date.today
    ):
        self.settings = settings
        self.today = today
        if advisory_client is None:
            advisory_client = build_advisory_client(settings.advisory)
        self.advisory_client = advisory_client

    @property
    def advisory_enabled(self) -> bool:
        return self.settings.advisory.enabled and self.advisory_client is not None

    def generate(
        self,
        session: GrowingSession,
        recent_observations: Sequence[Observation],
        latest_soil: Optional[SoilSample]
    ) -> List[Recommendation]:
        """
        Generate recommendations for one growing session.

        Raises:
            DataIntegrityError: a soil value matched no classification band
        """
        today = self.today()
        days = session.days_since_planting(today)
        phase = calculate_growth_phase(days, session.variety.maturity_days)

        if self.advisory_enabled:
            try:
                recommendations = self._generate_remote(
                    session, recent_observations, latest_soil, days, phase, today
                )
                logger.info(
                    f"Session {session.id}: {len(recommendations)} recommendation(s) "
                    f"from {self.advisory_client.backend} advisory service"
                )
                return recommendations
            except AdvisoryServiceError as e:
                logger.warning(f"Advisory service failed for session {session.id}, using local rules: {e}")
            except Exception:
                logger.exception(
                    f"Unexpected advisory error for session {session.id}, using local rules"
                )

        recommendations = self.evaluate_local_rules(session, recent_observations, latest_soil, days, today)
        logger.info(
            f"Session {session.id} (day {days}, {phase.value}): "
            f"{len(recommendations)} recommendation(s) from local rules"
        )
        return recommendations

    def evaluate_local_rules(
        self,
        session: GrowingSession,
        observations: Sequence[Observation],
        soil: Optional[SoilSample],
        days: int,
        today: date
    ) -> List[Recommendation]:
        summary = WeatherSummary.from_observations(observations)

        recommendations: List[Recommendation] = []
        recommendations.extend(self._weather_rules(session, summary, days, today))
        if soil is not None:
            recommendations.extend(self._soil_rules(session, soil, days, today))
        recommendations.extend(self._growth_stage_rules(session, days, today))
        recommendations.extend(self._variety_rules(session, summary, days, today))
        return deduplicate(recommendations)

    # ---- rule families ----

    def _weather_rules(
        self, session: GrowingSession, summary: WeatherSummary, days: int, today: date
    ) -> List[Recommendation]:
        t = self.settings.weather
        recs = []

        avg_temp = summary.avg_temperature
        if avg_temp is not None:
            if avg_temp > t.heat_stress_temp_c and _in_window(days, t.heat_stress_days):
                recs.append(self._build("heat_stress", session, today, avg_temp=avg_temp))
            elif avg_temp < t.cold_stress_temp_c and days < t.cold_stress_before_day:
                recs.append(self._build("cold_protection", session, today, avg_temp=avg_temp))

        rainfall = summary.total_rainfall
        if rainfall is not None:
            if rainfall < t.drought_rainfall_mm and _in_window(days, t.drought_days):
                recs.append(self._build("drought", session, today, total_rainfall=rainfall))
            elif rainfall > t.waterlog_rainfall_mm:
                recs.append(self._build("waterlogging", session, today, total_rainfall=rainfall))

        humidity = summary.avg_humidity
        if (
            humidity is not None and avg_temp is not None
            and humidity > t.disease_humidity_pct and avg_temp > t.disease_temp_c
        ):
            recs.append(self._build("disease_risk", session, today, avg_humidity=humidity, avg_temp=avg_temp))

        if summary.max_wind is not None and summary.max_wind > t.wind_damage_kmh:
            recs.append(self._build("wind_damage", session, today, max_wind=summary.max_wind))

        return recs

    def _soil_rules(
        self, session: GrowingSession, soil: SoilSample, days: int, today: date
    ) -> List[Recommendation]:
        t = self.settings.soil
        recs = []

        nitrogen = soil.nitrogen_content
        if nitrogen is not None:
            band = classify_nitrogen(nitrogen, t)
            if band == "critical" and _in_window(days, t.nitrogen_critical_days):
                recs.append(self._build("nitrogen_critical", session, today, nitrogen=nitrogen))
            elif band == "low" and _in_window(days, t.nitrogen_low_days):
                recs.append(self._build("nitrogen_low", session, today, nitrogen=nitrogen))

        ph = soil.ph_level
        if ph is not None:
            band = classify_ph(ph, t)
            if band == "acidic":
                recs.append(self._build("ph_acidic", session, today, ph=ph))
            elif band == "alkaline":
                recs.append(self._build("ph_alkaline", session, today, ph=ph))

        moisture = soil.moisture_content
        if moisture is not None:
            band = classify_moisture(moisture, t)
            if band == "deficit" and _in_window(days, t.moisture_deficit_days):
                recs.append(self._build("moisture_deficit", session, today, moisture=moisture))
            elif band == "excess":
                recs.append(self._build("moisture_excess", session, today, moisture=moisture))

        return recs

    def _growth_stage_rules(self, session: GrowingSession, days: int, today: date) -> List[Recommendation]:
        w = self.settings.growth_stages
        windows = (
            ("emergence", w.emergence),
            ("weed_control", w.weed_control),
            ("pre_tasseling", w.pre_tasseling),
            ("pollination", w.pollination),
            ("grain_filling", w.grain_filling),
        )
        return [
            self._build(rule_id, session, today)
            for rule_id, window in windows
            if _in_window(days, window)
        ]

    def _variety_rules(
        self, session: GrowingSession, summary: WeatherSummary, days: int, today: date
    ) -> List[Recommendation]:
        t = self.settings.variety
        variety = session.variety
        recs = []

        rainfall = summary.total_rainfall
        if variety.drought_resistant and rainfall is not None and rainfall < t.drought_tolerant_rainfall_mm:
            recs.append(
                self._build("drought_tolerance", session, today, variety=variety.name, total_rainfall=rainfall)
            )

        if variety.maturity_days < t.short_maturity_days and days > t.harvest_prep_after_day:
            recs.append(
                self._build(
                    "early_harvest", session, today,
                    variety=variety.name, maturity_days=variety.maturity_days
                )
            )

        return recs

    def _build(self, rule_id: str, session: GrowingSession, today: date, **values) -> Recommendation:
        rule = RULE_CATALOG[rule_id]
        return Recommendation(
            session_id=session.id,
            category=rule["category"],
            title=rule["title"],
            description=rule["description"].format(**values),
            priority=Priority(rule["priority"]),
            confidence=rule["confidence"],
            recommendation_date=today,
        )

    # ---- remote advisory ----

    def build_advisory_request(
        self,
        session: GrowingSession,
        observations: Sequence[Observation],
        soil: Optional[SoilSample],
        days: int,
        phase: GrowthPhase
    ) -> AdvisoryRequest:
        farm = session.farm
        variety = session.variety
        soil_payload = None
        if soil is not None:
            soil_payload = SoilPayload(
                soil_type=soil.soil_type,
                ph_level=soil.ph_level,
                organic_matter=soil.organic_matter_percentage,
                nitrogen=soil.nitrogen_content,
                phosphorus=soil.phosphorus_content,
                potassium=soil.potassium_content,
                moisture=soil.moisture_content,
            )

        return AdvisoryRequest(
            farm_id=farm.id,
            planting_session_id=session.id,
            variety=variety.name,
            planting_date=session.planting_date,
            days_since_planting=days,
            growth_phase=phase.value,
            farm_location=FarmLocationPayload(
                latitude=farm.latitude, longitude=farm.longitude, elevation=farm.elevation
            ),
            soil_data=soil_payload,
            weather_data=[
                WeatherPayload(
                    date=obs.date,
                    min_temp=obs.min_temperature,
                    max_temp=obs.max_temperature,
                    avg_temp=obs.average_temperature,
                    rainfall=obs.rainfall_mm,
                    humidity=obs.humidity_percentage,
                    wind_speed=obs.wind_speed_kmh,
                )
                for obs in sorted(observations, key=lambda o: o.date)
            ],
            variety_info=VarietyPayload(
                maturity_days=variety.maturity_days,
                drought_resistant=variety.drought_resistant,
                optimal_temp_min=variety.optimal_temp_min,
                optimal_temp_max=variety.optimal_temp_max,
            ),
        )

    def _generate_remote(
        self,
        session: GrowingSession,
        observations: Sequence[Observation],
        soil: Optional[SoilSample],
        days: int,
        phase: GrowthPhase,
        today: date
    ) -> List[Recommendation]:
        try:
            request = self.build_advisory_request(session, observations, soil, days, phase)
        except ValidationError as e:
            raise AdvisoryServiceError(f"Cannot build advisory request: {e.error_count()} error(s)") from e
        response = self.advisory_client.generate(request)
        source = response.model or self.advisory_client.backend
        return deduplicate([
            Recommendation(
                session_id=session.id,
                category=item.category,
                title=item.title,
                description=item.description,
                priority=item.priority,
                confidence=item.confidence,
                recommendation_date=today,
                reasoning=item.reasoning,
                action_items=tuple(item.action_items),
                expected_outcome=item.expected_outcome,
                source=source,
            )
            for item in response.recommendations
        ])


# Singleton instance
_recommendation_engine: Optional[RecommendationEngine] = None


def get_recommendation_engine() -> RecommendationEngine:
    """Get or create the engine built from process-wide settings."""
    global _recommendation_engine
    if _recommendation_engine is None:
        _recommendation_engine = RecommendationEngine(get_settings())
    return _recommendation_engine
