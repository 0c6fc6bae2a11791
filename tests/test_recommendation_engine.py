"""
Tests for the recommendation rule engine.

Validates the four local rule families, soil band classification, data
integrity failures, deduplication and the remote advisory fallback.
"""
from datetime import date, timedelta

import pytest

from cropadvisor.core.config import Settings, SoilThresholds
from cropadvisor.core.exceptions import AdvisoryServiceError, DataIntegrityError
from cropadvisor.models.domain import Observation, Priority, Recommendation, Variety
from cropadvisor.schemas.advisory_schemas import AdvisoryResponse
from cropadvisor.services.advisory_service import AdvisoryClient, HttpAdvisoryClient
from cropadvisor.services.recommendation_engine import (
    RecommendationEngine,
    WeatherSummary,
    classify_moisture,
    classify_nitrogen,
    classify_ph,
    deduplicate,
)

TODAY = date(2024, 3, 1)


@pytest.fixture
def engine(settings):
    return RecommendationEngine(settings, today=lambda: TODAY)


def categories(recommendations):
    return [r.category for r in recommendations]


def by_category(recommendations, category):
    matches = [r for r in recommendations if r.category == category]
    assert matches, f"no {category} recommendation in {categories(recommendations)}"
    return matches[0]


# ==================== WEATHER RULES ====================

class TestWeatherRules:
    """Tests for the weather rule family."""

    def test_heat_stress(self, engine, make_session, make_observations):
        """Day 40 with a 37°C week triggers critical heat stress management."""
        recs = engine.generate(make_session(40), make_observations(average_temperature=37.0), None)

        heat = by_category(recs, "HEAT_STRESS")
        assert heat.priority == Priority.CRITICAL
        assert heat.title == "Critical Heat Stress Management"
        assert heat.confidence == 0.95
        assert "37.0°C" in heat.description
        assert heat.session_id == 1
        assert heat.recommendation_date == TODAY
        assert heat.source == "local"

    def test_heat_stress_outside_window(self, engine, make_session, make_observations):
        recs = engine.generate(make_session(90), make_observations(average_temperature=37.0), None)

        assert "HEAT_STRESS" not in categories(recs)

    def test_cold_protection_early_season(self, engine, make_session, make_observations):
        recs = engine.generate(make_session(10), make_observations(average_temperature=12.0), None)

        assert by_category(recs, "COLD_PROTECTION").priority == Priority.HIGH

    def test_cold_not_flagged_after_day_30(self, engine, make_session, make_observations):
        recs = engine.generate(make_session(30), make_observations(average_temperature=12.0), None)

        assert "COLD_PROTECTION" not in categories(recs)

    def test_drought(self, engine, make_session, make_observations):
        """Seven days of 0.5mm is 3.5mm total, well below the drought trigger."""
        recs = engine.generate(make_session(50), make_observations(rainfall_mm=0.5), None)

        drought = by_category(recs, "DROUGHT_MANAGEMENT")
        assert drought.priority == Priority.CRITICAL
        assert "3.5mm" in drought.description

    def test_waterlogging(self, engine, make_session, make_observations):
        recs = engine.generate(make_session(20), make_observations(rainfall_mm=20.0), None)

        assert by_category(recs, "WATERLOG_PREVENTION").priority == Priority.HIGH
        assert "DROUGHT_MANAGEMENT" not in categories(recs)

    def test_disease_risk(self, engine, make_session, make_observations):
        recs = engine.generate(
            make_session(20), make_observations(average_temperature=28.0, humidity_percentage=85.0), None
        )

        assert by_category(recs, "DISEASE_PREVENTION").priority == Priority.HIGH

    def test_disease_needs_both_heat_and_humidity(self, engine, make_session, make_observations):
        recs = engine.generate(
            make_session(20), make_observations(average_temperature=22.0, humidity_percentage=90.0), None
        )

        assert "DISEASE_PREVENTION" not in categories(recs)

    def test_wind_damage_uses_window_maximum(self, engine, make_session, make_observations):
        observations = make_observations(wind_speed_kmh=10.0)
        observations[3] = Observation(date=observations[3].date, source="test", farm_id=1, wind_speed_kmh=62.0)

        recs = engine.generate(make_session(20), observations, None)

        assert by_category(recs, "WIND_PROTECTION").priority == Priority.MEDIUM

    def test_missing_weather_fields_skip_rules(self, engine, make_session, make_observations):
        """Observations without any measurements fire no weather rule."""
        recs = engine.generate(make_session(40), make_observations(), None)

        assert recs == []


class TestWeatherSummary:

    def test_aggregates(self, make_observations):
        summary = WeatherSummary.from_observations(
            make_observations(count=4, average_temperature=20.0, rainfall_mm=2.5, humidity_percentage=50.0)
        )

        assert summary.days == 4
        assert summary.avg_temperature == pytest.approx(20.0)
        assert summary.total_rainfall == pytest.approx(10.0)
        assert summary.avg_humidity == pytest.approx(50.0)
        assert summary.max_wind is None

    def test_empty_window(self):
        summary = WeatherSummary.from_observations([])

        assert summary.days == 0
        assert summary.avg_temperature is None
        assert summary.total_rainfall is None


# ==================== SOIL RULES ====================

class TestSoilClassification:
    """Tests for the classification bands."""

    @pytest.mark.parametrize("value,band", [
        (0.0, "critical"), (0.8, "critical"), (0.99, "critical"),
        (1.0, "low"), (1.5, "low"),
        (1.51, "adequate"), (4.99, "adequate"),
    ])
    def test_nitrogen_bands(self, value, band):
        assert classify_nitrogen(value, SoilThresholds()) == band

    @pytest.mark.parametrize("value", [-0.1, 5.0, 12.0])
    def test_nitrogen_outside_range(self, value):
        with pytest.raises(DataIntegrityError) as exc:
            classify_nitrogen(value, SoilThresholds())

        assert exc.value.field == "nitrogen_content"
        assert exc.value.value == value

    @pytest.mark.parametrize("value,band", [
        (3.0, "acidic"), (5.49, "acidic"),
        (5.5, "neutral"), (8.0, "neutral"),
        (8.01, "alkaline"), (11.0, "alkaline"),
    ])
    def test_ph_bands(self, value, band):
        assert classify_ph(value, SoilThresholds()) == band

    @pytest.mark.parametrize("value", [2.9, 11.5])
    def test_ph_outside_range(self, value):
        with pytest.raises(DataIntegrityError) as exc:
            classify_ph(value, SoilThresholds())

        assert exc.value.field == "ph_level"

    @pytest.mark.parametrize("value,band", [
        (0.0, "deficit"), (19.9, "deficit"),
        (20.0, "normal"), (80.0, "normal"),
        (80.1, "excess"), (100.0, "excess"),
    ])
    def test_moisture_bands(self, value, band):
        assert classify_moisture(value, SoilThresholds()) == band

    @pytest.mark.parametrize("value", [-1.0, 100.5])
    def test_moisture_outside_range(self, value):
        with pytest.raises(DataIntegrityError) as exc:
            classify_moisture(value, SoilThresholds())

        assert exc.value.field == "moisture_content"


class TestSoilRules:
    """Tests for the soil rule family."""

    def test_critical_nitrogen(self, engine, make_session, make_soil):
        """N=0.8% at day 35 is a critical deficiency."""
        recs = engine.generate(make_session(35), [], make_soil(nitrogen_content=0.8))

        nitrogen = by_category(recs, "NUTRIENT_MANAGEMENT")
        assert nitrogen.priority == Priority.CRITICAL
        assert nitrogen.title == "Critical Nitrogen Deficiency"
        assert nitrogen.confidence == 0.93

    def test_low_nitrogen(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(35), [], make_soil(nitrogen_content=1.2))

        nitrogen = by_category(recs, "NUTRIENT_MANAGEMENT")
        assert nitrogen.priority == Priority.HIGH
        assert nitrogen.title == "Optimize Nitrogen Supply"

    def test_adequate_nitrogen(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(35), [], make_soil(nitrogen_content=2.0))

        assert "NUTRIENT_MANAGEMENT" not in categories(recs)

    def test_critical_nitrogen_outside_window(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(10), [], make_soil(nitrogen_content=0.8))

        assert "NUTRIENT_MANAGEMENT" not in categories(recs)

    def test_nitrogen_at_upper_bound_is_integrity_error(self, engine, make_session, make_soil):
        """N=5.0% is outside every band and must not be silently ignored."""
        with pytest.raises(DataIntegrityError) as exc:
            engine.generate(make_session(35), [], make_soil(nitrogen_content=5.0))

        assert exc.value.field == "nitrogen_content"

    def test_acidic_soil(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(20), [], make_soil(ph_level=5.0))

        assert by_category(recs, "SOIL_CHEMISTRY").title == "Soil Acidification Treatment"

    def test_alkaline_soil(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(20), [], make_soil(ph_level=8.6))

        chemistry = by_category(recs, "SOIL_CHEMISTRY")
        assert chemistry.title == "Alkaline Soil Management"
        assert chemistry.priority == Priority.MEDIUM

    def test_ph_integrity_error(self, engine, make_session, make_soil):
        with pytest.raises(DataIntegrityError):
            engine.generate(make_session(20), [], make_soil(ph_level=14.0))

    def test_moisture_deficit_in_window(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(50), [], make_soil(moisture_content=15.0))

        assert by_category(recs, "IRRIGATION").priority == Priority.CRITICAL

    def test_moisture_deficit_outside_window(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(20), [], make_soil(moisture_content=15.0))

        assert "IRRIGATION" not in categories(recs)

    def test_moisture_excess(self, engine, make_session, make_soil):
        recs = engine.generate(make_session(20), [], make_soil(moisture_content=92.0))

        assert by_category(recs, "DRAINAGE").priority == Priority.MEDIUM

    def test_missing_soil_fields_skipped(self, engine, make_session, make_soil):
        """A sample with only a soil type fires nothing and raises nothing."""
        assert engine.generate(make_session(20), [], make_soil()) == []


# ==================== GROWTH STAGE AND VARIETY RULES ====================

class TestGrowthStageRules:

    @pytest.mark.parametrize("days,category", [
        (5, "EMERGENCE"), (10, "EMERGENCE"),
        (25, "WEED_CONTROL"), (35, "WEED_CONTROL"),
        (45, "NUTRIENT_TIMING"), (55, "NUTRIENT_TIMING"),
        (65, "REPRODUCTIVE_SUPPORT"), (75, "REPRODUCTIVE_SUPPORT"),
        (90, "GRAIN_FILLING"), (110, "GRAIN_FILLING"),
    ])
    def test_window_edges_inclusive(self, engine, make_session, days, category):
        assert category in categories(engine.generate(make_session(days), [], None))

    @pytest.mark.parametrize("days", [4, 11, 24, 36, 44, 56, 64, 76, 89, 111])
    def test_outside_windows(self, engine, make_session, days):
        assert engine.generate(make_session(days), [], None) == []


class TestVarietyRules:

    def test_drought_tolerant_variety(self, engine, make_session, make_observations):
        tolerant = Variety(name="SC403", maturity_days=120, drought_resistant=True)

        recs = engine.generate(make_session(20, variety_override=tolerant), make_observations(rainfall_mm=1.0), None)

        note = by_category(recs, "VARIETY_ADVANTAGE")
        assert note.priority == Priority.LOW
        assert "SC403" in note.description

    def test_early_harvest_for_short_season_variety(self, engine, make_session):
        early = Variety(name="SC403", maturity_days=95)

        recs = engine.generate(make_session(80, variety_override=early), [], None)

        assert by_category(recs, "HARVEST_TIMING").priority == Priority.MEDIUM

    def test_early_harvest_not_before_day_70(self, engine, make_session):
        early = Variety(name="SC403", maturity_days=95)

        recs = engine.generate(make_session(70, variety_override=early), [], None)

        assert "HARVEST_TIMING" not in categories(recs)


# ==================== ENGINE BEHAVIOUR ====================

class TestEngineBehaviour:

    def test_quiet_session_yields_nothing(self, engine, make_session, make_observations, make_soil):
        """Temperate weather, healthy soil and no stage window: an empty list, not an error."""
        recs = engine.generate(
            make_session(20),
            make_observations(average_temperature=22.0, rainfall_mm=3.0, humidity_percentage=60.0,
                              wind_speed_kmh=10.0),
            make_soil(nitrogen_content=2.0, ph_level=6.5, moisture_content=45.0),
        )

        assert recs == []

    def test_deterministic(self, engine, make_session, make_observations, make_soil):
        session = make_session(50)
        observations = make_observations(average_temperature=36.0, rainfall_mm=0.2, humidity_percentage=40.0)
        soil = make_soil(nitrogen_content=0.7, ph_level=5.0, moisture_content=12.0)

        first = engine.generate(session, observations, soil)
        second = engine.generate(session, observations, soil)

        assert first == second
        assert len(first) > 1

    def test_no_duplicate_keys(self, engine, make_session, make_observations, make_soil):
        recs = engine.generate(
            make_session(50),
            make_observations(average_temperature=36.0, rainfall_mm=0.2),
            make_soil(nitrogen_content=0.7, ph_level=5.0, moisture_content=12.0),
        )
        keys = [r.key for r in recs]

        assert len(keys) == len(set(keys))

    def test_deduplicate_keeps_first(self):
        def rec(description):
            return Recommendation(
                session_id=1, category="IRRIGATION", title="Irrigate", description=description,
                priority=Priority.HIGH, confidence=0.8, recommendation_date=TODAY,
            )

        result = deduplicate([rec("first"), rec("second")])

        assert [r.description for r in result] == ["first"]

    def test_thresholds_are_configurable(self, make_session, make_observations):
        settings = Settings.model_validate({"weather": {"heat_stress_temp_c": 30.0}})
        engine = RecommendationEngine(settings, today=lambda: TODAY)

        recs = engine.generate(make_session(40), make_observations(average_temperature=32.0), None)

        assert "HEAT_STRESS" in categories(recs)

    def test_future_planting_counts_as_day_zero(self, engine, make_session, make_observations):
        recs = engine.generate(make_session(-5), make_observations(average_temperature=12.0), None)

        assert "COLD_PROTECTION" in categories(recs)


class TestRecommendation:

    def test_mark_viewed_returns_copy(self):
        rec = Recommendation(
            session_id=1, category="IRRIGATION", title="Irrigate", description="Water now",
            priority=Priority.CRITICAL, confidence=0.9, recommendation_date=TODAY,
        )

        viewed = rec.mark_viewed()

        assert viewed.viewed and not rec.viewed
        assert viewed.priority == rec.priority
        assert rec.mark_implemented().implemented

    @pytest.mark.parametrize("confidence", [-0.01, 1.01])
    def test_confidence_bounds(self, confidence):
        with pytest.raises(ValueError):
            Recommendation(
                session_id=1, category="X", title="Y", description="Z",
                priority=Priority.LOW, confidence=confidence, recommendation_date=TODAY,
            )


# ==================== REMOTE ADVISORY ====================

class FakeAdvisoryClient(AdvisoryClient):
    backend = "fake"

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def advisory_settings():
    return Settings.model_validate({"advisory": {"enabled": True, "base_url": "http://advisory.local"}})


REMOTE_RESPONSE = {
    "recommendations": [
        {"category": "IRRIGATION", "title": "Irrigate before the heatwave", "description": "Apply 25mm",
         "priority": "high", "confidence": 0.81, "actionItems": ["Check pumps", "Irrigate at dawn"]},
        {"category": "IRRIGATION", "title": "Irrigate before the heatwave", "description": "Duplicate",
         "priority": "HIGH", "confidence": 0.8},
    ],
    "model": "agro-advisor-2",
}


class TestAdvisoryIntegration:
    """Tests for remote-first generation with local fallback."""

    def test_remote_recommendations_used(self, advisory_settings, make_session, make_observations):
        client = FakeAdvisoryClient(response=AdvisoryResponse.model_validate(REMOTE_RESPONSE))
        engine = RecommendationEngine(advisory_settings, advisory_client=client, today=lambda: TODAY)

        recs = engine.generate(make_session(40), make_observations(average_temperature=37.0), None)

        assert [r.title for r in recs] == ["Irrigate before the heatwave"]
        assert recs[0].priority == Priority.HIGH
        assert recs[0].action_items == ("Check pumps", "Irrigate at dawn")
        assert recs[0].source == "agro-advisor-2"

    def test_request_payload(self, advisory_settings, make_session, make_observations, make_soil):
        client = FakeAdvisoryClient(response=AdvisoryResponse())
        engine = RecommendationEngine(advisory_settings, advisory_client=client, today=lambda: TODAY)

        engine.generate(make_session(40), make_observations(count=3, average_temperature=25.0),
                        make_soil(ph_level=6.1))

        request = client.requests[0]
        assert request.days_since_planting == 40
        assert request.growth_phase == "VEGETATIVE_LATE"
        assert request.soil_data.ph_level == 6.1
        assert [w.date for w in request.weather_data] == [
            TODAY - timedelta(days=3), TODAY - timedelta(days=2), TODAY - timedelta(days=1)
        ]

    def test_empty_remote_answer_accepted(self, advisory_settings, make_session, make_observations):
        """An empty remote list is a valid answer, not a failure."""
        client = FakeAdvisoryClient(response=AdvisoryResponse(recommendations=[]))
        engine = RecommendationEngine(advisory_settings, advisory_client=client, today=lambda: TODAY)

        assert engine.generate(make_session(40), make_observations(average_temperature=37.0), None) == []

    def test_remote_failure_falls_back_to_local(self, advisory_settings, make_session, make_observations):
        client = FakeAdvisoryClient(error=AdvisoryServiceError("HTTP 502"))
        engine = RecommendationEngine(advisory_settings, advisory_client=client, today=lambda: TODAY)

        recs = engine.generate(make_session(40), make_observations(average_temperature=37.0), None)

        assert len(client.requests) == 1
        assert by_category(recs, "HEAT_STRESS").source == "local"

    def test_disabled_advisory_never_called(self, settings, make_session, make_observations):
        client = FakeAdvisoryClient(response=AdvisoryResponse.model_validate(REMOTE_RESPONSE))
        engine = RecommendationEngine(settings, advisory_client=client, today=lambda: TODAY)

        recs = engine.generate(make_session(40), make_observations(average_temperature=37.0), None)

        assert not engine.advisory_enabled
        assert client.requests == []
        assert "HEAT_STRESS" in categories(recs)

    def test_local_integrity_error_still_raised_after_fallback(
        self, advisory_settings, make_session, make_soil
    ):
        client = FakeAdvisoryClient(error=AdvisoryServiceError("timeout"))
        engine = RecommendationEngine(advisory_settings, advisory_client=client, today=lambda: TODAY)

        with pytest.raises(DataIntegrityError):
            engine.generate(make_session(35), [], make_soil(nitrogen_content=6.0))

    def test_unexpected_remote_exception_falls_back_to_local(
        self, advisory_settings, make_session, make_observations
    ):
        """Errors outside the advisory taxonomy still end on the local rules."""
        client = FakeAdvisoryClient(error=RuntimeError("connection pool closed"))
        engine = RecommendationEngine(advisory_settings, advisory_client=client, today=lambda: TODAY)

        recs = engine.generate(make_session(40), make_observations(average_temperature=37.0), None)

        assert len(client.requests) == 1
        assert by_category(recs, "HEAT_STRESS").source == "local"

    def test_unparseable_advisory_url_falls_back_to_local(self, make_session, make_observations):
        settings = Settings.model_validate({"advisory": {"enabled": True, "base_url": "http://[::1"}})
        engine = RecommendationEngine(settings, today=lambda: TODAY)

        recs = engine.generate(make_session(40), make_observations(average_temperature=37.0), None)

        assert isinstance(engine.advisory_client, HttpAdvisoryClient)
        assert categories(recs) == ["HEAT_STRESS"]
