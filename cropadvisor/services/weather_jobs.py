"""
Batch entry points for a time-based trigger.

- fetch_daily_weather_data: today's observation for every farm
- fetch_missing_historical_data: backfill gaps over the last week
- cleanup_old_weather_data: drop observations past the retention period
- generate_recommendations_for_sessions: run the rule engine per session

Farms and sessions are processed strictly one after another and every
iteration is isolated: a failing farm is counted and logged, and the
batch moves on.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional

from cropadvisor.core.config import Settings, get_settings
from cropadvisor.core.exceptions import DataIntegrityError
from cropadvisor.models.domain import Farm, GrowingSession
from cropadvisor.services.observation_repository import ObservationRepository
from cropadvisor.services.recommendation_engine import RecommendationEngine
from cropadvisor.services.weather_gateway import WeatherGateway

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_RETENTION_DAYS = 730
DEFAULT_RECOMMENDATION_WINDOW_DAYS = 7


@dataclass
class JobReport:
    """Per-batch counters and the error messages behind `failed`."""
    job: str
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def summary(self) -> str:
        return (
            f"{self.job}: success={self.succeeded}, skipped={self.skipped}, "
            f"errors={self.failed}"
        )


class WeatherJobs:
    """
    Args:
        gateway: Weather acquisition gateway
        repository: Persistence for observations and recommendations
        farms: Callable returning the farms to process
        today: Date provider
        sleep: Sleep function for the backfill throttle
        settings: Application settings; the throttle defaults to
            settings.gateway.historical_throttle_seconds
        throttle_seconds: Pause between successive historical fetches
    """

    def __init__(
        self,
        gateway: WeatherGateway,
        repository: ObservationRepository,
        farms: Callable[[], Iterable[Farm]],
        today: Callable[[], date] = date.today,
        sleep: Callable[[float], None] = time.sleep,
        settings: Optional[Settings] = None,
        throttle_seconds: Optional[float] = None
    ):
        self.gateway = gateway
        self.repository = repository
        self.farms = farms
        self.today = today
        self.sleep = sleep
        if throttle_seconds is None:
            throttle_seconds = (settings or get_settings()).gateway.historical_throttle_seconds
        self.throttle_seconds = throttle_seconds

    def fetch_daily_weather_data(self) -> JobReport:
        """Fetch and store today's weather for every farm that lacks it."""
        report = JobReport(job="daily_weather")
        today = self.today()
        logger.info("Starting daily weather fetch for all farms")

        for farm in self.farms():
            try:
                if self.repository.find_observation(farm.id, today) is not None:
                    logger.debug(f"Weather for farm {farm.name} on {today} already stored")
                    report.skipped += 1
                    continue

                obs = self.gateway.fetch_current_weather(farm)
                if obs is None:
                    report.record_failure(f"farm {farm.id}: no weather data from any provider")
                    continue

                self.repository.save_observation(obs)
                report.succeeded += 1
            except Exception as e:
                logger.exception(f"Error fetching weather data for farm {farm.name}")
                self.repository.rollback()
                report.record_failure(f"farm {farm.id}: {e}")

        logger.info(f"Completed {report.summary()}")
        return report

    def fetch_missing_historical_data(self, lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> JobReport:
        """
        Backfill missing observations from `lookback_days` before yesterday
        up to yesterday, inclusive.
        """
        report = JobReport(job="historical_backfill")
        end = self.today() - timedelta(days=1)
        start = end - timedelta(days=lookback_days)
        logger.info(f"Starting historical weather backfill for {start}..{end}")

        first_call = True
        for farm in self.farms():
            try:
                existing = {obs.date for obs in self.repository.find_observations_between(farm.id, start, end)}
                missing = [
                    start + timedelta(days=offset)
                    for offset in range((end - start).days + 1)
                    if start + timedelta(days=offset) not in existing
                ]
            except Exception as e:
                logger.exception(f"Error reading stored weather for farm {farm.name}")
                self.repository.rollback()
                report.record_failure(f"farm {farm.id}: {e}")
                continue

            if not missing:
                report.skipped += 1
                continue

            logger.info(f"Fetching {len(missing)} missing day(s) for farm {farm.name}")
            for day in missing:
                if not first_call:
                    self.sleep(self.throttle_seconds)
                first_call = False
                try:
                    obs = self.gateway.fetch_historical_weather(farm, day)
                    if obs is None:
                        report.record_failure(f"farm {farm.id} {day}: no historical data")
                        continue
                    self.repository.save_observation(obs)
                    report.succeeded += 1
                except Exception as e:
                    logger.exception(f"Error backfilling weather for farm {farm.name} on {day}")
                    self.repository.rollback()
                    report.record_failure(f"farm {farm.id} {day}: {e}")

        logger.info(f"Completed {report.summary()}")
        return report

    def cleanup_old_weather_data(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> JobReport:
        report = JobReport(job="weather_cleanup")
        cutoff = self.today() - timedelta(days=retention_days)

        for farm in self.farms():
            try:
                deleted = self.repository.delete_observations_before(farm.id, cutoff)
                if deleted:
                    logger.info(f"Deleted {deleted} weather record(s) older than {cutoff} for farm {farm.name}")
                    report.succeeded += 1
                else:
                    report.skipped += 1
            except Exception as e:
                logger.exception(f"Error cleaning up weather data for farm {farm.name}")
                self.repository.rollback()
                report.record_failure(f"farm {farm.id}: {e}")

        logger.info(f"Completed {report.summary()}")
        return report

    def generate_recommendations_for_sessions(
        self,
        engine: RecommendationEngine,
        sessions: Iterable[GrowingSession],
        window_days: int = DEFAULT_RECOMMENDATION_WINDOW_DAYS
    ) -> JobReport:
        """
        Run the rule engine for each session and store its output.

        A DataIntegrityError marks that session as failed; the batch continues.
        """
        report = JobReport(job="recommendations")
        since = self.today() - timedelta(days=window_days)

        for session in sessions:
            farm_id = session.farm.id
            try:
                observations = self.repository.find_recent_observations(farm_id, since)
                soil = self.repository.find_latest_soil_sample(farm_id)
                recommendations = engine.generate(session, observations, soil)
                if not recommendations:
                    report.skipped += 1
                    continue
                self.repository.save_recommendations(recommendations)
                report.succeeded += 1
            except DataIntegrityError as e:
                logger.error(f"Data integrity problem for session {session.id}: {e}")
                report.record_failure(f"session {session.id}: {e}")
            except Exception as e:
                logger.exception(f"Error generating recommendations for session {session.id}")
                self.repository.rollback()
                report.record_failure(f"session {session.id}: {e}")

        logger.info(f"Completed {report.summary()}")
        return report
