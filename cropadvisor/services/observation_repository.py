"""
Persistence for observations, soil samples and recommendations.

Enforces at most one stored observation per (farm, date): save_observation
is a no-op for an existing pair, insert_observation rejects it.
"""
import logging
from dataclasses import asdict
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cropadvisor.core.exceptions import DuplicateObservationError
from cropadvisor.models.database_models import RecommendationRecord, SoilSampleRecord, WeatherObservation
from cropadvisor.models.domain import MEASUREMENT_FIELDS, Observation, Priority, Recommendation, SoilSample

logger = logging.getLogger(__name__)


def _to_observation(row: WeatherObservation) -> Observation:
    return Observation(
        date=row.date,
        source=row.source,
        farm_id=row.farm_id,
        **{name: getattr(row, name) for name in MEASUREMENT_FIELDS}
    )


def _to_soil_sample(row: SoilSampleRecord) -> SoilSample:
    return SoilSample(
        farm_id=row.farm_id,
        sample_date=row.sample_date,
        soil_type=row.soil_type,
        ph_level=row.ph_level,
        organic_matter_percentage=row.organic_matter_percentage,
        nitrogen_content=row.nitrogen_content,
        phosphorus_content=row.phosphorus_content,
        potassium_content=row.potassium_content,
        moisture_content=row.moisture_content,
    )


def _to_recommendation(row: RecommendationRecord) -> Recommendation:
    return Recommendation(
        session_id=row.session_id,
        category=row.category,
        title=row.title,
        description=row.description,
        priority=Priority(row.priority),
        confidence=row.confidence,
        recommendation_date=row.recommendation_date,
        viewed=row.is_viewed,
        implemented=row.is_implemented,
        reasoning=row.reasoning,
        action_items=tuple(row.action_items or ()),
        expected_outcome=row.expected_outcome,
        source=row.source or "local",
    )


class ObservationRepository:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        """Commit, leaving the session usable again if the commit fails."""
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def rollback(self) -> None:
        """Discard pending changes after a failed unit of work."""
        self.db.rollback()

    # ==================== OBSERVATIONS ====================

    def _find_row(self, farm_id: int, day: date) -> Optional[WeatherObservation]:
        return self.db.query(WeatherObservation).filter(
            WeatherObservation.farm_id == farm_id,
            WeatherObservation.date == day
        ).first()

    def find_observation(self, farm_id: int, day: date) -> Optional[Observation]:
        row = self._find_row(farm_id, day)
        return _to_observation(row) if row else None

    def _require_farm(self, obs: Observation) -> int:
        if obs.farm_id is None:
            raise ValueError(f"Observation for {obs.date} from {obs.source} has no farm_id")
        return obs.farm_id

    def save_observation(self, obs: Observation) -> Observation:
        """
        Store an observation unless one exists for the same (farm, date).

        Returns the stored observation (the pre-existing one on a duplicate).
        """
        farm_id = self._require_farm(obs)
        existing = self._find_row(farm_id, obs.date)
        if existing is not None:
            logger.debug(f"Observation for farm {farm_id} on {obs.date} already stored - skipping")
            return _to_observation(existing)
        try:
            return self.insert_observation(obs)
        except DuplicateObservationError:
            # Lost a race with a concurrent writer
            existing = self._find_row(farm_id, obs.date)
            if existing is None:
                raise
            return _to_observation(existing)

    def insert_observation(self, obs: Observation) -> Observation:
        """
        Store an observation, rejecting an existing (farm, date) pair.

        Raises:
            DuplicateObservationError: a row for (farm, date) is already stored
            SQLAlchemyError: any other database failure (the session is rolled back)
        """
        farm_id = self._require_farm(obs)
        if self._find_row(farm_id, obs.date) is not None:
            raise DuplicateObservationError(f"Observation for farm {farm_id} on {obs.date} already exists")

        row = WeatherObservation(
            farm_id=farm_id,
            date=obs.date,
            source=obs.source,
            **{name: getattr(obs, name) for name in MEASUREMENT_FIELDS}
        )
        self.db.add(row)
        try:
            self._commit()
        except IntegrityError as e:
            # Only the unique (farm, date) constraint counts as a duplicate
            if self._find_row(farm_id, obs.date) is None:
                raise
            raise DuplicateObservationError(
                f"Observation for farm {farm_id} on {obs.date} already exists"
            ) from e
        self.db.refresh(row)
        return _to_observation(row)

    def find_observations_between(self, farm_id: int, start: date, end: date) -> List[Observation]:
        """Observations with start <= date <= end, oldest first."""
        rows = self.db.query(WeatherObservation).filter(
            WeatherObservation.farm_id == farm_id,
            WeatherObservation.date >= start,
            WeatherObservation.date <= end
        ).order_by(WeatherObservation.date).all()
        return [_to_observation(row) for row in rows]

    def find_recent_observations(self, farm_id: int, since: date) -> List[Observation]:
        rows = self.db.query(WeatherObservation).filter(
            WeatherObservation.farm_id == farm_id,
            WeatherObservation.date >= since
        ).order_by(WeatherObservation.date).all()
        return [_to_observation(row) for row in rows]

    def delete_observations_before(self, farm_id: int, cutoff: date) -> int:
        count = self.db.query(WeatherObservation).filter(
            WeatherObservation.farm_id == farm_id,
            WeatherObservation.date < cutoff
        ).delete(synchronize_session=False)
        self._commit()
        return count

    # ==================== SOIL ====================

    def save_soil_sample(self, sample: SoilSample) -> SoilSample:
        row = SoilSampleRecord(**asdict(sample))
        self.db.add(row)
        self._commit()
        return sample

    def find_latest_soil_sample(self, farm_id: int) -> Optional[SoilSample]:
        row = self.db.query(SoilSampleRecord).filter(
            SoilSampleRecord.farm_id == farm_id
        ).order_by(SoilSampleRecord.sample_date.desc(), SoilSampleRecord.id.desc()).first()
        return _to_soil_sample(row) if row else None

    # ==================== RECOMMENDATIONS ====================

    def save_recommendation(self, rec: Recommendation) -> int:
        """Store a recommendation and return its id."""
        row = RecommendationRecord(
            session_id=rec.session_id,
            recommendation_date=rec.recommendation_date,
            category=rec.category,
            title=rec.title,
            description=rec.description,
            priority=rec.priority.value,
            confidence=rec.confidence,
            reasoning=rec.reasoning,
            action_items=list(rec.action_items),
            expected_outcome=rec.expected_outcome,
            is_viewed=rec.viewed,
            is_implemented=rec.implemented,
            source=rec.source,
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        return row.id

    def save_recommendations(self, recs: Sequence[Recommendation]) -> List[int]:
        return [self.save_recommendation(rec) for rec in recs]

    def find_recommendation(self, recommendation_id: int) -> Optional[Recommendation]:
        row = self.db.get(RecommendationRecord, recommendation_id)
        return _to_recommendation(row) if row else None

    def find_recommendations_for_session(self, session_id: int) -> List[Recommendation]:
        rows = self.db.query(RecommendationRecord).filter(
            RecommendationRecord.session_id == session_id
        ).order_by(RecommendationRecord.id).all()
        return [_to_recommendation(row) for row in rows]

    def _set_flag(self, recommendation_id: int, flag: str) -> Optional[Recommendation]:
        row = self.db.get(RecommendationRecord, recommendation_id)
        if row is None:
            return None
        setattr(row, flag, True)
        self._commit()
        return _to_recommendation(row)

    def mark_recommendation_viewed(self, recommendation_id: int) -> Optional[Recommendation]:
        return self._set_flag(recommendation_id, "is_viewed")

    def mark_recommendation_implemented(self, recommendation_id: int) -> Optional[Recommendation]:
        return self._set_flag(recommendation_id, "is_implemented")
