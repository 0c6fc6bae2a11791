"""
Plausibility checks for weather observations.

validate() tells whether every reported value is physically plausible;
sanitize() returns a copy where implausible values are dropped (set to
None), never clamped to a boundary. Out-of-range values are reported
through the log and report(), never raised.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from cropadvisor.core.exceptions import ObservationValidationError
from cropadvisor.models.domain import Observation
from cropadvisor.services import recommendation_rules as rules

logger = logging.getLogger(__name__)

DEFAULT_RANGES: Dict[str, Tuple[float, float]] = {
    "min_temperature": rules.TEMPERATURE_RANGE_C,
    "max_temperature": rules.TEMPERATURE_RANGE_C,
    "average_temperature": rules.TEMPERATURE_RANGE_C,
    "rainfall_mm": rules.RAINFALL_RANGE_MM,
    "humidity_percentage": rules.HUMIDITY_RANGE_PCT,
    "wind_speed_kmh": rules.WIND_SPEED_RANGE_KMH,
}


class ObservationValidator:
    """Range validator for the checked observation fields (bounds inclusive)."""

    def __init__(self, ranges: Optional[Dict[str, Tuple[float, float]]] = None):
        self.ranges = dict(ranges or DEFAULT_RANGES)

    def report(self, obs: Observation) -> List[ObservationValidationError]:
        """List every reported value outside its plausible range."""
        problems = []
        for name, (lower, upper) in self.ranges.items():
            value = getattr(obs, name)
            if value is not None and not lower <= value <= upper:
                problems.append(
                    ObservationValidationError(name, value, lower, upper, obs.farm_id, obs.date)
                )
        return problems

    def validate(self, obs: Observation) -> bool:
        problems = self.report(obs)
        for problem in problems:
            logger.warning(f"Implausible observation from {obs.source}: {problem}")
        return not problems

    def sanitize(self, obs: Observation) -> Observation:
        problems = self.report(obs)
        if not problems:
            return obs
        for problem in problems:
            logger.warning(f"Dropping {problem.field} from {obs.source} observation: {problem}")
        return replace(obs, **{problem.field: None for problem in problems})
