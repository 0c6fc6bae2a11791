"""
Growth-phase calculator.

Pure mapping from elapsed days since planting and variety maturity length
to a phenology state. Nothing is persisted; callers recompute on demand.
"""
from cropadvisor.models.domain import GrowthPhase

GERMINATION_MAX_DAY = 14
VEGETATIVE_EARLY_MAX_DAY = 30

# Fractions of maturity_days closing each later phase.
VEGETATIVE_LATE_FRACTION = 0.4
TASSELING_FRACTION = 0.6
GRAIN_FILLING_FRACTION = 0.8


def calculate_growth_phase(days_since_planting: int, maturity_days: int) -> GrowthPhase:
    """
    Determine the growth phase for a given day count.

    Boundaries are inclusive and checked in chronological order, so a day
    exactly on a boundary belongs to the earlier phase.

    Args:
        days_since_planting: Elapsed days (negative values are treated as 0)
        maturity_days: Days from planting to physiological maturity

    Returns:
        GrowthPhase
    """
    if maturity_days <= 0:
        raise ValueError(f"maturity_days must be positive, got {maturity_days}")

    d = max(0, days_since_planting)
    m = maturity_days

    if d <= GERMINATION_MAX_DAY:
        return GrowthPhase.GERMINATION
    if d <= VEGETATIVE_EARLY_MAX_DAY:
        return GrowthPhase.VEGETATIVE_EARLY
    if d <= VEGETATIVE_LATE_FRACTION * m:
        return GrowthPhase.VEGETATIVE_LATE
    if d <= TASSELING_FRACTION * m:
        return GrowthPhase.TASSELING
    if d <= GRAIN_FILLING_FRACTION * m:
        return GrowthPhase.GRAIN_FILLING
    if d <= m:
        return GrowthPhase.MATURITY
    return GrowthPhase.POST_HARVEST
