#!/usr/bin/env python3
"""
Rule Engine Validation Script
Runs randomized growing-session scenarios through the local rule engine
and reports rule coverage, determinism and data-integrity failures.
"""
import sys
import os
import random
import json
from collections import Counter
from datetime import date, timedelta
from typing import Dict, List

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from cropadvisor.core.config import Settings
from cropadvisor.core.exceptions import DataIntegrityError
from cropadvisor.models.domain import Farm, GrowingSession, Observation, SoilSample, Variety
from cropadvisor.services.growth_phase import calculate_growth_phase
from cropadvisor.services.recommendation_engine import RecommendationEngine

TODAY = date(2024, 3, 1)

VARIETIES = [
    Variety(name="SC403", maturity_days=95, optimal_temp_min=18, optimal_temp_max=30, drought_resistant=True),
    Variety(name="ZM521", maturity_days=120, optimal_temp_min=20, optimal_temp_max=32, drought_resistant=True),
    Variety(name="PAN53", maturity_days=140, optimal_temp_min=18, optimal_temp_max=30),
    Variety(name="SC719", maturity_days=150, optimal_temp_min=20, optimal_temp_max=30),
    Variety(name="Pioneer 30G19", maturity_days=130, optimal_temp_min=19, optimal_temp_max=31),
]

CLIMATES = {
    "hot_dry": {"temp": (33, 40), "rain": (0, 2), "humidity": (20, 45), "wind": (5, 25)},
    "cool_wet": {"temp": (8, 16), "rain": (5, 25), "humidity": (70, 95), "wind": (5, 30)},
    "humid_warm": {"temp": (24, 31), "rain": (0, 15), "humidity": (78, 98), "wind": (5, 20)},
    "stormy": {"temp": (18, 26), "rain": (10, 40), "humidity": (60, 90), "wind": (30, 80)},
    "temperate": {"temp": (18, 27), "rain": (0, 8), "humidity": (45, 75), "wind": (5, 20)},
}

SOIL_RANGES = {
    "nitrogen_content": (0.3, 3.0),
    "ph_level": (4.5, 8.8),
    "moisture_content": (5.0, 95.0),
}

IMPLAUSIBLE_SOIL_VALUES = {
    "nitrogen_content": [-1.0, 5.0, 7.5],
    "ph_level": [2.0, 12.5],
    "moisture_content": [-5.0, 150.0],
}


def build_observations(farm_id: int, climate: Dict, rng: random.Random) -> List[Observation]:
    observations = []
    for offset in range(7):
        avg = rng.uniform(*climate["temp"])
        observations.append(Observation(
            date=TODAY - timedelta(days=offset + 1),
            source="synthetic",
            farm_id=farm_id,
            min_temperature=avg - rng.uniform(3, 8),
            max_temperature=avg + rng.uniform(3, 8),
            average_temperature=avg,
            rainfall_mm=rng.uniform(*climate["rain"]),
            humidity_percentage=rng.uniform(*climate["humidity"]),
            wind_speed_kmh=rng.uniform(*climate["wind"]),
        ))
    return observations


def build_soil(farm_id: int, rng: random.Random, corrupt: bool) -> SoilSample:
    values = {name: round(rng.uniform(*bounds), 2) for name, bounds in SOIL_RANGES.items()}
    if corrupt:
        name = rng.choice(list(values))
        values[name] = rng.choice(IMPLAUSIBLE_SOIL_VALUES[name])
    return SoilSample(farm_id=farm_id, sample_date=TODAY - timedelta(days=10), soil_type="loam", **values)


def run_validation(num_tests: int = 200, seed: int = 42) -> Dict:
    rng = random.Random(seed)
    engine = RecommendationEngine(Settings(), today=lambda: TODAY)

    stats = {
        "total_tests": num_tests,
        "successful": 0,
        "integrity_errors": 0,
        "non_deterministic": 0,
        "empty_results": 0,
        "categories": Counter(),
        "priorities": Counter(),
        "phases": Counter(),
    }
    anomalies = []

    for i in range(num_tests):
        climate_name = rng.choice(list(CLIMATES))
        variety = rng.choice(VARIETIES)
        days = rng.randint(0, 160)
        farm = Farm(id=i + 1, name=f"Farm {i + 1}", latitude=-17.8, longitude=31.0)
        session = GrowingSession(
            id=i + 1, farm=farm, variety=variety, planting_date=TODAY - timedelta(days=days)
        )
        observations = build_observations(farm.id, CLIMATES[climate_name], rng)
        corrupt = rng.random() < 0.05
        soil = build_soil(farm.id, rng, corrupt)

        stats["phases"][calculate_growth_phase(days, variety.maturity_days).value] += 1

        try:
            first = engine.generate(session, observations, soil)
            second = engine.generate(session, observations, soil)
        except DataIntegrityError as e:
            stats["integrity_errors"] += 1
            if not corrupt:
                anomalies.append({
                    "test_id": i + 1,
                    "issue": "Integrity error on plausible soil sample",
                    "error": str(e),
                })
            continue

        if corrupt:
            anomalies.append({"test_id": i + 1, "issue": "Corrupt soil sample accepted"})

        if [r.to_dict() for r in first] != [r.to_dict() for r in second]:
            stats["non_deterministic"] += 1
            anomalies.append({"test_id": i + 1, "issue": "Non-deterministic output"})

        keys = [r.key for r in first]
        if len(keys) != len(set(keys)):
            anomalies.append({"test_id": i + 1, "issue": "Duplicate recommendation", "keys": keys})

        if not first:
            stats["empty_results"] += 1
        for rec in first:
            stats["categories"][rec.category] += 1
            stats["priorities"][rec.priority.value] += 1
        stats["successful"] += 1

    stats["anomalies"] = len(anomalies)
    return {"stats": stats, "anomalies": anomalies}


def generate_report(validation: Dict) -> str:
    stats = validation["stats"]
    anomalies = validation["anomalies"]

    report = []
    report.append("=" * 80)
    report.append("RULE ENGINE VALIDATION REPORT")
    report.append("=" * 80)
    report.append("")
    report.append("## SUMMARY")
    report.append("-" * 40)
    report.append(f"Total scenarios: {stats['total_tests']}")
    report.append(f"Successful: {stats['successful']}")
    report.append(f"Data integrity errors: {stats['integrity_errors']}")
    report.append(f"Non-deterministic: {stats['non_deterministic']}")
    report.append(f"Scenarios without recommendations: {stats['empty_results']}")
    report.append(f"Anomalies: {stats['anomalies']}")
    report.append("")
    report.append("## GROWTH PHASES")
    report.append("-" * 40)
    for phase, count in sorted(stats["phases"].items()):
        report.append(f"{phase:<20} {count:>5}")
    report.append("")
    report.append("## CATEGORIES")
    report.append("-" * 40)
    for category, count in stats["categories"].most_common():
        report.append(f"{category:<24} {count:>5}")
    report.append("")
    report.append("## PRIORITIES")
    report.append("-" * 40)
    for priority in ["CRITICAL", "HIGH", "MEDIUM", "LOW"]:
        report.append(f"{priority:<10} {stats['priorities'][priority]:>5}")
    report.append("")

    if anomalies:
        report.append("## ANOMALIES")
        report.append("-" * 40)
        for anomaly in anomalies[:20]:
            report.append(json.dumps(anomaly, default=str))
        if len(anomalies) > 20:
            report.append(f"... and {len(anomalies) - 20} more")
    else:
        report.append("✓ No anomalies detected")

    return "\n".join(report)


if __name__ == "__main__":
    num_tests = int(sys.argv[1]) if len(sys.argv) > 1 else 200
    validation = run_validation(num_tests)
    print(generate_report(validation))
    sys.exit(1 if validation["anomalies"] else 0)
