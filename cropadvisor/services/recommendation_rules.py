"""
Deterministic agronomic rules and thresholds for maize recommendations.

This module centralizes the default constants so the rule engine stays
deterministic, auditable and consistent across services and tests.
Deployments override any of them through the thresholds file
(see cropadvisor.core.config).
"""

# ==================== OBSERVATION PLAUSIBILITY ====================

TEMPERATURE_RANGE_C = (-60.0, 60.0)
RAINFALL_RANGE_MM = (0.0, 1000.0)
HUMIDITY_RANGE_PCT = (0.0, 100.0)
WIND_SPEED_RANGE_KMH = (0.0, 500.0)

# ==================== WEATHER RULES ====================

HEAT_STRESS_TEMP_C = 35.0
HEAT_STRESS_DAYS = (30, 80)

COLD_STRESS_TEMP_C = 15.0
COLD_STRESS_BEFORE_DAY = 30

DROUGHT_RAINFALL_MM = 10.0
DROUGHT_DAYS = (40, 100)

WATERLOG_RAINFALL_MM = 100.0

DISEASE_HUMIDITY_PCT = 80.0
DISEASE_TEMP_C = 25.0

WIND_DAMAGE_KMH = 50.0

# ==================== SOIL RULES ====================

# Plausible ranges are partitioned completely by the bands below.
# Nitrogen's upper bound is exclusive; the others are inclusive.
NITROGEN_RANGE_PCT = (0.0, 5.0)
NITROGEN_CRITICAL_PCT = 1.0
NITROGEN_LOW_PCT = 1.5
NITROGEN_CRITICAL_DAYS = (20, 60)
NITROGEN_LOW_DAYS = (30, 70)

PH_RANGE = (3.0, 11.0)
PH_ACIDIC = 5.5
PH_ALKALINE = 8.0

MOISTURE_RANGE_PCT = (0.0, 100.0)
MOISTURE_DEFICIT_PCT = 20.0
MOISTURE_DEFICIT_DAYS = (40, 80)
MOISTURE_EXCESS_PCT = 80.0

# ==================== GROWTH STAGE WINDOWS ====================

GROWTH_STAGE_WINDOWS = {
    "emergence": (5, 10),
    "weed_control": (25, 35),
    "pre_tasseling": (45, 55),
    "pollination": (65, 75),
    "grain_filling": (90, 110),
}

# ==================== VARIETY RULES ====================

DROUGHT_TOLERANT_RAINFALL_MM = 15.0
SHORT_MATURITY_DAYS = 100
SHORT_MATURITY_HARVEST_PREP_DAY = 70

# ==================== RULE CATALOG ====================
# Fixed text, priority and confidence per rule. Confidence expresses how
# directly the observed values match the rule trigger, not a statistic.

RULE_CATALOG = {
    "heat_stress": {
        "category": "HEAT_STRESS",
        "title": "Critical Heat Stress Management",
        "description": (
            "Average temperature of {avg_temp:.1f}°C exceeds the heat stress threshold during a "
            "sensitive growth period. Increase irrigation frequency, irrigate early morning or "
            "evening and monitor for leaf rolling."
        ),
        "priority": "CRITICAL",
        "confidence": 0.95,
    },
    "cold_protection": {
        "category": "COLD_PROTECTION",
        "title": "Cold Weather Protection",
        "description": (
            "Average temperature of {avg_temp:.1f}°C may slow early growth. Delay fertilizer "
            "applications until temperatures rise and watch for purpling of leaves."
        ),
        "priority": "HIGH",
        "confidence": 0.88,
    },
    "drought": {
        "category": "DROUGHT_MANAGEMENT",
        "title": "Drought Stress Mitigation",
        "description": (
            "Only {total_rainfall:.1f}mm of rain fell during the observation window. Start "
            "supplemental irrigation and apply mulch to conserve soil moisture."
        ),
        "priority": "CRITICAL",
        "confidence": 0.92,
    },
    "waterlogging": {
        "category": "WATERLOG_PREVENTION",
        "title": "Waterlogging Prevention",
        "description": (
            "Heavy rainfall of {total_rainfall:.1f}mm may cause waterlogging. Clear drainage "
            "channels and avoid field traffic until the soil drains."
        ),
        "priority": "HIGH",
        "confidence": 0.87,
    },
    "disease_risk": {
        "category": "DISEASE_PREVENTION",
        "title": "High Disease Risk Alert",
        "description": (
            "Humidity of {avg_humidity:.0f}% combined with {avg_temp:.1f}°C favors fungal "
            "diseases. Scout for leaf blight and rust and consider a preventive fungicide."
        ),
        "priority": "HIGH",
        "confidence": 0.85,
    },
    "wind_damage": {
        "category": "WIND_PROTECTION",
        "title": "Wind Damage Prevention",
        "description": (
            "Wind gusts of up to {max_wind:.0f}km/h were recorded. Check for lodging and "
            "postpone spraying operations until winds calm down."
        ),
        "priority": "MEDIUM",
        "confidence": 0.78,
    },
    "nitrogen_critical": {
        "category": "NUTRIENT_MANAGEMENT",
        "title": "Critical Nitrogen Deficiency",
        "description": (
            "Soil nitrogen at {nitrogen:.2f}% is critically low for the current growth stage. "
            "Apply a nitrogen top-dressing (e.g. CAN or urea) immediately."
        ),
        "priority": "CRITICAL",
        "confidence": 0.93,
    },
    "nitrogen_low": {
        "category": "NUTRIENT_MANAGEMENT",
        "title": "Optimize Nitrogen Supply",
        "description": (
            "Soil nitrogen at {nitrogen:.2f}% is below optimal. Plan a split nitrogen "
            "application to support vegetative growth."
        ),
        "priority": "HIGH",
        "confidence": 0.87,
    },
    "ph_acidic": {
        "category": "SOIL_CHEMISTRY",
        "title": "Soil Acidification Treatment",
        "description": (
            "Soil pH of {ph:.1f} is too acidic for maize. Apply agricultural lime based on a "
            "buffer pH test."
        ),
        "priority": "HIGH",
        "confidence": 0.91,
    },
    "ph_alkaline": {
        "category": "SOIL_CHEMISTRY",
        "title": "Alkaline Soil Management",
        "description": (
            "Soil pH of {ph:.1f} is alkaline and may limit micronutrient uptake. Use "
            "acidifying fertilizers and incorporate organic matter."
        ),
        "priority": "MEDIUM",
        "confidence": 0.84,
    },
    "moisture_deficit": {
        "category": "IRRIGATION",
        "title": "Critical Soil Moisture Deficit",
        "description": (
            "Soil moisture at {moisture:.0f}% is critically low during a high water demand "
            "stage. Irrigate to bring the root zone back to field capacity."
        ),
        "priority": "CRITICAL",
        "confidence": 0.89,
    },
    "moisture_excess": {
        "category": "DRAINAGE",
        "title": "Excess Soil Moisture Management",
        "description": (
            "Soil moisture at {moisture:.0f}% indicates saturated conditions. Suspend "
            "irrigation and improve field drainage."
        ),
        "priority": "MEDIUM",
        "confidence": 0.82,
    },
    "emergence": {
        "category": "EMERGENCE",
        "title": "Emergence Stage Monitoring",
        "description": (
            "Check plant stand and emergence uniformity. Replant gaps if the stand is below "
            "target and watch for cutworm damage."
        ),
        "priority": "HIGH",
        "confidence": 0.90,
    },
    "weed_control": {
        "category": "WEED_CONTROL",
        "title": "Critical Weed Control Period",
        "description": (
            "Maize is most sensitive to weed competition now. Complete weeding or apply a "
            "post-emergence herbicide."
        ),
        "priority": "CRITICAL",
        "confidence": 0.95,
    },
    "pre_tasseling": {
        "category": "NUTRIENT_TIMING",
        "title": "Pre-Tasseling Nutrition Boost",
        "description": (
            "Nutrient uptake peaks ahead of tasseling. Apply the final nitrogen top-dressing "
            "and ensure adequate soil moisture."
        ),
        "priority": "HIGH",
        "confidence": 0.88,
    },
    "pollination": {
        "category": "REPRODUCTIVE_SUPPORT",
        "title": "Pollination Period Support",
        "description": (
            "Pollination is underway. Avoid water stress at all costs and do not spray "
            "insecticides during peak pollen shed."
        ),
        "priority": "CRITICAL",
        "confidence": 0.93,
    },
    "grain_filling": {
        "category": "GRAIN_FILLING",
        "title": "Grain Filling Optimization",
        "description": (
            "Kernels are filling. Maintain soil moisture and protect the crop from stalk rot "
            "and ear pests."
        ),
        "priority": "HIGH",
        "confidence": 0.87,
    },
    "drought_tolerance": {
        "category": "VARIETY_ADVANTAGE",
        "title": "Leverage Drought Tolerance",
        "description": (
            "{variety} is drought resistant and can withstand the current dry spell "
            "({total_rainfall:.1f}mm). Prioritize irrigation for less tolerant fields."
        ),
        "priority": "LOW",
        "confidence": 0.82,
    },
    "early_harvest": {
        "category": "HARVEST_TIMING",
        "title": "Early Variety Harvest Preparation",
        "description": (
            "{variety} matures in {maturity_days} days. Prepare harvesting equipment, storage "
            "and labor for an early harvest."
        ),
        "priority": "MEDIUM",
        "confidence": 0.85,
    },
}
