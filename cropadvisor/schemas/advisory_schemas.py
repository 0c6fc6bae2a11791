"""
Pydantic schemas for the remote advisory service.

The request is provider agnostic: session metadata, farm location, soil
snapshot, the observation window and variety traits. Field names use the
camelCase aliases the advisory endpoint expects.
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cropadvisor.models.domain import Priority


class AdvisoryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FarmLocationPayload(AdvisoryModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    elevation: Optional[float] = None


class SoilPayload(AdvisoryModel):
    soil_type: Optional[str] = Field(None, alias="soilType")
    ph_level: Optional[float] = Field(None, alias="phLevel")
    organic_matter: Optional[float] = Field(None, alias="organicMatter")
    nitrogen: Optional[float] = None
    phosphorus: Optional[float] = None
    potassium: Optional[float] = None
    moisture: Optional[float] = None


class WeatherPayload(AdvisoryModel):
    date: date
    min_temp: Optional[float] = Field(None, alias="minTemp")
    max_temp: Optional[float] = Field(None, alias="maxTemp")
    avg_temp: Optional[float] = Field(None, alias="avgTemp")
    rainfall: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = Field(None, alias="windSpeed")


class VarietyPayload(AdvisoryModel):
    maturity_days: int = Field(..., alias="maturityDays")
    drought_resistant: bool = Field(False, alias="droughtResistant")
    optimal_temp_min: Optional[float] = Field(None, alias="optimalTempMin")
    optimal_temp_max: Optional[float] = Field(None, alias="optimalTempMax")


class AdvisoryRequest(AdvisoryModel):
    farm_id: int = Field(..., alias="farmId")
    planting_session_id: int = Field(..., alias="plantingSessionId")
    crop_type: str = Field("MAIZE", alias="cropType")
    variety: str
    planting_date: date = Field(..., alias="plantingDate")
    days_since_planting: int = Field(..., ge=0, alias="daysSincePlanting")
    growth_phase: str = Field(..., alias="growthPhase")
    farm_location: FarmLocationPayload = Field(..., alias="farmLocation")
    soil_data: Optional[SoilPayload] = Field(None, alias="soilData")
    weather_data: List[WeatherPayload] = Field(default_factory=list, alias="weatherData")
    variety_info: VarietyPayload = Field(..., alias="varietyInfo")


class AdvisoryRecommendation(AdvisoryModel):
    category: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str
    priority: Priority
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    action_items: List[str] = Field(default_factory=list, alias="actionItems")
    expected_outcome: Optional[str] = Field(None, alias="expectedOutcome")

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class AdvisoryResponse(AdvisoryModel):
    recommendations: List[AdvisoryRecommendation] = Field(default_factory=list)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    model: Optional[str] = None
    timestamp: Optional[datetime] = None
