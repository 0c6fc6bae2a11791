"""
Database tables backing the observation repository.

Farms, sessions and varieties are owned by an external system; only their
ids are stored here.
"""
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, Integer, String, Text, UniqueConstraint

from cropadvisor.database import Base


class WeatherObservation(Base):
    __tablename__ = "observations"
    __table_args__ = (
        UniqueConstraint("farm_id", "date", name="uq_observation_farm_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    farm_id = Column(Integer, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    min_temperature = Column(Float)
    max_temperature = Column(Float)
    average_temperature = Column(Float)
    rainfall_mm = Column(Float)
    humidity_percentage = Column(Float)
    wind_speed_kmh = Column(Float)
    solar_radiation = Column(Float)
    pressure_mb = Column(Float)
    uv_index = Column(Float)
    visibility_km = Column(Float)
    cloud_cover = Column(Float)
    source = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class SoilSampleRecord(Base):
    __tablename__ = "soil_samples"

    id = Column(Integer, primary_key=True, index=True)
    farm_id = Column(Integer, nullable=False, index=True)
    sample_date = Column(Date, nullable=False)
    soil_type = Column(String(50))
    ph_level = Column(Float)
    organic_matter_percentage = Column(Float)
    nitrogen_content = Column(Float)
    phosphorus_content = Column(Float)
    potassium_content = Column(Float)
    moisture_content = Column(Float)
    created_at = Column(DateTime, default=datetime.utcnow)


class RecommendationRecord(Base):
    __tablename__ = "recommendations"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, nullable=False, index=True)
    recommendation_date = Column(Date, nullable=False)
    category = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(String(20), nullable=False)
    confidence = Column(Float, nullable=False)
    reasoning = Column(Text)
    action_items = Column(JSON)
    expected_outcome = Column(Text)
    is_viewed = Column(Boolean, default=False, nullable=False)
    is_implemented = Column(Boolean, default=False, nullable=False)
    source = Column(String(50), default="local")
    created_at = Column(DateTime, default=datetime.utcnow)
