"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    """Uniform response wrapper returned by every ``/api`` endpoint."""

    success: bool = True
    data: Optional[DataT] = None
    error: Optional[str] = None
    count: Optional[int] = None
    message: Optional[str] = None
    generated_at: Optional[datetime] = None


class HealthStatus(BaseModel):
    status: str = "healthy"
    timestamp: datetime
    uptime: float = Field(..., ge=0, description="Seconds since the process started.")
    environment: str


class Project(BaseModel):
    """Infrastructure project tracked by the dashboard."""

    id: int = Field(..., ge=1)
    name: str
    sector: str
    budget: float
    status: str = "planning"
    roi: float = Field(default=0.0, description="Return on investment, percent.")
    esg_score: int = 0
    created_at: Optional[datetime] = None


class ProjectCreate(BaseModel):
    """Body accepted when creating a project."""

    name: str = Field(..., min_length=1)
    sector: str = Field(..., min_length=1)
    budget: float = Field(..., allow_inf_nan=False)
    status: Optional[str] = None
    roi: Optional[float] = Field(default=None, allow_inf_nan=False)
    esg_score: Optional[int] = None

    @field_validator("budget")
    @classmethod
    def _budget_is_set(cls, value: float) -> float:
        if value == 0:
            raise ValueError("budget must be a non-zero number")
        return value


class SensorReading(BaseModel):
    """A single IoT measurement."""

    sensor_id: str
    type: str
    value: float
    unit: str = "unit"
    timestamp: datetime


class SensorReadingCreate(BaseModel):
    sensor_id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    value: float = Field(..., allow_inf_nan=False)
    unit: Optional[str] = None


class LoyaltyAccount(BaseModel):
    user_id: int
    points: int = Field(default=0, ge=0)
    activities: List[str] = Field(default_factory=list)


class LoyaltyAddRequest(BaseModel):
    user_id: int = Field(..., gt=0)
    points: int = Field(..., gt=0)
    activity: str = Field(..., min_length=1)


class User(BaseModel):
    id: int
    name: str
    email: str
    role: str


class DashboardAnalytics(BaseModel):
    """Aggregate figures shown on the dashboard landing page."""

    total_projects: int = Field(..., ge=0)
    active_projects: int = Field(..., ge=0)
    total_budget: float
    avg_roi: float
    avg_esg: float
    total_users: int = Field(..., ge=0)
    iot_sensors_active: int = Field(..., ge=0)
    last_update: datetime


class WaterConsumptionForecast(BaseModel):
    current: float
    predicted_next_month: float
    trend: str
    savings_potential: str


class TrafficFlowForecast(BaseModel):
    current: float
    predicted_peak_hour: float
    optimization_recommendation: str


class ProjectRoiForecast(BaseModel):
    avg_current: float
    predicted_3_years: float
    confidence: float = Field(..., ge=0, le=1)


class Predictions(BaseModel):
    water_consumption: WaterConsumptionForecast
    traffic_flow: TrafficFlowForecast
    project_roi: ProjectRoiForecast


class IntegrationStatus(BaseModel):
    name: str
    status: str
    last_sync: datetime
