"""Fabricated analytics and integration data shown on the dashboard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from app.schemas import (
    IntegrationStatus,
    Predictions,
    ProjectRoiForecast,
    TrafficFlowForecast,
    WaterConsumptionForecast,
)

# (name, status, seconds since last sync)
_INTEGRATIONS = (
    ("AgroDigit Abai", "connected", 300),
    ("FreshUz", "connected", 120),
    ("Aqua-Monitor", "connected", 60),
    ("Smart Road", "connected", 30),
    ("eGov API", "degraded", 600),
)


def mock_predictions() -> Predictions:
    return Predictions(
        water_consumption=WaterConsumptionForecast(
            current=245.5,
            predicted_next_month=238.2,
            trend="decreasing",
            savings_potential="3.0%",
        ),
        traffic_flow=TrafficFlowForecast(
            current=342,
            predicted_peak_hour=485,
            optimization_recommendation="Add traffic light at intersection A",
        ),
        project_roi=ProjectRoiForecast(
            avg_current=16.6,
            predicted_3_years=19.2,
            confidence=0.85,
        ),
    )


def integration_statuses(now: Optional[datetime] = None) -> list[IntegrationStatus]:
    """Report each external system with a last sync relative to ``now``."""
    current = now or datetime.now(timezone.utc)
    return [
        IntegrationStatus(
            name=name,
            status=status,
            last_sync=current - timedelta(seconds=age_seconds),
        )
        for name, status, age_seconds in _INTEGRATIONS
    ]
