"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.errors import NotFoundError, ValidationError
from app.schemas import (
    DashboardAnalytics,
    Envelope,
    HealthStatus,
    IntegrationStatus,
    LoyaltyAccount,
    LoyaltyAddRequest,
    Predictions,
    Project,
    ProjectCreate,
    SensorReading,
    SensorReadingCreate,
    User,
)
from datastore.city_store import CityStore, build_default_store
from services.analytics import DashboardAggregator
from services.catalog import integration_statuses, mock_predictions
from services.telemetry import SensorFeed, build_default_feed
from settings import Settings

logger = logging.getLogger(__name__)

_PROCESS_STARTED = time.monotonic()

router = APIRouter()
api_router = APIRouter(prefix="/api/v1", tags=["api"])


def get_store() -> CityStore:
    return build_default_store()


def get_feed() -> SensorFeed:
    return build_default_feed()


def get_aggregator() -> DashboardAggregator:
    return DashboardAggregator()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Liveness probe for the load balancer.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(settings: Settings = Depends(get_app_settings)) -> HealthStatus:
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - _PROCESS_STARTED, 3),
        environment=settings.environment,
    )


@api_router.get(
    "/dashboard",
    response_model=Envelope[DashboardAnalytics],
    response_model_exclude_none=True,
    summary="Aggregate counts and averages for the dashboard overview.",
)
def dashboard(
    store: CityStore = Depends(get_store),
    aggregator: DashboardAggregator = Depends(get_aggregator),
) -> Envelope[DashboardAnalytics]:
    summary = aggregator.summarize(store.list_projects())
    analytics = DashboardAnalytics(
        total_projects=summary.total_projects,
        active_projects=summary.active_projects,
        total_budget=summary.total_budget,
        avg_roi=summary.avg_roi,
        avg_esg=summary.avg_esg,
        total_users=len(store.list_users()),
        iot_sensors_active=len(store.list_readings()),
        last_update=datetime.now(timezone.utc),
    )
    return Envelope[DashboardAnalytics](data=analytics)


@api_router.get(
    "/projects",
    response_model=Envelope[List[Project]],
    response_model_exclude_none=True,
    summary="List projects, optionally filtered by sector and status.",
)
def list_projects(
    sector: Optional[str] = None,
    project_status: Optional[str] = Query(default=None, alias="status"),
    store: CityStore = Depends(get_store),
) -> Envelope[List[Project]]:
    projects = store.list_projects(sector=sector, status=project_status)
    return Envelope[List[Project]](data=projects, count=len(projects))


@api_router.get(
    "/projects/{project_id}",
    response_model=Envelope[Project],
    response_model_exclude_none=True,
    summary="Fetch a single project by id.",
)
def get_project(project_id: int, store: CityStore = Depends(get_store)) -> Envelope[Project]:
    try:
        project = store.get_project(project_id)
    except KeyError as exc:
        raise NotFoundError("Project not found") from exc
    return Envelope[Project](data=project)


@api_router.post(
    "/projects",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[Project],
    response_model_exclude_none=True,
    summary="Create a project with the next sequential id.",
)
def create_project(
    payload: ProjectCreate, store: CityStore = Depends(get_store)
) -> Envelope[Project]:
    project = store.create_project(payload)
    logger.info("Project created", extra={"project_id": project.id})
    return Envelope[Project](data=project)


@api_router.get(
    "/iot/sensors",
    response_model=Envelope[List[SensorReading]],
    response_model_exclude_none=True,
    summary="Live view of sensor readings with simulated noise.",
)
def list_sensors(
    sensor_type: Optional[str] = Query(default=None, alias="type"),
    store: CityStore = Depends(get_store),
    feed: SensorFeed = Depends(get_feed),
) -> Envelope[List[SensorReading]]:
    readings = feed.jitter(store.list_readings(sensor_type=sensor_type))
    return Envelope[List[SensorReading]](data=readings, count=len(readings))


@api_router.post(
    "/iot/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=Envelope[SensorReading],
    response_model_exclude_none=True,
    summary="Submit a sensor reading.",
)
def submit_reading(
    payload: SensorReadingCreate, store: CityStore = Depends(get_store)
) -> Envelope[SensorReading]:
    reading = store.add_reading(payload)
    logger.info("Sensor reading stored", extra={"sensor_id": reading.sensor_id})
    return Envelope[SensorReading](data=reading)


@api_router.post(
    "/loyalty/add",
    response_model=Envelope[LoyaltyAccount],
    response_model_exclude_none=True,
    summary="Credit loyalty points for a civic activity.",
)
def add_loyalty_points(
    payload: LoyaltyAddRequest, store: CityStore = Depends(get_store)
) -> Envelope[LoyaltyAccount]:
    try:
        account = store.add_loyalty_points(payload.user_id, payload.points, payload.activity)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    logger.info(
        "Loyalty points added",
        extra={"user_id": account.user_id, "points": payload.points},
    )
    return Envelope[LoyaltyAccount](
        data=account,
        message=f"Added {payload.points} points for {payload.activity}",
    )


@api_router.get(
    "/loyalty/{user_id}",
    response_model=Envelope[LoyaltyAccount],
    response_model_exclude_none=True,
    summary="Fetch a user's loyalty balance and activity history.",
)
def get_loyalty(user_id: int, store: CityStore = Depends(get_store)) -> Envelope[LoyaltyAccount]:
    try:
        account = store.get_loyalty(user_id)
    except KeyError as exc:
        raise NotFoundError("User not found") from exc
    return Envelope[LoyaltyAccount](data=account)


@api_router.get(
    "/analytics/predictions",
    response_model=Envelope[Predictions],
    response_model_exclude_none=True,
    summary="Mock forecasts for water, traffic and project returns.",
)
async def predictions() -> Envelope[Predictions]:
    return Envelope[Predictions](
        data=mock_predictions(),
        generated_at=datetime.now(timezone.utc),
    )


@api_router.get(
    "/users",
    response_model=Envelope[List[User]],
    response_model_exclude_none=True,
    summary="List registered users.",
)
def list_users(store: CityStore = Depends(get_store)) -> Envelope[List[User]]:
    users = store.list_users()
    return Envelope[List[User]](data=users, count=len(users))


@api_router.get(
    "/integrations/status",
    response_model=Envelope[List[IntegrationStatus]],
    response_model_exclude_none=True,
    summary="Connection status of external city systems.",
)
async def integrations_status() -> Envelope[List[IntegrationStatus]]:
    return Envelope[List[IntegrationStatus]](data=integration_statuses())


router.include_router(api_router)
