from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, Iterable, List, Optional

from app.schemas import (
    LoyaltyAccount,
    Project,
    ProjectCreate,
    SensorReading,
    SensorReadingCreate,
    User,
)


class CityStore:
    """Process-wide in-memory dataset behind the dashboard API.

    Every read hands out deep copies, so callers never mutate stored
    entities. Writes hold the lock for the whole read-modify-write, which
    keeps project ids sequential under concurrent requests.
    """

    def __init__(
        self,
        users: Iterable[User] = (),
        projects: Iterable[Project] = (),
        readings: Iterable[SensorReading] = (),
        loyalty: Iterable[LoyaltyAccount] = (),
    ) -> None:
        self._users: List[User] = [user.model_copy(deep=True) for user in users]
        self._projects: List[Project] = [
            project.model_copy(deep=True) for project in projects
        ]
        self._readings: List[SensorReading] = [
            reading.model_copy(deep=True) for reading in readings
        ]
        self._loyalty: Dict[int, LoyaltyAccount] = {
            account.user_id: account.model_copy(deep=True) for account in loyalty
        }
        self._lock = Lock()

    def list_users(self) -> list[User]:
        with self._lock:
            return [user.model_copy(deep=True) for user in self._users]

    def list_projects(
        self, sector: Optional[str] = None, status: Optional[str] = None
    ) -> list[Project]:
        """Return projects matching every given filter exactly."""

        with self._lock:
            projects = [project.model_copy(deep=True) for project in self._projects]
        if sector:
            projects = [project for project in projects if project.sector == sector]
        if status:
            projects = [project for project in projects if project.status == status]
        return projects

    def get_project(self, project_id: int) -> Project:
        with self._lock:
            for project in self._projects:
                if project.id == project_id:
                    return project.model_copy(deep=True)
        raise KeyError(f"Project {project_id!r} not found.")

    def create_project(self, payload: ProjectCreate) -> Project:
        with self._lock:
            project = Project(
                id=len(self._projects) + 1,
                name=payload.name,
                sector=payload.sector,
                budget=payload.budget,
                status=payload.status or "planning",
                roi=payload.roi or 0.0,
                esg_score=payload.esg_score or 0,
                created_at=datetime.now(timezone.utc),
            )
            self._projects.append(project)
            return project.model_copy(deep=True)

    def list_readings(self, sensor_type: Optional[str] = None) -> list[SensorReading]:
        with self._lock:
            readings = [reading.model_copy(deep=True) for reading in self._readings]
        if sensor_type:
            readings = [reading for reading in readings if reading.type == sensor_type]
        return readings

    def add_reading(self, payload: SensorReadingCreate) -> SensorReading:
        reading = SensorReading(
            sensor_id=payload.sensor_id,
            type=payload.type,
            value=payload.value,
            unit=payload.unit or "unit",
            timestamp=datetime.now(timezone.utc),
        )
        with self._lock:
            self._readings.append(reading)
            return reading.model_copy(deep=True)

    def get_loyalty(self, user_id: int) -> LoyaltyAccount:
        with self._lock:
            account = self._loyalty.get(user_id)
            if account is None:
                raise KeyError(f"Loyalty account for user {user_id!r} not found.")
            return account.model_copy(deep=True)

    def add_loyalty_points(self, user_id: int, points: int, activity: str) -> LoyaltyAccount:
        """Credit points to a user, opening the account on first use."""

        if points <= 0:
            raise ValueError("Loyalty points must be a positive integer.")
        with self._lock:
            account = self._loyalty.get(user_id)
            if account is None:
                account = LoyaltyAccount(user_id=user_id)
                self._loyalty[user_id] = account
            account.points += points
            account.activities.append(activity)
            return account.model_copy(deep=True)


def seed_store(now: Optional[datetime] = None) -> CityStore:
    """Build a store holding the demo dataset for the Semey dashboard."""

    started = now or datetime.now(timezone.utc)
    return CityStore(
        users=[
            User(id=1, name="Admin User", email="admin@semey.kz", role="admin"),
            User(id=2, name="Investor User", email="investor@semey.kz", role="investor"),
        ],
        projects=[
            Project(
                id=1,
                name="Aqua-Monitor Abay",
                sector="water",
                budget=50_000_000,
                status="active",
                roi=15.5,
                esg_score=85,
            ),
            Project(
                id=2,
                name="Smart Road Semey",
                sector="transport",
                budget=120_000_000,
                status="planning",
                roi=22.3,
                esg_score=78,
            ),
            Project(
                id=3,
                name="Green.City.Semei",
                sector="ecology",
                budget=30_000_000,
                status="active",
                roi=12.1,
                esg_score=95,
            ),
        ],
        readings=[
            SensorReading(
                sensor_id="WTR-001", type="water", value=245.5, unit="m3/h", timestamp=started
            ),
            SensorReading(
                sensor_id="TMP-001",
                type="temperature",
                value=68.2,
                unit="°C",
                timestamp=started,
            ),
            SensorReading(
                sensor_id="TRF-001",
                type="traffic",
                value=342,
                unit="vehicles/h",
                timestamp=started,
            ),
        ],
        loyalty=[
            LoyaltyAccount(user_id=1, points=1250, activities=["volunteer", "recycling"]),
            LoyaltyAccount(user_id=2, points=890, activities=["public_transport"]),
        ],
    )


@lru_cache
def build_default_store() -> CityStore:
    return seed_store()
