"""Simulated real-time view over stored sensor readings."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from functools import lru_cache
from typing import Iterable, Optional

from app.schemas import SensorReading

DEFAULT_JITTER_SPREAD = 10.0


class SensorFeed:
    """Adds uniform noise to readings so the dashboard looks live.

    The random source is injectable; pass a seeded ``random.Random`` for
    reproducible output.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        spread: float = DEFAULT_JITTER_SPREAD,
    ) -> None:
        self.rng = rng or random.Random()
        self.spread = spread

    def jitter(
        self, readings: Iterable[SensorReading], now: Optional[datetime] = None
    ) -> list[SensorReading]:
        """Return perturbed copies of ``readings`` stamped with ``now``."""
        stamp = now or datetime.now(timezone.utc)
        return [
            reading.model_copy(
                update={
                    "value": reading.value + (self.rng.random() - 0.5) * self.spread,
                    "timestamp": stamp,
                }
            )
            for reading in readings
        ]


@lru_cache
def build_default_feed() -> SensorFeed:
    return SensorFeed()
