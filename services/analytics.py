"""Aggregation logic for the dashboard overview."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from app.schemas import Project


@dataclass
class PortfolioSummary:
    """Computed statistics for the current project portfolio."""

    total_projects: int = 0
    active_projects: int = 0
    total_budget: float = 0.0
    avg_roi: float = 0.0
    avg_esg: float = 0.0


class DashboardAggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def summarize(self, projects: Iterable[Project]) -> PortfolioSummary:
        summary = PortfolioSummary()
        roi_total = 0.0
        esg_total = 0

        for project in projects:
            summary.total_projects += 1
            summary.total_budget += project.budget
            roi_total += project.roi
            esg_total += project.esg_score
            if project.status == "active":
                summary.active_projects += 1

        if summary.total_projects:
            summary.avg_roi = round(roi_total / summary.total_projects, 2)
            summary.avg_esg = round(esg_total / summary.total_projects, 1)

        return summary
