# -*- coding: utf-8 -*-
"""
Route Comparison - FuelEU Compliance Ledger

Reference-data service over voyage routes: listing with filters, selecting
the single baseline route, and comparing every other route's GHG intensity
against the baseline.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fueleu_ledger.config import LedgerConfig, get_config
from fueleu_ledger.models import ProvenanceAction, Route, RouteComparison
from fueleu_ledger.provenance import ProvenanceTracker
from fueleu_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


def percent_difference(ghg_intensity: float, baseline_intensity: float) -> Optional[float]:
    """``(ghg - baseline) / baseline * 100`` rounded to 2 decimals.

    Returns 0.0 for equal intensities and None when the baseline is zero
    and the route differs from it.
    """
    if ghg_intensity == baseline_intensity:
        return 0.0
    if baseline_intensity == 0:
        return None
    return round((ghg_intensity - baseline_intensity) / baseline_intensity * 100, 2)


class RouteComparisonService:
    """Lists routes, selects the baseline and compares against it."""

    def __init__(
        self,
        store: LedgerStore,
        config: Optional[LedgerConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.provenance = provenance or ProvenanceTracker()
        logger.info("RouteComparisonService initialized")

    def list_routes(
        self,
        vessel_type: Optional[str] = None,
        fuel_type: Optional[str] = None,
        year: Optional[int] = None,
    ) -> List[Route]:
        routes = self.store.routes.find_all()
        if vessel_type is not None:
            routes = [r for r in routes if r.vessel_type == vessel_type]
        if fuel_type is not None:
            routes = [r for r in routes if r.fuel_type == fuel_type]
        if year is not None:
            routes = [r for r in routes if r.year == year]
        return routes

    def set_baseline(self, route_pk: str) -> Optional[Route]:
        """Make ``route_pk`` the only baseline route.

        Returns:
            The updated route, or None if it does not exist.
        """
        previous = self.store.routes.find_baseline()
        route = self.store.routes.set_baseline(route_pk)
        if route is None:
            logger.warning("Cannot set baseline: route %s not found", route_pk)
            return None

        if self.config.enable_provenance:
            self.provenance.record(
                ProvenanceAction.SET_BASELINE.value,
                route.id,
                {
                    "route_id": route.route_id,
                    "previous_baseline": previous.id if previous else None,
                },
            )
        logger.info("Baseline route set to %s (%s)", route.route_id, route.id)
        return route

    def get_comparison(self) -> List[RouteComparison]:
        """Compare every non-baseline route with the baseline.

        Returns an empty list when no baseline is set.
        """
        baseline = self.store.routes.find_baseline()
        if baseline is None:
            return []

        comparisons = []
        for route in self.store.routes.find_all():
            if route.id == baseline.id:
                continue
            comparisons.append(
                RouteComparison(
                    route=route,
                    baseline_route_id=baseline.route_id,
                    percent_diff=percent_difference(
                        route.ghg_intensity, baseline.ghg_intensity,
                    ),
                    compliant=route.ghg_intensity <= baseline.ghg_intensity,
                )
            )
        return comparisons


__all__ = [
    "percent_difference",
    "RouteComparisonService",
]
