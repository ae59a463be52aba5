# -*- coding: utf-8 -*-
"""
Compliance Calculator - FuelEU Compliance Ledger

Derives a ship-year's compliance balance (CB) from its route data:

    energy = fuel_consumption * energy_conversion_factor      (MJ)
    cb     = (target_intensity(year) - ghg_intensity) * energy (gCO2e)

A positive CB is a surplus, a negative CB a deficit. The first computed value
for a ship-year is persisted and returned unchanged on every later call; it
is never recomputed automatically.

Zero-Hallucination Guarantees:
    - CB is a pure function of the route snapshot and configuration
    - Non-finite or non-positive inputs are rejected, never coerced
    - Every new balance is recorded in the provenance chain

Example:
    >>> from fueleu_ledger.calculator import compute_compliance_balance
    >>> route = Route(id="1", route_id="R001", year=2025,
    ...               ghg_intensity=91.0, fuel_consumption=5000.0)
    >>> cb = compute_compliance_balance(route, 89.3368, 41000.0)
    >>> print(cb < 0)
    True
"""

from __future__ import annotations

import logging
import math
import time
import warnings
from typing import TYPE_CHECKING, List, Optional

from fueleu_ledger.config import LedgerConfig, get_config
from fueleu_ledger.exceptions import ValidationError
from fueleu_ledger.metrics import (
    record_cache_hit,
    record_cache_miss,
    record_operation,
    record_rejection,
)
from fueleu_ledger.models import (
    AdjustedBalance,
    ComplianceRecord,
    ProvenanceAction,
    Route,
)
from fueleu_ledger.provenance import ProvenanceTracker
from fueleu_ledger.store.base import LedgerStore

if TYPE_CHECKING:
    from fueleu_ledger.banking import BankingLedger

logger = logging.getLogger(__name__)


def _is_finite_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def validate_route(route: Route) -> None:
    """Reject route data the CB formula cannot use.

    Raises:
        ValidationError: If fuel_consumption is not a finite positive number
            or ghg_intensity is not finite.
    """
    if not _is_finite_number(route.fuel_consumption) or route.fuel_consumption <= 0:
        raise ValidationError(
            f"Route {route.route_id}: fuel_consumption must be a finite positive number",
            route_id=route.route_id,
            field="fuel_consumption",
            value=route.fuel_consumption,
        )
    if not _is_finite_number(route.ghg_intensity):
        raise ValidationError(
            f"Route {route.route_id}: ghg_intensity must be a finite number",
            route_id=route.route_id,
            field="ghg_intensity",
            value=route.ghg_intensity,
        )


def compute_compliance_balance(
    route: Route,
    target_intensity: float,
    energy_conversion_factor: float,
) -> float:
    """Compute the signed compliance balance for a route, in gCO2e.

    Args:
        route: Route snapshot.
        target_intensity: Target GHG intensity for the reporting year, gCO2e/MJ.
        energy_conversion_factor: MJ per tonne of fuel.

    Returns:
        ``(target_intensity - ghg_intensity) * fuel_consumption * factor``.

    Raises:
        ValidationError: If the route numerics are unusable.
    """
    validate_route(route)
    energy_mj = route.fuel_consumption * energy_conversion_factor
    return (target_intensity - route.ghg_intensity) * energy_mj


class ComplianceCalculator:
    """Computes, caches and adjusts ship compliance balances.

    Attributes:
        store: LedgerStore providing routes, ships and compliance records.
        banking: BankingLedger used for the adjusted balance.
        config: LedgerConfig instance.
        provenance: ProvenanceTracker instance.
    """

    def __init__(
        self,
        store: LedgerStore,
        banking: Optional["BankingLedger"] = None,
        config: Optional[LedgerConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.provenance = provenance or ProvenanceTracker()
        if banking is None:
            from fueleu_ledger.banking import BankingLedger
            banking = BankingLedger(
                store, config=self.config, provenance=self.provenance,
            )
        self.banking = banking
        logger.info("ComplianceCalculator initialized")

    # ------------------------------------------------------------------
    # Compliance balance
    # ------------------------------------------------------------------

    def get_compliance_balance(
        self, ship_id: str, year: int,
    ) -> Optional[ComplianceRecord]:
        """Return the ship-year's compliance record, computing it on first use.

        Args:
            ship_id: Ship identifier.
            year: Reporting year.

        Returns:
            The stored ComplianceRecord, or None when no route can be
            resolved for the ship.

        Raises:
            ValidationError: If the resolved route has unusable numerics.
        """
        start = time.perf_counter()

        cached = self.store.compliance.find_by_ship_id_and_year(ship_id, year)
        if cached is not None:
            record_cache_hit()
            record_operation("get_cb", "cache_hit", time.perf_counter() - start)
            logger.debug("Compliance cache hit for %s/%s", ship_id, year)
            return cached
        record_cache_miss()

        route = self._resolve_route(ship_id)
        if route is None:
            record_operation("get_cb", "not_found", time.perf_counter() - start)
            logger.info("No route found for ship %s", ship_id)
            return None

        try:
            cb = compute_compliance_balance(
                route,
                self.config.target_intensity_for(year),
                self.config.energy_conversion_factor,
            )
        except ValidationError as exc:
            record_rejection("get_cb", "invalid_route")
            record_operation("get_cb", "rejected", time.perf_counter() - start)
            logger.warning("Rejected route data for ship %s: %s", ship_id, exc.message)
            raise

        stored = self.store.compliance.save(
            ComplianceRecord(ship_id=ship_id, year=year, cb_gco2eq=cb),
        )
        if self.config.enable_provenance:
            self.provenance.record(
                ProvenanceAction.COMPUTE_BALANCE.value,
                ship_id,
                {
                    "year": year,
                    "route_id": route.route_id,
                    "cb_gco2eq": stored.cb_gco2eq,
                },
            )
        record_operation("get_cb", "computed", time.perf_counter() - start)
        logger.info(
            "Computed CB for %s/%s: %.4f gCO2e (route %s)",
            ship_id, year, stored.cb_gco2eq, route.route_id,
        )
        return stored

    def get_adjusted_compliance_balance(
        self, ship_id: str, year: int,
    ) -> Optional[float]:
        """Own CB plus the surplus banked up to ``year``.

        Returns:
            The adjusted CB, or None when no compliance record exists.
        """
        record = self.get_compliance_balance(ship_id, year)
        if record is None:
            return None
        return record.cb_gco2eq + self.banking.get_total_banked(ship_id, year)

    def get_adjusted_compliance_balance_for_all_ships(
        self, year: int,
    ) -> List[AdjustedBalance]:
        """Adjusted CB for every known ship.

        A ship with unusable route data is reported with ``adjusted_cb=None``
        and the batch continues. Store failures propagate.
        """
        results: List[AdjustedBalance] = []
        for ship in self.store.ships.get_all_ships():
            try:
                adjusted = self.get_adjusted_compliance_balance(ship.id, year)
            except ValidationError as exc:
                logger.warning(
                    "Adjusted CB failed for ship %s/%s: %s",
                    ship.id, year, exc,
                )
                adjusted = None
            if adjusted is None:
                logger.info("No adjusted CB for ship %s/%s", ship.id, year)
            results.append(
                AdjustedBalance(ship_id=ship.id, year=year, adjusted_cb=adjusted),
            )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_route(self, ship_id: str) -> Optional[Route]:
        ship = self.store.ships.find_by_id(ship_id)
        if ship is not None:
            if not ship.route_id:
                return None
            return self.store.routes.find_by_route_id(ship.route_id)

        if not self.config.allow_route_id_fallback:
            return None

        route = self.store.routes.find_by_route_id(ship_id)
        if route is not None:
            warnings.warn(
                f"Ship {ship_id!r} is unknown; using it as a route id. "
                "Set FUELEU_ALLOW_ROUTE_ID_FALLBACK=false to disable.",
                DeprecationWarning,
                stacklevel=3,
            )
            logger.warning(
                "Ship %s not found; falling back to route id lookup", ship_id,
            )
        return route


__all__ = [
    "validate_route",
    "compute_compliance_balance",
    "ComplianceCalculator",
]
