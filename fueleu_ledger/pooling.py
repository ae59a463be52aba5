# -*- coding: utf-8 -*-
"""
Pooling Allocator - FuelEU Compliance Ledger

Forms compliance pools: surplus members transfer CB to deficit members so the
pool as a whole complies. Allocation is a deterministic greedy pass:

    1. Sort members by adjusted CB, largest first (stable).
    2. Cover each deficit in sorted order from the pooled surplus, fully when
       the surplus suffices, otherwise with whatever is left.
    3. Draw the surplus actually used from surplus members in sorted order,
       each giving up at most its own CB.

Invariants checked before anything is persisted:
    - The pool's total CB is non-negative.
    - sum(cb_before) == sum(cb_after).
    - No deficit member ends worse off than it started.
    - No surplus member ends below zero.

Example:
    >>> allocations = allocate_pool([("ship-1", 1000.0), ("ship-2", -500.0)])
    >>> [(a.ship_id, a.cb_after) for a in allocations]
    [('ship-1', 500.0), ('ship-2', 0.0)]
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from fueleu_ledger.calculator import ComplianceCalculator
from fueleu_ledger.config import LedgerConfig, get_config
from fueleu_ledger.exceptions import PoolInadmissibleError, ValidationError
from fueleu_ledger.metrics import (
    record_operation,
    record_pool_created,
    record_rejection,
)
from fueleu_ledger.models import Pool, PoolMember, ProvenanceAction
from fueleu_ledger.provenance import ProvenanceTracker
from fueleu_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberAllocation:
    """One member's CB before and after redistribution."""

    ship_id: str
    cb_before: float
    cb_after: float


def allocate_pool(
    balances: Iterable[Tuple[str, float]],
    tolerance: float = 1e-6,
) -> List[MemberAllocation]:
    """Redistribute surplus to deficits across a pool.

    Args:
        balances: ``(ship_id, cb_before)`` pairs.
        tolerance: Conservation tolerance, scaled by the pool magnitude.

    Returns:
        Allocations in processing order (descending ``cb_before``).

    Raises:
        ValidationError: If a ship id appears more than once.
        PoolInadmissibleError: If the total CB is negative or an allocation
            invariant does not hold.
    """
    members = list(balances)
    duplicates = _duplicate_ids(ship_id for ship_id, _ in members)
    if duplicates:
        raise ValidationError(
            f"Duplicate ship ids in pool: {', '.join(duplicates)}",
            field="ship_ids",
            value=duplicates,
        )

    total = sum(cb for _, cb in members)
    if total < 0:
        raise PoolInadmissibleError(
            f"Pool total CB is negative: {total}",
            context={"total_cb": total},
        )

    ordered = sorted(members, key=lambda m: m[1], reverse=True)
    after = {ship_id: cb for ship_id, cb in ordered}

    initial_surplus = sum(cb for _, cb in ordered if cb > 0)
    available = initial_surplus

    for ship_id, cb in ordered:
        if cb >= 0:
            continue
        deficit = -cb
        if available >= deficit:
            after[ship_id] = 0.0
            available -= deficit
        else:
            after[ship_id] = cb + available
            available = 0.0

    remaining = initial_surplus - available
    for ship_id, cb in ordered:
        if remaining <= 0:
            break
        if cb <= 0:
            continue
        give = min(cb, remaining)
        after[ship_id] = cb - give
        remaining -= give

    allocations = [
        MemberAllocation(ship_id=ship_id, cb_before=cb, cb_after=after[ship_id])
        for ship_id, cb in ordered
    ]
    _check_invariants(allocations, tolerance)
    return allocations


def _duplicate_ids(ship_ids: Iterable[str]) -> List[str]:
    seen = set()
    duplicates = set()
    for ship_id in ship_ids:
        if ship_id in seen:
            duplicates.add(ship_id)
        seen.add(ship_id)
    return sorted(duplicates)


def _check_invariants(allocations: Sequence[MemberAllocation], tolerance: float) -> None:
    for m in allocations:
        if m.cb_before < 0 and m.cb_after < m.cb_before:
            raise PoolInadmissibleError(
                f"Deficit ship {m.ship_id} would exit the pool worse off",
                context={
                    "ship_id": m.ship_id,
                    "cb_before": m.cb_before,
                    "cb_after": m.cb_after,
                },
            )
        if m.cb_before > 0 and m.cb_after < 0:
            raise PoolInadmissibleError(
                f"Surplus ship {m.ship_id} would exit the pool in deficit",
                context={
                    "ship_id": m.ship_id,
                    "cb_before": m.cb_before,
                    "cb_after": m.cb_after,
                },
            )

    before_sum = sum(m.cb_before for m in allocations)
    after_sum = sum(m.cb_after for m in allocations)
    scale = max(1.0, abs(before_sum), sum(abs(m.cb_before) for m in allocations))
    if abs(before_sum - after_sum) > tolerance * scale:
        raise PoolInadmissibleError(
            "Pool allocation does not conserve total CB",
            context={"cb_before_sum": before_sum, "cb_after_sum": after_sum},
        )


class PoolingAllocator:
    """Builds and persists compliance pools.

    Attributes:
        store: LedgerStore providing the pooling repository.
        calculator: ComplianceCalculator whose banking ledger supplies
            members' banked totals.
        config: LedgerConfig instance.
        provenance: ProvenanceTracker instance.
    """

    def __init__(
        self,
        store: LedgerStore,
        calculator: Optional[ComplianceCalculator] = None,
        config: Optional[LedgerConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.provenance = provenance or ProvenanceTracker()
        self.calculator = calculator or ComplianceCalculator(
            store, config=self.config, provenance=self.provenance,
        )
        logger.info("PoolingAllocator initialized")

    def create_pool(
        self,
        year: int,
        ship_ids: Sequence[str],
        request_id: Optional[str] = None,
    ) -> List[PoolMember]:
        """Create a pool for ``year`` from the given ships.

        Each member enters with its stored CB plus banked surplus; a ship
        without a stored compliance record enters with its banked surplus
        alone. Balances are never computed here.

        Args:
            year: Reporting year.
            ship_ids: Distinct ship identifiers, at least one.
            request_id: Optional idempotency key.

        Returns:
            The persisted members in allocation order.

        Raises:
            ValidationError: If ship_ids is empty or has duplicates.
            PoolInadmissibleError: If the pool cannot be allocated. Nothing
                is persisted in that case.
        """
        start = time.perf_counter()
        ship_ids = list(ship_ids)

        if not ship_ids:
            record_rejection("create_pool", "empty")
            raise ValidationError("A pool needs at least one ship", field="ship_ids", value=[])
        duplicates = _duplicate_ids(ship_ids)
        if duplicates:
            record_rejection("create_pool", "duplicate_ships")
            raise ValidationError(
                f"Duplicate ship ids in pool: {', '.join(duplicates)}",
                field="ship_ids",
                value=duplicates,
            )

        if request_id is not None:
            existing = self.store.pooling.find_pool_by_request_id(request_id)
            if existing is not None:
                record_operation("create_pool", "replayed", time.perf_counter() - start)
                logger.debug("Replaying pool %s for request %s", existing.pool.id, request_id)
                return existing.members

        balances = [(ship_id, self._cb_before(ship_id, year)) for ship_id in ship_ids]

        try:
            allocations = allocate_pool(balances, tolerance=self.config.balance_tolerance)
        except PoolInadmissibleError as exc:
            record_rejection("create_pool", "inadmissible")
            record_operation("create_pool", "rejected", time.perf_counter() - start)
            logger.warning("Pool for %s rejected: %s", year, exc.message)
            raise

        pool = Pool(year=year, request_id=request_id)
        members = [
            PoolMember(
                pool_id=pool.id,
                ship_id=a.ship_id,
                cb_before=a.cb_before,
                cb_after=a.cb_after,
            )
            for a in allocations
        ]
        result = self.store.pooling.save_pool_with_members(pool, members)
        if result.pool.id != pool.id:
            record_operation("create_pool", "replayed", time.perf_counter() - start)
            return result.members

        record_pool_created(len(members))
        if self.config.enable_provenance:
            self.provenance.record(
                ProvenanceAction.CREATE_POOL.value,
                pool.id,
                {
                    "year": year,
                    "request_id": request_id,
                    "members": [
                        {"ship_id": m.ship_id, "cb_before": m.cb_before, "cb_after": m.cb_after}
                        for m in members
                    ],
                },
            )
        record_operation("create_pool", "success", time.perf_counter() - start)
        logger.info(
            "Created pool %s for %s with %d members", pool.id, year, len(members),
        )
        return result.members

    def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        """Members of a stored pool, in allocation order."""
        return self.store.pooling.get_pool_members(pool_id)

    def _cb_before(self, ship_id: str, year: int) -> float:
        # Stored balances only; pooling never computes or persists a record.
        record = self.store.compliance.find_by_ship_id_and_year(ship_id, year)
        cb = record.cb_gco2eq if record is not None else 0.0
        return cb + self.calculator.banking.get_total_banked(ship_id, year)


__all__ = [
    "MemberAllocation",
    "allocate_pool",
    "PoolingAllocator",
]
