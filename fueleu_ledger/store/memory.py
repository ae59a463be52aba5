# -*- coding: utf-8 -*-
"""
In-Memory Store

Lightweight repositories for tests and DB-less development. All repositories
of one ``InMemoryStore`` share a single re-entrant lock, which plays the part
of the relational store's transactions: every read-check-write sequence runs
under it, so ``apply_within_transaction`` and ``save_pool_with_members`` keep
the same atomicity the SQL store gets from row locks.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from fueleu_ledger.exceptions import InsufficientSurplusError, LedgerStoreError
from fueleu_ledger.models import (
    BankEntry,
    ComplianceRecord,
    Pool,
    PoolMember,
    PoolResult,
    Route,
    Ship,
)
from fueleu_ledger.store.base import (
    BankingRepository,
    ComplianceRepository,
    LedgerStore,
    PoolingRepository,
    RouteRepository,
    ShipRepository,
)

logger = logging.getLogger(__name__)


class _MemoryState:
    """Tables shared by the repositories of one store."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.routes: Dict[str, Route] = {}
        self.ships: Dict[str, Ship] = {}
        self.compliance: Dict[Tuple[str, int], ComplianceRecord] = {}
        self.bank_entries: List[BankEntry] = []
        self.pools: Dict[str, Pool] = {}
        self.pool_members: Dict[str, List[PoolMember]] = {}


class InMemoryRouteRepository(RouteRepository):

    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    def find_by_route_id(self, route_id: str) -> Optional[Route]:
        with self._state.lock:
            for route in self._state.routes.values():
                if route.route_id == route_id:
                    return route
        return None

    def find_by_id(self, route_pk: str) -> Optional[Route]:
        with self._state.lock:
            return self._state.routes.get(route_pk)

    def find_all(self) -> List[Route]:
        with self._state.lock:
            return list(self._state.routes.values())

    def find_baseline(self) -> Optional[Route]:
        with self._state.lock:
            for route in self._state.routes.values():
                if route.is_baseline:
                    return route
        return None

    def set_baseline(self, route_pk: str) -> Optional[Route]:
        with self._state.lock:
            routes = self._state.routes
            if route_pk not in routes:
                return None
            for pk, route in list(routes.items()):
                flag = pk == route_pk
                if route.is_baseline != flag:
                    routes[pk] = route.model_copy(update={"is_baseline": flag})
            return routes[route_pk]


class InMemoryShipRepository(ShipRepository):

    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    def find_by_id(self, ship_id: str) -> Optional[Ship]:
        with self._state.lock:
            return self._state.ships.get(ship_id)

    def get_all_ships(self) -> List[Ship]:
        with self._state.lock:
            return [self._state.ships[k] for k in sorted(self._state.ships)]


class InMemoryComplianceRepository(ComplianceRepository):

    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    def find_by_ship_id_and_year(
        self, ship_id: str, year: int,
    ) -> Optional[ComplianceRecord]:
        with self._state.lock:
            return self._state.compliance.get((ship_id, year))

    def save(self, record: ComplianceRecord) -> ComplianceRecord:
        key = (record.ship_id, record.year)
        with self._state.lock:
            return self._state.compliance.setdefault(key, record)


class InMemoryBankingRepository(BankingRepository):

    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    def find_by_ship_id_and_year(self, ship_id: str, year: int) -> List[BankEntry]:
        with self._state.lock:
            return [
                e for e in self._state.bank_entries
                if e.ship_id == ship_id and e.year == year
            ]

    def find_by_request_id(self, request_id: str) -> Optional[BankEntry]:
        with self._state.lock:
            return self._find_by_request_id(request_id)

    def save(self, entry: BankEntry) -> BankEntry:
        with self._state.lock:
            if entry.request_id is not None:
                existing = self._find_by_request_id(entry.request_id)
                if existing is not None:
                    return existing
            self._state.bank_entries.append(entry)
            return entry

    def get_total_banked(self, ship_id: str, year: int) -> float:
        with self._state.lock:
            return self._sum_up_to(ship_id, year)

    def apply_within_transaction(
        self, ship_id: str, year: int, entry: BankEntry,
    ) -> BankEntry:
        with self._state.lock:
            if entry.request_id is not None:
                existing = self._find_by_request_id(entry.request_id)
                if existing is not None:
                    return existing
            available = self._sum_up_to(ship_id, year)
            requested = abs(entry.amount_gco2eq)
            if requested > available:
                raise InsufficientSurplusError(
                    ship_id=ship_id, year=year,
                    requested=requested, available=available,
                )
            self._state.bank_entries.append(entry)
            return entry

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _sum_up_to(self, ship_id: str, year: int) -> float:
        return sum(
            e.amount_gco2eq for e in self._state.bank_entries
            if e.ship_id == ship_id and e.year <= year
        )

    def _find_by_request_id(self, request_id: str) -> Optional[BankEntry]:
        for e in self._state.bank_entries:
            if e.request_id == request_id:
                return e
        return None


class InMemoryPoolingRepository(PoolingRepository):

    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    def save_pool_with_members(
        self, pool: Pool, members: List[PoolMember],
    ) -> PoolResult:
        with self._state.lock:
            if pool.request_id is not None:
                existing = self._find_by_request_id(pool.request_id)
                if existing is not None:
                    return existing
            if pool.id in self._state.pools:
                raise LedgerStoreError(
                    f"Pool {pool.id} already exists", context={"pool_id": pool.id},
                )
            self._state.pools[pool.id] = pool
            self._state.pool_members[pool.id] = list(members)
            return PoolResult(pool=pool, members=list(members))

    def find_pool_by_request_id(self, request_id: str) -> Optional[PoolResult]:
        with self._state.lock:
            return self._find_by_request_id(request_id)

    def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        with self._state.lock:
            return list(self._state.pool_members.get(pool_id, []))

    def _find_by_request_id(self, request_id: str) -> Optional[PoolResult]:
        for pool in self._state.pools.values():
            if pool.request_id == request_id:
                return PoolResult(
                    pool=pool,
                    members=list(self._state.pool_members.get(pool.id, [])),
                )
        return None


class InMemoryStore(LedgerStore):
    """In-memory LedgerStore.

    Example:
        >>> store = InMemoryStore()
        >>> store.seed(ships=[Ship(id="ship-1", route_id="R001")])
        >>> store.ships.find_by_id("ship-1").route_id
        'R001'
    """

    def __init__(self) -> None:
        self._state = _MemoryState()
        self.routes = InMemoryRouteRepository(self._state)
        self.ships = InMemoryShipRepository(self._state)
        self.compliance = InMemoryComplianceRepository(self._state)
        self.banking = InMemoryBankingRepository(self._state)
        self.pooling = InMemoryPoolingRepository(self._state)
        logger.info("InMemoryStore initialized")

    def seed(
        self,
        routes: Iterable[Route] = (),
        ships: Iterable[Ship] = (),
    ) -> None:
        with self._state.lock:
            for route in routes:
                self._state.routes[route.id] = route
            for ship in ships:
                self._state.ships[ship.id] = ship


__all__ = [
    "InMemoryRouteRepository",
    "InMemoryShipRepository",
    "InMemoryComplianceRepository",
    "InMemoryBankingRepository",
    "InMemoryPoolingRepository",
    "InMemoryStore",
]
