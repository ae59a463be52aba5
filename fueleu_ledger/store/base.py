# -*- coding: utf-8 -*-
"""
Store Ports

Abstract repositories the ledger services depend on. Implementations:

    - ``fueleu_ledger.store.memory``: thread-safe in-memory store for tests
      and DB-less development.
    - ``fueleu_ledger.store.sql``: SQLAlchemy store over PostgreSQL/SQLite.

Consistency guarantees are the store's job. In particular
``BankingRepository.apply_within_transaction`` must perform the surplus check
and the append inside one transaction with the contributing rows locked, and
``PoolingRepository.save_pool_with_members`` must write the pool and all its
members or nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from fueleu_ledger.models import (
    BankEntry,
    ComplianceRecord,
    Pool,
    PoolMember,
    PoolResult,
    Route,
    Ship,
)


class RouteRepository(ABC):
    """Route reference data lookup."""

    @abstractmethod
    def find_by_route_id(self, route_id: str) -> Optional[Route]:
        """Find a route by its business identifier."""

    @abstractmethod
    def find_by_id(self, route_pk: str) -> Optional[Route]:
        """Find a route by primary key."""

    @abstractmethod
    def find_all(self) -> List[Route]:
        """Return every route."""

    @abstractmethod
    def find_baseline(self) -> Optional[Route]:
        """Return the current baseline route, if one is set."""

    @abstractmethod
    def set_baseline(self, route_pk: str) -> Optional[Route]:
        """Atomically make ``route_pk`` the only baseline route.

        Returns:
            The updated route, or None if it does not exist (in which case
            the existing baseline is left untouched).
        """


class ShipRepository(ABC):
    """Ship reference data lookup."""

    @abstractmethod
    def find_by_id(self, ship_id: str) -> Optional[Ship]:
        """Find a ship by identifier."""

    @abstractmethod
    def get_all_ships(self) -> List[Ship]:
        """Return every known ship, ordered by id."""


class ComplianceRepository(ABC):
    """Persisted compliance balances, one per (ship_id, year)."""

    @abstractmethod
    def find_by_ship_id_and_year(
        self, ship_id: str, year: int,
    ) -> Optional[ComplianceRecord]:
        """Return the stored record for the ship-year, if any."""

    @abstractmethod
    def save(self, record: ComplianceRecord) -> ComplianceRecord:
        """Upsert keyed by (ship_id, year); the first write wins.

        Returns:
            The record actually stored, which is the earlier one when a
            concurrent writer got there first.
        """


class BankingRepository(ABC):
    """Append-only bank entry ledger."""

    @abstractmethod
    def find_by_ship_id_and_year(self, ship_id: str, year: int) -> List[BankEntry]:
        """Entries recorded for exactly this ship-year, oldest first."""

    @abstractmethod
    def find_by_request_id(self, request_id: str) -> Optional[BankEntry]:
        """Return the entry written under an idempotency key, if any."""

    @abstractmethod
    def save(self, entry: BankEntry) -> BankEntry:
        """Append an entry.

        If ``entry.request_id`` is already stored, the stored entry is
        returned and nothing is appended.
        """

    @abstractmethod
    def get_total_banked(self, ship_id: str, year: int) -> float:
        """Sum of amounts for the ship over all entries with year <= ``year``."""

    @abstractmethod
    def apply_within_transaction(
        self, ship_id: str, year: int, entry: BankEntry,
    ) -> BankEntry:
        """Check available surplus and append ``entry`` atomically.

        Raises:
            InsufficientSurplusError: If ``abs(entry.amount_gco2eq)`` exceeds
                the surplus available for ``ship_id`` up to ``year``.
        """


class PoolingRepository(ABC):
    """Compliance pools and their members."""

    @abstractmethod
    def save_pool_with_members(
        self, pool: Pool, members: List[PoolMember],
    ) -> PoolResult:
        """Persist the pool and all members in one transaction.

        If ``pool.request_id`` is already stored, the stored pool is returned
        and nothing is written.
        """

    @abstractmethod
    def find_pool_by_request_id(self, request_id: str) -> Optional[PoolResult]:
        """Return the pool written under an idempotency key, if any."""

    @abstractmethod
    def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        """Return the members of a pool (empty if the pool is unknown)."""


class LedgerStore(ABC):
    """Bundle of the five repositories backed by one store."""

    routes: RouteRepository
    ships: ShipRepository
    compliance: ComplianceRepository
    banking: BankingRepository
    pooling: PoolingRepository

    @abstractmethod
    def seed(
        self,
        routes: Iterable[Route] = (),
        ships: Iterable[Ship] = (),
    ) -> None:
        """Load route and ship reference data."""

    def ping(self) -> bool:
        """Return True if the store is reachable."""
        return True


__all__ = [
    "RouteRepository",
    "ShipRepository",
    "ComplianceRepository",
    "BankingRepository",
    "PoolingRepository",
    "LedgerStore",
]
