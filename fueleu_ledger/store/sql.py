# -*- coding: utf-8 -*-
"""
SQLAlchemy Store

Relational implementation of the store ports. Every repository method runs in
its own ``session_scope`` transaction; no method opens a second session while
one is active.

Consistency:
    - ``SqlBankingRepository.apply_within_transaction`` selects the
      contributing rows ``FOR UPDATE`` (PostgreSQL) and appends the negative
      entry in the same transaction. On SQLite the engine opens transactions
      with ``BEGIN IMMEDIATE`` which serializes writers instead.
    - ``SqlComplianceRepository.save`` is insert-if-absent: a losing writer
      hits the (ship_id, year) unique constraint and reads back the winner.
    - ``SqlPoolingRepository.save_pool_with_members`` writes the pool row and
      all member rows in one transaction.

Example:
    >>> from fueleu_ledger.store.sql import SqlStore
    >>> store = SqlStore("sqlite://")
    >>> store.ping()
    True
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

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
from fueleu_ledger.store.engine import (
    create_store_engine,
    get_session_factory,
    init_db,
    session_scope,
)
from fueleu_ledger.store.tables import (
    BankEntryRow,
    ComplianceRow,
    PoolMemberRow,
    PoolRow,
    RouteRow,
    ShipRow,
)

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float:
    """Coerce a stored numeric (float, Decimal, numeric string, None) to float."""
    if value is None:
        return 0.0
    return float(value)


# ---------------------------------------------------------------------------
# Row <-> model conversion
# ---------------------------------------------------------------------------


def _route_from_row(row: RouteRow) -> Route:
    return Route(
        id=row.id,
        route_id=row.route_id,
        year=row.year,
        ghg_intensity=_to_float(row.ghg_intensity),
        fuel_consumption=_to_float(row.fuel_consumption),
        distance=_to_float(row.distance),
        total_emissions=_to_float(row.total_emissions),
        is_baseline=bool(row.is_baseline),
        vessel_type=row.vessel_type or "",
        fuel_type=row.fuel_type or "",
    )


def _ship_from_row(row: ShipRow) -> Ship:
    return Ship(id=row.id, name=row.name or "", route_id=row.route_id)


def _compliance_from_row(row: ComplianceRow) -> ComplianceRecord:
    return ComplianceRecord(
        id=row.id,
        ship_id=row.ship_id,
        year=row.year,
        cb_gco2eq=_to_float(row.cb_gco2eq),
    )


def _entry_from_row(row: BankEntryRow) -> BankEntry:
    return BankEntry(
        id=row.id,
        ship_id=row.ship_id,
        year=row.year,
        amount_gco2eq=_to_float(row.amount_gco2eq),
        created_at=row.created_at,
        request_id=row.request_id,
    )


def _entry_to_row(entry: BankEntry) -> BankEntryRow:
    return BankEntryRow(
        id=entry.id,
        ship_id=entry.ship_id,
        year=entry.year,
        amount_gco2eq=entry.amount_gco2eq,
        created_at=entry.created_at,
        request_id=entry.request_id,
    )


def _member_from_row(row: PoolMemberRow) -> PoolMember:
    return PoolMember(
        pool_id=row.pool_id,
        ship_id=row.ship_id,
        cb_before=_to_float(row.cb_before),
        cb_after=None if row.cb_after is None else _to_float(row.cb_after),
    )


def _pool_result_from_row(row: PoolRow) -> PoolResult:
    return PoolResult(
        pool=Pool(
            id=row.id,
            year=row.year,
            created_at=row.created_at,
            request_id=row.request_id,
        ),
        members=[_member_from_row(m) for m in row.members],
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class SqlRouteRepository(RouteRepository):

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_by_route_id(self, route_id: str) -> Optional[Route]:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(RouteRow).where(RouteRow.route_id == route_id)
            ).scalar_one_or_none()
            return _route_from_row(row) if row else None

    def find_by_id(self, route_pk: str) -> Optional[Route]:
        with session_scope(self._session_factory) as session:
            row = session.get(RouteRow, route_pk)
            return _route_from_row(row) if row else None

    def find_all(self) -> List[Route]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(RouteRow).order_by(RouteRow.year, RouteRow.route_id)
            ).scalars().all()
            return [_route_from_row(r) for r in rows]

    def find_baseline(self) -> Optional[Route]:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(RouteRow).where(RouteRow.is_baseline.is_(True)).limit(1)
            ).scalar_one_or_none()
            return _route_from_row(row) if row else None

    def set_baseline(self, route_pk: str) -> Optional[Route]:
        with session_scope(self._session_factory) as session:
            row = session.get(RouteRow, route_pk, with_for_update=True)
            if row is None:
                return None
            session.execute(
                update(RouteRow)
                .where(RouteRow.is_baseline.is_(True), RouteRow.id != route_pk)
                .values(is_baseline=False)
            )
            row.is_baseline = True
            session.flush()
            return _route_from_row(row)


class SqlShipRepository(ShipRepository):

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_by_id(self, ship_id: str) -> Optional[Ship]:
        with session_scope(self._session_factory) as session:
            row = session.get(ShipRow, ship_id)
            return _ship_from_row(row) if row else None

    def get_all_ships(self) -> List[Ship]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(ShipRow).order_by(ShipRow.id)
            ).scalars().all()
            return [_ship_from_row(r) for r in rows]


class SqlComplianceRepository(ComplianceRepository):

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_by_ship_id_and_year(
        self, ship_id: str, year: int,
    ) -> Optional[ComplianceRecord]:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(ComplianceRow).where(
                    ComplianceRow.ship_id == ship_id,
                    ComplianceRow.year == year,
                )
            ).scalar_one_or_none()
            return _compliance_from_row(row) if row else None

    def save(self, record: ComplianceRecord) -> ComplianceRecord:
        try:
            with session_scope(self._session_factory) as session:
                existing = session.execute(
                    select(ComplianceRow).where(
                        ComplianceRow.ship_id == record.ship_id,
                        ComplianceRow.year == record.year,
                    )
                ).scalar_one_or_none()
                if existing is not None:
                    return _compliance_from_row(existing)
                session.add(ComplianceRow(
                    id=record.id,
                    ship_id=record.ship_id,
                    year=record.year,
                    cb_gco2eq=record.cb_gco2eq,
                ))
        except IntegrityError:
            logger.debug(
                "Concurrent compliance write for %s/%s; reading winner",
                record.ship_id, record.year,
            )
            winner = self.find_by_ship_id_and_year(record.ship_id, record.year)
            if winner is None:
                raise LedgerStoreError(
                    "Compliance record vanished after unique violation",
                    context={"ship_id": record.ship_id, "year": record.year},
                )
            return winner
        return record


class SqlBankingRepository(BankingRepository):

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_by_ship_id_and_year(self, ship_id: str, year: int) -> List[BankEntry]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(BankEntryRow)
                .where(BankEntryRow.ship_id == ship_id, BankEntryRow.year == year)
                .order_by(BankEntryRow.seq)
            ).scalars().all()
            return [_entry_from_row(r) for r in rows]

    def find_by_request_id(self, request_id: str) -> Optional[BankEntry]:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(BankEntryRow).where(BankEntryRow.request_id == request_id)
            ).scalar_one_or_none()
            return _entry_from_row(row) if row else None

    def save(self, entry: BankEntry) -> BankEntry:
        try:
            with session_scope(self._session_factory) as session:
                if entry.request_id is not None:
                    existing = session.execute(
                        select(BankEntryRow)
                        .where(BankEntryRow.request_id == entry.request_id)
                    ).scalar_one_or_none()
                    if existing is not None:
                        return _entry_from_row(existing)
                session.add(_entry_to_row(entry))
        except IntegrityError as exc:
            return self._resolve_request_race(entry, exc)
        return entry

    def get_total_banked(self, ship_id: str, year: int) -> float:
        with session_scope(self._session_factory) as session:
            total = session.execute(
                select(func.sum(BankEntryRow.amount_gco2eq)).where(
                    BankEntryRow.ship_id == ship_id,
                    BankEntryRow.year <= year,
                )
            ).scalar()
            return _to_float(total)

    def apply_within_transaction(
        self, ship_id: str, year: int, entry: BankEntry,
    ) -> BankEntry:
        try:
            with session_scope(self._session_factory) as session:
                if entry.request_id is not None:
                    existing = session.execute(
                        select(BankEntryRow)
                        .where(BankEntryRow.request_id == entry.request_id)
                    ).scalar_one_or_none()
                    if existing is not None:
                        return _entry_from_row(existing)

                # Aggregates cannot take FOR UPDATE; lock the rows and sum here.
                amounts = session.execute(
                    select(BankEntryRow.amount_gco2eq)
                    .where(
                        BankEntryRow.ship_id == ship_id,
                        BankEntryRow.year <= year,
                    )
                    .with_for_update()
                ).scalars().all()
                available = sum(_to_float(a) for a in amounts)
                requested = abs(entry.amount_gco2eq)
                if requested > available:
                    raise InsufficientSurplusError(
                        ship_id=ship_id, year=year,
                        requested=requested, available=available,
                    )
                session.add(_entry_to_row(entry))
        except IntegrityError as exc:
            return self._resolve_request_race(entry, exc)
        return entry

    def _resolve_request_race(self, entry: BankEntry, exc: IntegrityError) -> BankEntry:
        if entry.request_id is not None:
            existing = self.find_by_request_id(entry.request_id)
            if existing is not None:
                return existing
        raise LedgerStoreError(
            "Bank entry violated a store constraint",
            context={"entry_id": entry.id, "cause": str(exc.orig)},
        ) from exc


class SqlPoolingRepository(PoolingRepository):

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def save_pool_with_members(
        self, pool: Pool, members: List[PoolMember],
    ) -> PoolResult:
        try:
            with session_scope(self._session_factory) as session:
                if pool.request_id is not None:
                    existing = session.execute(
                        select(PoolRow).where(PoolRow.request_id == pool.request_id)
                    ).scalar_one_or_none()
                    if existing is not None:
                        return _pool_result_from_row(existing)

                session.add(PoolRow(
                    id=pool.id,
                    year=pool.year,
                    created_at=pool.created_at,
                    request_id=pool.request_id,
                ))
                # Parent row first so the member foreign keys resolve.
                session.flush()
                session.add_all([
                    PoolMemberRow(
                        pool_id=m.pool_id,
                        ship_id=m.ship_id,
                        cb_before=m.cb_before,
                        cb_after=m.cb_after,
                        position=position,
                    )
                    for position, m in enumerate(members)
                ])
        except IntegrityError as exc:
            if pool.request_id is not None:
                existing = self.find_pool_by_request_id(pool.request_id)
                if existing is not None:
                    return existing
            raise LedgerStoreError(
                "Pool violated a store constraint",
                context={"pool_id": pool.id, "cause": str(exc.orig)},
            ) from exc
        return PoolResult(pool=pool, members=list(members))

    def find_pool_by_request_id(self, request_id: str) -> Optional[PoolResult]:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(PoolRow).where(PoolRow.request_id == request_id)
            ).scalar_one_or_none()
            return _pool_result_from_row(row) if row else None

    def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(PoolMemberRow)
                .where(PoolMemberRow.pool_id == pool_id)
                .order_by(PoolMemberRow.position)
            ).scalars().all()
            return [_member_from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Store bundle
# ---------------------------------------------------------------------------


class SqlStore(LedgerStore):
    """LedgerStore over an SQLAlchemy engine.

    Args:
        engine_or_url: An Engine, or a database URL to build one from.
        echo: Echo emitted SQL when building the engine from a URL.
        init_schema: Create missing tables on construction.
    """

    def __init__(
        self,
        engine_or_url: Any,
        echo: bool = False,
        init_schema: bool = True,
    ) -> None:
        if isinstance(engine_or_url, Engine):
            self.engine = engine_or_url
        else:
            self.engine = create_store_engine(str(engine_or_url), echo=echo)
        self.session_factory = get_session_factory(self.engine)
        self.routes = SqlRouteRepository(self.session_factory)
        self.ships = SqlShipRepository(self.session_factory)
        self.compliance = SqlComplianceRepository(self.session_factory)
        self.banking = SqlBankingRepository(self.session_factory)
        self.pooling = SqlPoolingRepository(self.session_factory)
        if init_schema:
            self.create_schema()
        logger.info("SqlStore initialized on %s", self.engine.url.render_as_string(hide_password=True))

    def create_schema(self, drop_all: bool = False) -> None:
        """Create the ledger tables if they do not exist."""
        init_db(self.engine, drop_all=drop_all)

    def seed(
        self,
        routes: Iterable[Route] = (),
        ships: Iterable[Ship] = (),
    ) -> None:
        with session_scope(self.session_factory) as session:
            for route in routes:
                session.merge(RouteRow(**route.model_dump()))
            for ship in ships:
                session.merge(ShipRow(**ship.model_dump()))

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Store ping failed: %s", exc)
            return False

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()


__all__ = [
    "SqlRouteRepository",
    "SqlShipRepository",
    "SqlComplianceRepository",
    "SqlBankingRepository",
    "SqlPoolingRepository",
    "SqlStore",
]
