# -*- coding: utf-8 -*-
"""
FuelEU Ledger Service Setup

Provides ``configure_fueleu_ledger(app)`` which wires up the ledger
(compliance calculator, banking ledger, pooling allocator, route comparison,
provenance tracker) over a store and mounts the REST API.

Also exposes ``get_fueleu_ledger(app)`` for programmatic access and the
``FuelEULedgerService`` facade class.

Usage:
    >>> from fastapi import FastAPI
    >>> from fueleu_ledger.setup import configure_fueleu_ledger
    >>> app = FastAPI()
    >>> service = configure_fueleu_ledger(app)
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fueleu_ledger.banking import BankingLedger
from fueleu_ledger.calculator import ComplianceCalculator
from fueleu_ledger.config import LedgerConfig, get_config
from fueleu_ledger.exceptions import LedgerException
from fueleu_ledger.metrics import PROMETHEUS_AVAILABLE
from fueleu_ledger.models import (
    AdjustedBalance,
    BankEntry,
    ComplianceRecord,
    PoolMember,
    Route,
    RouteComparison,
)
from fueleu_ledger.pooling import PoolingAllocator
from fueleu_ledger.provenance import ProvenanceTracker
from fueleu_ledger.routes import RouteComparisonService
from fueleu_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Optional FastAPI import
# ---------------------------------------------------------------------------

try:
    from fastapi import FastAPI
    FASTAPI_AVAILABLE = True
except ImportError:
    FastAPI = None  # type: ignore[assignment, misc]
    FASTAPI_AVAILABLE = False


# ===================================================================
# Request models
# ===================================================================


class BankRequest(BaseModel):
    """Body of POST /banking/bank."""
    ship_id: str = Field(..., alias="shipId", min_length=1)
    year: int

    model_config = ConfigDict(populate_by_name=True)


class ApplyRequest(BaseModel):
    """Body of POST /banking/apply."""
    ship_id: str = Field(..., alias="shipId", min_length=1)
    year: int
    amount: float

    model_config = ConfigDict(populate_by_name=True)


class CreatePoolRequest(BaseModel):
    """Body of POST /pools."""
    year: int
    ship_ids: List[str] = Field(..., alias="shipIds")

    model_config = ConfigDict(populate_by_name=True)


# ===================================================================
# FuelEULedgerService facade
# ===================================================================

# Thread-safe singleton lock
_singleton_lock = threading.Lock()
_singleton_instance: Optional["FuelEULedgerService"] = None


class FuelEULedgerService:
    """Unified facade over the compliance ledger.

    All engines share one store, one configuration and one provenance chain.

    Attributes:
        config: LedgerConfig instance.
        store: LedgerStore backing every engine.
        provenance: ProvenanceTracker instance.
        banking: BankingLedger instance.
        calculator: ComplianceCalculator instance.
        pooling: PoolingAllocator instance.
        routes: RouteComparisonService instance.

    Example:
        >>> service = FuelEULedgerService(store=InMemoryStore())
        >>> service.get_compliance_balance("ship-1", 2025)
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        store: Optional[LedgerStore] = None,
    ) -> None:
        """Initialize the ledger facade.

        Args:
            config: Optional ledger config. Uses global config if None.
            store: Optional store. Builds an SqlStore on
                ``config.database_url`` if None.
        """
        self.config = config or get_config()
        if store is None:
            from fueleu_ledger.store.sql import SqlStore
            store = SqlStore(self.config.database_url, echo=self.config.echo_sql)
        self.store = store
        self.provenance = ProvenanceTracker()
        self.banking = BankingLedger(
            store, config=self.config, provenance=self.provenance,
        )
        self.calculator = ComplianceCalculator(
            store,
            banking=self.banking,
            config=self.config,
            provenance=self.provenance,
        )
        self.pooling = PoolingAllocator(
            store,
            calculator=self.calculator,
            config=self.config,
            provenance=self.provenance,
        )
        self.routes = RouteComparisonService(
            store, config=self.config, provenance=self.provenance,
        )
        self._started = False
        self._started_at: Optional[float] = None

        logger.info("FuelEULedgerService facade created")

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    def get_compliance_balance(
        self, ship_id: str, year: int,
    ) -> Optional[ComplianceRecord]:
        return self.calculator.get_compliance_balance(ship_id, year)

    def get_adjusted_compliance_balance(
        self, ship_id: str, year: int,
    ) -> Optional[float]:
        return self.calculator.get_adjusted_compliance_balance(ship_id, year)

    def get_adjusted_compliance_balance_for_all_ships(
        self, year: int,
    ) -> List[AdjustedBalance]:
        return self.calculator.get_adjusted_compliance_balance_for_all_ships(year)

    # ------------------------------------------------------------------
    # Banking
    # ------------------------------------------------------------------

    def get_bank_records(self, ship_id: str, year: int) -> List[BankEntry]:
        return self.banking.get_bank_records(ship_id, year)

    def bank_compliance_balance(
        self,
        ship_id: str,
        year: int,
        request_id: Optional[str] = None,
    ) -> Optional[BankEntry]:
        return self.banking.bank(ship_id, year, request_id=request_id)

    def apply_banked_surplus(
        self,
        ship_id: str,
        year: int,
        amount: float,
        request_id: Optional[str] = None,
    ) -> BankEntry:
        return self.banking.apply(ship_id, year, amount, request_id=request_id)

    # ------------------------------------------------------------------
    # Pooling
    # ------------------------------------------------------------------

    def create_pool(
        self,
        year: int,
        ship_ids: List[str],
        request_id: Optional[str] = None,
    ) -> List[PoolMember]:
        return self.pooling.create_pool(year, ship_ids, request_id=request_id)

    def get_pool_members(self, pool_id: str) -> List[PoolMember]:
        return self.pooling.get_pool_members(pool_id)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def list_routes(
        self,
        vessel_type: Optional[str] = None,
        fuel_type: Optional[str] = None,
        year: Optional[int] = None,
    ) -> List[Route]:
        return self.routes.list_routes(
            vessel_type=vessel_type, fuel_type=fuel_type, year=year,
        )

    def set_baseline(self, route_pk: str) -> Optional[Route]:
        return self.routes.set_baseline(route_pk)

    def get_comparison(self) -> List[RouteComparison]:
        return self.routes.get_comparison()

    # ------------------------------------------------------------------
    # Health and metrics
    # ------------------------------------------------------------------

    def get_health(self) -> Dict[str, Any]:
        """Get service health status.

        Returns:
            Dictionary with status, store reachability and chain integrity.
        """
        store_ok = self.store.ping()
        chain_ok = self.provenance.verify_chain()
        status = "healthy" if store_ok and chain_ok else "degraded"
        return {
            "status": status,
            "started": self._started,
            "store": type(self.store).__name__,
            "store_reachable": store_ok,
            "provenance_chain_valid": chain_ok,
            "uptime_seconds": (
                round(time.monotonic() - self._started_at, 3)
                if self._started_at is not None else 0.0
            ),
        }

    def get_metrics(self) -> Dict[str, Any]:
        """Get ledger service metrics summary."""
        return {
            "prometheus_available": PROMETHEUS_AVAILABLE,
            "started": self._started,
            "provenance_entries": self.provenance.entry_count,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> None:
        """Start the ledger service.

        Safe to call multiple times.
        """
        if self._started:
            logger.debug("FuelEULedgerService already started; skipping")
            return

        logger.info("FuelEULedgerService starting up...")
        self._started = True
        self._started_at = time.monotonic()
        logger.info("FuelEULedgerService startup complete")

    def shutdown(self) -> None:
        """Shutdown the ledger service and release store connections."""
        if not self._started:
            return

        dispose = getattr(self.store, "dispose", None)
        if dispose is not None:
            dispose()
        self._started = False
        logger.info("FuelEULedgerService shut down")


# ===================================================================
# Thread-safe singleton access
# ===================================================================


def get_service() -> FuelEULedgerService:
    """Get or create the singleton FuelEULedgerService instance."""
    global _singleton_instance
    if _singleton_instance is None:
        with _singleton_lock:
            if _singleton_instance is None:
                _singleton_instance = FuelEULedgerService()
    return _singleton_instance


def reset_service() -> None:
    """Drop the singleton (primarily for test teardown)."""
    global _singleton_instance
    with _singleton_lock:
        _singleton_instance = None


# ===================================================================
# FastAPI integration
# ===================================================================


def configure_fueleu_ledger(
    app: Any,
    config: Optional[LedgerConfig] = None,
    store: Optional[LedgerStore] = None,
) -> FuelEULedgerService:
    """Configure the FuelEU ledger on a FastAPI application.

    Creates the FuelEULedgerService, stores it in app.state, mounts the
    ledger API router, and starts the service.

    Args:
        app: FastAPI application instance.
        config: Optional ledger config.
        store: Optional store; defaults to an SqlStore on the config URL.

    Returns:
        FuelEULedgerService instance.
    """
    global _singleton_instance

    service = FuelEULedgerService(config=config, store=store)

    with _singleton_lock:
        _singleton_instance = service

    app.state.fueleu_ledger_service = service

    router = get_router(service)
    if router is not None:
        app.include_router(router)
        logger.info("FuelEU ledger API router mounted")
    else:
        logger.warning("FastAPI not available; ledger API not mounted")

    service.startup()

    logger.info("FuelEU ledger configured on app")
    return service


def get_fueleu_ledger(app: Any) -> FuelEULedgerService:
    """Get the FuelEULedgerService instance from app state.

    Raises:
        RuntimeError: If the ledger is not configured.
    """
    service = getattr(app.state, "fueleu_ledger_service", None)
    if service is None:
        raise RuntimeError(
            "FuelEU ledger not configured. "
            "Call configure_fueleu_ledger(app) first."
        )
    return service


def _json_safe(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _error_status(exc: LedgerException) -> int:
    return 400 if exc.client_error else 503


def get_router(service: Optional[FuelEULedgerService] = None) -> Any:
    """Get the FuelEU ledger API router.

    Creates a FastAPI APIRouter at prefix ``/api/v1/fueleu``.

    Args:
        service: Optional service bound to the handlers. Uses the
            singleton if None.

    Returns:
        FastAPI APIRouter or None if FastAPI not available.
    """
    if not FASTAPI_AVAILABLE:
        return None

    try:
        from fastapi import APIRouter, Header, HTTPException, Query
    except ImportError:
        return None

    router = APIRouter(
        prefix="/api/v1/fueleu",
        tags=["fueleu-ledger"],
    )

    def _svc() -> FuelEULedgerService:
        """Get the service for route handlers."""
        return service or get_service()

    def _http_error(exc: LedgerException) -> HTTPException:
        if not exc.client_error:
            logger.error("Ledger store failure: %s", exc)
        return HTTPException(
            status_code=_error_status(exc),
            detail=_json_safe(exc.to_dict()),
        )

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    @router.get("/routes", response_model=List[Route])
    def get_routes(
        vessel_type: Optional[str] = Query(None, alias="vesselType"),
        fuel_type: Optional[str] = Query(None, alias="fuelType"),
        year: Optional[int] = Query(None),
    ) -> List[Route]:
        """List routes, optionally filtered."""
        try:
            return _svc().list_routes(
                vessel_type=vessel_type, fuel_type=fuel_type, year=year,
            )
        except LedgerException as exc:
            raise _http_error(exc)

    @router.post("/routes/{route_pk}/baseline", response_model=Route)
    def post_set_baseline(route_pk: str) -> Route:
        """Make a route the baseline."""
        try:
            route = _svc().set_baseline(route_pk)
        except LedgerException as exc:
            raise _http_error(exc)
        if route is None:
            raise HTTPException(status_code=404, detail="Route not found")
        return route

    @router.get("/routes/comparison", response_model=List[RouteComparison])
    def get_route_comparison() -> List[RouteComparison]:
        """Compare every route against the baseline."""
        try:
            return _svc().get_comparison()
        except LedgerException as exc:
            raise _http_error(exc)

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    @router.get("/compliance/cb", response_model=ComplianceRecord)
    def get_compliance_cb(
        ship_id: str = Query(..., alias="shipId", min_length=1),
        year: int = Query(...),
    ) -> ComplianceRecord:
        """Get (computing on first use) a ship-year's compliance balance."""
        try:
            record = _svc().get_compliance_balance(ship_id, year)
        except LedgerException as exc:
            raise _http_error(exc)
        if record is None:
            raise HTTPException(status_code=404, detail="Compliance data not found")
        return record

    @router.get("/compliance/adjusted-cb")
    def get_adjusted_cb(
        year: int = Query(...),
        ship_id: Optional[str] = Query(None, alias="shipId"),
    ) -> Any:
        """Adjusted CB for one ship, or for every ship when shipId is omitted."""
        try:
            if not ship_id:
                results = _svc().get_adjusted_compliance_balance_for_all_ships(year)
                return [r.model_dump(by_alias=True) for r in results]
            adjusted = _svc().get_adjusted_compliance_balance(ship_id, year)
        except LedgerException as exc:
            raise _http_error(exc)
        if adjusted is None:
            raise HTTPException(status_code=404, detail="Compliance data not found")
        return AdjustedBalance(
            ship_id=ship_id, year=year, adjusted_cb=adjusted,
        ).model_dump(by_alias=True)

    # ------------------------------------------------------------------
    # Banking
    # ------------------------------------------------------------------

    @router.get("/banking/records", response_model=List[BankEntry])
    def get_banking_records(
        ship_id: str = Query(..., alias="shipId", min_length=1),
        year: int = Query(...),
    ) -> List[BankEntry]:
        """Bank entries recorded for a ship-year."""
        try:
            return _svc().get_bank_records(ship_id, year)
        except LedgerException as exc:
            raise _http_error(exc)

    @router.post("/banking/bank", response_model=BankEntry, status_code=201)
    def post_bank(
        request: BankRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ) -> BankEntry:
        """Bank a ship-year's positive compliance balance."""
        try:
            entry = _svc().bank_compliance_balance(
                request.ship_id, request.year, request_id=idempotency_key,
            )
        except LedgerException as exc:
            raise _http_error(exc)
        if entry is None:
            raise HTTPException(
                status_code=400,
                detail="Cannot bank negative or zero compliance balance",
            )
        return entry

    @router.post("/banking/apply", response_model=BankEntry, status_code=201)
    def post_apply(
        request: ApplyRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ) -> BankEntry:
        """Apply banked surplus to a ship-year."""
        try:
            return _svc().apply_banked_surplus(
                request.ship_id,
                request.year,
                request.amount,
                request_id=idempotency_key,
            )
        except LedgerException as exc:
            raise _http_error(exc)

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    @router.post("/pools", response_model=List[PoolMember], status_code=201)
    def post_create_pool(
        request: CreatePoolRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ) -> List[PoolMember]:
        """Create a compliance pool."""
        try:
            return _svc().create_pool(
                request.year, request.ship_ids, request_id=idempotency_key,
            )
        except LedgerException as exc:
            raise _http_error(exc)

    @router.get("/pools/{pool_id}/members", response_model=List[PoolMember])
    def get_members(pool_id: str) -> List[PoolMember]:
        """Members of a stored pool."""
        try:
            members = _svc().get_pool_members(pool_id)
        except LedgerException as exc:
            raise _http_error(exc)
        if not members:
            raise HTTPException(status_code=404, detail="Pool not found")
        return members

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @router.get("/health")
    def get_health() -> Dict[str, Any]:
        """Service health."""
        return _svc().get_health()

    return router


__all__ = [
    "BankRequest",
    "ApplyRequest",
    "CreatePoolRequest",
    "FuelEULedgerService",
    "get_service",
    "reset_service",
    "configure_fueleu_ledger",
    "get_fueleu_ledger",
    "get_router",
]
