# -*- coding: utf-8 -*-
"""
FuelEU Ledger Data Models

Pydantic v2 data models for the compliance ledger. Reference data (routes,
ships) are frozen snapshots so the calculator stays a pure function of its
inputs; ledger rows (compliance records, bank entries, pools) are immutable
once written.

Models:
    - Enums: BankEntryKind, ProvenanceAction
    - Reference: Route, Ship
    - Ledger: ComplianceRecord, BankEntry, Pool, PoolMember
    - Views: AdjustedBalance, RouteComparison

Numeric fields run in Pydantic lax mode, so values coming back from the
store as ``Decimal`` or string-encoded decimals are coerced to ``float``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enumerations
# =============================================================================


class BankEntryKind(str, Enum):
    """Direction of a bank ledger entry."""
    BANK = "bank"
    APPLY = "apply"


class ProvenanceAction(str, Enum):
    """Ledger operations recorded in the provenance chain."""
    COMPUTE_BALANCE = "compute_balance"
    BANK = "bank"
    APPLY = "apply"
    CREATE_POOL = "create_pool"
    SET_BASELINE = "set_baseline"


# =============================================================================
# Helpers
# =============================================================================


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Reference data
# =============================================================================


class Route(BaseModel):
    """Voyage route with its fuel and GHG intensity figures."""
    id: str = Field(..., description="Primary key of the route row")
    route_id: str = Field(..., description="Business identifier of the route")
    year: int = Field(..., description="Reporting year")
    ghg_intensity: float = Field(..., description="Actual GHG intensity, gCO2e/MJ")
    fuel_consumption: float = Field(..., description="Fuel consumed, tonnes")
    distance: float = Field(default=0.0, description="Distance sailed, km")
    total_emissions: float = Field(default=0.0, description="Total emissions, tonnes")
    is_baseline: bool = Field(default=False, description="Whether this is the baseline route")
    vessel_type: str = Field(default="", description="Vessel type")
    fuel_type: str = Field(default="", description="Fuel type")

    # allow_inf_nan keeps bad upstream numbers visible to the calculator's
    # own validation instead of failing at snapshot construction.
    model_config = ConfigDict(frozen=True, allow_inf_nan=True)


class Ship(BaseModel):
    """A ship and the route used to compute its compliance balance."""
    id: str = Field(..., description="Ship identifier")
    name: str = Field(default="", description="Display name")
    route_id: Optional[str] = Field(None, description="Business id of the ship's route")

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Ledger records
# =============================================================================


class ComplianceRecord(BaseModel):
    """Computed compliance balance for one ship-year."""
    id: str = Field(default_factory=_new_id, description="Record ID")
    ship_id: str = Field(..., description="Ship identifier")
    year: int = Field(..., description="Reporting year")
    cb_gco2eq: float = Field(..., description="Signed compliance balance, gCO2e")

    model_config = ConfigDict(frozen=True)

    @property
    def is_surplus(self) -> bool:
        return self.cb_gco2eq > 0


class BankEntry(BaseModel):
    """One append-only banking ledger row.

    Positive amounts bank a surplus; negative amounts apply banked surplus.
    """
    id: str = Field(default_factory=_new_id, description="Entry ID")
    ship_id: str = Field(..., description="Ship identifier")
    year: int = Field(..., description="Reporting year")
    amount_gco2eq: float = Field(..., description="Signed amount, gCO2e")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")
    request_id: Optional[str] = Field(None, description="Client idempotency key")

    model_config = ConfigDict(frozen=True)

    @property
    def kind(self) -> BankEntryKind:
        return BankEntryKind.BANK if self.amount_gco2eq > 0 else BankEntryKind.APPLY


class Pool(BaseModel):
    """A compliance pool formed for one reporting year."""
    id: str = Field(default_factory=_new_id, description="Pool ID")
    year: int = Field(..., description="Reporting year")
    created_at: datetime = Field(default_factory=_utcnow, description="Creation timestamp")
    request_id: Optional[str] = Field(None, description="Client idempotency key")

    model_config = ConfigDict(frozen=True)


class PoolMember(BaseModel):
    """A ship's balance before and after pooling."""
    pool_id: str = Field(..., description="Owning pool ID")
    ship_id: str = Field(..., description="Ship identifier")
    cb_before: float = Field(..., description="Adjusted CB entering the pool")
    cb_after: Optional[float] = Field(None, description="CB after redistribution")

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Views
# =============================================================================


class AdjustedBalance(BaseModel):
    """Compliance balance plus cumulative banked surplus for a ship-year.

    Serialized with camelCase keys (``shipId``, ``adjustedCb``).
    """
    ship_id: str = Field(..., alias="shipId")
    year: int = Field(...)
    adjusted_cb: Optional[float] = Field(None, alias="adjustedCb")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class RouteComparison(BaseModel):
    """A route compared against the baseline route's GHG intensity."""
    route: Route
    baseline_route_id: str
    percent_diff: Optional[float] = Field(
        None, description="(ghg - baseline) / baseline * 100, 2 decimals",
    )
    compliant: bool

    model_config = ConfigDict(frozen=True)


class PoolResult(BaseModel):
    """A stored pool together with its members."""
    pool: Pool
    members: List[PoolMember] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


__all__ = [
    # Enumerations
    "BankEntryKind",
    "ProvenanceAction",
    # Reference
    "Route",
    "Ship",
    # Ledger
    "ComplianceRecord",
    "BankEntry",
    "Pool",
    "PoolMember",
    # Views
    "AdjustedBalance",
    "RouteComparison",
    "PoolResult",
]
