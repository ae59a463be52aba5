"""
Relational tables for the FuelEU compliance ledger

Reference data:
- routes, ships

Ledger:
- ship_compliance (one row per ship-year)
- bank_entries (append-only)
- pools, pool_members (written together in one transaction)
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from fueleu_ledger.store.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RouteRow(Base):
    """Voyage route reference data"""

    __tablename__ = "routes"

    id = Column(String(36), primary_key=True)
    route_id = Column(String(64), nullable=False, unique=True)
    year = Column(Integer, nullable=False)

    # Fuel and intensity figures
    ghg_intensity = Column(Float, nullable=False)
    fuel_consumption = Column(Float, nullable=False)
    distance = Column(Float, nullable=False, default=0.0)
    total_emissions = Column(Float, nullable=False, default=0.0)

    is_baseline = Column(Boolean, default=False, nullable=False)
    vessel_type = Column(String(64), nullable=False, default="")
    fuel_type = Column(String(64), nullable=False, default="")

    __table_args__ = (
        Index("idx_routes_baseline", "is_baseline"),
    )

    def __repr__(self):
        return f"<RouteRow(id={self.id}, route_id={self.route_id}, year={self.year})>"


class ShipRow(Base):
    """Ship to route mapping"""

    __tablename__ = "ships"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    route_id = Column(String(64), nullable=True)

    def __repr__(self):
        return f"<ShipRow(id={self.id}, route_id={self.route_id})>"


class ComplianceRow(Base):
    """Computed compliance balance per ship-year"""

    __tablename__ = "ship_compliance"

    id = Column(String(36), primary_key=True)
    ship_id = Column(String(64), nullable=False)
    year = Column(Integer, nullable=False)
    cb_gco2eq = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("ship_id", "year", name="uq_ship_compliance_ship_year"),
    )

    def __repr__(self):
        return f"<ComplianceRow(ship_id={self.ship_id}, year={self.year}, cb={self.cb_gco2eq})>"


class BankEntryRow(Base):
    """Append-only banking ledger row (positive = bank, negative = apply)"""

    __tablename__ = "bank_entries"

    # Insertion sequence; records read back oldest first by this column
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True)
    ship_id = Column(String(64), nullable=False)
    year = Column(Integer, nullable=False)
    amount_gco2eq = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Idempotency key supplied by the client
    request_id = Column(String(128), nullable=True, unique=True)

    __table_args__ = (
        Index("idx_bank_entries_ship_year", "ship_id", "year"),
    )

    def __repr__(self):
        return f"<BankEntryRow(ship_id={self.ship_id}, year={self.year}, amount={self.amount_gco2eq})>"


class PoolRow(Base):
    """Compliance pool"""

    __tablename__ = "pools"

    id = Column(String(36), primary_key=True)
    year = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    request_id = Column(String(128), nullable=True, unique=True)

    members = relationship(
        "PoolMemberRow",
        back_populates="pool",
        cascade="all, delete-orphan",
        order_by="PoolMemberRow.position",
    )

    def __repr__(self):
        return f"<PoolRow(id={self.id}, year={self.year})>"


class PoolMemberRow(Base):
    """A ship's balance before and after pooling"""

    __tablename__ = "pool_members"

    pool_id = Column(String(36), ForeignKey("pools.id"), primary_key=True)
    ship_id = Column(String(64), primary_key=True)
    cb_before = Column(Float, nullable=False)
    cb_after = Column(Float, nullable=True)

    # Allocation order, so members read back in the order they were allocated
    position = Column(Integer, nullable=False, default=0)

    pool = relationship("PoolRow", back_populates="members")

    def __repr__(self):
        return f"<PoolMemberRow(pool_id={self.pool_id}, ship_id={self.ship_id})>"
