# -*- coding: utf-8 -*-
"""
FuelEU Compliance Ledger
========================

Compliance-balance ledger for ships under the FuelEU Maritime fuel-intensity
regulation. It supports:

- Deterministic compliance balance (CB) computation from route data
- Append-only banking of surplus CB with transactional apply
- Compliance pools with greedy surplus-to-deficit redistribution
- Baseline route selection and GHG-intensity comparison
- SHA-256 provenance chain over every ledger operation
- Prometheus metrics for observability
- FastAPI REST API
- Thread-safe configuration with FUELEU_ env prefix

Key Components:
    - calculator: ComplianceCalculator and compute_compliance_balance
    - banking: BankingLedger for bank/apply
    - pooling: PoolingAllocator and the pure allocate_pool algorithm
    - routes: RouteComparisonService
    - store: repository ports, InMemoryStore and SqlStore
    - provenance: ProvenanceTracker for SHA-256 audit trails
    - config: LedgerConfig with FUELEU_ env prefix
    - metrics: Prometheus metrics
    - setup: FuelEULedgerService facade and FastAPI router

Example:
    >>> from fueleu_ledger import FuelEULedgerService, InMemoryStore
    >>> service = FuelEULedgerService(store=InMemoryStore())
    >>> members = service.create_pool(2025, ["ship-1", "ship-2"])
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from fueleu_ledger.config import (
    ENERGY_CONVERSION_FACTOR,
    TARGET_INTENSITY_2025,
    LedgerConfig,
    get_config,
    reset_config,
    set_config,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from fueleu_ledger.exceptions import (
    IdempotencyConflictError,
    InsufficientSurplusError,
    LedgerException,
    LedgerStoreError,
    PoolInadmissibleError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from fueleu_ledger.models import (
    AdjustedBalance,
    BankEntry,
    BankEntryKind,
    ComplianceRecord,
    Pool,
    PoolMember,
    PoolResult,
    ProvenanceAction,
    Route,
    RouteComparison,
    Ship,
)

# ---------------------------------------------------------------------------
# Core engines
# ---------------------------------------------------------------------------
from fueleu_ledger.calculator import ComplianceCalculator, compute_compliance_balance
from fueleu_ledger.banking import BankingLedger
from fueleu_ledger.pooling import MemberAllocation, PoolingAllocator, allocate_pool
from fueleu_ledger.routes import RouteComparisonService
from fueleu_ledger.provenance import ProvenanceEntry, ProvenanceTracker

# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
from fueleu_ledger.store import InMemoryStore, LedgerStore, SqlStore

# ---------------------------------------------------------------------------
# Service setup facade
# ---------------------------------------------------------------------------
from fueleu_ledger.setup import (
    FuelEULedgerService,
    configure_fueleu_ledger,
    get_fueleu_ledger,
    get_router,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "LedgerConfig",
    "TARGET_INTENSITY_2025",
    "ENERGY_CONVERSION_FACTOR",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "LedgerException",
    "ValidationError",
    "InsufficientSurplusError",
    "PoolInadmissibleError",
    "IdempotencyConflictError",
    "LedgerStoreError",
    # Models
    "BankEntryKind",
    "ProvenanceAction",
    "Route",
    "Ship",
    "ComplianceRecord",
    "BankEntry",
    "Pool",
    "PoolMember",
    "PoolResult",
    "AdjustedBalance",
    "RouteComparison",
    # Core engines
    "compute_compliance_balance",
    "ComplianceCalculator",
    "BankingLedger",
    "MemberAllocation",
    "allocate_pool",
    "PoolingAllocator",
    "RouteComparisonService",
    "ProvenanceEntry",
    "ProvenanceTracker",
    # Store
    "LedgerStore",
    "InMemoryStore",
    "SqlStore",
    # Service setup facade
    "FuelEULedgerService",
    "configure_fueleu_ledger",
    "get_fueleu_ledger",
    "get_router",
]
