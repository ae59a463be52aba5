# -*- coding: utf-8 -*-
"""
Ledger store: repository ports plus in-memory and SQLAlchemy implementations.
"""

from fueleu_ledger.store.base import (
    BankingRepository,
    ComplianceRepository,
    LedgerStore,
    PoolingRepository,
    RouteRepository,
    ShipRepository,
)
from fueleu_ledger.store.memory import InMemoryStore
from fueleu_ledger.store.sql import SqlStore

__all__ = [
    "RouteRepository",
    "ShipRepository",
    "ComplianceRepository",
    "BankingRepository",
    "PoolingRepository",
    "LedgerStore",
    "InMemoryStore",
    "SqlStore",
]
