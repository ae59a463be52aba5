# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import pytest

from fueleu_ledger.config import LedgerConfig, reset_config, set_config
from fueleu_ledger.models import ComplianceRecord, Route, Ship
from fueleu_ledger.provenance import ProvenanceTracker
from fueleu_ledger.setup import reset_service
from fueleu_ledger.store.memory import InMemoryStore
from fueleu_ledger.store.sql import SqlStore


@pytest.fixture(autouse=True)
def _isolated_config():
    """Every test starts from default configuration and no service singleton."""
    reset_config()
    set_config(LedgerConfig())
    yield
    reset_config()
    reset_service()


@pytest.fixture
def config():
    """Default ledger configuration."""
    return LedgerConfig()


@pytest.fixture
def provenance():
    return ProvenanceTracker()


@pytest.fixture
def routes():
    """Reference routes for 2024/2025."""
    return [
        Route(
            id="route-1", route_id="R001", year=2024,
            ghg_intensity=91.0, fuel_consumption=5000.0,
            distance=12000.0, total_emissions=4500.0,
            is_baseline=True, vessel_type="Container", fuel_type="HFO",
        ),
        Route(
            id="route-2", route_id="R002", year=2024,
            ghg_intensity=88.0, fuel_consumption=4800.0,
            distance=11500.0, total_emissions=4200.0,
            vessel_type="BulkCarrier", fuel_type="LNG",
        ),
        Route(
            id="route-3", route_id="R003", year=2024,
            ghg_intensity=93.5, fuel_consumption=5100.0,
            distance=12500.0, total_emissions=4700.0,
            vessel_type="Tanker", fuel_type="MGO",
        ),
        Route(
            id="route-4", route_id="R004", year=2025,
            ghg_intensity=89.2, fuel_consumption=4900.0,
            distance=11800.0, total_emissions=4300.0,
            vessel_type="RoRo", fuel_type="HFO",
        ),
    ]


@pytest.fixture
def ships():
    return [
        Ship(id="ship-1", name="Aurora", route_id="R002"),
        Ship(id="ship-2", name="Borealis", route_id="R001"),
        Ship(id="ship-3", name="Cassiopeia", route_id="R003"),
        Ship(id="ship-4", name="Draco", route_id="R004"),
    ]


@pytest.fixture
def memory_store(routes, ships):
    """Seeded in-memory store."""
    store = InMemoryStore()
    store.seed(routes=routes, ships=ships)
    return store


@pytest.fixture
def sql_store(routes, ships):
    """Seeded SQLite in-memory store."""
    store = SqlStore("sqlite://")
    store.seed(routes=routes, ships=ships)
    yield store
    store.dispose()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, routes, ships):
    """Seeded store, once per implementation."""
    if request.param == "memory":
        yield request.getfixturevalue("memory_store")
    else:
        yield request.getfixturevalue("sql_store")


@pytest.fixture
def put_balance():
    """Store a precomputed compliance balance for a ship-year."""
    def _put(store, ship_id, year, cb):
        return store.compliance.save(
            ComplianceRecord(ship_id=ship_id, year=year, cb_gco2eq=cb),
        )
    return _put
