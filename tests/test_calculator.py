"""Tests for the compliance calculator."""

import warnings

import pytest

from fueleu_ledger.calculator import ComplianceCalculator, compute_compliance_balance
from fueleu_ledger.config import LedgerConfig
from fueleu_ledger.exceptions import LedgerStoreError, ValidationError
from fueleu_ledger.models import ComplianceRecord, Route, Ship
from fueleu_ledger.store.memory import InMemoryStore


def expected_cb(ghg, fuel, target=89.3368, factor=41000.0):
    return (target - ghg) * (fuel * factor)


def make_route(**overrides):
    data = dict(
        id="r", route_id="RX", year=2025,
        ghg_intensity=88.0, fuel_consumption=1000.0,
    )
    data.update(overrides)
    return Route(**data)


# ==============================================================================
# Pure computation
# ==============================================================================

class TestComputeComplianceBalance:

    def test_formula(self):
        route = make_route(ghg_intensity=91.0, fuel_consumption=5000.0)
        cb = compute_compliance_balance(route, 89.3368, 41000.0)
        assert cb == pytest.approx(expected_cb(91.0, 5000.0))
        assert cb < 0

    def test_surplus_when_below_target(self):
        route = make_route(ghg_intensity=88.0, fuel_consumption=4800.0)
        assert compute_compliance_balance(route, 89.3368, 41000.0) > 0

    def test_zero_at_target(self):
        route = make_route(ghg_intensity=89.3368)
        assert compute_compliance_balance(route, 89.3368, 41000.0) == 0.0

    @pytest.mark.parametrize("fuel", [0.0, -10.0, float("nan"), float("inf")])
    def test_rejects_bad_fuel_consumption(self, fuel):
        route = make_route(fuel_consumption=fuel)
        with pytest.raises(ValidationError) as excinfo:
            compute_compliance_balance(route, 89.3368, 41000.0)
        assert excinfo.value.field == "fuel_consumption"
        assert excinfo.value.route_id == "RX"

    @pytest.mark.parametrize("ghg", [float("nan"), float("-inf")])
    def test_rejects_non_finite_intensity(self, ghg):
        route = make_route(ghg_intensity=ghg)
        with pytest.raises(ValidationError) as excinfo:
            compute_compliance_balance(route, 89.3368, 41000.0)
        assert excinfo.value.field == "ghg_intensity"


# ==============================================================================
# Calculator over a store
# ==============================================================================

class TestGetComplianceBalance:

    def test_computes_from_ship_route(self, store, config):
        calc = ComplianceCalculator(store, config=config)

        record = calc.get_compliance_balance("ship-1", 2024)

        assert record.ship_id == "ship-1"
        assert record.year == 2024
        assert record.cb_gco2eq == pytest.approx(expected_cb(88.0, 4800.0))

    def test_is_deterministic_and_persisted(self, store, config):
        calc = ComplianceCalculator(store, config=config)

        first = calc.get_compliance_balance("ship-2", 2024)
        second = calc.get_compliance_balance("ship-2", 2024)

        assert first.cb_gco2eq == second.cb_gco2eq
        assert first.id == second.id
        stored = store.compliance.find_by_ship_id_and_year("ship-2", 2024)
        assert stored.cb_gco2eq == first.cb_gco2eq

    def test_cached_value_is_returned_unchanged(self, store, config, put_balance):
        put_balance(store, "ship-1", 2024, 123.0)
        calc = ComplianceCalculator(store, config=config)

        assert calc.get_compliance_balance("ship-1", 2024).cb_gco2eq == 123.0

    def test_uses_year_specific_target(self, store):
        cfg = LedgerConfig(target_intensities={2024: 90.0})
        calc = ComplianceCalculator(store, config=cfg)

        record = calc.get_compliance_balance("ship-1", 2024)

        assert record.cb_gco2eq == pytest.approx(expected_cb(88.0, 4800.0, target=90.0))

    def test_unknown_ship_and_route_returns_none(self, store, config):
        calc = ComplianceCalculator(store, config=config)

        assert calc.get_compliance_balance("ghost", 2024) is None
        assert store.compliance.find_by_ship_id_and_year("ghost", 2024) is None

    def test_route_id_fallback_warns(self, store, config):
        calc = ComplianceCalculator(store, config=config)

        with pytest.warns(DeprecationWarning):
            record = calc.get_compliance_balance("R003", 2024)

        assert record.cb_gco2eq == pytest.approx(expected_cb(93.5, 5100.0))

    def test_route_id_fallback_disabled(self, store):
        calc = ComplianceCalculator(
            store, config=LedgerConfig(allow_route_id_fallback=False),
        )

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert calc.get_compliance_balance("R003", 2024) is None

    def test_invalid_route_persists_nothing(self, config):
        store = InMemoryStore()
        store.seed(
            routes=[make_route(id="bad", route_id="RBAD", fuel_consumption=float("nan"))],
            ships=[Ship(id="ship-x", route_id="RBAD")],
        )
        calc = ComplianceCalculator(store, config=config)

        with pytest.raises(ValidationError) as excinfo:
            calc.get_compliance_balance("ship-x", 2025)

        assert excinfo.value.route_id == "RBAD"
        assert store.compliance.find_by_ship_id_and_year("ship-x", 2025) is None

    def test_records_provenance(self, store, config, provenance):
        calc = ComplianceCalculator(store, config=config, provenance=provenance)

        calc.get_compliance_balance("ship-1", 2024)
        calc.get_compliance_balance("ship-1", 2024)

        trail = provenance.get_audit_trail(subject_id="ship-1")
        assert len(trail) == 1
        assert trail[0].action.value == "compute_balance"


class TestSaveFirstWriteWins:

    def test_second_write_returns_first(self, store):
        first = store.compliance.save(
            ComplianceRecord(ship_id="ship-9", year=2025, cb_gco2eq=10.0),
        )
        second = store.compliance.save(
            ComplianceRecord(ship_id="ship-9", year=2025, cb_gco2eq=99.0),
        )

        assert second.id == first.id
        assert second.cb_gco2eq == 10.0


class TestAdjustedComplianceBalance:

    def test_adds_banked_total(self, store, config):
        calc = ComplianceCalculator(store, config=config)
        record = calc.get_compliance_balance("ship-1", 2024)
        calc.banking.bank("ship-1", 2024)

        adjusted = calc.get_adjusted_compliance_balance("ship-1", 2024)

        assert adjusted == pytest.approx(2 * record.cb_gco2eq)

    def test_none_without_record(self, store, config):
        calc = ComplianceCalculator(store, config=config)
        assert calc.get_adjusted_compliance_balance("ghost", 2024) is None

    def test_all_ships_isolates_failures(self, config):
        store = InMemoryStore()
        store.seed(
            routes=[
                make_route(id="good", route_id="RGOOD", ghg_intensity=88.0),
                make_route(id="bad", route_id="RBAD", fuel_consumption=0.0),
            ],
            ships=[
                Ship(id="a-good", route_id="RGOOD"),
                Ship(id="b-bad", route_id="RBAD"),
                Ship(id="c-none", route_id=None),
                Ship(id="d-missing", route_id="NOPE"),
            ],
        )
        calc = ComplianceCalculator(store, config=config)

        results = calc.get_adjusted_compliance_balance_for_all_ships(2025)

        by_ship = {r.ship_id: r.adjusted_cb for r in results}
        assert list(by_ship) == ["a-good", "b-bad", "c-none", "d-missing"]
        assert by_ship["a-good"] == pytest.approx(expected_cb(88.0, 1000.0))
        assert by_ship["b-bad"] is None
        assert by_ship["c-none"] is None
        assert by_ship["d-missing"] is None

    def test_all_ships_propagates_store_failure(self, store, config, monkeypatch):
        calc = ComplianceCalculator(store, config=config)

        def unavailable(ship_id, year):
            raise LedgerStoreError("Store transaction failed: OperationalError")

        monkeypatch.setattr(calc.banking, "get_total_banked", unavailable)

        with pytest.raises(LedgerStoreError):
            calc.get_adjusted_compliance_balance_for_all_ships(2024)

    def test_serializes_camel_case(self, store, config):
        calc = ComplianceCalculator(store, config=config)

        dumped = calc.get_adjusted_compliance_balance_for_all_ships(2024)[0].model_dump(
            by_alias=True,
        )

        assert set(dumped) == {"shipId", "year", "adjustedCb"}
