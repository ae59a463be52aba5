"""Tests for the pooling allocator."""

import random

import pytest

from fueleu_ledger.calculator import ComplianceCalculator
from fueleu_ledger.exceptions import PoolInadmissibleError, ValidationError
from fueleu_ledger.models import BankEntry
from fueleu_ledger.pooling import PoolingAllocator, allocate_pool


def after_by_ship(allocations):
    return {a.ship_id: a.cb_after for a in allocations}


# ==============================================================================
# Pure allocation
# ==============================================================================

class TestAllocatePool:

    def test_reference_scenario(self):
        allocations = allocate_pool([
            ("ship-1", 1000.0),
            ("ship-2", -500.0),
            ("ship-3", 200.0),
            ("ship-4", -400.0),
        ])

        assert [a.ship_id for a in allocations] == ["ship-1", "ship-3", "ship-4", "ship-2"]
        assert after_by_ship(allocations) == {
            "ship-1": 100.0, "ship-3": 200.0, "ship-4": 0.0, "ship-2": 0.0,
        }

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError) as excinfo:
            allocate_pool([("a", 10.0), ("b", 1.0), ("a", -5.0)])
        assert excinfo.value.value == ["a"]

    def test_negative_total_is_inadmissible(self):
        with pytest.raises(PoolInadmissibleError):
            allocate_pool([("a", 100.0), ("b", -100.5)])

    def test_single_member(self):
        allocations = allocate_pool([("a", 42.0)])
        assert allocations[0].cb_after == allocations[0].cb_before == 42.0

    def test_single_zero_member(self):
        assert allocate_pool([("a", 0.0)])[0].cb_after == 0.0

    def test_all_surplus_unchanged(self):
        allocations = allocate_pool([("a", 10.0), ("b", 30.0), ("c", 20.0)])
        assert all(a.cb_after == a.cb_before for a in allocations)

    def test_exact_balance_drives_everyone_to_zero(self):
        allocations = allocate_pool([("a", 300.0), ("b", -100.0), ("c", -200.0)])
        assert all(a.cb_after == 0.0 for a in allocations)

    def test_surplus_drawn_largest_first(self):
        allocations = allocate_pool([("small", 50.0), ("big", 100.0), ("d", -120.0)])

        assert after_by_ship(allocations) == {"big": 0.0, "small": 30.0, "d": 0.0}

    def test_sort_is_stable_for_ties(self):
        allocations = allocate_pool([("x", 10.0), ("y", 10.0), ("d", -5.0)])

        assert [a.ship_id for a in allocations] == ["x", "y", "d"]
        assert after_by_ship(allocations) == {"x": 5.0, "y": 10.0, "d": 0.0}

    def test_invariants_hold_on_random_admissible_pools(self):
        rng = random.Random(7)
        for _ in range(200):
            size = rng.randint(1, 8)
            balances = [(f"s{i}", rng.uniform(-1e6, 1e6)) for i in range(size)]
            total = sum(cb for _, cb in balances)
            if total < 0:
                balances.append(("topup", -total + rng.uniform(0, 1e5)))

            allocations = allocate_pool(balances)

            assert sum(a.cb_after for a in allocations) == pytest.approx(
                sum(a.cb_before for a in allocations), abs=1e-6 * 1e7,
            )
            for a in allocations:
                if a.cb_before < 0:
                    assert a.cb_after >= a.cb_before
                if a.cb_before > 0:
                    assert a.cb_after >= 0


# ==============================================================================
# Pool creation over a store
# ==============================================================================

@pytest.fixture
def allocator(store, config, provenance):
    calculator = ComplianceCalculator(store, config=config, provenance=provenance)
    return PoolingAllocator(
        store, calculator=calculator, config=config, provenance=provenance,
    )


class TestCreatePool:

    def test_reference_scenario_is_persisted(self, allocator, store, put_balance):
        for ship_id, cb in [
            ("ship-1", 1000.0), ("ship-2", -500.0), ("ship-3", 200.0), ("ship-4", -400.0),
        ]:
            put_balance(store, ship_id, 2025, cb)

        members = allocator.create_pool(2025, ["ship-1", "ship-2", "ship-3", "ship-4"])

        assert {m.ship_id: m.cb_after for m in members} == {
            "ship-1": 100.0, "ship-2": 0.0, "ship-3": 200.0, "ship-4": 0.0,
        }
        stored = allocator.get_pool_members(members[0].pool_id)
        assert [m.ship_id for m in stored] == [m.ship_id for m in members]
        assert [m.cb_after for m in stored] == [m.cb_after for m in members]

    def test_cb_before_includes_banked_surplus(self, allocator, store, put_balance):
        put_balance(store, "ship-1", 2025, -100.0)
        put_balance(store, "ship-2", 2025, 10.0)
        store.banking.save(BankEntry(ship_id="ship-1", year=2024, amount_gco2eq=150.0))

        members = allocator.create_pool(2025, ["ship-1", "ship-2"])

        before = {m.ship_id: m.cb_before for m in members}
        assert before == {"ship-1": 50.0, "ship-2": 10.0}

    def test_ship_without_record_counts_as_zero(self, allocator, store, put_balance):
        put_balance(store, "ship-1", 2025, 10.0)

        members = allocator.create_pool(2025, ["ship-1", "nobody"])

        assert {m.ship_id: m.cb_before for m in members} == {"ship-1": 10.0, "nobody": 0.0}

    def test_uncomputed_ship_enters_at_zero_without_computing(
        self, allocator, store, put_balance,
    ):
        put_balance(store, "ship-1", 2025, 10.0)

        members = allocator.create_pool(2025, ["ship-1", "ship-3"])

        assert {m.ship_id: m.cb_before for m in members} == {"ship-1": 10.0, "ship-3": 0.0}
        assert store.compliance.find_by_ship_id_and_year("ship-3", 2025) is None

    def test_rejected_pool_leaves_no_compliance_rows(self, allocator, store, put_balance):
        put_balance(store, "ship-1", 2025, -50.0)

        with pytest.raises(PoolInadmissibleError):
            allocator.create_pool(2025, ["ship-1", "ship-3"])

        assert store.compliance.find_by_ship_id_and_year("ship-3", 2025) is None

    def test_inadmissible_pool_persists_nothing(self, allocator, store, put_balance, provenance):
        put_balance(store, "ship-1", 2025, 100.0)
        put_balance(store, "ship-2", 2025, -500.0)
        before = provenance.entry_count

        with pytest.raises(PoolInadmissibleError):
            allocator.create_pool(2025, ["ship-1", "ship-2"], request_id="p-1")

        assert store.pooling.find_pool_by_request_id("p-1") is None
        assert provenance.get_audit_trail(action="create_pool") == []
        assert provenance.entry_count == before

    def test_empty_pool_rejected(self, allocator):
        with pytest.raises(ValidationError):
            allocator.create_pool(2025, [])

    def test_duplicate_ship_rejected(self, allocator):
        with pytest.raises(ValidationError) as excinfo:
            allocator.create_pool(2025, ["ship-1", "ship-2", "ship-1"])
        assert excinfo.value.value == ["ship-1"]

    def test_request_id_returns_existing_pool(self, allocator, store, put_balance):
        put_balance(store, "ship-1", 2025, 10.0)
        put_balance(store, "ship-2", 2025, -5.0)

        first = allocator.create_pool(2025, ["ship-1", "ship-2"], request_id="pool-key")
        again = allocator.create_pool(2025, ["ship-1", "ship-2"], request_id="pool-key")

        assert again[0].pool_id == first[0].pool_id
        assert store.pooling.find_pool_by_request_id("pool-key").pool.id == first[0].pool_id

    def test_unknown_pool_has_no_members(self, allocator):
        assert allocator.get_pool_members("missing") == []

    def test_records_provenance(self, allocator, store, put_balance, provenance):
        put_balance(store, "ship-1", 2025, 10.0)

        members = allocator.create_pool(2025, ["ship-1"])

        entry = provenance.get_audit_trail(action="create_pool")[0]
        assert entry.subject_id == members[0].pool_id
        assert entry.payload["members"][0]["ship_id"] == "ship-1"
