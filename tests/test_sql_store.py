"""Tests specific to the SQLAlchemy store."""

import threading

import pytest
from sqlalchemy import inspect

from fueleu_ledger.banking import BankingLedger
from fueleu_ledger.exceptions import InsufficientSurplusError, LedgerStoreError
from fueleu_ledger.models import BankEntry, Pool, PoolMember
from fueleu_ledger.store.engine import create_store_engine, get_session_factory, session_scope
from fueleu_ledger.store.sql import SqlStore, _to_float
from fueleu_ledger.store.tables import BankEntryRow


class TestSchema:

    def test_tables_created(self, sql_store):
        names = set(inspect(sql_store.engine).get_table_names())
        assert {
            "routes", "ships", "ship_compliance",
            "bank_entries", "pools", "pool_members",
        } <= names

    def test_ping(self, sql_store):
        assert sql_store.ping() is True

    def test_seed_is_repeatable(self, sql_store, routes, ships):
        sql_store.seed(routes=routes, ships=ships)
        assert len(sql_store.routes.find_all()) == len(routes)
        assert [s.id for s in sql_store.ships.get_all_ships()] == sorted(s.id for s in ships)

    def test_file_database(self, tmp_path, routes):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        store = SqlStore(url)
        store.seed(routes=routes)
        store.dispose()

        reopened = SqlStore(url)
        assert reopened.routes.find_by_route_id("R002").ghg_intensity == 88.0
        reopened.dispose()


class TestConcurrentApply:
    """Threads racing applies against a file-backed database."""

    @pytest.fixture
    def file_store(self, tmp_path):
        store = SqlStore(f"sqlite:///{tmp_path / 'race.db'}")
        store.banking.save(BankEntry(ship_id="ship-1", year=2025, amount_gco2eq=1000.0))
        yield store
        store.dispose()

    def _race(self, ledger, amount, workers):
        barrier = threading.Barrier(workers)
        outcomes = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            try:
                ledger.apply("ship-1", 2025, amount)
                result = "ok"
            except InsufficientSurplusError:
                result = "insufficient"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return outcomes

    def test_only_one_of_two_applies_succeeds(self, file_store, config):
        ledger = BankingLedger(file_store, config=config)

        outcomes = self._race(ledger, 600.0, workers=2)

        assert sorted(outcomes) == ["insufficient", "ok"]
        assert file_store.banking.get_total_banked("ship-1", 2025) == pytest.approx(400.0)

    def test_many_applies_never_overdraw(self, file_store, config):
        ledger = BankingLedger(file_store, config=config)

        outcomes = self._race(ledger, 150.0, workers=10)

        assert outcomes.count("ok") == 6
        assert file_store.banking.get_total_banked("ship-1", 2025) == pytest.approx(100.0)


class TestNumericCoercion:

    @pytest.mark.parametrize("raw,expected", [
        (None, 0.0),
        (3, 3.0),
        ("12.5", 12.5),
    ])
    def test_to_float(self, raw, expected):
        assert _to_float(raw) == expected

    def test_decimal(self):
        from decimal import Decimal
        assert _to_float(Decimal("1.25")) == 1.25


class TestTransactions:

    def test_failed_apply_rolls_back(self, sql_store):
        sql_store.banking.save(BankEntry(ship_id="ship-1", year=2025, amount_gco2eq=10.0))

        with pytest.raises(InsufficientSurplusError):
            sql_store.banking.apply_within_transaction(
                "ship-1", 2025,
                BankEntry(ship_id="ship-1", year=2025, amount_gco2eq=-11.0),
            )

        assert len(sql_store.banking.find_by_ship_id_and_year("ship-1", 2025)) == 1

    def test_session_scope_rolls_back_on_error(self, sql_store):
        with pytest.raises(RuntimeError):
            with session_scope(sql_store.session_factory) as session:
                session.add(BankEntryRow(
                    id="e-1", ship_id="ship-1", year=2025, amount_gco2eq=5.0,
                ))
                session.flush()
                raise RuntimeError("boom")

        assert sql_store.banking.get_total_banked("ship-1", 2025) == 0.0

    def test_driver_errors_become_store_errors(self):
        engine = create_store_engine("sqlite://")
        factory = get_session_factory(engine)

        with pytest.raises(LedgerStoreError):
            with session_scope(factory) as session:
                session.execute(BankEntryRow.__table__.select())

        engine.dispose()

    def test_request_id_is_unique_per_entry(self, sql_store):
        first = sql_store.banking.save(
            BankEntry(ship_id="ship-1", year=2025, amount_gco2eq=5.0, request_id="k"),
        )
        second = sql_store.banking.save(
            BankEntry(ship_id="ship-1", year=2025, amount_gco2eq=5.0, request_id="k"),
        )

        assert second.id == first.id
        assert sql_store.banking.get_total_banked("ship-1", 2025) == 5.0

    def test_pool_written_with_members(self, sql_store):
        pool = Pool(year=2025, request_id="pool-1")
        members = [
            PoolMember(pool_id=pool.id, ship_id="b", cb_before=10.0, cb_after=5.0),
            PoolMember(pool_id=pool.id, ship_id="a", cb_before=-5.0, cb_after=0.0),
        ]

        sql_store.pooling.save_pool_with_members(pool, members)

        stored = sql_store.pooling.find_pool_by_request_id("pool-1")
        assert stored.pool.id == pool.id
        assert [m.ship_id for m in stored.members] == ["b", "a"]

    def test_duplicate_pool_member_rolls_back_whole_pool(self, sql_store):
        pool = Pool(year=2025)
        members = [
            PoolMember(pool_id=pool.id, ship_id="a", cb_before=1.0, cb_after=1.0),
            PoolMember(pool_id=pool.id, ship_id="a", cb_before=1.0, cb_after=1.0),
        ]

        with pytest.raises(LedgerStoreError):
            sql_store.pooling.save_pool_with_members(pool, members)

        assert sql_store.pooling.get_pool_members(pool.id) == []
