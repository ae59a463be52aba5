# -*- coding: utf-8 -*-
"""
Banking Ledger - FuelEU Compliance Ledger

Append-only ledger of signed compliance-balance amounts per ship and year.
Banking a surplus appends a positive entry equal to the ship-year's full CB;
applying banked surplus appends a negative entry after checking, in the same
store transaction, that enough surplus is available.

Available surplus for a ship at year Y is the sum of every entry amount for
that ship with ``entry.year <= Y``.

Idempotency:
    ``bank`` and ``apply`` accept an optional ``request_id``. A retried call
    with the same key returns the entry written the first time. Reusing a
    key for a different ship, year or operation raises
    ``IdempotencyConflictError``.

Example:
    >>> ledger = BankingLedger(store)
    >>> ledger.bank("ship-1", 2025)
    >>> ledger.apply("ship-1", 2025, 250_000.0)
"""

from __future__ import annotations

import logging
import math
import time
from typing import List, Optional

from fueleu_ledger.config import LedgerConfig, get_config
from fueleu_ledger.exceptions import (
    IdempotencyConflictError,
    InsufficientSurplusError,
    ValidationError,
)
from fueleu_ledger.metrics import (
    record_applied,
    record_banked,
    record_operation,
    record_rejection,
)
from fueleu_ledger.models import BankEntry, BankEntryKind, ProvenanceAction
from fueleu_ledger.provenance import ProvenanceTracker
from fueleu_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


class BankingLedger:
    """Banks compliance surplus and applies it against later deficits.

    Attributes:
        store: LedgerStore providing the banking and compliance repositories.
        config: LedgerConfig instance.
        provenance: ProvenanceTracker instance.
    """

    def __init__(
        self,
        store: LedgerStore,
        config: Optional[LedgerConfig] = None,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.provenance = provenance or ProvenanceTracker()
        logger.info("BankingLedger initialized")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_total_banked(self, ship_id: str, year: int) -> float:
        """Surplus available to the ship at ``year`` (all entries up to it)."""
        return self.store.banking.get_total_banked(ship_id, year)

    def get_bank_records(self, ship_id: str, year: int) -> List[BankEntry]:
        """Entries recorded for exactly this ship-year, oldest first."""
        return self.store.banking.find_by_ship_id_and_year(ship_id, year)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def bank(
        self,
        ship_id: str,
        year: int,
        request_id: Optional[str] = None,
    ) -> Optional[BankEntry]:
        """Bank the ship-year's full positive compliance balance.

        The balance must already have been computed. Repeated banking of the
        same ship-year is not guarded unless ``request_id`` is supplied.

        Args:
            ship_id: Ship identifier.
            year: Reporting year.
            request_id: Optional idempotency key.

        Returns:
            The new (or previously written) BankEntry, or None when there is
            no compliance record or it is not a surplus.

        Raises:
            IdempotencyConflictError: If ``request_id`` belongs to another
                ship-year or to an apply.
        """
        start = time.perf_counter()

        if request_id is not None:
            existing = self.store.banking.find_by_request_id(request_id)
            if existing is not None:
                self._check_replay(existing, ship_id, year, BankEntryKind.BANK)
                record_operation("bank", "replayed", time.perf_counter() - start)
                return existing

        record = self.store.compliance.find_by_ship_id_and_year(ship_id, year)
        if record is None or not record.is_surplus:
            reason = "no_record" if record is None else "no_surplus"
            record_rejection("bank", reason)
            record_operation("bank", "rejected", time.perf_counter() - start)
            logger.warning(
                "Nothing to bank for %s/%s (%s)", ship_id, year, reason,
            )
            return None

        entry = BankEntry(
            ship_id=ship_id,
            year=year,
            amount_gco2eq=record.cb_gco2eq,
            request_id=request_id,
        )
        stored = self.store.banking.save(entry)
        if stored.id != entry.id:
            # A concurrent retry with the same key won.
            self._check_replay(stored, ship_id, year, BankEntryKind.BANK)
            record_operation("bank", "replayed", time.perf_counter() - start)
            return stored

        record_banked(stored.amount_gco2eq)
        self._record_provenance(ProvenanceAction.BANK, stored)
        record_operation("bank", "success", time.perf_counter() - start)
        logger.info(
            "Banked %.4f gCO2e for %s/%s (entry %s)",
            stored.amount_gco2eq, ship_id, year, stored.id,
        )
        return stored

    def apply(
        self,
        ship_id: str,
        year: int,
        amount: float,
        request_id: Optional[str] = None,
    ) -> BankEntry:
        """Apply ``amount`` of banked surplus, appending ``-amount``.

        The availability check and the append run in one store transaction,
        so concurrent applies can never overdraw the ship's surplus.

        Args:
            ship_id: Ship identifier.
            year: Reporting year the surplus is applied to.
            amount: Positive amount in gCO2e.
            request_id: Optional idempotency key.

        Returns:
            The new (or previously written) negative BankEntry.

        Raises:
            ValidationError: If amount is not a finite positive number.
            InsufficientSurplusError: If amount exceeds available surplus.
            IdempotencyConflictError: If ``request_id`` belongs to another
                ship-year or to a bank.
        """
        start = time.perf_counter()

        if (
            isinstance(amount, bool)
            or not isinstance(amount, (int, float))
            or not math.isfinite(amount)
            or amount <= 0
        ):
            record_rejection("apply", "invalid_amount")
            record_operation("apply", "rejected", time.perf_counter() - start)
            raise ValidationError(
                "Apply amount must be a finite positive number",
                field="amount",
                value=amount,
                context={"ship_id": ship_id, "year": year},
            )

        if request_id is not None:
            existing = self.store.banking.find_by_request_id(request_id)
            if existing is not None:
                self._check_replay(existing, ship_id, year, BankEntryKind.APPLY)
                record_operation("apply", "replayed", time.perf_counter() - start)
                return existing

        entry = BankEntry(
            ship_id=ship_id,
            year=year,
            amount_gco2eq=-float(amount),
            request_id=request_id,
        )
        try:
            stored = self.store.banking.apply_within_transaction(ship_id, year, entry)
        except InsufficientSurplusError as exc:
            record_rejection("apply", "insufficient_surplus")
            record_operation("apply", "rejected", time.perf_counter() - start)
            logger.warning(
                "Apply rejected for %s/%s: requested %.4f, available %.4f",
                ship_id, year, exc.requested, exc.available,
            )
            raise

        if stored.id != entry.id:
            self._check_replay(stored, ship_id, year, BankEntryKind.APPLY)
            record_operation("apply", "replayed", time.perf_counter() - start)
            return stored

        record_applied(amount)
        self._record_provenance(ProvenanceAction.APPLY, stored)
        record_operation("apply", "success", time.perf_counter() - start)
        logger.info(
            "Applied %.4f gCO2e for %s/%s (entry %s)",
            amount, ship_id, year, stored.id,
        )
        return stored

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_replay(
        existing: BankEntry,
        ship_id: str,
        year: int,
        kind: BankEntryKind,
    ) -> None:
        if (
            existing.ship_id != ship_id
            or existing.year != year
            or existing.kind != kind
        ):
            record_rejection(kind.value, "idempotency_conflict")
            raise IdempotencyConflictError(
                f"Request id {existing.request_id!r} was already used for "
                f"{existing.kind.value} on {existing.ship_id}/{existing.year}",
                context={
                    "request_id": existing.request_id,
                    "existing_ship_id": existing.ship_id,
                    "existing_year": existing.year,
                    "ship_id": ship_id,
                    "year": year,
                },
            )
        logger.debug("Replaying %s entry %s", kind.value, existing.id)

    def _record_provenance(self, action: ProvenanceAction, entry: BankEntry) -> None:
        if not self.config.enable_provenance:
            return
        self.provenance.record(
            action.value,
            entry.ship_id,
            {
                "entry_id": entry.id,
                "year": entry.year,
                "amount_gco2eq": entry.amount_gco2eq,
                "request_id": entry.request_id,
            },
        )


__all__ = ["BankingLedger"]
