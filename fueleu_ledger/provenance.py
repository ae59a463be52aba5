# -*- coding: utf-8 -*-
"""
Ledger Provenance Tracker

SHA-256 audit trail for ledger operations (balance computations, banking,
applications, pool creation, baseline changes). Each entry's hash chains to
the previous one, so any edit to an earlier entry breaks verification.

The store remains the system of record; this chain is a tamper-evident
in-process log that can be exported as JSON for external audit systems.

Example:
    >>> from fueleu_ledger.provenance import ProvenanceTracker
    >>> tracker = ProvenanceTracker()
    >>> entry = tracker.record("bank", "ship-1", {"year": 2025, "amount": 500.0})
    >>> tracker.verify_chain()
    True
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from fueleu_ledger.models import ProvenanceAction

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class ProvenanceEntry(BaseModel):
    """One link in the provenance chain."""
    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=_utcnow)
    action: ProvenanceAction
    subject_id: str = Field(..., description="Ship, pool or route the action touched")
    payload: Dict[str, Any] = Field(default_factory=dict)
    provenance_hash: str = Field(default="", description="Chain hash")

    model_config = {"extra": "forbid"}


class ProvenanceTracker:
    """Tracks provenance for ledger operations with SHA-256 chain hashing.

    Attributes:
        _entries: Ordered list of provenance entries.
        _last_chain_hash: Most recent chain hash for linking.
    """

    _GENESIS_HASH = hashlib.sha256(b"fueleu-ledger-genesis").hexdigest()

    def __init__(self) -> None:
        self._entries: List[ProvenanceEntry] = []
        self._last_chain_hash: str = self._GENESIS_HASH
        self._lock = threading.Lock()
        logger.info("ProvenanceTracker initialized")

    def record(
        self,
        action: str,
        subject_id: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ProvenanceEntry:
        """Append an operation to the chain.

        Args:
            action: ProvenanceAction value (bank, apply, create_pool, ...).
            subject_id: Identifier of the ship, pool or route affected.
            payload: Operation details; must be JSON-serializable.

        Returns:
            The new ProvenanceEntry with its chain hash set.
        """
        act = ProvenanceAction(action)
        entry = ProvenanceEntry(
            action=act,
            subject_id=subject_id,
            payload=payload or {},
        )
        with self._lock:
            entry_hash = self._hash_dict(self._entry_data(entry))
            chain_hash = self._link(self._last_chain_hash, entry_hash)
            entry.provenance_hash = chain_hash
            self._entries.append(entry)
            self._last_chain_hash = chain_hash

        logger.debug(
            "Recorded provenance: %s %s %s",
            act.value, subject_id, entry.entry_id,
        )
        return entry

    def get_audit_trail(
        self,
        subject_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> List[ProvenanceEntry]:
        """Get the audit trail, newest first, optionally filtered."""
        entries = list(self._entries)

        if subject_id is not None:
            entries = [e for e in entries if e.subject_id == subject_id]
        if action is not None:
            act = ProvenanceAction(action)
            entries = [e for e in entries if e.action == act]

        entries.reverse()
        return entries[:limit]

    def verify_chain(self, entries: Optional[List[ProvenanceEntry]] = None) -> bool:
        """Recompute chain hashes from genesis and compare with stored ones.

        Returns:
            True if chain is intact, False if tampered.
        """
        check_entries = entries if entries is not None else list(self._entries)
        current_hash = self._GENESIS_HASH

        for entry in check_entries:
            entry_hash = self._hash_dict(self._entry_data(entry))
            expected_hash = self._link(current_hash, entry_hash)
            if entry.provenance_hash != expected_hash:
                logger.warning(
                    "Chain verification failed at entry %s", entry.entry_id,
                )
                return False
            current_hash = expected_hash

        return True

    def export_json(self) -> str:
        """Export all provenance records as a JSON string."""
        records = [entry.model_dump(mode="json") for entry in self._entries]
        return json.dumps(records, indent=2, default=str)

    @property
    def entry_count(self) -> int:
        """Return the number of provenance entries."""
        return len(self._entries)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _entry_data(entry: ProvenanceEntry) -> Dict[str, Any]:
        return {
            "action": entry.action.value,
            "subject": entry.subject_id,
            "payload": entry.payload,
            "timestamp": entry.timestamp.isoformat(),
        }

    @staticmethod
    def _link(previous_hash: str, entry_hash: str) -> str:
        combined = f"{previous_hash}:{entry_hash}"
        return hashlib.sha256(combined.encode()).hexdigest()

    @staticmethod
    def _hash_dict(data: Dict[str, Any]) -> str:
        serialized = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode()).hexdigest()


__all__ = [
    "ProvenanceEntry",
    "ProvenanceTracker",
]
