"""FuelEU Ledger Exception Hierarchy.

Exception Hierarchy:
    LedgerException (base)
    ├── ValidationError
    ├── InsufficientSurplusError
    ├── PoolInadmissibleError
    ├── IdempotencyConflictError
    └── LedgerStoreError

All exceptions carry:
- error_code: Unique error identifier (e.g. "FUELEU_INSUFFICIENT_SURPLUS_ERROR")
- context: Dictionary with error-specific details
- timestamp: When the error occurred

A route that cannot be resolved is not an exception: lookups return ``None``.

Example:
    >>> from fueleu_ledger.exceptions import InsufficientSurplusError
    >>> raise InsufficientSurplusError(
    ...     ship_id="ship-1", year=2025, requested=900.0, available=800.0,
    ... )
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class LedgerException(Exception):
    """Base exception for all ledger errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "FUELEU"

    #: Whether the caller made the mistake (maps to a 4xx response).
    client_error = True

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


class ValidationError(LedgerException):
    """Malformed input: non-finite route numerics, non-positive amounts.

    Example:
        >>> raise ValidationError(
        ...     "fuel_consumption must be a finite positive number",
        ...     route_id="R001", field="fuel_consumption", value=-1.0,
        ... )
    """

    def __init__(
        self,
        message: str,
        route_id: Optional[str] = None,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = dict(context or {})
        if route_id is not None:
            context["route_id"] = route_id
        if field is not None:
            context["field"] = field
            context["value"] = value
        super().__init__(message, context=context)
        self.route_id = route_id
        self.field = field
        self.value = value


class InsufficientSurplusError(LedgerException):
    """An apply amount exceeds the banked surplus available to the ship."""

    def __init__(
        self,
        ship_id: str,
        year: int,
        requested: float,
        available: float,
    ):
        super().__init__(
            f"Insufficient banked surplus for ship {ship_id} in {year}: "
            f"requested {requested}, available {available}",
            context={
                "ship_id": ship_id,
                "year": year,
                "requested": requested,
                "available": available,
            },
        )
        self.ship_id = ship_id
        self.year = year
        self.requested = requested
        self.available = available


class PoolInadmissibleError(LedgerException):
    """The pool's total CB is negative or an allocation invariant broke.

    Nothing has been persisted when this is raised.
    """


class IdempotencyConflictError(LedgerException):
    """A request id was reused for a different ship, year, or operation."""


class LedgerStoreError(LedgerException):
    """The store failed (unavailable, transaction aborted).

    The transaction has been rolled back; no partial writes are visible.
    """

    client_error = False


__all__ = [
    "LedgerException",
    "ValidationError",
    "InsufficientSurplusError",
    "PoolInadmissibleError",
    "IdempotencyConflictError",
    "LedgerStoreError",
]
