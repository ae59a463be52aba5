# -*- coding: utf-8 -*-
"""
FuelEU Ledger Configuration

Centralized configuration for the FuelEU compliance ledger covering:
- Regulatory constants (target GHG intensity, energy conversion factor)
- Year-specific target intensity overrides
- The deprecated ship-id-as-route-id resolution fallback
- Relational store connection settings
- Pool balance tolerance and provenance toggle

All settings can be overridden via environment variables with the
``FUELEU_`` prefix (e.g. ``FUELEU_TARGET_INTENSITY``).

Example:
    >>> from fueleu_ledger.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.target_intensity_for(2025), cfg.energy_conversion_factor)
    89.3368 41000.0
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "FUELEU_"

# ---------------------------------------------------------------------------
# Regulatory defaults
# ---------------------------------------------------------------------------

#: Target GHG intensity for 2025 in gCO2e/MJ (2% below the 91.16 reference).
TARGET_INTENSITY_2025 = 89.3368

#: Energy content of marine fuel, MJ per tonne.
ENERGY_CONVERSION_FACTOR = 41_000.0


def _parse_target_intensities(raw: str) -> Dict[int, float]:
    """Parse ``"2025:89.3368,2030:85.6904"`` into a year -> target mapping.

    Raises:
        ValueError: If any pair is malformed.
    """
    targets: Dict[int, float] = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        year, _, value = chunk.partition(":")
        if not value:
            raise ValueError(f"expected 'year:value', got {chunk!r}")
        targets[int(year.strip())] = float(value.strip())
    return targets


# ---------------------------------------------------------------------------
# LedgerConfig
# ---------------------------------------------------------------------------


@dataclass
class LedgerConfig:
    """Complete configuration for the FuelEU compliance ledger.

    Attributes:
        target_intensity: Default target GHG intensity in gCO2e/MJ.
        target_intensities: Per-year overrides of the target intensity.
        energy_conversion_factor: MJ of energy per tonne of fuel.
        allow_route_id_fallback: Resolve an unknown ship id as a route id.
            Deprecated compatibility path, kept on by default.
        database_url: SQLAlchemy URL of the relational store.
        echo_sql: Echo SQL statements emitted by the store engine.
        balance_tolerance: Tolerance for pool conservation checks, scaled by
            the pool magnitude when that exceeds 1 gCO2e.
        enable_provenance: Record ledger operations in the provenance chain.
    """

    # -- Regulation ----------------------------------------------------------
    target_intensity: float = TARGET_INTENSITY_2025
    target_intensities: Dict[int, float] = field(default_factory=dict)
    energy_conversion_factor: float = ENERGY_CONVERSION_FACTOR

    # -- Route resolution ----------------------------------------------------
    allow_route_id_fallback: bool = True

    # -- Store ---------------------------------------------------------------
    database_url: str = "sqlite:///fueleu_ledger.db"
    echo_sql: bool = False

    # -- Pooling / audit -----------------------------------------------------
    balance_tolerance: float = 1e-6
    enable_provenance: bool = True

    def target_intensity_for(self, year: int) -> float:
        """Return the target intensity that applies to ``year``."""
        return self.target_intensities.get(year, self.target_intensity)

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Build a LedgerConfig from environment variables.

        Every field can be overridden via ``FUELEU_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        ``FUELEU_TARGET_INTENSITIES`` takes ``year:value`` pairs separated
        by commas.

        Returns:
            Populated LedgerConfig instance.
        """
        prefix = _ENV_PREFIX
        defaults = cls()

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val)
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%s, using default %s",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        def _targets(name: str) -> Dict[int, float]:
            val = _env(name)
            if not val:
                return {}
            try:
                return _parse_target_intensities(val)
            except ValueError:
                logger.warning(
                    "Invalid target intensities for %s%s=%s, ignoring",
                    prefix, name, val,
                )
                return {}

        config = cls(
            target_intensity=_float("TARGET_INTENSITY", defaults.target_intensity),
            target_intensities=_targets("TARGET_INTENSITIES"),
            energy_conversion_factor=_float(
                "ENERGY_CONVERSION_FACTOR", defaults.energy_conversion_factor,
            ),
            allow_route_id_fallback=_bool(
                "ALLOW_ROUTE_ID_FALLBACK", defaults.allow_route_id_fallback,
            ),
            database_url=_str("DATABASE_URL", defaults.database_url),
            echo_sql=_bool("ECHO_SQL", defaults.echo_sql),
            balance_tolerance=_float(
                "BALANCE_TOLERANCE", defaults.balance_tolerance,
            ),
            enable_provenance=_bool(
                "ENABLE_PROVENANCE", defaults.enable_provenance,
            ),
        )

        logger.info(
            "LedgerConfig loaded: target=%.4f (overrides=%d), factor=%.1f, "
            "route_id_fallback=%s, provenance=%s",
            config.target_intensity,
            len(config.target_intensities),
            config.energy_conversion_factor,
            config.allow_route_id_fallback,
            config.enable_provenance,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[LedgerConfig] = None
_config_lock = threading.Lock()


def get_config() -> LedgerConfig:
    """Return the singleton LedgerConfig, creating from env if needed."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = LedgerConfig.from_env()
    return _config_instance


def set_config(config: LedgerConfig) -> None:
    """Replace the singleton LedgerConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("LedgerConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "TARGET_INTENSITY_2025",
    "ENERGY_CONVERSION_FACTOR",
    "LedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
