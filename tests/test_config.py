"""Tests for LedgerConfig and its environment loading."""

import pytest

from fueleu_ledger.config import (
    ENERGY_CONVERSION_FACTOR,
    TARGET_INTENSITY_2025,
    LedgerConfig,
    _parse_target_intensities,
    get_config,
    reset_config,
    set_config,
)


class TestLedgerConfigDefaults:

    def test_regulatory_defaults(self):
        cfg = LedgerConfig()
        assert cfg.target_intensity == TARGET_INTENSITY_2025 == 89.3368
        assert cfg.energy_conversion_factor == ENERGY_CONVERSION_FACTOR == 41000.0
        assert cfg.target_intensities == {}

    def test_behaviour_defaults(self):
        cfg = LedgerConfig()
        assert cfg.allow_route_id_fallback is True
        assert cfg.enable_provenance is True
        assert cfg.echo_sql is False
        assert cfg.balance_tolerance == 1e-6
        assert cfg.database_url == "sqlite:///fueleu_ledger.db"

    def test_target_intensity_for_uses_year_override(self):
        cfg = LedgerConfig(target_intensities={2030: 85.6904})
        assert cfg.target_intensity_for(2030) == 85.6904
        assert cfg.target_intensity_for(2025) == 89.3368


class TestFromEnv:

    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("FUELEU_TARGET_INTENSITY", "90.0")
        monkeypatch.setenv("FUELEU_ENERGY_CONVERSION_FACTOR", "42000")
        monkeypatch.setenv("FUELEU_ALLOW_ROUTE_ID_FALLBACK", "false")
        monkeypatch.setenv("FUELEU_DATABASE_URL", "sqlite://")
        monkeypatch.setenv("FUELEU_ECHO_SQL", "yes")
        monkeypatch.setenv("FUELEU_ENABLE_PROVENANCE", "0")

        cfg = LedgerConfig.from_env()

        assert cfg.target_intensity == 90.0
        assert cfg.energy_conversion_factor == 42000.0
        assert cfg.allow_route_id_fallback is False
        assert cfg.database_url == "sqlite://"
        assert cfg.echo_sql is True
        assert cfg.enable_provenance is False

    def test_target_intensities(self, monkeypatch):
        monkeypatch.setenv("FUELEU_TARGET_INTENSITIES", "2025:89.3368, 2030:85.6904")

        cfg = LedgerConfig.from_env()

        assert cfg.target_intensities == {2025: 89.3368, 2030: 85.6904}

    def test_invalid_float_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("FUELEU_TARGET_INTENSITY", "not-a-number")

        cfg = LedgerConfig.from_env()

        assert cfg.target_intensity == TARGET_INTENSITY_2025

    def test_invalid_target_intensities_are_ignored(self, monkeypatch):
        monkeypatch.setenv("FUELEU_TARGET_INTENSITIES", "2025-89")

        assert LedgerConfig.from_env().target_intensities == {}

    def test_parse_rejects_malformed_pair(self):
        with pytest.raises(ValueError):
            _parse_target_intensities("2025")


class TestSingleton:

    def test_set_and_get(self):
        cfg = LedgerConfig(target_intensity=80.0)
        set_config(cfg)
        assert get_config() is cfg

    def test_reset_rebuilds_from_env(self, monkeypatch):
        monkeypatch.setenv("FUELEU_TARGET_INTENSITY", "77.5")
        reset_config()
        assert get_config().target_intensity == 77.5
        assert get_config() is get_config()
