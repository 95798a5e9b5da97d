"""Tests for govoracle.core.config - OracleSettings and global config management.

Tests cover:
- Settings loading with defaults
- Environment variable overrides
- Network descriptors (inline JSON and file)
- Singleton behavior (get_config / clear_config_cache)
- Computed properties (connection_params, pool_config)
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from govoracle.core.config import (
    DEFAULT_BEACON_CHAIN_HASH,
    NetworkConfig,
    OracleSettings,
    clear_config_cache,
    get_config,
)
from govoracle.core.exceptions import ConfigException

NETWORK = {
    "id": 314,
    "name": "filecoin",
    "rpc_url": "https://api.node.glif.io/rpc/v1",
    "governance_contract": "0x1111111111111111111111111111111111111111",
    "oracle_contract": "0x2222222222222222222222222222222222222222",
    "deployment_height": 3_500_000,
}


class TestOracleSettingsDefaults:
    def test_database_defaults(self, clean_env):
        settings = OracleSettings()

        assert settings.db_host == "localhost"
        assert settings.db_port == 5432
        assert settings.db_name == "govoracle"
        assert settings.db_pool_min == 2
        assert settings.db_pool_max == 10
        assert settings.db_statement_timeout_seconds == 180

    def test_timeouts_and_schedule(self, clean_env):
        settings = OracleSettings()

        assert settings.rpc_timeout_seconds == 15.0
        assert settings.power_timeout_seconds == 15.0
        assert settings.beacon_timeout_seconds == 15.0
        assert settings.sync_interval_seconds == 10.0
        assert settings.tally_interval_seconds == 300.0
        assert settings.power_backup_interval_seconds == 3600.0
        assert settings.power_backup_enabled is True
        assert settings.sync_block_limit == 2880

    def test_sealing_and_tally_defaults(self, clean_env):
        settings = OracleSettings()

        assert settings.seal_max_attempts == 5
        assert settings.beacon_chain_hash == DEFAULT_BEACON_CHAIN_HASH
        assert len(settings.beacon_urls) >= 2
        assert settings.tally_rule == "proposal"
        assert settings.tally_options == ["approve", "reject"]

    def test_no_networks_by_default(self, clean_env):
        assert OracleSettings().networks == []


class TestEnvironmentOverrides:
    def test_scalar_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOVORACLE_DB_HOST", "db.internal")
        monkeypatch.setenv("GOVORACLE_DB_PORT", "6543")
        monkeypatch.setenv("GOVORACLE_SEAL_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("GOVORACLE_POWER_BACKUP_ENABLED", "false")

        settings = OracleSettings()
        assert settings.db_host == "db.internal"
        assert settings.db_port == 6543
        assert settings.seal_max_attempts == 3
        assert settings.power_backup_enabled is False

    def test_list_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOVORACLE_BEACON_URLS", '["https://a.example", "https://b.example"]')
        monkeypatch.setenv("GOVORACLE_TALLY_OPTIONS", '["yes", "no", "abstain"]')

        settings = OracleSettings()
        assert settings.beacon_urls == ["https://a.example", "https://b.example"]
        assert settings.tally_options == ["yes", "no", "abstain"]

    def test_seal_attempts_must_be_positive(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOVORACLE_SEAL_MAX_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            OracleSettings()


class TestNetworks:
    def test_inline_networks(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOVORACLE_NETWORKS", json.dumps([NETWORK]))

        settings = OracleSettings()
        assert settings.network_ids == [314]
        (network,) = settings.networks
        assert network.name == "filecoin"
        assert network.deployment_height == 3_500_000
        assert network.governance_abi is None

    def test_networks_file(self, clean_env, monkeypatch, tmp_path):
        path = tmp_path / "networks.json"
        path.write_text(json.dumps([NETWORK, {**NETWORK, "id": 314159, "name": "calibration"}]))
        monkeypatch.setenv("GOVORACLE_NETWORKS_FILE", str(path))

        settings = OracleSettings()
        assert settings.network_ids == [314, 314159]

    def test_inline_networks_win_over_file(self, clean_env, monkeypatch, tmp_path):
        path = tmp_path / "networks.json"
        path.write_text(json.dumps([{**NETWORK, "id": 1}]))
        monkeypatch.setenv("GOVORACLE_NETWORKS", json.dumps([NETWORK]))
        monkeypatch.setenv("GOVORACLE_NETWORKS_FILE", str(path))

        assert OracleSettings().network_ids == [314]

    def test_missing_networks_file(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("GOVORACLE_NETWORKS_FILE", str(tmp_path / "absent.json"))
        with pytest.raises(ConfigException, match="Cannot read networks file"):
            OracleSettings()

    def test_invalid_descriptor_in_file(self, clean_env, monkeypatch, tmp_path):
        path = tmp_path / "networks.json"
        path.write_text(json.dumps([{"id": "not-a-number"}]))
        monkeypatch.setenv("GOVORACLE_NETWORKS_FILE", str(path))
        with pytest.raises(ConfigException, match="Invalid network descriptor"):
            OracleSettings()

    def test_network_config_is_immutable(self):
        network = NetworkConfig(**NETWORK)
        with pytest.raises(ValidationError):
            network.rpc_url = "http://elsewhere"


class TestComputedProperties:
    def test_connection_params_carry_statement_timeout(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOVORACLE_DB_PASSWORD", "secret")
        params = OracleSettings().connection_params

        assert params["dbname"] == "govoracle"
        assert params["password"] == "secret"
        assert params["options"] == "-c statement_timeout=180000"

    def test_pool_config(self, clean_env):
        assert OracleSettings().pool_config == {"minconn": 2, "maxconn": 10}


class TestGlobalConfig:
    def test_singleton(self, clean_env):
        assert get_config() is get_config()

    def test_clear_cache_rebuilds(self, clean_env, monkeypatch):
        first = get_config()
        monkeypatch.setenv("GOVORACLE_DB_NAME", "other")
        assert get_config().db_name == first.db_name

        clear_config_cache()
        assert get_config().db_name == "other"
