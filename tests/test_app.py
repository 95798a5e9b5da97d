"""Tests for govoracle.app - wiring and task registration."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from govoracle.app import OracleApp
from govoracle.core.config import NetworkConfig, OracleSettings
from govoracle.tally.weighting import RULES


def _settings(**overrides) -> OracleSettings:
    networks = [
        NetworkConfig(
            id=314,
            name="mainnet",
            rpc_url="http://node-a:1234/rpc/v1",
            governance_contract="0x1111111111111111111111111111111111111111",
            oracle_contract="0x2222222222222222222222222222222222222222",
            deployment_height=100,
        ),
        NetworkConfig(
            id=314159,
            name="calibration",
            rpc_url="http://node-b:1234/rpc/v1",
            governance_contract="0x3333333333333333333333333333333333333333",
            oracle_contract="0x4444444444444444444444444444444444444444",
            deployment_height=1,
        ),
    ]
    values = {"networks": networks, "tally_rule": "sum", "seal_max_attempts": 3}
    values.update(overrides)
    return OracleSettings(**values)


@pytest.mark.usefixtures("clean_env")
class TestOracleApp:
    def test_wiring(self, fake_store):
        app = OracleApp(_settings(), store=fake_store)

        assert app.store is fake_store
        assert app.encryptor.max_attempts == 3
        assert app.tally_engine._rule is RULES["sum"]

    def test_registers_tasks_per_network(self, fake_store):
        app = OracleApp(_settings(), store=fake_store)
        app.register_tasks()

        assert sorted(app.scheduler.tasks) == [
            "backup-314",
            "backup-314159",
            "sync-314",
            "sync-314159",
            "tally-314",
            "tally-314159",
        ]
        assert app.scheduler.tasks["sync-314"].interval == app.settings.sync_interval_seconds

    def test_backup_can_be_disabled(self, fake_store):
        app = OracleApp(_settings(power_backup_enabled=False), store=fake_store)
        app.register_tasks()
        assert not any(name.startswith("backup-") for name in app.scheduler.tasks)

    @pytest.mark.asyncio
    async def test_job_passes_network(self, fake_store):
        app = OracleApp(_settings(), store=fake_store)
        synced = []

        async def fake_sync(network_id):
            synced.append(network_id)

        with patch.object(app.sync_engine, "sync_network", fake_sync):
            app.register_tasks()
            await app.scheduler.tasks["sync-314159"].fire()

        assert synced == [314159]

    @pytest.mark.asyncio
    async def test_start_and_close(self, fake_store):
        app = OracleApp(_settings(), store=fake_store)
        with patch("govoracle.app.close_pool") as close_pool:
            with patch.object(app.scheduler, "start") as start:
                await app.start()
            await app.close()

        start.assert_awaited_once()
        assert len(app.scheduler.tasks) == 6
        close_pool.assert_called_once()
