# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Govoracle Contributors

"""Application wiring: one object owning every client, engine and the scheduler."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .chain.client_cache import ClientCache
from .core.config import OracleSettings, get_config
from .core.db import close_pool
from .power.aggregator import PowerAggregator
from .power.backup import PowerBackupService
from .scheduler import Scheduler
from .sealing.beacon import BeaconClient
from .sealing.encryptor import BallotOpener, SealedBallotEncryptor
from .storage.store import GovernanceStore
from .sync.engine import EventSyncEngine
from .tally.ballots import BallotReader
from .tally.engine import VoteTallyEngine
from .tally.weighting import get_rule

logger = logging.getLogger(__name__)


class OracleApp:
    """The read-only governance oracle.

    Built from settings; `register_tasks()` schedules, per configured
    network, a sync task, a tally task and (unless disabled) a power backup
    task. `close()` releases every session and the connection pool.
    """

    def __init__(self, settings: OracleSettings | None = None, store: GovernanceStore | None = None):
        self.settings = settings or get_config()
        s = self.settings

        self.store = store or GovernanceStore()
        self.clients = ClientCache(s.networks, rpc_timeout=s.rpc_timeout_seconds)
        self.aggregator = PowerAggregator(s.power_service_url, timeout=s.power_timeout_seconds, store=self.store)
        self.beacon = BeaconClient(s.beacon_urls, s.beacon_chain_hash, timeout=s.beacon_timeout_seconds)

        self.sync_engine = EventSyncEngine(
            self.clients, self.store, block_limit=s.sync_block_limit, rpc_concurrency=s.sync_rpc_concurrency
        )
        self.tally_engine = VoteTallyEngine(
            self.store,
            self.aggregator,
            get_rule(s.tally_rule),
            BallotReader(BallotOpener(self.beacon)),
            options=s.tally_options,
            concurrency=s.tally_concurrency,
        )
        self.backup = PowerBackupService(self.aggregator, self.store, concurrency=s.tally_concurrency)
        self.encryptor = SealedBallotEncryptor(self.beacon, max_attempts=s.seal_max_attempts)
        self.scheduler = Scheduler()

    def register_tasks(self) -> None:
        s = self.settings
        for network_id in s.network_ids:
            self.scheduler.add(f"sync-{network_id}", self._job(self.sync_engine.sync_network, network_id), s.sync_interval_seconds)
            self.scheduler.add(f"tally-{network_id}", self._job(self.tally_engine.run, network_id), s.tally_interval_seconds)
            if s.power_backup_enabled:
                self.scheduler.add(
                    f"backup-{network_id}",
                    self._job(self.backup.backup_network, network_id),
                    s.power_backup_interval_seconds,
                )

    @staticmethod
    def _job(func: Callable[[int], Awaitable[Any]], network_id: int) -> Callable[[], Awaitable[None]]:
        async def job() -> None:
            await func(network_id)

        return job

    async def start(self) -> None:
        if not self.scheduler.tasks:
            self.register_tasks()
        await self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.clients.close()
        await self.aggregator.close()
        await self.beacon.close()
        close_pool()
        logger.info("Oracle shut down")

    def get_stats(self) -> dict[str, Any]:
        return {
            "tasks": self.scheduler.get_stats(),
            "sync": self.sync_engine.get_stats(),
            "power": self.aggregator.get_stats(),
        }
