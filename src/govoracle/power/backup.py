"""Scheduled pre-fetch of historical power snapshots.

For every voter on a proposal that is not yet counted, persist the voter's
power as of the proposal's snapshot day, once. The tally later reads these
rows instead of asking the service again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..core.exceptions import PowerParseError, PowerServiceError
from ..storage.store import GovernanceStore
from .aggregator import PowerAggregator

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    network_id: int
    targets: int = 0
    saved: int = 0
    failed: list[str] = field(default_factory=list)


class PowerBackupService:
    """Persists missing power snapshots for one network per run.

    Args:
        aggregator: Power service client (its store receives the snapshots).
        store: Row store used to find what is missing.
        concurrency: Parallel requests per run.
    """

    def __init__(self, aggregator: PowerAggregator, store: GovernanceStore, concurrency: int = 8):
        self._aggregator = aggregator
        self._store = store
        self._concurrency = concurrency

    async def backup_network(self, network_id: int) -> BackupResult:
        targets = await asyncio.to_thread(self._store.list_backup_targets, network_id)
        result = BackupResult(network_id=network_id, targets=len(targets))
        if not targets:
            return result

        semaphore = asyncio.Semaphore(self._concurrency)

        async def backup_one(address: str, day) -> None:
            async with semaphore:
                try:
                    await self._aggregator.backup_power(network_id, address, day)
                    result.saved += 1
                except (PowerParseError, PowerServiceError) as e:
                    logger.warning("Power backup failed for %s on %s (network %d): %s", address, day, network_id, e)
                    result.failed.append(address)

        await asyncio.gather(*(backup_one(address, day) for address, day in targets))
        logger.info(
            "Power backup for network %d: %d/%d snapshot(s) saved, %d failed",
            network_id,
            result.saved,
            result.targets,
            len(result.failed),
        )
        return result
