# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Govoracle Contributors

"""Event synchronization: contract logs -> proposals / votes, per network.

One run for one network:
1. read the network's cursor (last fully ingested height)
2. query governance logs for (cursor, min(head, cursor + block_limit)]
3. decode every log; any malformed log aborts the run
4. write the rows and the new cursor in one transaction

The cursor only ever moves with the rows it produced, so a failed run is
retried in full on the next firing and replays are absorbed by the store's
uniqueness constraints.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..chain.client_cache import TRANSPORT_ERRORS, ClientCache, ClientHandle
from ..chain.events import EventDecoder, ProposalCreated, VoteCast
from ..core.exceptions import ChainConnectionError, DialError
from ..storage.store import GovernanceStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync run for one network."""

    network_id: int
    from_block: int  # exclusive: the cursor before the run
    to_block: int  # the cursor after the run
    head: int
    proposals: int = 0  # rows inserted
    votes: int = 0
    logs: int = 0
    duration_ms: float = 0.0

    @property
    def up_to_date(self) -> bool:
        return self.to_block >= self.head

    def to_dict(self) -> dict[str, Any]:
        return {
            "network_id": self.network_id,
            "from_block": self.from_block,
            "to_block": self.to_block,
            "head": self.head,
            "proposals": self.proposals,
            "votes": self.votes,
            "logs": self.logs,
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass
class _NetworkStats:
    runs: int = 0
    proposals: int = 0
    votes: int = 0
    last_result: SyncResult | None = field(default=None)


class EventSyncEngine:
    """Advances each network's cursor while ingesting governance events.

    Args:
        clients: Shared client registry.
        store: Row store.
        block_limit: Maximum number of blocks ingested per run.
        rpc_concurrency: Parallel block lookups per run.
    """

    def __init__(
        self,
        clients: ClientCache,
        store: GovernanceStore,
        block_limit: int = 2880,
        rpc_concurrency: int = 8,
    ):
        self._clients = clients
        self._store = store
        self._block_limit = block_limit
        self._rpc_concurrency = rpc_concurrency
        self._decoders: dict[int, EventDecoder] = {}
        self._stats: dict[int, _NetworkStats] = {}

    def _decoder_for(self, handle: ClientHandle) -> EventDecoder:
        decoder = self._decoders.get(handle.network_id)
        if decoder is None:
            decoder = EventDecoder(handle.governance)
            self._decoders[handle.network_id] = decoder
        return decoder

    async def sync_network(self, network_id: int) -> SyncResult:
        """Run one sync pass for `network_id`.

        Raises:
            DialError: the node could not be reached; nothing was written
            DecodeError: a governance log is malformed; nothing was written
            DatabaseError: the commit failed; nothing was written
        """
        started = time.monotonic()
        try:
            handle = await self._clients.get_client(network_id)
        except ChainConnectionError as e:
            raise DialError(network_id, e.message) from e
        decoder = self._decoder_for(handle)

        initial = max(handle.network.deployment_height - 1, 0)
        cursor = await asyncio.to_thread(self._store.get_sync_height, network_id, initial)

        try:
            head = await handle.w3.eth.block_number
        except TRANSPORT_ERRORS as e:
            raise DialError(network_id, str(e)) from e

        if head <= cursor:
            logger.debug("Network %d up to date at block %d (head %d)", network_id, cursor, head)
            return SyncResult(network_id=network_id, from_block=cursor, to_block=cursor, head=head)

        to_block = min(head, cursor + self._block_limit)
        try:
            logs = await handle.w3.eth.get_logs(
                {
                    "address": handle.governance.address,
                    "fromBlock": cursor + 1,
                    "toBlock": to_block,
                    "topics": [decoder.topics],
                }
            )
        except TRANSPORT_ERRORS as e:
            raise DialError(network_id, str(e)) from e

        ordered = sorted(logs, key=lambda log: (log["blockNumber"], log["logIndex"]))
        events = [event for event in (decoder.decode(log) for log in ordered) if event is not None]

        heights = {event.position.block_number for event in events}
        heights.add(to_block)
        block_times = await self._block_times(handle, heights)

        proposals = [
            e.to_proposal(network_id, block_times[e.position.block_number]) for e in events if isinstance(e, ProposalCreated)
        ]
        votes = [e.to_vote(network_id, block_times[e.position.block_number]) for e in events if isinstance(e, VoteCast)]

        new_proposals, new_votes = await asyncio.to_thread(
            self._store.commit_sync_range,
            network_id,
            proposals,
            votes,
            to_block,
            block_times[to_block],
        )

        result = SyncResult(
            network_id=network_id,
            from_block=cursor,
            to_block=to_block,
            head=head,
            proposals=new_proposals,
            votes=new_votes,
            logs=len(logs),
            duration_ms=(time.monotonic() - started) * 1000,
        )
        self._record(result)
        logger.info(
            "Synced network %d blocks %d-%d: %d log(s), %d new proposal(s), %d new vote(s)%s",
            network_id,
            cursor + 1,
            to_block,
            len(logs),
            new_proposals,
            new_votes,
            "" if result.up_to_date else f" ({head - to_block} block(s) behind)",
        )
        return result

    async def _block_times(self, handle: ClientHandle, heights: set[int]) -> dict[int, int]:
        """Timestamp of each block, fetched once per block."""
        ordered = sorted(heights)
        semaphore = asyncio.Semaphore(self._rpc_concurrency)

        async def fetch(height: int) -> Any:
            async with semaphore:
                return await handle.w3.eth.get_block(height)

        try:
            blocks = await asyncio.gather(*(fetch(h) for h in ordered))
        except TRANSPORT_ERRORS as e:
            raise DialError(handle.network_id, str(e)) from e
        return {h: int(block["timestamp"]) for h, block in zip(ordered, blocks, strict=True)}

    def _record(self, result: SyncResult) -> None:
        stats = self._stats.setdefault(result.network_id, _NetworkStats())
        stats.runs += 1
        stats.proposals += result.proposals
        stats.votes += result.votes
        stats.last_result = result

    def get_stats(self) -> dict[str, Any]:
        """Per-network ingestion counters."""
        return {
            str(network_id): {
                "runs": stats.runs,
                "proposals": stats.proposals,
                "votes": stats.votes,
                "last_result": stats.last_result.to_dict() if stats.last_result else None,
            }
            for network_id, stats in self._stats.items()
        }
