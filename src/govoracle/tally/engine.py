# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Govoracle Contributors

"""Vote tally: expired proposals -> weighted per-option results.

Per network and run:
1. proposals whose expiration is at or before the block time of the sync
   cursor move ACTIVE -> EXPIRED
2. every EXPIRED proposal is recomputed from its stored votes (latest vote
   per voter), each voter weighted by historical power
3. results replace any earlier rows; the proposal moves to COUNTED in the
   same transaction, and only if every voter was resolved

A voter whose power or sealed ballot cannot be resolved yet is left out of
this run's totals and keeps the proposal EXPIRED, so a later run recomputes
it from scratch. A payload that can never be read is excluded for good.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.exceptions import (
    BallotDecodeError,
    DatabaseError,
    NoBeaconAvailableError,
    PartialTallyFailure,
    PowerParseError,
    PowerServiceError,
    RoundNotPublishedError,
)
from ..core.models import PowerDimension, PowerSnapshot, Proposal, Vote, VoteResult
from ..power.aggregator import PowerAggregator
from ..storage.store import GovernanceStore
from .ballots import BallotReader
from .weighting import WeightingRule, share_percentages

logger = logging.getLogger(__name__)


@dataclass
class TallyOutcome:
    """Result of tallying one proposal."""

    network_id: int
    proposal_id: int
    results: list[VoteResult] = field(default_factory=list)
    counted: bool = False
    excluded: list[str] = field(default_factory=list)  # voters with unreadable ballots
    failure: PartialTallyFailure | None = None

    def totals(self) -> dict[str, int]:
        return {r.option_id: r.weight for r in self.results}


@dataclass
class TallyRunResult:
    network_id: int
    expired: int = 0
    outcomes: list[TallyOutcome] = field(default_factory=list)
    errors: int = 0

    @property
    def counted(self) -> int:
        return sum(1 for o in self.outcomes if o.counted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "network_id": self.network_id,
            "expired": self.expired,
            "tallied": len(self.outcomes),
            "counted": self.counted,
            "errors": self.errors,
        }


def latest_votes(votes: list[Vote]) -> list[Vote]:
    """One vote per voter: the last one cast in chain order."""
    latest: dict[str, Vote] = {}
    for vote in votes:
        key = vote.voter.lower()
        current = latest.get(key)
        if current is None or vote.position > current.position:
            latest[key] = vote
    return sorted(latest.values(), key=lambda v: v.position)


class VoteTallyEngine:
    """Tallies expired proposals of one network per run.

    Args:
        store: Row store.
        aggregator: Power service client for snapshots not yet stored.
        rule: Weighting rule turning a snapshot into a vote weight.
        ballots: Reads (and opens sealed) vote payloads.
        options: Option ids that always get a result row.
        concurrency: Parallel voter resolutions per proposal.
    """

    def __init__(
        self,
        store: GovernanceStore,
        aggregator: PowerAggregator,
        rule: WeightingRule,
        ballots: BallotReader,
        options: list[str] | None = None,
        concurrency: int = 8,
    ):
        self._store = store
        self._aggregator = aggregator
        self._rule = rule
        self._ballots = ballots
        self._options = list(options) if options is not None else ["approve", "reject"]
        self._concurrency = concurrency

    async def run(self, network_id: int) -> TallyRunResult:
        """Expire due proposals and tally every expired one.

        A failure on one proposal is logged and does not stop the others.
        """
        result = TallyRunResult(network_id=network_id)
        cursor = await asyncio.to_thread(self._store.get_sync_cursor, network_id)
        if cursor is None:
            logger.debug("Network %d not synced yet, nothing to tally", network_id)
            return result

        result.expired = await asyncio.to_thread(self._store.expire_proposals, network_id, cursor.block_time)
        if result.expired:
            logger.info("Network %d: %d proposal(s) expired at block time %d", network_id, result.expired, cursor.block_time)

        proposals = await asyncio.to_thread(self._store.list_expired_proposals, network_id)
        for proposal in proposals:
            try:
                result.outcomes.append(await self.tally_proposal(proposal))
            except DatabaseError:
                result.errors += 1
                logger.exception("Tally of proposal %d on network %d failed", proposal.proposal_id, network_id)
        return result

    async def tally_proposal(self, proposal: Proposal) -> TallyOutcome:
        """Recompute and persist the results of one proposal."""
        network_id = proposal.network_id
        outcome = TallyOutcome(network_id=network_id, proposal_id=proposal.proposal_id)
        votes = latest_votes(await asyncio.to_thread(self._store.list_votes, network_id, proposal.proposal_id))

        unresolved: list[str] = []
        semaphore = asyncio.Semaphore(self._concurrency)

        async def resolve(vote: Vote) -> tuple[str, PowerSnapshot] | None:
            async with semaphore:
                try:
                    option = await self._ballots.read(vote.payload, proposal.expiration_time)
                except BallotDecodeError as e:
                    logger.warning("Excluding vote of %s on proposal %d: %s", vote.voter, proposal.proposal_id, e.message)
                    outcome.excluded.append(vote.voter)
                    return None
                except (RoundNotPublishedError, NoBeaconAvailableError) as e:
                    logger.info("Ballot of %s on proposal %d not openable yet: %s", vote.voter, proposal.proposal_id, e.message)
                    unresolved.append(vote.voter)
                    return None

                try:
                    snapshot = await self.resolve_power(proposal, vote.voter)
                except (PowerParseError, PowerServiceError, DatabaseError) as e:
                    logger.warning("Power of %s on proposal %d unresolved: %s", vote.voter, proposal.proposal_id, e.message)
                    unresolved.append(vote.voter)
                    return None
                return option, snapshot

        resolved = await asyncio.gather(*(resolve(vote) for vote in votes))

        results: dict[str, VoteResult] = {
            option: VoteResult(network_id=network_id, proposal_id=proposal.proposal_id, option_id=option)
            for option in self._options
        }
        for item in resolved:
            if item is None:
                continue
            option, snapshot = item
            row = results.setdefault(
                option,
                VoteResult(network_id=network_id, proposal_id=proposal.proposal_id, option_id=option),
            )
            row.weight += self._rule(snapshot, proposal)
            row.vote_count += 1
            for dimension in PowerDimension:
                row.dimension_totals[dimension] = row.dimension_totals.get(dimension, 0) + snapshot.component(dimension)

        counted_votes = sum(r.vote_count for r in results.values())
        percentages = share_percentages(
            {option: r.dimension_totals for option, r in results.items()},
            proposal.shares,
            counted_votes,
        )
        for option, row in results.items():
            row.percentage = percentages[option]

        outcome.results = sorted(results.values(), key=lambda r: r.option_id)
        complete = not unresolved
        outcome.counted = await asyncio.to_thread(
            self._store.save_tally,
            network_id,
            proposal.proposal_id,
            outcome.results,
            complete,
        )

        if unresolved:
            outcome.failure = PartialTallyFailure(network_id, proposal.proposal_id, unresolved)
            logger.warning("%s; proposal stays expired", outcome.failure.message)
        else:
            logger.info(
                "Proposal %d on network %d counted: %s",
                proposal.proposal_id,
                network_id,
                ", ".join(f"{r.option_id}={r.weight} ({r.percentage}%)" for r in outcome.results),
            )
        return outcome

    async def resolve_power(self, proposal: Proposal, voter: str) -> PowerSnapshot:
        """Voter's power as of the proposal's snapshot day.

        A stored snapshot wins; otherwise the power service is asked and
        its answer is stored so later runs see the same figures.
        """
        day = proposal.snapshot_day
        snapshot = await asyncio.to_thread(self._store.get_power_snapshot, proposal.network_id, voter, day)
        if snapshot is not None:
            return snapshot
        snapshot = await self._aggregator.get_power(proposal.network_id, voter, day)
        await asyncio.to_thread(self._store.save_power_snapshot, snapshot)
        return snapshot
