"""Global test fixtures for the govoracle test suite."""

from __future__ import annotations

import dataclasses
import os
from contextlib import contextmanager
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from govoracle.core.config import NetworkConfig, clear_config_cache
from govoracle.core.db import ConnectionPool
from govoracle.core.models import (
    PowerDimension,
    PowerSnapshot,
    Proposal,
    ProposalStatus,
    SyncCursor,
    Vote,
    VoteResult,
)

GOVERNANCE_ADDRESS = "0x1111111111111111111111111111111111111111"
ORACLE_ADDRESS = "0x2222222222222222222222222222222222222222"


def pytest_configure(config):
    config.addinivalue_line("markers", "requires_postgres: mark test as requiring a real PostgreSQL database")


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all GOVORACLE_ environment variables and the cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("GOVORACLE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(os.path.dirname(__file__))  # keep a developer's .env out of the tests
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture(autouse=True)
def reset_db_pool():
    """Reset the connection pool singleton around every test."""
    ConnectionPool.reset_instance()
    yield
    ConnectionPool.reset_instance()


@pytest.fixture
def mock_get_cursor():
    """Patch the store's get_cursor; yields the MagicMock cursor."""
    cursor = MagicMock()
    cursor.rowcount = 1

    @contextmanager
    def fake_get_cursor(dict_cursor: bool = True):
        yield cursor

    with patch("govoracle.storage.store.get_cursor", fake_get_cursor):
        yield cursor


# ============================================================================
# Domain factories
# ============================================================================


@pytest.fixture
def network_config() -> NetworkConfig:
    return NetworkConfig(
        id=314,
        name="filecoin",
        rpc_url="http://localhost:8545",
        governance_contract=GOVERNANCE_ADDRESS,
        oracle_contract=ORACLE_ADDRESS,
        deployment_height=100,
    )


@pytest.fixture
def proposal_factory():
    def factory(
        proposal_id: int = 1,
        network_id: int = 314,
        expiration_time: int = 1_700_000_000,
        status: ProposalStatus = ProposalStatus.ACTIVE,
        shares: dict[PowerDimension, int] | None = None,
        snapshot_day: date = date(2023, 11, 14),
    ) -> Proposal:
        return Proposal(
            network_id=network_id,
            proposal_id=proposal_id,
            creator="0x" + "ab" * 20,
            content="Raise the storage subsidy",
            title="FIP-0099",
            start_time=expiration_time - 86400,
            expiration_time=expiration_time,
            snapshot_day=snapshot_day,
            shares=shares
            if shares is not None
            else {
                PowerDimension.DEVELOPER: 25,
                PowerDimension.SP: 25,
                PowerDimension.CLIENT: 25,
                PowerDimension.TOKEN_HOLDER: 25,
            },
            status=status,
        )

    return factory


@pytest.fixture
def vote_factory():
    def factory(
        voter: str,
        option: str = "approve",
        proposal_id: int = 1,
        network_id: int = 314,
        block_number: int = 200,
        log_index: int = 0,
        payload: str | None = None,
    ) -> Vote:
        return Vote(
            network_id=network_id,
            proposal_id=proposal_id,
            voter=voter,
            payload=payload if payload is not None else f'[["{option}"]]',
            tx_hash="0x" + f"{block_number:032x}{log_index:032x}",
            log_index=log_index,
            block_number=block_number,
            block_time=1_699_999_000,
        )

    return factory


@pytest.fixture
def snapshot_factory():
    def factory(
        address: str,
        developer: int = 0,
        sp: int = 0,
        client: int = 0,
        token_holder: int = 0,
        network_id: int = 314,
        day: date = date(2023, 11, 14),
    ) -> PowerSnapshot:
        return PowerSnapshot(
            network_id=network_id,
            address=address,
            day=day,
            developer=developer,
            sp=sp,
            client=client,
            token_holder=token_holder,
            block_height=3_000_000,
        )

    return factory


# ============================================================================
# In-memory store
# ============================================================================


class FakeStore:
    """In-memory GovernanceStore with the same method surface and semantics."""

    def __init__(self):
        self.cursors: dict[int, SyncCursor] = {}
        self.proposals: dict[tuple[int, int], Proposal] = {}
        self.votes: dict[tuple[int, str, int], Vote] = {}
        self.results: dict[tuple[int, int], list[VoteResult]] = {}
        self.snapshots: dict[tuple[int, str, date], PowerSnapshot] = {}
        self.commits = 0

    def get_sync_cursor(self, network_id: int) -> SyncCursor | None:
        return self.cursors.get(network_id)

    def get_sync_height(self, network_id: int, default: int = 0) -> int:
        cursor = self.cursors.get(network_id)
        return default if cursor is None else cursor.height

    def commit_sync_range(self, network_id, proposals, votes, height, block_time):
        new_proposals = 0
        new_votes = 0
        for p in proposals:
            key = (network_id, p.proposal_id)
            if key not in self.proposals:
                self.proposals[key] = dataclasses.replace(p)
                new_proposals += 1
        for v in votes:
            key = (network_id, v.tx_hash, v.log_index)
            if key not in self.votes:
                self.votes[key] = dataclasses.replace(v)
                new_votes += 1
        current = self.cursors.get(network_id)
        if current is None or height >= current.height:
            self.cursors[network_id] = SyncCursor(network_id=network_id, height=height, block_time=block_time)
        self.commits += 1
        return new_proposals, new_votes

    def expire_proposals(self, network_id: int, now: int) -> int:
        count = 0
        for (nid, _), p in self.proposals.items():
            if nid == network_id and p.status == ProposalStatus.ACTIVE and p.expiration_time <= now:
                p.status = ProposalStatus.EXPIRED
                count += 1
        return count

    def list_expired_proposals(self, network_id: int) -> list[Proposal]:
        return sorted(
            (p for (nid, _), p in self.proposals.items() if nid == network_id and p.status == ProposalStatus.EXPIRED),
            key=lambda p: p.proposal_id,
        )

    def get_proposal(self, network_id: int, proposal_id: int) -> Proposal | None:
        return self.proposals.get((network_id, proposal_id))

    def list_votes(self, network_id: int, proposal_id: int) -> list[Vote]:
        return sorted(
            (v for v in self.votes.values() if v.network_id == network_id and v.proposal_id == proposal_id),
            key=lambda v: v.position,
        )

    def save_tally(self, network_id, proposal_id, results, counted) -> bool:
        self.results[(network_id, proposal_id)] = list(results)
        proposal = self.proposals.get((network_id, proposal_id))
        if counted and proposal is not None and proposal.status == ProposalStatus.EXPIRED:
            proposal.status = ProposalStatus.COUNTED
            return True
        return False

    def list_results(self, network_id: int, proposal_id: int) -> list[VoteResult]:
        return sorted(self.results.get((network_id, proposal_id), []), key=lambda r: r.option_id)

    def get_power_snapshot(self, network_id, address, day) -> PowerSnapshot | None:
        return self.snapshots.get((network_id, address, day))

    def save_power_snapshot(self, snapshot: PowerSnapshot) -> bool:
        key = (snapshot.network_id, snapshot.address, snapshot.day)
        if key in self.snapshots:
            return False
        self.snapshots[key] = snapshot
        return True

    def list_backup_targets(self, network_id: int) -> list[tuple[str, date]]:
        targets = set()
        for v in self.votes.values():
            p = self.proposals.get((v.network_id, v.proposal_id))
            if v.network_id != network_id or p is None or p.status == ProposalStatus.COUNTED:
                continue
            if (network_id, v.voter, p.snapshot_day) not in self.snapshots:
                targets.add((v.voter, p.snapshot_day))
        return sorted(targets, key=lambda t: (t[1], t[0]))

    def add_proposal(self, proposal: Proposal) -> None:
        self.proposals[(proposal.network_id, proposal.proposal_id)] = proposal

    def add_vote(self, vote: Vote) -> None:
        self.votes[(vote.network_id, vote.tx_hash, vote.log_index)] = vote


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()
