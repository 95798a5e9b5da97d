"""Tests for govoracle.core.models - row mapping and derived values."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from govoracle.core.models import (
    PowerDimension,
    PowerSnapshot,
    Proposal,
    ProposalStatus,
    Vote,
    VoteResult,
    utc_day,
)


def test_utc_day():
    assert utc_day(1_700_000_000) == date(2023, 11, 14)
    assert utc_day(0) == date(1970, 1, 1)


class TestProposal:
    def test_from_row(self):
        row = {
            "network_id": 314,
            "proposal_id": Decimal(12),
            "creator": "0xabc",
            "content": "text",
            "title": None,
            "start_time": 10,
            "expiration_time": 20,
            "snapshot_day": date(2024, 1, 31),
            "developer_share": 40,
            "sp_share": 30,
            "client_share": 20,
            "token_holder_share": 10,
            "status": "expired",
            "block_number": 99,
        }
        proposal = Proposal.from_row(row)

        assert proposal.proposal_id == 12
        assert proposal.title == ""
        assert proposal.status == ProposalStatus.EXPIRED
        assert proposal.share(PowerDimension.DEVELOPER) == 40
        assert proposal.share(PowerDimension.TOKEN_HOLDER) == 10

    def test_to_dict(self, proposal_factory):
        data = proposal_factory(proposal_id=3).to_dict()
        assert data["proposal_id"] == 3
        assert data["snapshot_day"] == "2023-11-14"
        assert data["status"] == "active"
        assert data["shares"]["sp"] == 25


class TestVote:
    def test_position_orders_by_block_then_index(self, vote_factory):
        early = vote_factory("0xa", block_number=10, log_index=5)
        late = vote_factory("0xa", block_number=11, log_index=0)
        same_block = vote_factory("0xa", block_number=10, log_index=6)
        assert early.position < same_block.position < late.position

    def test_from_row(self):
        vote = Vote.from_row(
            {
                "id": 7,
                "network_id": 314,
                "proposal_id": 2,
                "voter": "0xv",
                "payload": '[["approve"]]',
                "tx_hash": "0xt",
                "log_index": 1,
                "block_number": 50,
                "block_time": 1000,
            }
        )
        assert vote.id == 7
        assert vote.position == (50, 1)


class TestPowerSnapshot:
    def test_total_and_component(self, snapshot_factory):
        snapshot = snapshot_factory("0xa", developer=1, sp=2, client=3, token_holder=10**30)
        assert snapshot.total == 10**30 + 6
        assert snapshot.component(PowerDimension.CLIENT) == 3

    def test_from_row_keeps_big_values_exact(self):
        row = {
            "network_id": 314,
            "address": "0xa",
            "day": date(2024, 1, 1),
            "developer_power": Decimal("123456789012345678901234567890"),
            "sp_power": Decimal(0),
            "client_power": Decimal(1),
            "token_holder_power": Decimal(2),
            "block_height": 5,
        }
        snapshot = PowerSnapshot.from_row(row)
        assert snapshot.developer == 123456789012345678901234567890
        assert isinstance(snapshot.developer, int)


class TestVoteResult:
    def test_round_trip_columns(self):
        row = {
            "network_id": 314,
            "proposal_id": 1,
            "option_id": "approve",
            "weight": Decimal(13),
            "percentage": Decimal("72.22"),
            "vote_count": 2,
            "developer_total": Decimal(1),
            "sp_total": Decimal(2),
            "client_total": Decimal(3),
            "token_holder_total": Decimal(4),
        }
        result = VoteResult.from_row(row)
        assert result.weight == 13
        assert result.dimension_totals[PowerDimension.SP] == 2
        assert result.to_dict()["percentage"] == "72.22"
