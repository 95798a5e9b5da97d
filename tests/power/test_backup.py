"""Tests for govoracle.power.backup - scheduled snapshot pre-fetch."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from govoracle.core.exceptions import PowerServiceError
from govoracle.core.models import ProposalStatus
from govoracle.power.backup import PowerBackupService


@pytest.fixture
def populated_store(fake_store, proposal_factory, vote_factory):
    fake_store.add_proposal(proposal_factory(proposal_id=1))
    fake_store.add_proposal(proposal_factory(proposal_id=2, status=ProposalStatus.COUNTED))
    fake_store.add_vote(vote_factory("0xa", proposal_id=1))
    fake_store.add_vote(vote_factory("0xb", proposal_id=1, log_index=1))
    fake_store.add_vote(vote_factory("0xc", proposal_id=2, log_index=2))
    return fake_store


class TestPowerBackupService:
    @pytest.mark.asyncio
    async def test_backs_up_open_proposals_only(self, populated_store, snapshot_factory):
        aggregator = MagicMock()

        async def backup(network_id, address, day):
            populated_store.save_power_snapshot(snapshot_factory(address, day=day))

        aggregator.backup_power = AsyncMock(side_effect=backup)
        result = await PowerBackupService(aggregator, populated_store).backup_network(314)

        assert (result.targets, result.saved, result.failed) == (2, 2, [])
        backed_up = {call.args[1] for call in aggregator.backup_power.await_args_list}
        assert backed_up == {"0xa", "0xb"}

        # nothing left to do on the next run
        again = await PowerBackupService(aggregator, populated_store).backup_network(314)
        assert again.targets == 0

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_run(self, populated_store):
        aggregator = MagicMock()
        aggregator.backup_power = AsyncMock(side_effect=[PowerServiceError("down"), None])

        result = await PowerBackupService(aggregator, populated_store, concurrency=1).backup_network(314)

        assert result.saved == 1
        assert len(result.failed) == 1
