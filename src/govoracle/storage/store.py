"""Governance store: the only code that issues SQL.

Every method is blocking and runs one transaction through get_cursor().
The async engines call these through asyncio.to_thread.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from ..core.db import get_cursor
from ..core.models import (
    PowerDimension,
    PowerSnapshot,
    Proposal,
    ProposalStatus,
    SyncCursor,
    Vote,
    VoteResult,
)

logger = logging.getLogger(__name__)


_INSERT_PROPOSAL = """
    INSERT INTO proposals (
        network_id, proposal_id, creator, content, title, start_time, expiration_time,
        snapshot_day, developer_share, sp_share, client_share, token_holder_share,
        status, block_number, block_time, tx_hash, log_index
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (network_id, proposal_id) DO NOTHING
"""

_INSERT_VOTE = """
    INSERT INTO votes (
        network_id, proposal_id, voter, payload, tx_hash, log_index, block_number, block_time
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (network_id, tx_hash, log_index) DO NOTHING
"""

# The cursor never moves backwards; block_time follows the height it belongs to.
_ADVANCE_CURSOR = """
    INSERT INTO sync_cursors (network_id, height, block_time, updated_at)
    VALUES (%s, %s, %s, NOW())
    ON CONFLICT (network_id) DO UPDATE SET
        height = GREATEST(sync_cursors.height, EXCLUDED.height),
        block_time = CASE
            WHEN EXCLUDED.height >= sync_cursors.height THEN EXCLUDED.block_time
            ELSE sync_cursors.block_time
        END,
        updated_at = NOW()
"""

_INSERT_RESULT = """
    INSERT INTO vote_results (
        network_id, proposal_id, option_id, weight, percentage, vote_count,
        developer_total, sp_total, client_total, token_holder_total
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""


class GovernanceStore:
    """Row store for cursors, proposals, votes, results and power snapshots."""

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def get_sync_cursor(self, network_id: int) -> SyncCursor | None:
        with get_cursor() as cur:
            cur.execute(
                "SELECT network_id, height, block_time FROM sync_cursors WHERE network_id = %s",
                (network_id,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return SyncCursor(network_id=int(row["network_id"]), height=int(row["height"]), block_time=int(row["block_time"]))

    def get_sync_height(self, network_id: int, default: int = 0) -> int:
        """Last fully ingested height, or `default` if the network was never synced."""
        cursor = self.get_sync_cursor(network_id)
        return default if cursor is None else cursor.height

    def commit_sync_range(
        self,
        network_id: int,
        proposals: Iterable[Proposal],
        votes: Iterable[Vote],
        height: int,
        block_time: int,
    ) -> tuple[int, int]:
        """Insert the rows decoded from one block range and advance the cursor.

        One transaction: either every row and the new cursor are durable,
        or nothing is. Rows already present are skipped, so replaying a
        range is harmless.

        Returns:
            (new proposals, new votes) actually inserted
        """
        new_proposals = 0
        new_votes = 0
        with get_cursor() as cur:
            for p in proposals:
                cur.execute(
                    _INSERT_PROPOSAL,
                    (
                        network_id,
                        p.proposal_id,
                        p.creator,
                        p.content,
                        p.title,
                        p.start_time,
                        p.expiration_time,
                        p.snapshot_day,
                        p.share(PowerDimension.DEVELOPER),
                        p.share(PowerDimension.SP),
                        p.share(PowerDimension.CLIENT),
                        p.share(PowerDimension.TOKEN_HOLDER),
                        p.status.value,
                        p.block_number,
                        p.block_time,
                        p.tx_hash,
                        p.log_index,
                    ),
                )
                new_proposals += cur.rowcount
            for v in votes:
                cur.execute(
                    _INSERT_VOTE,
                    (network_id, v.proposal_id, v.voter, v.payload, v.tx_hash, v.log_index, v.block_number, v.block_time),
                )
                new_votes += cur.rowcount
            cur.execute(_ADVANCE_CURSOR, (network_id, height, block_time))
        return new_proposals, new_votes

    # ------------------------------------------------------------------
    # Proposals and votes
    # ------------------------------------------------------------------

    def expire_proposals(self, network_id: int, now: int) -> int:
        """Move ACTIVE proposals whose expiration is at or before `now` to EXPIRED."""
        with get_cursor() as cur:
            cur.execute(
                """
                UPDATE proposals SET status = %s, updated_at = NOW()
                WHERE network_id = %s AND status = %s AND expiration_time <= %s
                """,
                (ProposalStatus.EXPIRED.value, network_id, ProposalStatus.ACTIVE.value, now),
            )
            return cur.rowcount

    def list_expired_proposals(self, network_id: int) -> list[Proposal]:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM proposals WHERE network_id = %s AND status = %s ORDER BY proposal_id",
                (network_id, ProposalStatus.EXPIRED.value),
            )
            return [Proposal.from_row(row) for row in cur.fetchall()]

    def get_proposal(self, network_id: int, proposal_id: int) -> Proposal | None:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM proposals WHERE network_id = %s AND proposal_id = %s",
                (network_id, proposal_id),
            )
            row = cur.fetchone()
        return Proposal.from_row(row) if row else None

    def list_votes(self, network_id: int, proposal_id: int) -> list[Vote]:
        """All votes of a proposal in chain order."""
        with get_cursor() as cur:
            cur.execute(
                """
                SELECT * FROM votes
                WHERE network_id = %s AND proposal_id = %s
                ORDER BY block_number, log_index
                """,
                (network_id, proposal_id),
            )
            return [Vote.from_row(row) for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Tally
    # ------------------------------------------------------------------

    def save_tally(self, network_id: int, proposal_id: int, results: list[VoteResult], counted: bool) -> bool:
        """Replace the result rows of a proposal and, when `counted`, close it.

        Prior rows are deleted rather than added to, so a re-run overwrites
        instead of accumulating. The status flip happens in the same
        transaction as the writes.

        Returns:
            True if the proposal moved to COUNTED.
        """
        with get_cursor() as cur:
            cur.execute(
                "DELETE FROM vote_results WHERE network_id = %s AND proposal_id = %s",
                (network_id, proposal_id),
            )
            for r in results:
                totals = r.dimension_totals
                cur.execute(
                    _INSERT_RESULT,
                    (
                        network_id,
                        proposal_id,
                        r.option_id,
                        r.weight,
                        r.percentage,
                        r.vote_count,
                        totals.get(PowerDimension.DEVELOPER, 0),
                        totals.get(PowerDimension.SP, 0),
                        totals.get(PowerDimension.CLIENT, 0),
                        totals.get(PowerDimension.TOKEN_HOLDER, 0),
                    ),
                )
            if not counted:
                return False
            cur.execute(
                """
                UPDATE proposals SET status = %s, updated_at = NOW()
                WHERE network_id = %s AND proposal_id = %s AND status = %s
                """,
                (ProposalStatus.COUNTED.value, network_id, proposal_id, ProposalStatus.EXPIRED.value),
            )
            return cur.rowcount == 1

    def list_results(self, network_id: int, proposal_id: int) -> list[VoteResult]:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM vote_results WHERE network_id = %s AND proposal_id = %s ORDER BY option_id",
                (network_id, proposal_id),
            )
            return [VoteResult.from_row(row) for row in cur.fetchall()]

    # ------------------------------------------------------------------
    # Power snapshots
    # ------------------------------------------------------------------

    def get_power_snapshot(self, network_id: int, address: str, day: date) -> PowerSnapshot | None:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM power_snapshots WHERE network_id = %s AND address = %s AND day = %s",
                (network_id, address, day),
            )
            row = cur.fetchone()
        return PowerSnapshot.from_row(row) if row else None

    def save_power_snapshot(self, snapshot: PowerSnapshot) -> bool:
        """Persist a snapshot; a second write for the same (network, address, day) is ignored."""
        with get_cursor() as cur:
            cur.execute(
                """
                INSERT INTO power_snapshots (
                    network_id, address, day, developer_power, sp_power,
                    client_power, token_holder_power, block_height
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (network_id, address, day) DO NOTHING
                """,
                (
                    snapshot.network_id,
                    snapshot.address,
                    snapshot.day,
                    snapshot.developer,
                    snapshot.sp,
                    snapshot.client,
                    snapshot.token_holder,
                    snapshot.block_height,
                ),
            )
            return cur.rowcount == 1

    def list_backup_targets(self, network_id: int) -> list[tuple[str, date]]:
        """(voter, day) pairs of open proposals that have no snapshot yet."""
        with get_cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT v.voter AS address, p.snapshot_day AS day
                FROM votes v
                JOIN proposals p
                    ON p.network_id = v.network_id AND p.proposal_id = v.proposal_id
                LEFT JOIN power_snapshots s
                    ON s.network_id = v.network_id AND s.address = v.voter AND s.day = p.snapshot_day
                WHERE v.network_id = %s AND p.status <> %s AND s.address IS NULL
                ORDER BY day, address
                """,
                (network_id, ProposalStatus.COUNTED.value),
            )
            return [(row["address"], row["day"]) for row in cur.fetchall()]
