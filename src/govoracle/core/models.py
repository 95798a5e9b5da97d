"""Domain records shared by the sync, power, tally and sealing layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any


class ProposalStatus(StrEnum):
    """Lifecycle: ACTIVE --expiration reached--> EXPIRED --tally run--> COUNTED."""

    ACTIVE = "active"
    EXPIRED = "expired"
    COUNTED = "counted"


class PowerDimension(StrEnum):
    DEVELOPER = "developer"
    SP = "sp"  # storage provider
    CLIENT = "client"
    TOKEN_HOLDER = "token_holder"


def utc_day(timestamp: int) -> date:
    """UTC calendar day of a unix timestamp."""
    return datetime.fromtimestamp(timestamp, tz=UTC).date()


@dataclass(frozen=True)
class SyncCursor:
    """Last block fully ingested for one network, with that block's timestamp."""

    network_id: int
    height: int
    block_time: int = 0


@dataclass
class Proposal:
    """A governance proposal ingested from a ProposalCreate log."""

    network_id: int
    proposal_id: int
    creator: str
    content: str
    title: str
    start_time: int
    expiration_time: int
    snapshot_day: date
    shares: dict[PowerDimension, int] = field(default_factory=dict)
    status: ProposalStatus = ProposalStatus.ACTIVE
    block_number: int = 0
    block_time: int = 0
    tx_hash: str = ""
    log_index: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Proposal:
        """Create from a proposals row."""
        return cls(
            network_id=int(row["network_id"]),
            proposal_id=int(row["proposal_id"]),
            creator=row["creator"],
            content=row["content"],
            title=row.get("title") or "",
            start_time=int(row["start_time"]),
            expiration_time=int(row["expiration_time"]),
            snapshot_day=row["snapshot_day"],
            shares={
                PowerDimension.DEVELOPER: int(row.get("developer_share") or 0),
                PowerDimension.SP: int(row.get("sp_share") or 0),
                PowerDimension.CLIENT: int(row.get("client_share") or 0),
                PowerDimension.TOKEN_HOLDER: int(row.get("token_holder_share") or 0),
            },
            status=ProposalStatus(row["status"]),
            block_number=int(row.get("block_number") or 0),
            block_time=int(row.get("block_time") or 0),
            tx_hash=row.get("tx_hash") or "",
            log_index=int(row.get("log_index") or 0),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def share(self, dimension: PowerDimension) -> int:
        return self.shares.get(dimension, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "network_id": self.network_id,
            "proposal_id": self.proposal_id,
            "creator": self.creator,
            "content": self.content,
            "title": self.title,
            "start_time": self.start_time,
            "expiration_time": self.expiration_time,
            "snapshot_day": self.snapshot_day.isoformat(),
            "shares": {str(k): v for k, v in self.shares.items()},
            "status": self.status.value,
            "block_number": self.block_number,
        }


@dataclass
class Vote:
    """A cast vote. Immutable once ingested; keyed by its source log position."""

    network_id: int
    proposal_id: int
    voter: str
    payload: str
    tx_hash: str
    log_index: int
    block_number: int = 0
    block_time: int = 0
    id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Vote:
        return cls(
            id=row.get("id"),
            network_id=int(row["network_id"]),
            proposal_id=int(row["proposal_id"]),
            voter=row["voter"],
            payload=row["payload"],
            tx_hash=row["tx_hash"],
            log_index=int(row["log_index"]),
            block_number=int(row.get("block_number") or 0),
            block_time=int(row.get("block_time") or 0),
        )

    @property
    def position(self) -> tuple[int, int]:
        """Chain ordering key; later votes sort higher."""
        return (self.block_number, self.log_index)


@dataclass
class VoteResult:
    """Aggregated outcome of one option of one proposal."""

    network_id: int
    proposal_id: int
    option_id: str
    weight: int = 0
    percentage: Decimal = Decimal("0")
    vote_count: int = 0
    dimension_totals: dict[PowerDimension, int] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> VoteResult:
        return cls(
            network_id=int(row["network_id"]),
            proposal_id=int(row["proposal_id"]),
            option_id=row["option_id"],
            weight=int(row["weight"]),
            percentage=Decimal(row["percentage"]),
            vote_count=int(row.get("vote_count") or 0),
            dimension_totals={d: int(row.get(f"{d.value}_total") or 0) for d in PowerDimension},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "network_id": self.network_id,
            "proposal_id": self.proposal_id,
            "option_id": self.option_id,
            "weight": str(self.weight),
            "percentage": str(self.percentage),
            "vote_count": self.vote_count,
            "dimension_totals": {str(k): str(v) for k, v in self.dimension_totals.items()},
        }


@dataclass(frozen=True)
class PowerSnapshot:
    """Four power components of one address on one network as of one day."""

    network_id: int
    address: str
    day: date
    developer: int
    sp: int
    client: int
    token_holder: int
    block_height: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PowerSnapshot:
        return cls(
            network_id=int(row["network_id"]),
            address=row["address"],
            day=row["day"],
            developer=int(row["developer_power"]),
            sp=int(row["sp_power"]),
            client=int(row["client_power"]),
            token_holder=int(row["token_holder_power"]),
            block_height=int(row["block_height"]),
        )

    def component(self, dimension: PowerDimension) -> int:
        return getattr(self, dimension.value)

    @property
    def total(self) -> int:
        return self.developer + self.sp + self.client + self.token_holder


@dataclass(frozen=True)
class SealedBallot:
    """A vote payload time-locked to a beacon round."""

    payload: bytes
    unlock_time: int
    round: int
    chain_hash: str
    ciphertext: str  # armored
