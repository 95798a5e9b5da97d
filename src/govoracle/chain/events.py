"""Governance contract events and their decoding."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic
from web3.exceptions import Web3Exception

from ..core.exceptions import AbiParseError, DecodeError
from ..core.models import PowerDimension, Proposal, Vote, utc_day

logger = logging.getLogger(__name__)

PROPOSAL_EVENT = "ProposalCreate"
VOTE_EVENT = "Vote"


def to_hex(value: Any) -> str:
    """0x-prefixed lowercase hex of a bytes-like or hex-string value."""
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + bytes(value).hex()


@dataclass(frozen=True)
class LogPosition:
    block_number: int
    tx_hash: str
    log_index: int


@dataclass(frozen=True)
class ProposalCreated:
    proposal_id: int
    creator: str
    start_time: int
    end_time: int
    snapshot_timestamp: int
    content: str
    title: str
    token_holder_share: int
    sp_share: int
    client_share: int
    developer_share: int
    position: LogPosition

    def to_proposal(self, network_id: int, block_time: int) -> Proposal:
        """Proposal row for this event; the snapshot day falls back to the expiration day."""
        day_source = self.snapshot_timestamp or self.end_time
        return Proposal(
            network_id=network_id,
            proposal_id=self.proposal_id,
            creator=self.creator,
            content=self.content,
            title=self.title,
            start_time=self.start_time,
            expiration_time=self.end_time,
            snapshot_day=utc_day(day_source),
            shares={
                PowerDimension.DEVELOPER: self.developer_share,
                PowerDimension.SP: self.sp_share,
                PowerDimension.CLIENT: self.client_share,
                PowerDimension.TOKEN_HOLDER: self.token_holder_share,
            },
            block_number=self.position.block_number,
            block_time=block_time,
            tx_hash=self.position.tx_hash,
            log_index=self.position.log_index,
        )


@dataclass(frozen=True)
class VoteCast:
    proposal_id: int
    voter: str
    vote_info: str
    position: LogPosition

    def to_vote(self, network_id: int, block_time: int) -> Vote:
        return Vote(
            network_id=network_id,
            proposal_id=self.proposal_id,
            voter=self.voter,
            payload=self.vote_info,
            tx_hash=self.position.tx_hash,
            log_index=self.position.log_index,
            block_number=self.position.block_number,
            block_time=block_time,
        )


GovernanceEvent = ProposalCreated | VoteCast

_PROPOSAL_FIELDS = (
    "creator",
    "startTime",
    "endTime",
    "timestamp",
    "snapshotTimestamp",
    "content",
    "title",
    "tokenHolderPercentage",
    "spPercentage",
    "clientPercentage",
    "developerPercentage",
)


class EventDecoder:
    """Decodes raw governance-contract logs into typed events.

    Args:
        contract: A web3 contract (sync or async) built from the governance ABI.
    """

    def __init__(self, contract: Any, proposal_event: str = PROPOSAL_EVENT, vote_event: str = VOTE_EVENT):
        self._contract = contract
        self._names: dict[bytes, str] = {}
        wanted = {proposal_event, vote_event}
        for entry in contract.abi:
            if entry.get("type") == "event" and entry.get("name") in wanted:
                self._names[event_abi_to_log_topic(entry)] = entry["name"]
        missing = wanted - set(self._names.values())
        if missing:
            raise AbiParseError("governance", f"missing event(s): {', '.join(sorted(missing))}")
        self._proposal_event = proposal_event
        self._vote_event = vote_event

    @property
    def topics(self) -> list[str]:
        """topic0 values to filter log queries on."""
        return [to_hex(topic) for topic in self._names]

    def decode(self, log: Any) -> GovernanceEvent | None:
        """Decode one log; None for logs of other events.

        Raises:
            DecodeError: the log matches a governance event but cannot be decoded
        """
        block_number = log.get("blockNumber")
        log_index = log.get("logIndex")
        topics = log.get("topics") or []
        if not topics:
            return None
        name = self._names.get(bytes.fromhex(to_hex(topics[0])[2:]))
        if name is None:
            return None

        try:
            event = self._contract.events[name]().process_log(log)
            args = event["args"]
            position = LogPosition(
                block_number=int(event["blockNumber"]),
                tx_hash=to_hex(event["transactionHash"]),
                log_index=int(event["logIndex"]),
            )
            if name == self._proposal_event:
                p = args["proposal"]
                if not isinstance(p, Mapping):
                    p = dict(zip(_PROPOSAL_FIELDS, p, strict=True))
                return ProposalCreated(
                    proposal_id=int(args["id"]),
                    creator=p["creator"],
                    start_time=int(p["startTime"]),
                    end_time=int(p["endTime"]),
                    snapshot_timestamp=int(p["snapshotTimestamp"]),
                    content=p["content"],
                    title=p["title"],
                    token_holder_share=int(p["tokenHolderPercentage"]),
                    sp_share=int(p["spPercentage"]),
                    client_share=int(p["clientPercentage"]),
                    developer_share=int(p["developerPercentage"]),
                    position=position,
                )
            return VoteCast(
                proposal_id=int(args["id"]),
                voter=args["voter"],
                vote_info=args["voteInfo"],
                position=position,
            )
        except (DecodingError, Web3Exception, KeyError, TypeError, ValueError) as e:
            raise DecodeError(
                f"Cannot decode {name} log: {e}",
                block_number=block_number,
                log_index=log_index,
            ) from e
