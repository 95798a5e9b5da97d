"""Blockchain access: per-network clients and governance event decoding."""

from .client_cache import TRANSPORT_ERRORS, ClientCache, ClientHandle, load_abi
from .events import EventDecoder, ProposalCreated, VoteCast

__all__ = [
    "TRANSPORT_ERRORS",
    "ClientCache",
    "ClientHandle",
    "EventDecoder",
    "ProposalCreated",
    "VoteCast",
    "load_abi",
]
