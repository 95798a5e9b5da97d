"""Govoracle core - configuration, logging, errors, models and persistence primitives."""

from .config import NetworkConfig, OracleSettings, clear_config_cache, get_config
from .db import get_cursor
from .exceptions import (
    ConfigException,
    DatabaseError,
    OracleException,
)
from .logging import configure_logging, correlation_context, get_correlation_id
from .models import (
    PowerDimension,
    PowerSnapshot,
    Proposal,
    ProposalStatus,
    SealedBallot,
    SyncCursor,
    Vote,
    VoteResult,
)

__all__ = [
    "ConfigException",
    "DatabaseError",
    "NetworkConfig",
    "OracleException",
    "OracleSettings",
    "PowerDimension",
    "PowerSnapshot",
    "Proposal",
    "ProposalStatus",
    "SealedBallot",
    "SyncCursor",
    "Vote",
    "VoteResult",
    "clear_config_cache",
    "configure_logging",
    "correlation_context",
    "get_config",
    "get_correlation_id",
    "get_cursor",
]
