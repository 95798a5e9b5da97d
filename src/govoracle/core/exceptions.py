# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Govoracle Contributors

"""Exception hierarchy for the governance oracle.

Every failure the core can report derives from OracleException, so task
boundaries can catch one type, log it, and move on to the next network or
proposal.
"""

from __future__ import annotations

from typing import Any


class OracleException(Exception):  # noqa: N818
    """Base exception for all oracle errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigException(OracleException):
    """Exception for configuration errors.

    Raised when:
    - A networks file is missing or not valid JSON
    - A required setting is absent
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class DatabaseError(OracleException):
    """Exception for database-related errors.

    Raised when:
    - The connection pool cannot be created or is exhausted
    - A statement fails (the enclosing transaction is rolled back)
    """


# =============================================================================
# Client setup (fatal for the affected network only)
# =============================================================================


class ConfigNotFoundError(OracleException):
    """No NetworkConfig matches the requested network id."""

    def __init__(self, network_id: int):
        super().__init__(f"No network configured with id {network_id}", {"network_id": network_id})
        self.network_id = network_id


class ChainConnectionError(OracleException):
    """Dialing a network's RPC endpoint failed."""

    def __init__(self, network_id: int, rpc_url: str, reason: str = ""):
        message = f"Cannot connect to network {network_id} at {rpc_url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"network_id": network_id, "rpc_url": rpc_url})
        self.network_id = network_id
        self.rpc_url = rpc_url


class AbiParseError(OracleException):
    """A contract interface definition could not be loaded or parsed."""

    def __init__(self, contract: str, reason: str):
        super().__init__(f"Invalid ABI for {contract}: {reason}", {"contract": contract})
        self.contract = contract


# =============================================================================
# Event sync (retried next interval, isolated per network)
# =============================================================================


class DialError(OracleException):
    """The network was unreachable while syncing; the whole run is skipped."""

    def __init__(self, network_id: int, reason: str):
        super().__init__(f"Network {network_id} unreachable: {reason}", {"network_id": network_id})
        self.network_id = network_id


class DecodeError(OracleException):
    """A contract log could not be decoded into a governance event."""

    def __init__(self, message: str, block_number: int | None = None, log_index: int | None = None):
        details: dict[str, Any] = {}
        if block_number is not None:
            details["block_number"] = block_number
        if log_index is not None:
            details["log_index"] = log_index
        super().__init__(message, details)
        self.block_number = block_number
        self.log_index = log_index


# =============================================================================
# Power normalization
# =============================================================================


class PowerParseError(OracleException):
    """A power component in a power-service response is not a base-10 integer."""

    def __init__(self, field: str, value: Any):
        super().__init__(f"Invalid power value for {field}: {value!r}", {"field": field, "value": str(value)})
        self.field = field
        self.value = value


class PowerServiceError(OracleException):
    """The power-computation service could not be reached or answered with an error."""


# =============================================================================
# Sealed ballots
# =============================================================================


class NoBeaconAvailableError(OracleException):
    """None of the configured randomness-beacon endpoints answered the info probe."""

    def __init__(self, urls: list[str]):
        super().__init__(f"No beacon endpoint reachable (tried {len(urls)})", {"urls": list(urls)})
        self.urls = list(urls)


class EncryptionFailedError(OracleException):
    """Time-lock encryption failed on every attempt."""

    def __init__(self, attempts: int, last_error: str):
        super().__init__(
            f"Encryption failed after {attempts} attempts: {last_error}",
            {"attempts": attempts, "last_error": last_error},
        )
        self.attempts = attempts
        self.last_error = last_error


class RoundNotPublishedError(OracleException):
    """The beacon has not yet published the signature for a round."""

    def __init__(self, round_number: int):
        super().__init__(f"Beacon round {round_number} not published yet", {"round": round_number})
        self.round_number = round_number


class BallotDecodeError(OracleException):
    """A vote payload (plain or sealed) cannot be read."""


# =============================================================================
# Tally
# =============================================================================


class PartialTallyFailure(OracleException):
    """One or more voters of a proposal could not be resolved.

    Recorded on the proposal's tally outcome and logged; the proposal stays
    Expired so the next run retries it. Never raised out of a tally run.
    """

    def __init__(self, network_id: int, proposal_id: int, unresolved: list[str]):
        super().__init__(
            f"Proposal {proposal_id} on network {network_id}: {len(unresolved)} voter(s) unresolved",
            {"network_id": network_id, "proposal_id": proposal_id, "unresolved": list(unresolved)},
        )
        self.network_id = network_id
        self.proposal_id = proposal_id
        self.unresolved = list(unresolved)
