"""Sealed-ballot encryption and opening."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from ..core.exceptions import BallotDecodeError, EncryptionFailedError
from ..core.models import SealedBallot
from . import tlock
from .armor import armor, dearmor
from .beacon import BeaconClient, BeaconInfo

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


def canonical_payload(payload: Any) -> bytes:
    """Canonical byte form of a vote payload.

    Bytes and strings pass through; anything else is compact JSON with
    sorted keys, so equal payloads always seal the same plaintext.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class SealedBallotEncryptor:
    """Time-locks vote payloads to a future beacon round.

    Args:
        beacon: Beacon endpoints, tried in order for the network-info probe.
        max_attempts: Encryption attempts before giving up.
    """

    def __init__(self, beacon: BeaconClient, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._beacon = beacon
        self.max_attempts = max_attempts

    async def encrypt(self, payload: Any, unlock_time: int) -> SealedBallot:
        """Seal `payload` so it cannot be read before `unlock_time`.

        Raises:
            NoBeaconAvailableError: no beacon endpoint answered
            EncryptionFailedError: every attempt failed
        """
        plaintext = canonical_payload(payload)
        info = await self._beacon.select_network()
        round_number = info.round_at(unlock_time)

        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                sealed = await asyncio.to_thread(
                    tlock.encrypt, plaintext, round_number, info.chain_hash, info.public_key, info.scheme
                )
            except ValueError as e:
                last_error = str(e)
                logger.warning(
                    "Sealing attempt %d/%d for round %d failed: %s", attempt, self.max_attempts, round_number, e
                )
                continue
            logger.debug("Sealed %d bytes to round %d via %s", len(plaintext), round_number, info.url)
            return SealedBallot(
                payload=plaintext,
                unlock_time=unlock_time,
                round=round_number,
                chain_hash=info.chain_hash,
                ciphertext=armor(sealed),
            )

        logger.error("Sealing to round %d gave up after %d attempts: %s", round_number, self.max_attempts, last_error)
        raise EncryptionFailedError(self.max_attempts, last_error)


class BallotOpener:
    """Opens sealed ballots once their round signature is published."""

    def __init__(self, beacon: BeaconClient):
        self._beacon = beacon
        self._info: BeaconInfo | None = None

    async def open(self, armored: str, deadline: int | None = None) -> bytes:
        """Plaintext of an armored sealed ballot.

        A ballot sealed to a round after `deadline` (unix time) could only be
        opened once voting is over; it is rejected like a malformed one.

        Raises:
            BallotDecodeError: malformed, sealed to another chain or past the deadline, or tampered
            RoundNotPublishedError: the unlock round is not out yet
            NoBeaconAvailableError: no beacon endpoint answered
        """
        data = dearmor(armored)
        try:
            round_number, chain_hash = tlock.read_target(data)
        except ValueError as e:
            raise BallotDecodeError(f"Not a sealed ballot: {e}") from e
        if chain_hash != self._beacon.chain_hash:
            raise BallotDecodeError(
                "Sealed ballot targets another beacon chain",
                {"chain_hash": chain_hash, "round": round_number},
            )

        if self._info is None:
            self._info = await self._beacon.select_network()
        if deadline is not None and round_number > self._info.round_at(deadline):
            raise BallotDecodeError(
                "Sealed ballot unlocks after the voting deadline",
                {"round": round_number, "deadline_round": self._info.round_at(deadline)},
            )
        signature = await self._beacon.fetch_round_signature(round_number)
        try:
            return await asyncio.to_thread(tlock.decrypt, data, signature, self._info.scheme)
        except ValueError as e:
            raise BallotDecodeError(f"Sealed ballot for round {round_number} cannot be opened: {e}") from e
