"""Reading vote payloads.

A payload is JSON: a list of selections, each a list whose first element is
the option id, e.g. ``[["approve"]]``. It may instead be a sealed ballot
(armored time-lock ciphertext of such JSON), which can only be opened once
the beacon has published the round it was sealed to.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

from ..core.exceptions import BallotDecodeError
from ..sealing.armor import is_armored

logger = logging.getLogger(__name__)


class SealedBallotOpener(Protocol):
    async def open(self, armored: str, deadline: int | None = None) -> bytes: ...


def parse_selection(plaintext: str | bytes) -> str:
    """Return the option id of the first selection.

    Raises:
        BallotDecodeError: not JSON, wrong shape, or empty option id
    """
    try:
        parsed = json.loads(plaintext)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BallotDecodeError(f"Vote payload is not JSON: {e}") from e

    if not isinstance(parsed, list) or not parsed or not isinstance(parsed[0], list) or not parsed[0]:
        raise BallotDecodeError("Vote payload carries no selection", {"payload": str(parsed)[:100]})
    option = parsed[0][0]
    if not isinstance(option, str) or not option.strip():
        raise BallotDecodeError("Vote option is not a non-empty string", {"option": repr(option)[:100]})
    return option.strip()


class BallotReader:
    """Turns stored vote payloads into option ids.

    Args:
        opener: Opens sealed ballots; without one, sealed payloads are rejected.
    """

    def __init__(self, opener: SealedBallotOpener | None = None):
        self._opener = opener

    async def read(self, payload: str, deadline: int | None = None) -> str:
        """Option id selected by `payload`.

        `deadline` is the voting deadline (unix time); sealed ballots that
        unlock after it can never be read.

        Raises:
            BallotDecodeError: the payload can never be read
            RoundNotPublishedError: sealed, and the unlock round is not out yet
            NoBeaconAvailableError: sealed, and no beacon endpoint answered
        """
        if not is_armored(payload):
            return parse_selection(payload)
        if self._opener is None:
            raise BallotDecodeError("Sealed ballot found but no beacon is configured to open it")
        plaintext = await self._opener.open(payload, deadline)
        return parse_selection(plaintext)
