"""Sealed ballots: time-lock encryption to a randomness-beacon round."""

from .armor import armor, dearmor, is_armored
from .beacon import BeaconClient, BeaconInfo
from .encryptor import BallotOpener, SealedBallotEncryptor, canonical_payload

__all__ = [
    "BallotOpener",
    "BeaconClient",
    "BeaconInfo",
    "SealedBallotEncryptor",
    "armor",
    "canonical_payload",
    "dearmor",
    "is_armored",
]
