"""Time-lock encryption: an age file whose file key is IBE-sealed to a beacon round.

The recipient stanza is ``-> tlock {round} {chain_hash}`` with the IBE
ciphertext of the file key as its body.
"""

from __future__ import annotations

import hashlib
import os

from . import age, ibe

STANZA_TYPE = "tlock"


def round_identity(round_number: int) -> bytes:
    """IBE identity of a round: sha256 of the round as 8 bytes big-endian."""
    return hashlib.sha256(round_number.to_bytes(8, "big")).digest()


def encrypt(plaintext: bytes, round_number: int, chain_hash: str, public_key: bytes, scheme: str) -> bytes:
    """Seal `plaintext` until the beacon publishes `round_number`.

    Raises:
        ValueError: unsupported scheme or invalid public key
    """
    ibe_scheme = ibe.get_scheme(scheme)
    file_key = os.urandom(age.FILE_KEY_SIZE)
    wrapped = ibe.encrypt(ibe_scheme, public_key, round_identity(round_number), file_key)
    stanza = age.Stanza(type=STANZA_TYPE, args=[str(round_number), chain_hash], body=wrapped.to_bytes())
    return age.encrypt(file_key, [stanza], plaintext)


def read_target(data: bytes) -> tuple[int, str]:
    """(round, chain hash) a sealed file is locked to.

    Raises:
        ValueError: not a time-lock age file
    """
    stanza = _tlock_stanza(age.parse_header(data))
    return int(stanza.args[0]), stanza.args[1]


def decrypt(data: bytes, signature: bytes, scheme: str) -> bytes:
    """Open a sealed file with the round's beacon signature.

    Raises:
        ValueError: wrong signature, malformed or tampered file
    """
    header = age.parse_header(data)
    ibe_scheme = ibe.get_scheme(scheme)
    wrapped = ibe.Ciphertext.from_bytes(ibe_scheme, _tlock_stanza(header).body)
    file_key = ibe.decrypt(ibe_scheme, signature, wrapped)
    return age.decrypt(file_key, header)


def _tlock_stanza(header: age.Header) -> age.Stanza:
    stanza = header.find(STANZA_TYPE)
    if stanza is None:
        raise ValueError("no tlock recipient stanza")
    if len(stanza.args) != 2 or not stanza.args[0].isdigit():
        raise ValueError(f"malformed tlock stanza arguments: {stanza.args}")
    return stanza
