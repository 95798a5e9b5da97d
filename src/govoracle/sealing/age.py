"""Minimal age v1 envelope (https://age-encryption.org/v1).

Only what time-lock sealing needs: a header of recipient stanzas with its
HMAC, and the chunked ChaCha20-Poly1305 STREAM payload. The file key is
wrapped by the caller (see tlock.py).
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

VERSION_LINE = b"age-encryption.org/v1"
STANZA_PREFIX = b"-> "
MAC_PREFIX = b"--- "
COLUMNS = 64

FILE_KEY_SIZE = 16
NONCE_SIZE = 16
CHUNK_SIZE = 64 * 1024
TAG_SIZE = 16


def b64_raw(data: bytes) -> bytes:
    return base64.b64encode(data).rstrip(b"=")


def b64_raw_decode(data: bytes) -> bytes:
    try:
        return base64.b64decode(data + b"=" * (-len(data) % 4), validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64 in age header: {e}") from e


@dataclass
class Stanza:
    type: str
    args: list[str] = field(default_factory=list)
    body: bytes = b""

    def to_bytes(self) -> bytes:
        line = STANZA_PREFIX + " ".join([self.type, *self.args]).encode("ascii") + b"\n"
        encoded = b64_raw(self.body)
        lines = [encoded[i : i + COLUMNS] for i in range(0, len(encoded), COLUMNS)]
        # the last body line is always shorter than a full column width
        if not lines or len(lines[-1]) == COLUMNS:
            lines.append(b"")
        return line + b"\n".join(lines) + b"\n"


@dataclass
class Header:
    stanzas: list[Stanza]
    mac_input: bytes
    mac: bytes
    payload: bytes

    def find(self, stanza_type: str) -> Stanza | None:
        for stanza in self.stanzas:
            if stanza.type == stanza_type:
                return stanza
        return None


def _hkdf(file_key: bytes, salt: bytes | None, info: bytes) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=info).derive(file_key)


def _header_hmac(file_key: bytes, mac_input: bytes) -> hmac.HMAC:
    h = hmac.HMAC(_hkdf(file_key, None, b"header"), hashes.SHA256())
    h.update(mac_input)
    return h


def _chunk_nonce(counter: int, last: bool) -> bytes:
    return counter.to_bytes(11, "big") + (b"\x01" if last else b"\x00")


def encrypt(file_key: bytes, stanzas: list[Stanza], plaintext: bytes) -> bytes:
    """Binary age file carrying `plaintext` under `file_key`."""
    mac_input = VERSION_LINE + b"\n" + b"".join(s.to_bytes() for s in stanzas) + b"---"
    mac = _header_hmac(file_key, mac_input).finalize()

    nonce = os.urandom(NONCE_SIZE)
    aead = ChaCha20Poly1305(_hkdf(file_key, nonce, b"payload"))
    chunks = [plaintext[i : i + CHUNK_SIZE] for i in range(0, len(plaintext), CHUNK_SIZE)] or [b""]
    sealed = b"".join(
        aead.encrypt(_chunk_nonce(i, i == len(chunks) - 1), chunk, None) for i, chunk in enumerate(chunks)
    )
    return mac_input + b" " + b64_raw(mac) + b"\n" + nonce + sealed


def parse_header(data: bytes) -> Header:
    """Split an age file into its stanzas, header MAC and payload.

    Raises:
        ValueError: not an age v1 file, or a malformed header
    """
    lines = _LineReader(data)
    if lines.next() != VERSION_LINE:
        raise ValueError("not an age v1 file")

    stanzas: list[Stanza] = []
    while True:
        start = lines.pos
        line = lines.next()
        if line.startswith(MAC_PREFIX):
            return Header(
                stanzas=stanzas,
                mac_input=data[: start + 3],
                mac=b64_raw_decode(line[len(MAC_PREFIX) :]),
                payload=data[lines.pos :],
            )
        if not line.startswith(STANZA_PREFIX):
            raise ValueError("malformed age header line")

        words = line[len(STANZA_PREFIX) :].decode("ascii", errors="replace").split(" ")
        body = bytearray()
        while True:
            chunk = lines.next()
            if len(chunk) > COLUMNS:
                raise ValueError("age stanza body line too long")
            body += chunk
            if len(chunk) < COLUMNS:
                break
        stanzas.append(Stanza(type=words[0], args=words[1:], body=b64_raw_decode(bytes(body))))


def decrypt(file_key: bytes, header: Header) -> bytes:
    """Verify the header MAC and open the payload.

    Raises:
        ValueError: wrong key, or tampered header or payload
    """
    try:
        _header_hmac(file_key, header.mac_input).verify(header.mac)
    except InvalidSignature as e:
        raise ValueError("age header MAC mismatch") from e

    payload = header.payload
    if len(payload) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("age payload truncated")
    aead = ChaCha20Poly1305(_hkdf(file_key, payload[:NONCE_SIZE], b"payload"))
    body = payload[NONCE_SIZE:]
    size = CHUNK_SIZE + TAG_SIZE
    chunks = [body[i : i + size] for i in range(0, len(body), size)]

    out = bytearray()
    for i, chunk in enumerate(chunks):
        try:
            out += aead.decrypt(_chunk_nonce(i, i == len(chunks) - 1), chunk, None)
        except InvalidTag as e:
            raise ValueError(f"age payload chunk {i} failed authentication") from e
    return bytes(out)


class _LineReader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def next(self) -> bytes:
        end = self.data.find(b"\n", self.pos)
        if end < 0:
            raise ValueError("age header truncated")
        line = self.data[self.pos : end]
        self.pos = end + 1
        return line
