"""Boneh-Franklin identity-based encryption (CCA "FullIdent") over BLS12-381.

The identity is a beacon round; its private key is the beacon's threshold
BLS signature on that round, published once the round is reached. Anyone
holding the beacon public key can encrypt to a future round, nobody can
decrypt before the signature exists.

Supported beacon schemes:

    bls-unchained-g1-rfc9380   public key on G2, signatures on G1 (RFC 9380 DST)
    bls-unchained-on-g1        public key on G2, signatures on G1 (G2 DST)
    pedersen-bls-unchained     public key on G1, signatures on G2

Ciphertext layout: U (compressed point in the public-key group) || V || W,
with V and W as long as the message (at most 32 bytes).
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Any

from py_ecc.bls.g2_primitives import G1_to_pubkey, G2_to_signature, pubkey_to_G1, signature_to_G2
from py_ecc.bls.hash_to_curve import hash_to_G1, hash_to_G2
from py_ecc.optimized_bls12_381 import G1, G2, curve_order, field_modulus, multiply, pairing

DST_G1 = b"BLS_SIG_BLS12381G1_XMD:SHA-256_SSWU_RO_NUL_"
DST_G2 = b"BLS_SIG_BLS12381G2_XMD:SHA-256_SSWU_RO_NUL_"

H2_TAG = b"IBE-H2"
H3_TAG = b"IBE-H3"
H4_TAG = b"IBE-H4"

MAX_MESSAGE_SIZE = 32
FP_SIZE = 48


@dataclass(frozen=True)
class Scheme:
    name: str
    key_on_g1: bool
    dst: bytes

    @property
    def point_size(self) -> int:
        """Compressed size of U (a point in the public-key group)."""
        return 48 if self.key_on_g1 else 96


SCHEMES = {
    "bls-unchained-g1-rfc9380": Scheme("bls-unchained-g1-rfc9380", key_on_g1=False, dst=DST_G1),
    "bls-unchained-on-g1": Scheme("bls-unchained-on-g1", key_on_g1=False, dst=DST_G2),
    "pedersen-bls-unchained": Scheme("pedersen-bls-unchained", key_on_g1=True, dst=DST_G2),
}


def get_scheme(name: str) -> Scheme:
    """Raises ValueError for schemes time-lock encryption cannot use (e.g. chained)."""
    scheme = SCHEMES.get(name)
    if scheme is None:
        raise ValueError(f"Unsupported beacon scheme for time-lock encryption: {name}")
    return scheme


@dataclass(frozen=True)
class Ciphertext:
    u: bytes
    v: bytes
    w: bytes

    def to_bytes(self) -> bytes:
        return self.u + self.v + self.w

    @classmethod
    def from_bytes(cls, scheme: Scheme, data: bytes) -> Ciphertext:
        rest = len(data) - scheme.point_size
        if rest <= 0 or rest % 2 or rest // 2 > MAX_MESSAGE_SIZE:
            raise ValueError(f"Invalid IBE ciphertext length {len(data)}")
        half = rest // 2
        u = data[: scheme.point_size]
        return cls(u=u, v=data[scheme.point_size : scheme.point_size + half], w=data[scheme.point_size + half :])


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b, strict=True))


def gt_to_bytes(element: Any) -> bytes:
    """Serialize a pairing output (576 bytes).

    py_ecc holds Fp12 as a degree-12 polynomial in w (w^6 = 1 + u). The
    bytes follow the Fp2/Fp6/Fp12 tower instead: Fp12 = C0 + C1*w,
    Fp6 = c0 + c1*v + c2*v^2 (v = w^2), each written highest coefficient
    first, each Fp2 as (u-part, real part), 48 bytes big-endian apiece.
    """
    p = field_modulus
    a = [int(c) % p for c in element.coeffs]
    out = bytearray()
    # w^j for j = 5, 3, 1 form C1 (v^2, v, 1); j = 4, 2, 0 form C0
    for j in (5, 3, 1, 4, 2, 0):
        out += a[j + 6].to_bytes(FP_SIZE, "big")
        out += ((a[j] + a[j + 6]) % p).to_bytes(FP_SIZE, "big")
    return bytes(out)


def target_pairing(p_g2: Any, q_g1: Any) -> Any:
    """Pairing in the convention drand and tlock hash: py_ecc's value raised to -3.

    py_ecc skips the conjugation for the negative curve parameter and uses
    the plain final exponent, so its output differs from the reference
    libraries by that power.
    """
    return pairing(p_g2, q_g1) ** (curve_order - 3)


def _h2(gt: Any, length: int) -> bytes:
    return hashlib.sha256(H2_TAG + gt_to_bytes(gt)).digest()[:length]


def _h3(sigma: bytes, msg: bytes) -> int:
    """Deterministic nonzero-probability scalar below the group order."""
    buffer = hashlib.sha256(H3_TAG + sigma + msg).digest()
    for i in range(1, 65535):
        hashed = bytearray(hashlib.sha256(i.to_bytes(2, "little") + buffer).digest())
        hashed[0] >>= 1
        r = int.from_bytes(hashed, "big")
        if r < curve_order:
            return r
    raise ValueError("Cannot derive IBE scalar")


def _h4(sigma: bytes, length: int) -> bytes:
    return hashlib.sha256(H4_TAG + sigma).digest()[:length]


def hash_identity(scheme: Scheme, identity: bytes) -> Any:
    """Map an identity onto the signature group."""
    if scheme.key_on_g1:
        return hash_to_G2(identity, scheme.dst, hashlib.sha256)
    return hash_to_G1(identity, scheme.dst, hashlib.sha256)


def _base_point(scheme: Scheme, r: int) -> bytes:
    if scheme.key_on_g1:
        return G1_to_pubkey(multiply(G1, r))
    return G2_to_signature(multiply(G2, r))


def encrypt(scheme: Scheme, public_key: bytes, identity: bytes, msg: bytes) -> Ciphertext:
    """Encrypt `msg` to `identity` under the beacon `public_key`.

    Raises:
        ValueError: message too long or public key not a valid point
    """
    if not msg or len(msg) > MAX_MESSAGE_SIZE:
        raise ValueError(f"IBE message must be 1-{MAX_MESSAGE_SIZE} bytes")
    qid = hash_identity(scheme, identity)
    if scheme.key_on_g1:
        gid = target_pairing(qid, pubkey_to_G1(public_key))
    else:
        gid = target_pairing(signature_to_G2(public_key), qid)

    sigma = os.urandom(len(msg))
    r = _h3(sigma, msg)
    u = _base_point(scheme, r)
    v = _xor(sigma, _h2(gid**r, len(msg)))
    w = _xor(msg, _h4(sigma, len(msg)))
    return Ciphertext(u=u, v=v, w=w)


def decrypt(scheme: Scheme, signature: bytes, ciphertext: Ciphertext) -> bytes:
    """Recover the message with the identity's private key (the round signature).

    Raises:
        ValueError: malformed points, or the ciphertext fails its integrity check
    """
    if scheme.key_on_g1:
        rgid = target_pairing(signature_to_G2(signature), pubkey_to_G1(ciphertext.u))
    else:
        rgid = target_pairing(signature_to_G2(ciphertext.u), pubkey_to_G1(signature))

    length = len(ciphertext.w)
    sigma = _xor(_h2(rgid, length), ciphertext.v)
    msg = _xor(_h4(sigma, length), ciphertext.w)
    if _base_point(scheme, _h3(sigma, msg)) != ciphertext.u:
        raise ValueError("IBE ciphertext integrity check failed")
    return msg
