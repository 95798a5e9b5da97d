"""ASCII armor for sealed ballots.

Base64 of the binary envelope in 64-character lines between fixed markers,
so ciphertext can be stored and transported as text.
"""

from __future__ import annotations

import base64
import binascii

from ..core.exceptions import BallotDecodeError

ARMOR_HEADER = "-----BEGIN AGE ENCRYPTED FILE-----"
ARMOR_FOOTER = "-----END AGE ENCRYPTED FILE-----"
LINE_WIDTH = 64


def armor(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    lines = [encoded[i : i + LINE_WIDTH] for i in range(0, len(encoded), LINE_WIDTH)]
    return "\n".join([ARMOR_HEADER, *lines, ARMOR_FOOTER]) + "\n"


def is_armored(text: str) -> bool:
    return ARMOR_HEADER in text


def dearmor(text: str) -> bytes:
    """Decode armored text back to bytes.

    Tolerates literal ``\\n`` escapes and stray double quotes, as left
    behind when armored text was stored inside a JSON string.

    Raises:
        BallotDecodeError: markers missing or body not valid base64
    """
    cleaned = text.replace("\\n", "\n").replace('"', "").strip()
    start = cleaned.find(ARMOR_HEADER)
    end = cleaned.find(ARMOR_FOOTER)
    if start < 0 or end < 0 or end < start:
        raise BallotDecodeError("Armor markers not found")

    body = cleaned[start + len(ARMOR_HEADER) : end]
    lines = [line.strip() for line in body.splitlines() if line.strip()]
    if any(len(line) > LINE_WIDTH for line in lines):
        raise BallotDecodeError("Armored line longer than 64 characters")
    try:
        return base64.b64decode("".join(lines), validate=True)
    except (binascii.Error, ValueError) as e:
        raise BallotDecodeError(f"Invalid armored base64: {e}") from e
