"""Framing of the JSON handshake messages exchanged over a CoreDevice tunnel."""

from __future__ import annotations

import json
import struct
from typing import Any

MAGIC = b"CDTunnel"
_LENGTH = struct.Struct(">H")


def decode(data: bytes) -> Any:
    """Decode one framed message: magic, big-endian 16-bit length, JSON body."""
    data = bytes(data)
    header_end = len(MAGIC) + _LENGTH.size
    if data[: len(MAGIC)] != MAGIC:
        raise ValueError("Invalid Magic")
    if len(data) < header_end:
        raise ValueError("Missing length")
    (size,) = _LENGTH.unpack_from(data, len(MAGIC))
    content = data[header_end : header_end + size]
    if len(content) < size:
        raise ValueError("Truncated content")
    return json.loads(content.decode("utf-8"))


def encode(value: Any) -> bytes:
    """Frame ``value`` as compact JSON behind the magic and its length."""
    body = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if len(body) > 0xFFFF:
        raise ValueError("Message too large for the length field")
    return MAGIC + _LENGTH.pack(len(body)) + body