"""The framed property-list packets spoken to the USB multiplexer."""

from __future__ import annotations

import logging
import plistlib
import struct
from dataclasses import dataclass
from typing import Any, Dict

from idevkit.util import plist_to_xml_bytes

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<IIII")


@dataclass
class RawPacket:
    """A 16-byte little-endian header followed by an XML property list."""

    size: int
    version: int
    message: int
    tag: int
    plist: Dict[str, Any]

    @classmethod
    def new(
        cls, plist: Dict[str, Any], version: int, message: int, tag: int
    ) -> "RawPacket":
        """Build a packet, computing its size from the serialised plist."""
        size = len(plist_to_xml_bytes(plist)) + _HEADER.size
        return cls(size=size, version=version, message=message, tag=tag, plist=plist)

    def to_bytes(self) -> bytes:
        """Serialise the header and plist body."""
        return _HEADER.pack(
            self.size, self.version, self.message, self.tag
        ) + plist_to_xml_bytes(self.plist)

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    @classmethod
    def from_bytes(cls, packet: bytes) -> "RawPacket":
        """Parse a packet; raises ValueError if it is short or malformed."""
        packet = bytes(packet)
        if len(packet) < _HEADER.size:
            logger.warning("Not enough data to parse a raw packet header")
            raise ValueError("Not enough data to parse a raw packet header")
        size, version, message, tag = _HEADER.unpack_from(packet)
        if len(packet) < size:
            logger.warning("Not enough data to parse a raw packet body")
            raise ValueError("Not enough data to parse a raw packet body")
        try:
            plist = plistlib.loads(packet[_HEADER.size : size])
        except Exception as exc:
            logger.warning("Failed to parse packet plist")
            raise ValueError("Failed to parse packet plist") from exc
        if not isinstance(plist, dict):
            logger.warning("Packet plist is not a dictionary")
            raise ValueError("Packet plist is not a dictionary")
        return cls(size=size, version=version, message=message, tag=tag, plist=plist)