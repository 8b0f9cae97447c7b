"""Minimal IPv4 and IPv6 packet parsing and construction."""

from __future__ import annotations

import enum
import ipaddress
import logging
import struct
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from idevkit.pcap import PcapWriter

logger = logging.getLogger(__name__)

_IPV4_HEADER = struct.Struct("!BBHHHBBH4s4s")
_IPV6_HEADER = struct.Struct("!IHBB16s16s")


class _Reader(Protocol):
    async def readexactly(self, n: int) -> bytes: ...


class ProtocolNumber(enum.IntEnum):
    """IP protocol numbers understood by this stack."""

    TCP = 6


def _log(log: Optional["PcapWriter"], data: bytes) -> None:
    if log is not None:
        log.write_packet(data, time.time())


@dataclass
class Ipv4Packet:
    """A decoded IPv4 packet. ``ihl`` is the header length in bytes."""

    version: int
    ihl: int
    tos: int
    total_length: int
    identification: int
    flags: int
    fragment_offset: int
    ttl: int
    protocol: int
    header_checksum: int
    source: ipaddress.IPv4Address
    destination: ipaddress.IPv4Address
    options: bytes = b""
    payload: bytes = field(default=b"", repr=False)

    @classmethod
    def _from_header(cls, header: bytes) -> "Ipv4Packet":
        (
            version_ihl,
            tos,
            total_length,
            identification,
            flags_fragment,
            ttl,
            protocol,
            checksum,
            source,
            destination,
        ) = _IPV4_HEADER.unpack(header[:20])
        return cls(
            version=version_ihl >> 4,
            ihl=(version_ihl & 0x0F) * 4,
            tos=tos,
            total_length=total_length,
            identification=identification,
            flags=flags_fragment >> 13,
            fragment_offset=flags_fragment & 0x1FFF,
            ttl=ttl,
            protocol=protocol,
            header_checksum=checksum,
            source=ipaddress.IPv4Address(source),
            destination=ipaddress.IPv4Address(destination),
        )

    @classmethod
    def parse(cls, packet: bytes) -> "Ipv4Packet":
        """Parse a complete IPv4 packet; raises ValueError if it is not one."""
        packet = bytes(packet)
        if len(packet) < 20:
            raise ValueError("Not enough bytes for an IPv4 header")
        parsed = cls._from_header(packet)
        if parsed.version != 4 or len(packet) < parsed.ihl:
            raise ValueError("Invalid IPv4 header")
        options_end = parsed.ihl
        if parsed.total_length > len(packet):
            raise ValueError("IPv4 total length exceeds the packet")
        parsed.options = packet[20:options_end] if options_end > 20 else b""
        parsed.payload = (
            packet[options_end : parsed.total_length]
            if parsed.total_length > options_end
            else b""
        )
        return parsed

    @classmethod
    async def from_reader(
        cls, reader: _Reader, log: Optional["PcapWriter"] = None
    ) -> "Ipv4Packet":
        """Read one IPv4 packet from an async stream, logging it if ``log`` is given."""
        header = await reader.readexactly(20)
        parsed = cls._from_header(header)
        if parsed.version != 4 or parsed.ihl < 20:
            raise ValueError("Invalid IPv4 header")
        options_len = parsed.ihl - 20
        options = await reader.readexactly(options_len) if options_len else b""
        payload_len = parsed.total_length - parsed.ihl
        if payload_len < 0:
            raise ValueError("IPv4 total length shorter than its header")
        payload = await reader.readexactly(payload_len)
        parsed.options = options
        parsed.payload = payload
        _log(log, header + options + payload)
        return parsed

    @staticmethod
    def create(
        source: ipaddress.IPv4Address | str,
        destination: ipaddress.IPv4Address | str,
        protocol: ProtocolNumber | int,
        ttl: int,
        payload: bytes,
    ) -> bytes:
        """Build an IPv4 packet carrying ``payload``."""
        ihl = 5
        total_length = ihl * 4 + len(payload)
        if total_length > 0xFFFF:
            raise ValueError("IPv4 packet too large")
        header = _IPV4_HEADER.pack(
            (4 << 4) | ihl,
            0,
            total_length,
            0,
            0,
            ttl,
            int(protocol),
            0,
            ipaddress.IPv4Address(source).packed,
            ipaddress.IPv4Address(destination).packed,
        )
        packet = bytearray(header + bytes(payload))
        _apply_checksum(packet)
        return bytes(packet)


def _apply_checksum(packet: bytearray) -> None:
    packet[10:12] = b"\x00\x00"
    even = len(packet) // 2 * 2
    checksum = sum(w for (w,) in struct.iter_unpack("!H", packet[:even])) & 0xFFFF
    packet[10:12] = checksum.to_bytes(2, "big")


@dataclass
class Ipv6Packet:
    """A decoded IPv6 packet."""

    version: int
    traffic_class: int
    flow_label: int
    payload_length: int
    next_header: int
    hop_limit: int
    source: ipaddress.IPv6Address
    destination: ipaddress.IPv6Address
    payload: bytes = field(default=b"", repr=False)

    @classmethod
    def _from_header(cls, header: bytes) -> "Ipv6Packet":
        first, payload_length, next_header, hop_limit, source, destination = (
            _IPV6_HEADER.unpack(header[:40])
        )
        return cls(
            version=first >> 28,
            traffic_class=(first >> 20) & 0xFF,
            flow_label=first & 0xFFFFF,
            payload_length=payload_length,
            next_header=next_header,
            hop_limit=hop_limit,
            source=ipaddress.IPv6Address(source),
            destination=ipaddress.IPv6Address(destination),
        )

    @classmethod
    def parse(cls, packet: bytes) -> "Ipv6Packet":
        """Parse an IPv6 packet; everything after the header is the payload."""
        packet = bytes(packet)
        if len(packet) < 40:
            raise ValueError("Not enough bytes for an IPv6 header")
        parsed = cls._from_header(packet)
        if parsed.version != 6:
            raise ValueError("Invalid IPv6 header")
        parsed.payload = packet[40:]
        return parsed

    @classmethod
    async def from_reader(
        cls, reader: _Reader, log: Optional["PcapWriter"] = None
    ) -> "Ipv6Packet":
        """Read one IPv6 packet from an async stream, logging it if ``log`` is given."""
        header = await reader.readexactly(40)
        parsed = cls._from_header(header)
        if parsed.version != 6:
            raise ValueError("Invalid IPv6 header")
        parsed.payload = await reader.readexactly(parsed.payload_length)
        _log(log, header + parsed.payload)
        return parsed

    @staticmethod
    def create(
        source: ipaddress.IPv6Address | str,
        destination: ipaddress.IPv6Address | str,
        next_header: ProtocolNumber | int,
        hop_limit: int,
        payload: bytes,
    ) -> bytes:
        """Build an IPv6 packet carrying ``payload``."""
        if len(payload) > 0xFFFF:
            raise ValueError("IPv6 payload too large")
        header = _IPV6_HEADER.pack(
            6 << 28,
            len(payload),
            int(next_header),
            hop_limit,
            ipaddress.IPv6Address(source).packed,
            ipaddress.IPv6Address(destination).packed,
        )
        return header + bytes(payload)