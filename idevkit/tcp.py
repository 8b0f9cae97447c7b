"""Minimal TCP segment parsing and construction."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass, field

_TCP_HEADER = struct.Struct("!HHIIBBHHH")
_TCP_PROTOCOL = 6

_FLAG_BITS = {
    "urg": 0b0010_0000,
    "ack": 0b0001_0000,
    "psh": 0b0000_1000,
    "rst": 0b0000_0100,
    "syn": 0b0000_0010,
    "fin": 0b0000_0001,
}


@dataclass(frozen=True)
class TcpFlags:
    """The six classic TCP control flags."""

    urg: bool = False
    ack: bool = False
    psh: bool = False
    rst: bool = False
    syn: bool = False
    fin: bool = False

    @classmethod
    def from_byte(cls, flags: int) -> "TcpFlags":
        """Decode the flags from the raw flags byte."""
        return cls(**{name: bool(flags & bit) for name, bit in _FLAG_BITS.items()})

    def to_byte(self) -> int:
        """Encode the flags as the raw flags byte."""
        return sum(bit for name, bit in _FLAG_BITS.items() if getattr(self, name))


IpAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass
class TcpPacket:
    """A decoded TCP segment. ``data_offset`` is the header length in bytes."""

    source_port: int
    destination_port: int
    sequence_number: int
    acknowledgment_number: int
    data_offset: int
    flags: TcpFlags
    window_size: int
    checksum: int
    urgent_pointer: int
    options: bytes = b""
    payload: bytes = field(default=b"", repr=False)

    @classmethod
    def parse(cls, packet: bytes) -> "TcpPacket":
        """Parse a TCP segment; raises ValueError if it is too short."""
        packet = bytes(packet)
        if len(packet) < 20:
            raise ValueError("Not enough bytes for TCP header")
        (
            source_port,
            destination_port,
            sequence_number,
            acknowledgment_number,
            offset_byte,
            flags,
            window_size,
            checksum,
            urgent_pointer,
        ) = _TCP_HEADER.unpack_from(packet)
        data_offset = (offset_byte >> 4) * 4
        payload = packet[data_offset:] if len(packet) > data_offset else b""
        return cls(
            source_port=source_port,
            destination_port=destination_port,
            sequence_number=sequence_number,
            acknowledgment_number=acknowledgment_number,
            data_offset=data_offset,
            flags=TcpFlags.from_byte(flags),
            window_size=window_size,
            checksum=checksum,
            urgent_pointer=urgent_pointer,
            # Options are not interpreted by this stack.
            options=b"",
            payload=payload,
        )

    @staticmethod
    def create(
        source_ip: IpAddress | str,
        destination_ip: IpAddress | str,
        source_port: int,
        destination_port: int,
        sequence_number: int,
        acknowledgment_number: int,
        flags: TcpFlags,
        window_size: int,
        payload: bytes,
    ) -> bytes:
        """Build a TCP segment with a checksum over the matching pseudo-header."""
        source = ipaddress.ip_address(source_ip)
        destination = ipaddress.ip_address(destination_ip)
        if source.version != destination.version:
            raise ValueError("Source and destination IP versions must match")

        header = _TCP_HEADER.pack(
            source_port,
            destination_port,
            sequence_number,
            acknowledgment_number,
            5 << 4,
            flags.to_byte(),
            window_size,
            0,
            0,
        )
        segment = bytearray(header + bytes(payload))
        checksum = _checksum(
            segment, source.packed, destination.packed, source.version == 6
        )
        segment[16:18] = checksum.to_bytes(2, "big")
        return bytes(segment)


def _sum_words(data: bytes) -> int:
    if len(data) % 2:
        data = data + b"\x00"
    return sum(word for (word,) in struct.iter_unpack("!H", data))


def _checksum(segment: bytes, source: bytes, destination: bytes, is_ipv6: bool) -> int:
    total = _sum_words(source) + _sum_words(destination)
    length = len(segment)
    if is_ipv6:
        total += (length >> 16) & 0xFFFF
        total += length & 0xFFFF
        total += _TCP_PROTOCOL
    else:
        total += _TCP_PROTOCOL
        total += length

    body = bytearray(segment)
    if len(body) >= 18:
        body[16:18] = b"\x00\x00"
    total += _sum_words(bytes(body))

    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF