"""A deliberately small TCP client stack over a raw IP packet stream.

Only one connection can be live at a time, acknowledgements from the peer are
not tracked, and nothing is retransmitted: use it only where the underlying
transport is completely reliable.
"""

from __future__ import annotations

import ipaddress
import logging
import random
import time
from os import PathLike
from typing import Optional, Protocol, Union

from idevkit.ip import Ipv4Packet, Ipv6Packet, ProtocolNumber
from idevkit.pcap import PcapWriter
from idevkit.tcp import TcpFlags, TcpPacket

logger = logging.getLogger(__name__)

_WINDOW_SIZE = 0xFFFF - 1
_TTL = 255
_SEQ_MASK = 0xFFFFFFFF


class _PacketReader(Protocol):
    async def readexactly(self, n: int) -> bytes: ...


class _PacketWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class Adapter:
    """A single TCP connection carried over a stream of raw IP packets.

    ``reader`` yields whole IP packets through ``readexactly`` and ``writer``
    accepts them through ``write``/``drain``, like asyncio streams.
    """

    def __init__(
        self,
        reader: _PacketReader,
        writer: _PacketWriter,
        host_ip: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address],
        peer_ip: Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address],
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.host_ip = ipaddress.ip_address(host_ip)
        self.peer_ip = ipaddress.ip_address(peer_ip)
        if self.host_ip.version != self.peer_ip.version:
            raise ValueError("non matching IP versions")
        self.connected = False

        self.seq = 0
        self.ack = 0
        self.host_port = 1024
        self.peer_port = 1024

        self._read_buffer = bytearray()
        self._write_buffer = bytearray()
        self._pcap: Optional[PcapWriter] = None

    async def connect(self, port: int) -> None:
        """Open a connection to ``port`` on the peer with a three-way handshake."""
        self._read_buffer.clear()
        self._write_buffer.clear()

        self.seq = random.getrandbits(32)
        self.ack = 0
        self.host_port = random.getrandbits(16)
        self.peer_port = port

        await self._send(TcpFlags(syn=True))

        response = await self._read_tcp_packet()
        if not (response.flags.syn and response.flags.ack):
            logger.error("Didn't get syn ack: %r", response)
            raise ConnectionError("No syn ack")
        self.seq = (self.seq + 1) & _SEQ_MASK

        await self._send_ack()
        self.connected = True

    def pcap(self, path: Union[str, "PathLike[str]"]) -> None:
        """Record every packet sent and received to a pcap file at ``path``."""
        if self._pcap is not None:
            self._pcap.close()
        writer = PcapWriter(open(path, "wb"))
        writer.write_header()
        self._pcap = writer

    async def close(self) -> None:
        """Send FIN and wait until the peer acknowledges, resets or finishes."""
        await self._send(TcpFlags(fin=True, ack=True))
        while True:
            response = await self._read_tcp_packet()
            if response.flags.psh or response.payload:
                await self._send_ack()
                continue
            if response.flags.ack or response.flags.fin or response.flags.rst:
                break
        self.connected = False

    async def psh(self, data: bytes) -> None:
        """Send ``data`` in a single segment."""
        data = bytes(data)
        logger.debug("pshing %d bytes", len(data))
        await self._send(TcpFlags(psh=True, ack=True), data)
        self.seq = (self.seq + len(data)) & _SEQ_MASK

    async def recv(self) -> bytes:
        """Wait for the next segment carrying data and return its payload."""
        while True:
            response = await self._read_tcp_packet()
            if response.flags.psh or response.payload:
                await self._send_ack()
                return response.payload
            if response.flags.rst:
                self.connected = False
                raise ConnectionResetError("Connection reset")
            if response.flags.fin:
                await self._send_ack()
                self.connected = False
                raise ConnectionResetError("Connection reset")

    async def read(self, n: int = -1) -> bytes:
        """Return up to ``n`` bytes (all available if ``n`` is negative)."""
        if n == 0:
            return b""
        if self._read_buffer:
            return self._take(n)
        if not self.connected:
            raise ConnectionError("Adapter not connected")
        self._read_buffer.extend(await self.recv())
        return self._take(n)

    async def readexactly(self, n: int) -> bytes:
        """Return exactly ``n`` bytes, receiving as many segments as needed."""
        chunks = bytearray()
        while len(chunks) < n:
            chunks.extend(await self.read(n - len(chunks)))
        return bytes(chunks)

    def write(self, data: bytes) -> None:
        """Queue ``data``; it is sent on ``drain`` or before the next read."""
        logger.debug("poll psh %d", len(data))
        if not self.connected:
            raise ConnectionError("Adapter not connected")
        self._write_buffer.extend(data)

    async def drain(self) -> None:
        """Send everything queued by ``write``."""
        await self._flush_write_buffer()

    def _take(self, n: int) -> bytes:
        if n < 0 or n >= len(self._read_buffer):
            data = bytes(self._read_buffer)
            self._read_buffer.clear()
            return data
        data = bytes(self._read_buffer[:n])
        del self._read_buffer[:n]
        return data

    async def _flush_write_buffer(self) -> None:
        if not self._write_buffer:
            return
        logger.debug("Flushing %d bytes", len(self._write_buffer))
        data = bytes(self._write_buffer)
        await self.psh(data)
        self._write_buffer.clear()

    async def _send_ack(self) -> None:
        await self._send(TcpFlags(ack=True))

    async def _send(self, flags: TcpFlags, payload: bytes = b"") -> None:
        segment = TcpPacket.create(
            self.host_ip,
            self.peer_ip,
            self.host_port,
            self.peer_port,
            self.seq,
            self.ack,
            flags,
            _WINDOW_SIZE,
            payload,
        )
        packet = self._ip_wrap(segment)
        self._writer.write(packet)
        await self._writer.drain()
        if self._pcap is not None:
            self._pcap.write_packet(packet, time.time())

    async def _read_ip_payload(self) -> bytes:
        await self._flush_write_buffer()
        while True:
            if self.host_ip.version == 4:
                packet4 = await Ipv4Packet.from_reader(self._reader, self._pcap)
                logger.debug("IPv4 packet: %r", packet4)
                if packet4.protocol == ProtocolNumber.TCP:
                    return packet4.payload
            else:
                packet6 = await Ipv6Packet.from_reader(self._reader, self._pcap)
                logger.debug("IPv6 packet: %r", packet6)
                if packet6.next_header == ProtocolNumber.TCP:
                    return packet6.payload

    async def _read_tcp_packet(self) -> TcpPacket:
        while True:
            segment = TcpPacket.parse(await self._read_ip_payload())
            if (
                segment.destination_port != self.host_port
                or segment.source_port != self.peer_port
            ):
                continue
            logger.debug("TCP packet: %r", segment)
            advance = len(segment.payload) if segment.payload else 1
            self.ack = (segment.sequence_number + advance) & _SEQ_MASK
            return segment

    def _ip_wrap(self, segment: bytes) -> bytes:
        if self.host_ip.version == 4:
            return Ipv4Packet.create(
                self.host_ip, self.peer_ip, ProtocolNumber.TCP, _TTL, segment
            )
        return Ipv6Packet.create(
            self.host_ip, self.peer_ip, ProtocolNumber.TCP, _TTL, segment
        )