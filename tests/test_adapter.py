import asyncio
import ipaddress
import struct

import pytest

from idevkit.adapter import Adapter
from idevkit.ip import Ipv4Packet, Ipv6Packet, ProtocolNumber
from idevkit.tcp import TcpFlags, TcpPacket

HOST4 = "10.0.0.1"
PEER4 = "10.0.0.2"
HOST6 = "fd12:3456:789a::1"
PEER6 = "fd12:3456:789a::2"
PORT = 5555


class FakePeer:
    """Answers the adapter's segments by feeding replies into its reader."""

    def __init__(self, reader, host, peer, on_data="echo", on_syn="synack", stray=False):
        self.reader = reader
        self.host = ipaddress.ip_address(host)
        self.peer = ipaddress.ip_address(peer)
        self.on_data = on_data
        self.on_syn = on_syn
        self.stray = stray
        self.seq = 1000
        self.sent = []
        self.raw = []

    def _wrap(self, segment, protocol=ProtocolNumber.TCP):
        if self.host.version == 4:
            return Ipv4Packet.create(self.peer, self.host, protocol, 64, segment)
        return Ipv6Packet.create(self.peer, self.host, protocol, 64, segment)

    def _reply(self, seg, flags, payload=b"", dst_port=None):
        reply = TcpPacket.create(
            self.peer,
            self.host,
            seg.destination_port,
            seg.source_port if dst_port is None else dst_port,
            self.seq,
            seg.sequence_number,
            flags,
            65535,
            payload,
        )
        self.reader.feed_data(self._wrap(reply))
        self.seq += max(1, len(payload))

    def write(self, data):
        self.raw.append(bytes(data))
        if self.host.version == 4:
            ip_payload = Ipv4Packet.parse(data).payload
        else:
            ip_payload = Ipv6Packet.parse(data).payload
        seg = TcpPacket.parse(ip_payload)
        self.sent.append(seg)
        if seg.flags.syn:
            if self.on_syn == "synack":
                self._reply(seg, TcpFlags(syn=True, ack=True))
            else:
                self._reply(seg, TcpFlags(rst=True))
        elif seg.flags.fin:
            self._reply(seg, TcpFlags(fin=True, ack=True))
        elif seg.payload:
            if self.stray:
                self.reader.feed_data(self._wrap(b"\x00" * 8, protocol=17))
                self._reply(seg, TcpFlags(psh=True, ack=True), b"stray", dst_port=seg.source_port ^ 1)
            if self.on_data == "echo":
                self._reply(seg, TcpFlags(psh=True, ack=True), seg.payload)
            elif self.on_data == "rst":
                self._reply(seg, TcpFlags(rst=True))
            elif self.on_data == "fin":
                self._reply(seg, TcpFlags(fin=True))

    async def drain(self):
        return None


def make(host=HOST4, peer=PEER4, **kwargs):
    reader = asyncio.StreamReader()
    fake = FakePeer(reader, host, peer, **kwargs)
    return Adapter(reader, fake, host, peer), fake


@pytest.mark.asyncio
async def test_connect_performs_handshake():
    adapter, peer = make()
    await adapter.connect(PORT)
    assert adapter.connected
    syn, ack = peer.sent[0], peer.sent[1]
    assert syn.flags == TcpFlags(syn=True)
    assert syn.destination_port == PORT
    assert ack.flags == TcpFlags(ack=True)
    assert ack.sequence_number == (syn.sequence_number + 1) & 0xFFFFFFFF
    assert ack.acknowledgment_number == 1001


@pytest.mark.asyncio
async def test_connect_without_syn_ack_fails():
    adapter, _ = make(on_syn="rst")
    with pytest.raises(ConnectionError):
        await adapter.connect(PORT)
    assert not adapter.connected


@pytest.mark.asyncio
async def test_echo_roundtrip_ipv4():
    adapter, _ = make()
    await adapter.connect(PORT)
    adapter.write(bytes([1, 2, 3, 4, 5]))
    assert await adapter.readexactly(5) == bytes([1, 2, 3, 4, 5])


@pytest.mark.asyncio
async def test_echo_roundtrip_ipv6():
    adapter, _ = make(HOST6, PEER6)
    await adapter.connect(PORT)
    adapter.write(bytes([69, 69, 42, 0, 1]))
    await adapter.drain()
    assert await adapter.readexactly(5) == bytes([69, 69, 42, 0, 1])


@pytest.mark.asyncio
async def test_partial_read_keeps_remainder():
    adapter, peer = make()
    await adapter.connect(PORT)
    adapter.write(b"abcdef")
    assert await adapter.read(2) == b"ab"
    sent_before = len(peer.sent)
    assert await adapter.read(100) == b"cdef"
    assert len(peer.sent) == sent_before


@pytest.mark.asyncio
async def test_psh_advances_sequence_number():
    adapter, peer = make(on_data="none")
    await adapter.connect(PORT)
    before = adapter.seq
    await adapter.psh(b"hello")
    assert adapter.seq == (before + 5) & 0xFFFFFFFF
    assert peer.sent[-1].payload == b"hello"
    assert peer.sent[-1].flags == TcpFlags(psh=True, ack=True)


@pytest.mark.asyncio
async def test_stray_packets_are_skipped():
    adapter, _ = make(stray=True)
    await adapter.connect(PORT)
    adapter.write(b"data")
    assert await adapter.readexactly(4) == b"data"


@pytest.mark.asyncio
async def test_reset_raises():
    adapter, _ = make(on_data="rst")
    await adapter.connect(PORT)
    adapter.write(b"x")
    with pytest.raises(ConnectionResetError):
        await adapter.read(1)
    assert not adapter.connected


@pytest.mark.asyncio
async def test_fin_is_acknowledged_and_raises():
    adapter, peer = make(on_data="fin")
    await adapter.connect(PORT)
    adapter.write(b"x")
    with pytest.raises(ConnectionResetError):
        await adapter.read(1)
    assert peer.sent[-1].flags == TcpFlags(ack=True)
    assert not adapter.connected


@pytest.mark.asyncio
async def test_not_connected_errors():
    adapter, _ = make()
    with pytest.raises(ConnectionError):
        adapter.write(b"x")
    with pytest.raises(ConnectionError):
        await adapter.read(1)


@pytest.mark.asyncio
async def test_close_sends_fin_and_disconnects():
    adapter, peer = make()
    await adapter.connect(PORT)
    await adapter.close()
    assert peer.sent[-1].flags == TcpFlags(fin=True, ack=True)
    assert not adapter.connected
    with pytest.raises(ConnectionError):
        adapter.write(b"x")


def test_mismatched_ip_versions_rejected():
    with pytest.raises(ValueError):
        Adapter(None, None, HOST4, PEER6)


@pytest.mark.asyncio
async def test_pcap_records_packets(tmp_path):
    adapter, peer = make()
    path = tmp_path / "capture.pcap"
    adapter.pcap(path)
    await adapter.connect(PORT)
    data = path.read_bytes()
    assert data[:4] == struct.pack("<I", 0xA1B2C3D4)
    _, _, incl_len, orig_len = struct.unpack_from("<IIII", data, 24)
    assert incl_len == orig_len == len(peer.raw[0])
    assert data[40 : 40 + incl_len] == peer.raw[0]