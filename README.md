# idevkit

Asyncio building blocks for the wire formats used when talking to iOS
devices. The package has no third-party dependencies.

## What is in the package

- `idevkit.ip`: `Ipv4Packet` and `Ipv6Packet` build (`create`), parse
  (`parse`) and read (`from_reader`, from any object with an async
  `readexactly`) IP packets. `ProtocolNumber.TCP` is the only protocol
  number defined. Malformed packets raise `ValueError`.
- `idevkit.tcp`: `TcpFlags` (the URG, ACK, PSH, RST, SYN and FIN flags,
  with `from_byte` / `to_byte`) and `TcpPacket`, whose `create` fills in
  the checksum over the IPv4 or IPv6 pseudo-header and whose `parse`
  decodes a segment. TCP options are not interpreted.
- `idevkit.adapter`: `Adapter`, a single TCP client connection carried
  over a stream of raw IP packets. It offers `connect`, `close`, `psh`,
  `recv`, and a stream-like `read`, `readexactly`, `write` and `drain`.
  It does not track acknowledgements from the peer and never
  retransmits, so use it only over a transport that is fully reliable.
  `Adapter.pcap(path)` records every packet sent and received.
- `idevkit.pcap`: `PcapWriter` writes raw-IP captures (link type 101)
  that Wireshark and tcpdump can open.
- `idevkit.raw_packet`: `RawPacket`, the 16-byte little-endian header
  plus XML property list framing used by the USB multiplexer daemon
  (`new`, `to_bytes`, `from_bytes`).
- `idevkit.cdtunnel`: `encode` and `decode` for the `CDTunnel`-prefixed
  JSON messages used when a tunnel is set up.
- `idevkit.util`: `plist_to_xml_bytes`, `pretty_print_plist` and
  `pretty_print_dictionary` for property lists held as Python values.

## Installing

```
pip install idevkit
```

To run the test suite:

```
pip install "idevkit[test]"
pytest
```

## Examples

Build a TCP segment inside an IPv6 packet and read it back:

```python
from ipaddress import IPv6Address
from idevkit.ip import Ipv6Packet, ProtocolNumber
from idevkit.tcp import TcpFlags, TcpPacket

src, dst = IPv6Address("fd00::1"), IPv6Address("fd00::2")
segment = TcpPacket.create(src, dst, 1234, 5678, 420, 6969,
                           TcpFlags(psh=True), 5555, b"\x01\x02\x03")
packet = Ipv6Packet.create(src, dst, ProtocolNumber.TCP, 255, segment)

parsed = TcpPacket.parse(Ipv6Packet.parse(packet).payload)
assert parsed.flags.psh and parsed.payload == b"\x01\x02\x03"
```

Run a TCP connection over a packet transport (here `reader` and
`writer` are asyncio-style streams that carry whole IP packets):

```python
from idevkit.adapter import Adapter

async def echo(reader, writer):
    adapter = Adapter(reader, writer, "fd00::1", "fd00::2")
    adapter.pcap("session.pcap")
    await adapter.connect(5555)
    adapter.write(b"hello")
    await adapter.drain()
    reply = await adapter.readexactly(5)
    await adapter.close()
    return reply
```

Frame a message for the USB multiplexer daemon:

```python
from idevkit.raw_packet import RawPacket

packet = RawPacket.new({"MessageType": "ListDevices"}, 1, 8, 0)
data = packet.to_bytes()
assert RawPacket.from_bytes(data).plist == {"MessageType": "ListDevices"}
```

CDTunnel framing and plist rendering:

```python
from idevkit import cdtunnel
from idevkit.util import pretty_print_plist

frame = cdtunnel.encode({"type": "clientHandshakeRequest", "mtu": 16000})
assert cdtunnel.decode(frame)["mtu"] == 16000

print(pretty_print_plist({"Name": "demo", "Data": b"\x00\x01"}))
```

## What the package does not do

It provides the packet formats and the TCP stack only. It does not
include a client that connects to the USB multiplexer daemon and lists
devices, an XPC object or message codec, an HTTP/2 transport, a TSS
request client, or a way to query a tunnel daemon. There are no
command-line tools.