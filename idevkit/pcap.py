"""Writing captured packets in the libpcap file format."""

from __future__ import annotations

import logging
import struct
import threading
import time
from typing import BinaryIO

logger = logging.getLogger(__name__)

PCAP_MAGIC = 0xA1B2C3D4
PCAP_VERSION_MAJOR = 2
PCAP_VERSION_MINOR = 4
PCAP_SNAPLEN = 0xFFFF
LINKTYPE_RAW = 101

_GLOBAL_HEADER = struct.Struct("<IHHiII I")
_RECORD_HEADER = struct.Struct("<IIII")


class PcapWriter:
    """Writes raw IP packets to a binary stream as a pcap capture."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream
        self._lock = threading.Lock()

    def __enter__(self) -> "PcapWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def write_header(self) -> None:
        """Write the pcap global header (raw IP link type)."""
        header = _GLOBAL_HEADER.pack(
            PCAP_MAGIC,
            PCAP_VERSION_MAJOR,
            PCAP_VERSION_MINOR,
            0,
            0,
            PCAP_SNAPLEN,
            LINKTYPE_RAW,
        )
        with self._lock:
            self.stream.write(header)

    def write_packet(self, packet: bytes, timestamp: float | None = None) -> None:
        """Append one packet record, stamped with ``timestamp`` (seconds since the epoch)."""
        if timestamp is None:
            timestamp = time.time()
        packet = bytes(packet)
        logger.debug("Logging %d byte packet", len(packet))
        seconds = int(timestamp) & 0xFFFFFFFF
        micros = int(timestamp * 1_000_000) % 1_000_000_000
        record = _RECORD_HEADER.pack(seconds, micros, len(packet), len(packet))
        with self._lock:
            self.stream.write(record)
            self.stream.write(packet)
            flush = getattr(self.stream, "flush", None)
            if flush is not None:
                flush()

    def close(self) -> None:
        """Close the underlying stream."""
        with self._lock:
            self.stream.close()