"""Asyncio building blocks: a minimal TCP stack over raw IP packets, pcap capture, usbmuxd packet framing, CDTunnel framing and plist rendering."""

__version__ = "0.1.0"