#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Discovery probe and discovery response datagrams.

A discovery probe is a 0x30-byte datagram broadcast to port 80 that announces the
local time, UTC offset, and the unicast address and port the probing socket is bound to.
Appliances answer with a datagram sent back to that address, carrying their MAC address
and device type.
"""

from __future__ import annotations

import datetime
import ipaddress

from .internal_types import *
from .constants import (
    DISCOVERY_PACKET_LENGTH,
    DISCOVERY_MARKER,
    DISCOVERY_RESPONSE_MIN_LENGTH,
  )
from .exceptions import DecodeFailure
from .codec import checksum

MAC_OFFSETS = (0x3d, 0x3e, 0x3f, 0x3c, 0x3b, 0x3a)
"""Offsets within a discovery response of MAC bytes 0 through 5."""

DEVICE_TYPE_OFFSET = 0x34
"""Offset within a discovery response of the little-endian 16-bit device type."""

def encode_utc_offset(hours: int) -> bytes:
    """Encodes a whole-hour UTC offset into the 4 bytes placed at offsets 0x08-0x0b of a probe.

    Non-negative offsets are a single byte followed by three zero bytes. Negative offsets
    are encoded as 0xff + hours - 1 followed by three 0xff bytes.
    """
    if hours < 0:
        return bytes([(0xff + hours - 1) & 0xff, 0xff, 0xff, 0xff])
    return bytes([hours & 0xff, 0, 0, 0])

def utc_offset_hours(now: datetime.datetime) -> int:
    """Returns the UTC offset of an aware datetime in whole hours, truncated toward zero."""
    offset = now.utcoffset()
    if offset is None:
        return 0
    return int(offset.total_seconds() / 3600)

class DiscoveryProbe:
    """A discovery probe to be broadcast from a single local interface."""

    local_ip: str
    """The IPv4 address of the interface the probe is sent from"""

    local_port: int
    """The UDP port the probing socket is bound to; responses are sent here"""

    timestamp: datetime.datetime
    """The aware local time encoded into the probe"""

    _raw_data: bytes

    def __init__(self, local_ip: str, local_port: int, timestamp: Optional[datetime.datetime]=None):
        self.local_ip = local_ip
        self.local_port = local_port
        if timestamp is None:
            timestamp = datetime.datetime.now().astimezone()
        elif timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()
        self.timestamp = timestamp
        self._raw_data = self._build()

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    def _build(self) -> bytes:
        now = self.timestamp
        ip_octets = ipaddress.IPv4Address(self.local_ip).packed
        packet = bytearray(DISCOVERY_PACKET_LENGTH)
        packet[0x08:0x0c] = encode_utc_offset(utc_offset_hours(now))
        packet[0x0c:0x0e] = (now.year & 0xffff).to_bytes(2, 'little')
        packet[0x0e] = now.minute
        packet[0x0f] = now.hour
        packet[0x10] = now.year % 100
        # Sunday is 0, and months are zero-based
        packet[0x11] = now.isoweekday() % 7
        packet[0x12] = now.day
        packet[0x13] = now.month - 1
        packet[0x18:0x1c] = ip_octets
        packet[0x1c:0x1e] = (self.local_port & 0xffff).to_bytes(2, 'little')
        packet[0x26] = DISCOVERY_MARKER
        packet[0x20:0x22] = checksum(packet).to_bytes(2, 'little')
        return bytes(packet)

    def __str__(self) -> str:
        return f"DiscoveryProbe({self.local_ip}:{self.local_port}, {self.timestamp.isoformat()})"

    def __repr__(self) -> str:
        return str(self)

class DiscoveryResponse:
    """A discovery response received from an appliance."""

    _raw_data: bytes
    mac: bytes
    """The appliance's 6-byte MAC address"""

    device_type: int
    """The appliance's 16-bit device type"""

    def __init__(self, raw_data: bytes):
        if len(raw_data) < DISCOVERY_RESPONSE_MIN_LENGTH:
            raise DecodeFailure(
                f"Discovery response of {len(raw_data)} bytes is shorter than {DISCOVERY_RESPONSE_MIN_LENGTH} bytes")
        self._raw_data = bytes(raw_data)
        self.mac = bytes(raw_data[i] for i in MAC_OFFSETS)
        self.device_type = int.from_bytes(raw_data[DEVICE_TYPE_OFFSET:DEVICE_TYPE_OFFSET+2], 'little')

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @property
    def mac_hex(self) -> str:
        return self.mac.hex()

    def __str__(self) -> str:
        return f"DiscoveryResponse(mac={self.mac_hex}, device_type=0x{self.device_type:04x})"

    def __repr__(self) -> str:
        return str(self)
