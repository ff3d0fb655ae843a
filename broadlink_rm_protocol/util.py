#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import netifaces
import re
from ipaddress import IPv4Address

from .internal_types import *
from .exceptions import MissingMacAddress

def get_local_ip_addresses(include_loopback: bool=False) -> List[str]:
    """Returns the IPv4 addresses of every local interface, in interface order.
       Loopback addresses are omitted unless include_loopback is True."""
    result: List[str] = []
    for ifname in netifaces.interfaces():
        for addrinfo in netifaces.ifaddresses(ifname).get(netifaces.AF_INET, []):
            ip_str = addrinfo.get('addr')
            if not ip_str or ip_str in result:
                continue
            if IPv4Address(ip_str).is_loopback and not include_loopback:
                continue
            result.append(ip_str)
    return result

_mac_separators_re = re.compile(r'[:\-\.]')

def parse_mac_address(value: Union[str, bytes]) -> bytes:
    """Parses a MAC address given as 6 bytes, or as 12 hex digits with optional ':', '-' or '.' separators."""
    if isinstance(value, (bytes, bytearray)):
        mac = bytes(value)
    else:
        try:
            mac = bytes.fromhex(_mac_separators_re.sub('', value))
        except ValueError as e:
            raise MissingMacAddress(f"Invalid MAC address: {value!r}") from e
    if len(mac) != 6:
        raise MissingMacAddress(f"MAC address must be 6 bytes: {value!r}")
    return mac

def format_mac_address(mac: bytes) -> str:
    """Formats a 6-byte MAC address as 'aa:bb:cc:dd:ee:ff'."""
    return ':'.join(f"{b:02x}" for b in mac)
