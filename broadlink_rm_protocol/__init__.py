# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package broadlink_rm_protocol implements the local UDP control protocol of Broadlink RM
universal IR/RF remotes.

Appliances are found by broadcasting a discovery probe on each local interface. Each
appliance that answers is identified by its MAC address and device type; for supported
device types a DeviceSession performs a key-exchange handshake, after which AES-encrypted
commands can be sent to send IR/RF codes, learn new codes, and read the temperature sensor.

The protocol is not publicly documented by the manufacturer; this implementation follows
the reverse-engineered wire format.
"""

from .version import __version__

from .internal_types import HostAndPort, Jsonable, JsonableDict

from .exceptions import (
    BroadlinkError,
    DecodeFailure,
    ApplianceError,
    HandshakeError,
    PayloadAlignmentError,
    InvalidHostDescriptor,
    MissingMacAddress,
    MissingDeviceType,
  )

from .cipher import CipherSession
from .codec import encode_frame, decode_frame, checksum, frame_checksum, pad_payload, DecodedFrame
from .device_types import classify, device_model, DeviceClassification, DeviceSupport
from .discovery_datagram import DiscoveryProbe, DiscoveryResponse, encode_utc_offset
from .events import (
    RmEvent,
    DeviceReadyEvent,
    RawDataEvent,
    RawRFDataEvent,
    RawRFData2Event,
    TemperatureEvent,
    UnknownDeviceEvent,
    EventSource,
    EventSubscriber,
    EventHandler,
  )
from .rm_socket import RmSocket, RmSocketBinding
from .device import DeviceSession, RfDeviceSession, create_device_session
from .discovery import DiscoveryService, DiscoveryState
from .util import get_local_ip_addresses, parse_mac_address, format_mac_address
from .constants import BROADCAST_ADDRESS, DISCOVERY_PORT

__all__ = [
    '__version__',
    'HostAndPort', 'Jsonable', 'JsonableDict',
    'BroadlinkError', 'DecodeFailure', 'ApplianceError', 'HandshakeError', 'PayloadAlignmentError',
    'InvalidHostDescriptor', 'MissingMacAddress', 'MissingDeviceType',
    'CipherSession',
    'encode_frame', 'decode_frame', 'checksum', 'frame_checksum', 'pad_payload', 'DecodedFrame',
    'classify', 'device_model', 'DeviceClassification', 'DeviceSupport',
    'DiscoveryProbe', 'DiscoveryResponse', 'encode_utc_offset',
    'RmEvent', 'DeviceReadyEvent', 'RawDataEvent', 'RawRFDataEvent', 'RawRFData2Event',
    'TemperatureEvent', 'UnknownDeviceEvent', 'EventSource', 'EventSubscriber', 'EventHandler',
    'RmSocket', 'RmSocketBinding',
    'DeviceSession', 'RfDeviceSession', 'create_device_session',
    'DiscoveryService', 'DiscoveryState',
    'get_local_ip_addresses', 'parse_mac_address', 'format_mac_address',
    'BROADCAST_ADDRESS', 'DISCOVERY_PORT',
]
