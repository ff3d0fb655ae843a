# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

BROADCAST_ADDRESS = "255.255.255.255"
"""The address that discovery probes are broadcast to."""

DISCOVERY_PORT = 80
"""The UDP port that appliances listen on for discovery probes."""

CHECKSUM_SEED = 0xbeaf
"""The initial value of every additive checksum in the protocol."""

FRAME_MAGIC = bytes([0x5a, 0xa5, 0xaa, 0x55, 0x5a, 0xa5, 0xaa, 0x55])
"""The magic bytes at the start of every command frame."""

FRAME_HEADER_LENGTH = 0x38
"""Length of a command frame header. The encrypted payload starts at this offset."""

FRAME_VERSION = bytes([0x2a, 0x27])
"""The fixed protocol version bytes placed at offsets 0x24-0x25 of every command frame."""

DISCOVERY_PACKET_LENGTH = 0x30
"""Length of a discovery probe."""

DISCOVERY_MARKER = 0x06
"""Command byte (offset 0x26) that identifies a discovery probe."""

DISCOVERY_RESPONSE_MIN_LENGTH = 0x40
"""Minimum length of a discovery response that carries a MAC address and device type."""

BLOCK_SIZE = 16
"""Cipher block size, in bytes."""

DEFAULT_KEY = bytes([
    0x09, 0x76, 0x28, 0x34, 0x3f, 0xe9, 0x9e, 0x23,
    0x76, 0x5c, 0x15, 0x13, 0xac, 0xcf, 0x8b, 0x02,
  ])
"""The well-known key every appliance accepts before the handshake."""

DEFAULT_IV = bytes([
    0x56, 0x2e, 0x17, 0x99, 0x6d, 0x09, 0x3d, 0x28,
    0xdd, 0xb3, 0xba, 0x69, 0x5a, 0x2e, 0x6f, 0x58,
  ])
"""The well-known IV. It is never rotated."""

CMD_AUTHENTICATE = 0x65
"""Opcode of the handshake request."""

CMD_AUTHENTICATE_RESPONSE = 0xe9
"""Command byte of a handshake response."""

CMD_DEVICE_REQUEST = 0x6a
"""Opcode of every post-handshake request."""

CMD_DEVICE_RESPONSES = (0xee, 0xef)
"""Command bytes of responses to post-handshake requests."""

SUBCMD_CHECK_TEMPERATURE = 0x01
SUBCMD_SEND_DATA = 0x02
SUBCMD_ENTER_LEARNING = 0x03
SUBCMD_CHECK_DATA = 0x04
SUBCMD_ENTER_RF_SWEEP = 0x19
SUBCMD_CHECK_RF_DATA = 0x1a
SUBCMD_CHECK_RF_DATA2 = 0x1b
SUBCMD_CANCEL_LEARNING = 0x1e

RESPONSE_TEMPERATURE = 1
RESPONSE_RAW_DATA = 4
RESPONSE_RF_DATA = 26
RESPONSE_RF_DATA2 = 27
