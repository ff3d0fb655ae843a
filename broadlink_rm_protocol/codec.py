#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Encoding and decoding of command frames.

A command frame is a fixed 0x38-byte header followed by the encrypted payload:

    0x00-0x07  magic 5a a5 aa 55 5a a5 aa 55
    0x20-0x21  frame checksum (LE), computed with this field zeroed
    0x22-0x23  error code (LE), responses only
    0x24-0x25  protocol version 2a 27
    0x26       command (opcode)
    0x28-0x29  message counter (LE)
    0x2a-0x2f  MAC address, reversed
    0x30-0x33  session id
    0x34-0x35  plaintext payload checksum (LE)

Checksums are computed for outgoing frames and reported for incoming frames, but
incoming frames are never rejected because of them.
"""

from __future__ import annotations

from .internal_types import *
from .constants import (
    CHECKSUM_SEED,
    FRAME_MAGIC,
    FRAME_HEADER_LENGTH,
    FRAME_VERSION,
  )
from .exceptions import DecodeFailure, PayloadAlignmentError
from .cipher import CipherSession

def checksum(data: Union[bytes, bytearray], seed: int=CHECKSUM_SEED) -> int:
    """Returns the protocol's additive 16-bit checksum of data."""
    return (seed + sum(data)) & 0xffff

def frame_checksum(frame: Union[bytes, bytearray]) -> int:
    """Returns the checksum of a whole frame, treating its checksum field (0x20-0x21) as zero."""
    return (checksum(frame) - frame[0x20] - frame[0x21]) & 0xffff

def encode_frame(
        command: int,
        payload: bytes,
        counter: int,
        mac: bytes,
        session_id: bytes,
        cipher: CipherSession,
      ) -> bytes:
    """Builds a complete, encrypted command frame.

    Parameters:
        command:     The opcode placed at offset 0x26.
        payload:     The plaintext payload. Must be a multiple of 16 bytes.
        counter:     The 16-bit message counter.
        mac:         The appliance's 6-byte MAC address, in discovery order.
        session_id:  The 4-byte session id (all zeros before the handshake).
        cipher:      The CipherSession used to encrypt the payload.
    """
    if not 0 <= command <= 0xff:
        raise ValueError(f"Command opcode out of range: {command}")
    if len(mac) != 6:
        raise ValueError(f"MAC address must be 6 bytes, got {len(mac)}")
    if len(session_id) != 4:
        raise ValueError(f"Session id must be 4 bytes, got {len(session_id)}")

    header = bytearray(FRAME_HEADER_LENGTH)
    header[0x00:0x08] = FRAME_MAGIC
    header[0x24:0x26] = FRAME_VERSION
    header[0x26] = command
    header[0x28:0x2a] = (counter & 0xffff).to_bytes(2, 'little')
    header[0x2a:0x30] = bytes(reversed(mac))
    header[0x30:0x34] = session_id
    header[0x34:0x36] = checksum(payload).to_bytes(2, 'little')

    frame = header + cipher.encrypt(payload)
    frame[0x20:0x22] = frame_checksum(frame).to_bytes(2, 'little')
    return bytes(frame)

class DecodedFrame:
    """The result of decoding a received command frame."""

    error_code: int
    """The error code reported by the appliance. Zero on success."""

    command: int
    """The command byte at offset 0x26."""

    payload: Optional[bytes]
    """The decrypted payload, or None if error_code is nonzero."""

    frame_checksum: int
    """The frame checksum as found in the header. Not verified."""

    payload_checksum: int
    """The payload checksum as found in the header. Not verified."""

    def __init__(
            self,
            error_code: int,
            command: int,
            payload: Optional[bytes],
            frame_checksum: int=0,
            payload_checksum: int=0,
          ):
        self.error_code = error_code
        self.command = command
        self.payload = payload
        self.frame_checksum = frame_checksum
        self.payload_checksum = payload_checksum

    @property
    def is_error(self) -> bool:
        return self.error_code != 0

    def __str__(self) -> str:
        payload_str = 'None' if self.payload is None else self.payload.hex()
        return f"DecodedFrame(command=0x{self.command:02x}, error_code=0x{self.error_code:04x}, payload={payload_str})"

    def __repr__(self) -> str:
        return str(self)

def decode_frame(frame: bytes, cipher: CipherSession) -> DecodedFrame:
    """Decodes a received command frame.

    If the appliance reports an error, the payload is not decrypted and the returned
    DecodedFrame has payload=None.

    Raises DecodeFailure if the frame is too short to contain a header, or if the
    encrypted portion is not block-aligned.
    """
    if len(frame) < FRAME_HEADER_LENGTH:
        raise DecodeFailure(f"Frame of {len(frame)} bytes is shorter than the {FRAME_HEADER_LENGTH}-byte header")
    error_code = int.from_bytes(frame[0x22:0x24], 'little')
    command = frame[0x26]
    reported_frame_checksum = int.from_bytes(frame[0x20:0x22], 'little')
    reported_payload_checksum = int.from_bytes(frame[0x34:0x36], 'little')
    if error_code != 0:
        return DecodedFrame(error_code, command, None, reported_frame_checksum, reported_payload_checksum)
    try:
        payload = cipher.decrypt(bytes(frame[FRAME_HEADER_LENGTH:]))
    except PayloadAlignmentError as e:
        raise DecodeFailure(str(e)) from e
    return DecodedFrame(error_code, command, payload, reported_frame_checksum, reported_payload_checksum)

def pad_payload(payload: bytes, block_size: int=16) -> bytes:
    """Zero-pads payload up to a multiple of block_size."""
    remainder = len(payload) % block_size
    if remainder == 0:
        return payload
    return payload + bytes(block_size - remainder)
