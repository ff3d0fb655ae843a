#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DeviceSession -- A session with a single appliance that:

  1. Owns a UDP socket, a CipherSession, and a 16-bit message counter
  2. Performs the key-exchange handshake and emits DeviceReadyEvent when it succeeds
  3. Sends generic commands (send code, enter learning, check data, check temperature, ...)
  4. Decodes responses into typed events (RawDataEvent, TemperatureEvent, ...)

RfDeviceSession adds the RF sweep operations for RF-capable appliances.

There are no timeouts or retries. A lost handshake or an unanswered command simply never
produces an event. Concurrent commands on the same session must be serialized by the caller.
"""

from __future__ import annotations

import random

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    CMD_AUTHENTICATE,
    CMD_AUTHENTICATE_RESPONSE,
    CMD_DEVICE_REQUEST,
    CMD_DEVICE_RESPONSES,
    SUBCMD_CHECK_TEMPERATURE,
    SUBCMD_SEND_DATA,
    SUBCMD_ENTER_LEARNING,
    SUBCMD_CHECK_DATA,
    SUBCMD_ENTER_RF_SWEEP,
    SUBCMD_CHECK_RF_DATA,
    SUBCMD_CHECK_RF_DATA2,
    SUBCMD_CANCEL_LEARNING,
    RESPONSE_TEMPERATURE,
    RESPONSE_RAW_DATA,
    RESPONSE_RF_DATA,
    RESPONSE_RF_DATA2,
  )
from .exceptions import BroadlinkError, ApplianceError, DecodeFailure, HandshakeError
from .cipher import CipherSession
from .codec import encode_frame, decode_frame, pad_payload, DecodedFrame
from .device_types import classify, device_model
from .events import (
    EventSource,
    DeviceReadyEvent,
    RawDataEvent,
    RawRFDataEvent,
    RawRFData2Event,
    TemperatureEvent,
  )
from .rm_socket import RmSocket, RmSocketBinding

HANDSHAKE_PAYLOAD_LENGTH = 0x50
HANDSHAKE_RESPONSE_MIN_LENGTH = 0x14

def build_handshake_payload() -> bytes:
    """Returns the fixed 0x50-byte plaintext payload of a handshake request."""
    payload = bytearray(HANDSHAKE_PAYLOAD_LENGTH)
    payload[0x04:0x13] = b'1' * (0x13 - 0x04)
    payload[0x1e] = 0x01
    payload[0x2d] = 0x01
    payload[0x30:0x37] = b'Test  1'
    return bytes(payload)

class DeviceSession(RmSocket, EventSource):
    host: HostAndPort
    """The appliance's (ip_address, port) as reported by discovery"""

    mac: bytes
    """The appliance's 6-byte MAC address"""

    device_type: int
    """The appliance's 16-bit device type"""

    model: str
    """Human-readable model name"""

    bind_address: str
    """The local address the session socket is bound to. '' binds to all interfaces."""

    cipher: CipherSession
    """The current key/IV. Starts at the well-known default and is rotated by the handshake."""

    id: bytes
    """The 4-byte session id issued by the appliance; all zeros before the handshake."""

    count: int
    """The 16-bit message counter. Incremented before each frame is sent."""

    is_ready: bool = False
    """True once a handshake response has been applied."""

    has_rf: bool = False

    def __init__(
            self,
            host: HostAndPort,
            mac: bytes,
            device_type: int,
            bind_address: str='',
          ) -> None:
        RmSocket.__init__(self)
        EventSource.__init__(self)
        self.host = (host[0], int(host[1]))
        self.mac = bytes(mac)
        self.device_type = device_type
        self.model = device_model(device_type)
        self.bind_address = bind_address
        self.cipher = CipherSession()
        self.id = bytes(4)
        self.count = random.randrange(0xffff)

    @property
    def mac_hex(self) -> str:
        return self.mac.hex()

    #@override
    async def bind_sockets(self) -> None:
        self.bind(self.bind_address)

    async def finish_start(self) -> None:
        self.authenticate()

    def on_closed(self) -> None:
        self.end_event_stream()

    # ------------------------------------------------------------------ sending

    def send_raw(self, frame: bytes) -> None:
        """Sends an encoded frame to the appliance."""
        if len(self.socket_bindings) == 0:
            raise BroadlinkError(f"{self}: session has not been started")
        self.socket_bindings[0].sendto(frame, self.host)

    def send_packet(self, command: int, payload: bytes) -> None:
        """Encrypts payload and sends it to the appliance in a frame with the given opcode."""
        self.count = (self.count + 1) & 0xffff
        frame = encode_frame(command, payload, self.count, self.mac, self.id, self.cipher)
        logger.debug(f"{self}: sending command 0x{command:02x}, count={self.count}, frame={frame.hex()}")
        self.send_raw(frame)

    def send_request(self, subcommand: int) -> None:
        """Sends a post-handshake request whose payload is only the subcommand byte, zero-padded."""
        self.send_packet(CMD_DEVICE_REQUEST, pad_payload(bytes([subcommand])))

    def authenticate(self) -> None:
        """Sends the handshake request, encrypted with the current (normally default) key."""
        logger.debug(f"{self}: sending handshake")
        self.send_packet(CMD_AUTHENTICATE, build_handshake_payload())

    def check_temperature(self) -> None:
        self.send_request(SUBCMD_CHECK_TEMPERATURE)

    def enter_learning(self) -> None:
        self.send_request(SUBCMD_ENTER_LEARNING)

    def check_data(self) -> None:
        """Asks for a learned code. The appliance answers with a RawDataEvent once a code has been captured."""
        self.send_request(SUBCMD_CHECK_DATA)

    def cancel_learning(self) -> None:
        self.send_request(SUBCMD_CANCEL_LEARNING)

    def send_data(self, data: bytes) -> None:
        """Sends a raw IR/RF code, as returned in a RawDataEvent.

        The code is appended to a 4-byte header and is not padded, so its length must
        leave the payload a multiple of 16 bytes (learned codes always do).
        """
        self.send_packet(CMD_DEVICE_REQUEST, bytes([SUBCMD_SEND_DATA, 0, 0, 0]) + bytes(data))

    # ------------------------------------------------------------------ receiving

    #@override
    def on_datagram(self, socket_binding: RmSocketBinding, addr: HostAndPort, data: bytes) -> None:
        self.handle_frame(data)

    def handle_frame(self, data: bytes) -> Optional[DecodedFrame]:
        """Decodes a received frame and dispatches it.

        Raises DecodeFailure for short frames, ApplianceError if the appliance reported an error,
        and HandshakeError for a truncated handshake response.
        """
        decoded = decode_frame(data, self.cipher)
        if decoded.is_error:
            raise ApplianceError(decoded.error_code, decoded.command)
        assert decoded.payload is not None
        if decoded.command == CMD_AUTHENTICATE_RESPONSE:
            self.on_authenticated(decoded.payload)
        elif decoded.command in CMD_DEVICE_RESPONSES:
            self.on_payload_received(decoded.payload)
        else:
            logger.info(f"{self}: unhandled command 0x{decoded.command:02x}")
        return decoded

    def on_authenticated(self, payload: bytes) -> None:
        """Applies a handshake response: payload[0x04:0x14] is the new key, payload[0x00:0x04] the session id."""
        if len(payload) < HANDSHAKE_RESPONSE_MIN_LENGTH:
            raise HandshakeError(
                f"Handshake response payload of {len(payload)} bytes is shorter than {HANDSHAKE_RESPONSE_MIN_LENGTH} bytes")
        new_key = payload[0x04:0x14]
        new_id = payload[0x00:0x04]
        self.cipher.rotate(new_key)
        self.id = bytes(new_id)
        self.is_ready = True
        logger.info(f"{self}: handshake complete, session id={self.id.hex()}")
        self.emit(DeviceReadyEvent(self))

    def on_payload_received(self, payload: bytes) -> None:
        param = payload[0] if len(payload) > 0 else None
        if param == RESPONSE_TEMPERATURE:
            if len(payload) < 6:
                raise DecodeFailure(f"Temperature response payload too short: {payload.hex()}")
            temperature = (payload[0x04] * 10 + payload[0x05]) / 10.0
            self.emit(TemperatureEvent(temperature))
        elif param == RESPONSE_RAW_DATA:
            self.emit(RawDataEvent(bytes(payload[4:])))
        elif param in (RESPONSE_RF_DATA, RESPONSE_RF_DATA2):
            if len(payload) < 5:
                raise DecodeFailure(f"RF data response payload too short: {payload.hex()}")
            data = bytes(payload[0x04:0x05])
            if data[0] != 0x01:
                # sweep still in progress
                return
            if param == RESPONSE_RF_DATA:
                self.emit(RawRFDataEvent(data))
            else:
                self.emit(RawRFData2Event(data))
        else:
            logger.info(f"{self}: unrecognized response type {param}, payload={payload.hex()}")

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.model or hex(self.device_type)}, mac={self.mac_hex}, host={self.host[0]}:{self.host[1]})"

    def __repr__(self) -> str:
        return str(self)

class RfDeviceSession(DeviceSession):
    """A session with an RF-capable appliance."""

    has_rf = True

    def enter_rf_sweep(self) -> None:
        self.send_request(SUBCMD_ENTER_RF_SWEEP)

    def check_rf_data(self) -> None:
        self.send_request(SUBCMD_CHECK_RF_DATA)

    def check_rf_data2(self) -> None:
        self.send_request(SUBCMD_CHECK_RF_DATA2)

def create_device_session(
        host: HostAndPort,
        mac: bytes,
        device_type: int,
        bind_address: str='',
      ) -> DeviceSession:
    """Creates (but does not start) a DeviceSession or RfDeviceSession, as appropriate for device_type."""
    session_class = RfDeviceSession if classify(device_type).has_rf else DeviceSession
    return session_class(host, mac, device_type, bind_address=bind_address)
