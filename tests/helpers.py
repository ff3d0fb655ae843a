"""Shared helpers for building appliance responses in tests."""

from __future__ import annotations

from broadlink_rm_protocol import CipherSession, DeviceSession, RfDeviceSession, encode_frame, pad_payload

MAC = bytes([0x34, 0xea, 0x34, 0x01, 0x02, 0x03])
HOST = ('192.168.1.32', 80)

class RecordingMixin:
    """Captures outgoing frames instead of sending them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sent = []
        self.started = False

    def send_raw(self, frame: bytes) -> None:
        self.sent.append(frame)

    async def start(self) -> None:
        self.started = True
        await self.finish_start()

class RecordingSession(RecordingMixin, DeviceSession):
    pass

class RecordingRfSession(RecordingMixin, RfDeviceSession):
    pass

def recording_session_factory(host, mac, device_type):
    from broadlink_rm_protocol import classify
    session_class = RecordingRfSession if classify(device_type).has_rf else RecordingSession
    return session_class(host, mac, device_type)

def response_frame(command: int, payload: bytes, cipher: CipherSession, error_code: int = 0) -> bytes:
    """Builds a frame as an appliance would send it."""
    frame = bytearray(encode_frame(command, pad_payload(payload), 1, MAC, bytes(4), cipher))
    frame[0x22:0x24] = error_code.to_bytes(2, 'little')
    return bytes(frame)

def handshake_payload(session_id: bytes, key: bytes) -> bytes:
    return pad_payload(session_id + key)

def discovery_response(mac: bytes, device_type: int) -> bytes:
    """Builds a discovery response carrying mac and device_type at the offsets appliances use."""
    data = bytearray(0x80)
    data[0x34:0x36] = device_type.to_bytes(2, 'little')
    data[0x3d], data[0x3e], data[0x3f], data[0x3c], data[0x3b], data[0x3a] = mac
    return bytes(data)
