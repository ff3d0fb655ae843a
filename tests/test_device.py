import pytest

from broadlink_rm_protocol import (
    ApplianceError,
    CipherSession,
    DecodeFailure,
    DeviceReadyEvent,
    DeviceSession,
    HandshakeError,
    RawDataEvent,
    RawRFData2Event,
    RawRFDataEvent,
    RfDeviceSession,
    TemperatureEvent,
    create_device_session,
    decode_frame,
)
from broadlink_rm_protocol.constants import DEFAULT_KEY, DEFAULT_IV

from helpers import (
    HOST,
    MAC,
    RecordingRfSession,
    RecordingSession,
    handshake_payload,
    response_frame,
)

NEW_KEY = bytes(range(0x10, 0x20))
SESSION_ID = bytes([1, 2, 3, 4])

def make_session(session_class=RecordingSession, device_type=0x2737):
    session = session_class(HOST, MAC, device_type)
    events = []
    session.add_event_handler(events.append)
    return session, events

def authenticated(session_class=RecordingSession, device_type=0x2737):
    session, events = make_session(session_class, device_type)
    session.handle_frame(response_frame(0xe9, handshake_payload(SESSION_ID, NEW_KEY), CipherSession()))
    events.clear()
    session.sent.clear()
    return session, events

def sent_payload(session, index=-1):
    return decode_frame(session.sent[index], session.cipher).payload

def test_initial_state():
    session, _ = make_session()
    assert session.cipher.key == DEFAULT_KEY
    assert session.id == bytes(4)
    assert 0 <= session.count <= 0xffff
    assert session.model == 'Broadlink RM Mini'
    assert not session.is_ready

def test_counter_is_randomized():
    counts = { DeviceSession(HOST, MAC, 0x2737).count for _ in range(20) }
    assert len(counts) > 1

def test_handshake_request():
    session, _ = make_session()
    session.authenticate()
    assert len(session.sent) == 1
    frame = session.sent[0]
    assert frame[0x26] == 0x65
    payload = decode_frame(frame, CipherSession()).payload
    assert len(payload) == 0x50
    assert payload[0x04:0x13] == b'1' * 15
    assert payload[0x03] == 0 and payload[0x13] == 0
    assert payload[0x1e] == 0x01
    assert payload[0x2d] == 0x01
    assert payload[0x30:0x37] == b'Test  1'

def test_counter_increments_and_wraps():
    session, _ = make_session()
    session.count = 0xffff
    session.check_data()
    assert session.count == 0
    assert session.sent[-1][0x28:0x2a] == b'\x00\x00'
    session.check_data()
    assert session.count == 1

def test_handshake_response_rotates_key_and_id():
    session, events = make_session()
    session.handle_frame(response_frame(0xe9, handshake_payload(SESSION_ID, NEW_KEY), CipherSession()))
    assert session.cipher.key == NEW_KEY
    assert session.cipher.iv == DEFAULT_IV
    assert session.id == SESSION_ID
    assert session.is_ready
    assert len(events) == 1
    assert isinstance(events[0], DeviceReadyEvent)
    assert events[0].session is session

def test_short_handshake_response_fails_fast():
    session, events = make_session()
    # 16 bytes of payload: not enough for a 4-byte id and a 16-byte key
    frame = response_frame(0xe9, bytes(16), CipherSession())
    with pytest.raises(HandshakeError):
        session.handle_frame(frame)
    assert session.cipher.key == DEFAULT_KEY
    assert session.id == bytes(4)
    assert events == []

def test_rehandshake_updates_key_again():
    session, events = authenticated()
    other_key = bytes(range(0x30, 0x40))
    session.handle_frame(response_frame(0xe9, handshake_payload(bytes([9, 9, 9, 9]), other_key), session.cipher))
    assert session.cipher.key == other_key
    assert session.id == bytes([9, 9, 9, 9])
    assert isinstance(events[-1], DeviceReadyEvent)

def test_commands_use_rotated_key_and_session_id():
    session, _ = authenticated()
    session.check_temperature()
    frame = session.sent[-1]
    assert frame[0x26] == 0x6a
    assert frame[0x30:0x34] == SESSION_ID
    assert decode_frame(frame, session.cipher).payload == bytes([0x01]) + bytes(15)

@pytest.mark.parametrize("method, subcommand", [
    ('check_temperature', 0x01),
    ('enter_learning', 0x03),
    ('check_data', 0x04),
    ('cancel_learning', 0x1e),
])
def test_padded_requests(method, subcommand):
    session, _ = authenticated()
    getattr(session, method)()
    assert session.sent[-1][0x26] == 0x6a
    assert sent_payload(session) == bytes([subcommand]) + bytes(15)

def test_send_data():
    session, _ = authenticated()
    code = bytes(range(1, 29))
    session.send_data(code)
    assert sent_payload(session) == bytes([0x02, 0, 0, 0]) + code

def test_send_data_is_not_padded():
    session, _ = authenticated()
    with pytest.raises(ValueError):
        session.send_data(bytes(5))

def test_rf_operations_only_on_rf_sessions():
    session = create_device_session(HOST, MAC, 0x2737)
    assert type(session) is DeviceSession
    assert not hasattr(session, 'enter_rf_sweep')
    assert not hasattr(session, 'check_rf_data')
    assert not hasattr(session, 'check_rf_data2')
    rf_session = create_device_session(HOST, MAC, 0x272a)
    assert isinstance(rf_session, RfDeviceSession)
    assert rf_session.has_rf

@pytest.mark.parametrize("method, subcommand", [
    ('enter_rf_sweep', 0x19),
    ('check_rf_data', 0x1a),
    ('check_rf_data2', 0x1b),
])
def test_rf_requests(method, subcommand):
    session, _ = authenticated(RecordingRfSession, 0x272a)
    getattr(session, method)()
    assert sent_payload(session) == bytes([subcommand]) + bytes(15)

def test_temperature_response():
    session, events = authenticated()
    session.handle_frame(response_frame(0xee, bytes([1, 0, 0, 0, 21, 5]), session.cipher))
    assert len(events) == 1
    assert isinstance(events[0], TemperatureEvent)
    assert events[0].temperature == 21.5

def test_raw_data_response():
    session, events = authenticated()
    code = bytes(range(0x20, 0x2c))
    session.handle_frame(response_frame(0xef, bytes([4, 0, 0, 0]) + code, session.cipher))
    assert isinstance(events[0], RawDataEvent)
    # the remainder of the block-aligned payload follows the code
    assert events[0].data == code + bytes(16 - 4 - len(code))

@pytest.mark.parametrize("param, event_class", [(26, RawRFDataEvent), (27, RawRFData2Event)])
def test_rf_found_response(param, event_class):
    session, events = authenticated(RecordingRfSession, 0x272a)
    session.handle_frame(response_frame(0xee, bytes([param, 0, 0, 0, 1]), session.cipher))
    assert len(events) == 1
    assert type(events[0]) is event_class
    assert events[0].data == b'\x01'

@pytest.mark.parametrize("param", [26, 27])
def test_rf_still_sweeping_is_dropped(param):
    session, events = authenticated(RecordingRfSession, 0x272a)
    session.handle_frame(response_frame(0xee, bytes([param, 0, 0, 0, 0]), session.cipher))
    assert events == []

def test_unrecognized_response_is_dropped():
    session, events = authenticated()
    session.handle_frame(response_frame(0xee, bytes([0x55]), session.cipher))
    assert events == []

def test_unhandled_command_is_dropped():
    session, events = authenticated()
    decoded = session.handle_frame(response_frame(0x42, bytes([1, 0, 0, 0, 21, 5]), session.cipher))
    assert decoded.command == 0x42
    assert events == []

def test_appliance_error_emits_nothing():
    session, events = authenticated()
    frame = response_frame(0xee, bytes([1, 0, 0, 0, 21, 5]), session.cipher, error_code=0xfff6)
    with pytest.raises(ApplianceError) as excinfo:
        session.handle_frame(frame)
    assert excinfo.value.error_code == 0xfff6
    assert events == []

def test_short_frame_fails():
    session, _ = make_session()
    with pytest.raises(DecodeFailure):
        session.handle_frame(bytes(0x20))

def test_datagram_errors_are_logged_and_dropped():
    session, events = make_session()
    # on_datagram errors are swallowed by the socket layer
    session.datagram_received(None, HOST, bytes(0x20))
    assert events == []
    assert session.cipher.key == DEFAULT_KEY

def test_handler_exceptions_do_not_stop_delivery():
    session, events = make_session()
    def bad_handler(event):
        raise RuntimeError("boom")
    session.add_event_handler(bad_handler)
    later = []
    session.add_event_handler(later.append)
    session.handle_frame(response_frame(0xe9, handshake_payload(SESSION_ID, NEW_KEY), CipherSession()))
    assert len(events) == 1
    assert len(later) == 1

def test_send_without_start_fails():
    from broadlink_rm_protocol import BroadlinkError
    session = DeviceSession(HOST, MAC, 0x2737)
    with pytest.raises(BroadlinkError):
        session.check_data()
