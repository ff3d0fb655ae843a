import random

import pytest

from broadlink_rm_protocol import (
    CipherSession,
    DecodeFailure,
    PayloadAlignmentError,
    checksum,
    decode_frame,
    encode_frame,
    frame_checksum,
    pad_payload,
)

from helpers import MAC

SESSION_ID = bytes([0xde, 0xad, 0xbe, 0xef])

def test_checksum_seed():
    assert checksum(b'') == 0xbeaf
    assert checksum(bytes([1, 2, 3])) == 0xbeaf + 6

def test_checksum_wraps():
    assert checksum(bytes([0xff]) * 0x200) == (0xbeaf + 0xff * 0x200) & 0xffff

def test_checksum_is_order_independent():
    data = bytes(random.Random(7).randrange(256) for _ in range(300))
    shuffled = bytearray(data)
    random.Random(11).shuffle(shuffled)
    assert checksum(data) == checksum(bytes(shuffled))

def test_header_layout():
    payload = pad_payload(bytes([0x04]))
    frame = encode_frame(0x6a, payload, 0x1234, MAC, SESSION_ID, CipherSession())
    assert len(frame) == 0x38 + 16
    assert frame[0x00:0x08] == bytes([0x5a, 0xa5, 0xaa, 0x55, 0x5a, 0xa5, 0xaa, 0x55])
    assert frame[0x24:0x26] == bytes([0x2a, 0x27])
    assert frame[0x26] == 0x6a
    assert frame[0x28:0x2a] == bytes([0x34, 0x12])
    assert frame[0x2a:0x30] == bytes(reversed(MAC))
    assert frame[0x30:0x34] == SESSION_ID
    assert int.from_bytes(frame[0x34:0x36], 'little') == checksum(payload)
    assert frame[0x22:0x24] == bytes(2)

def test_frame_checksum_ignores_checksum_field():
    frame = encode_frame(0x65, bytes(0x50), 7, MAC, bytes(4), CipherSession())
    stored = int.from_bytes(frame[0x20:0x22], 'little')
    zeroed = bytearray(frame)
    zeroed[0x20:0x22] = b'\x00\x00'
    assert stored == checksum(zeroed)
    assert stored == frame_checksum(frame)

def test_counter_wraps_to_16_bits():
    frame = encode_frame(0x6a, bytes(16), 0x10001, MAC, bytes(4), CipherSession())
    assert frame[0x28:0x2a] == bytes([0x01, 0x00])

@pytest.mark.parametrize("length", [16, 32, 0x50, 256])
def test_round_trip(length):
    rng = random.Random(length)
    payload = bytes(rng.randrange(256) for _ in range(length))
    cipher = CipherSession(key=bytes(rng.randrange(256) for _ in range(16)))
    frame = encode_frame(0x6a, payload, 1, MAC, SESSION_ID, cipher)
    decoded = decode_frame(frame, cipher)
    assert decoded.error_code == 0
    assert decoded.command == 0x6a
    assert decoded.payload == payload
    assert decoded.payload_checksum == checksum(payload)

def test_payload_is_encrypted():
    payload = pad_payload(b'Test  1')
    frame = encode_frame(0x65, payload, 1, MAC, bytes(4), CipherSession())
    assert frame[0x38:] != payload

def test_unaligned_payload_is_rejected():
    with pytest.raises(PayloadAlignmentError):
        encode_frame(0x6a, bytes(17), 1, MAC, bytes(4), CipherSession())

def test_unaligned_payload_is_a_value_error():
    with pytest.raises(ValueError):
        encode_frame(0x6a, bytes(5), 1, MAC, bytes(4), CipherSession())

def test_decode_short_frame_fails():
    with pytest.raises(DecodeFailure):
        decode_frame(bytes(0x37), CipherSession())

def test_decode_header_only_frame_has_empty_payload():
    decoded = decode_frame(bytes(0x38), CipherSession())
    assert decoded.payload == b''

def test_decode_misaligned_ciphertext_fails():
    with pytest.raises(DecodeFailure):
        decode_frame(bytes(0x38 + 5), CipherSession())

def test_decode_error_code_skips_decryption():
    frame = bytearray(encode_frame(0xee, bytes(16), 1, MAC, bytes(4), CipherSession()))
    frame[0x22:0x24] = (0xfff9).to_bytes(2, 'little')
    # a misaligned tail would fail decryption; it must not be touched
    decoded = decode_frame(bytes(frame) + b'\x01', CipherSession())
    assert decoded.is_error
    assert decoded.error_code == 0xfff9
    assert decoded.payload is None

def test_decode_does_not_verify_checksums():
    cipher = CipherSession()
    frame = bytearray(encode_frame(0xee, bytes(16), 1, MAC, bytes(4), cipher))
    frame[0x20:0x22] = b'\x00\x00'
    frame[0x34:0x36] = b'\x00\x00'
    decoded = decode_frame(bytes(frame), cipher)
    assert decoded.payload == bytes(16)
    assert decoded.frame_checksum == 0

def test_pad_payload():
    assert pad_payload(b'') == b''
    assert pad_payload(b'\x01') == b'\x01' + bytes(15)
    assert pad_payload(bytes(16)) == bytes(16)
    assert len(pad_payload(bytes(17))) == 32
