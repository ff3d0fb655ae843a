#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
CipherSession -- the symmetric key/IV pair used to encrypt frame payloads for a single appliance.

Every appliance accepts a well-known default key until the handshake completes, after which
it issues its own key. The IV is fixed for the life of the session; every message is
chained from the same IV. Payloads are never padded or unpadded here; callers must supply
data that is already a multiple of the block size.
"""

from __future__ import annotations

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .constants import DEFAULT_KEY, DEFAULT_IV, BLOCK_SIZE
from .exceptions import PayloadAlignmentError

class CipherSession:
    key: bytes
    """The current 16-byte AES key"""

    iv: bytes
    """The 16-byte CBC initialization vector. Never rotated."""

    def __init__(self, key: bytes=DEFAULT_KEY, iv: bytes=DEFAULT_IV):
        if len(key) != BLOCK_SIZE or len(iv) != BLOCK_SIZE:
            raise ValueError(f"CipherSession key and IV must be {BLOCK_SIZE} bytes")
        self.key = bytes(key)
        self.iv = bytes(iv)

    @property
    def is_default(self) -> bool:
        """True if the key has not been replaced by a handshake."""
        return self.key == DEFAULT_KEY

    def rotate(self, new_key: bytes) -> None:
        """Replaces the key. The IV is left unchanged."""
        if len(new_key) != BLOCK_SIZE:
            raise ValueError(f"CipherSession key must be {BLOCK_SIZE} bytes, got {len(new_key)}")
        self.key = bytes(new_key)

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self.key), modes.CBC(self.iv))

    def encrypt(self, plaintext: bytes) -> bytes:
        if len(plaintext) % BLOCK_SIZE != 0:
            raise PayloadAlignmentError(
                f"Payload length {len(plaintext)} is not a multiple of {BLOCK_SIZE}; pad with zero bytes first")
        encryptor = self._cipher().encryptor()
        return encryptor.update(plaintext) + encryptor.finalize()

    def decrypt(self, ciphertext: bytes) -> bytes:
        if len(ciphertext) % BLOCK_SIZE != 0:
            raise PayloadAlignmentError(
                f"Ciphertext length {len(ciphertext)} is not a multiple of {BLOCK_SIZE}")
        decryptor = self._cipher().decryptor()
        return decryptor.update(ciphertext) + decryptor.finalize()

    def __str__(self) -> str:
        return f"CipherSession(key={self.key.hex()}{' (default)' if self.is_default else ''})"

    def __repr__(self) -> str:
        return str(self)
