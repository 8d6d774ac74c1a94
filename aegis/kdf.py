"""Key derivation shared by the sending and receiving chains."""

from __future__ import annotations

import hashlib
import hmac

from nacl.bindings import (
    crypto_aead_xchacha20poly1305_ietf_KEYBYTES,
    crypto_aead_xchacha20poly1305_ietf_NPUBBYTES,
)

from .keys import MessageKey

KEY_SIZE = crypto_aead_xchacha20poly1305_ietf_KEYBYTES
NONCE_SIZE = crypto_aead_xchacha20poly1305_ietf_NPUBBYTES

_MESSAGE_KDF_OUTPUT_LEN = KEY_SIZE + NONCE_SIZE
_MESSAGE_KDF_SALT = bytes(_MESSAGE_KDF_OUTPUT_LEN)
_MESSAGE_KDF_INFO = b"message cipher"

_HASH_SIZE = hashlib.blake2b().digest_size


class KDFError(Exception):
    """Raised when key derivation fails."""


def _hmac(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.blake2b).digest()


def _hkdf(ikm: bytes, salt: bytes, info: bytes, length: int) -> bytes:
    """HKDF (RFC 5869) over HMAC-BLAKE2b-512."""
    if not 0 <= length <= 255 * _HASH_SIZE:
        raise KDFError(f"cannot derive {length} bytes")
    prk = _hmac(salt, ikm)
    output = bytearray()
    block = b""
    counter = 1
    while len(output) < length:
        block = _hmac(prk, block + info + bytes([counter]))
        output += block
        counter += 1
    return bytes(output[:length])


def derive_message_cipher_key_and_nonce(message_key: MessageKey) -> tuple[bytes, bytes]:
    """Derive the cipher key and nonce that encrypt one message."""
    output = _hkdf(
        message_key.data, _MESSAGE_KDF_SALT, _MESSAGE_KDF_INFO, _MESSAGE_KDF_OUTPUT_LEN
    )
    return output[:KEY_SIZE], output[KEY_SIZE:]