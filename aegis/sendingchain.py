"""The ratchet sending chain."""

from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass, field, replace
from typing import Optional, Protocol

from nacl.bindings import crypto_aead_xchacha20poly1305_ietf_encrypt

from .header import Header
from .kdf import KEY_SIZE, NONCE_SIZE, derive_message_cipher_key_and_nonce
from .keys import HeaderKey, MasterKey, MessageKey, PublicKey, clone_optional

_MASTER_KEY_BYTE = b"\x02"
_MESSAGE_KEY_BYTE = b"\x01"


class SendingChainError(Exception):
    """Raised when the sending chain cannot be built or used."""


class HeaderKeyMissingError(SendingChainError):
    """Raised when encrypting before a header key is set."""


class MasterKeyMissingError(SendingChainError):
    """Raised when advancing before a master key is set."""


class SendingChainCrypto(Protocol):
    """Crypto used by the sending chain."""

    def advance_chain(self, master_key: MasterKey) -> tuple[MasterKey, MessageKey]:
        """Return the next master key and the current message key."""

    def encrypt_header(self, key: HeaderKey, head: Header) -> bytes:
        """Encrypt a header with the header key."""

    def encrypt_message(
        self, key: MessageKey, message: bytes, auth: Optional[bytes]
    ) -> bytes:
        """Encrypt a message with the message key, authenticating ``auth``."""


def _encrypt(key: bytes, nonce: bytes, data: bytes, auth: Optional[bytes]) -> bytes:
    if len(key) != KEY_SIZE:
        raise SendingChainError(
            f"new cipher: key must be {KEY_SIZE} bytes, got {len(key)}"
        )
    return crypto_aead_xchacha20poly1305_ietf_encrypt(data, auth, nonce, key)


class DefaultSendingChainCrypto(SendingChainCrypto):
    """HMAC-BLAKE2b-512 key chain with XChaCha20-Poly1305 encryption."""

    def advance_chain(self, master_key: MasterKey) -> tuple[MasterKey, MessageKey]:
        new_master = hmac.new(master_key.data, _MASTER_KEY_BYTE, hashlib.blake2b)
        message = hmac.new(master_key.data, _MESSAGE_KEY_BYTE, hashlib.blake2b)
        return MasterKey(new_master.digest()), MessageKey(message.digest())

    def encrypt_header(self, key: HeaderKey, head: Header) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        try:
            encrypted = _encrypt(key.data, nonce, head.encode(), None)
        except Exception as exc:
            raise SendingChainError("encrypt") from exc
        return nonce + encrypted

    def encrypt_message(
        self, key: MessageKey, message: bytes, auth: Optional[bytes]
    ) -> bytes:
        try:
            cipher_key, nonce = derive_message_cipher_key_and_nonce(key)
        except Exception as exc:
            raise SendingChainError("derive message cipher key and nonce") from exc
        try:
            return _encrypt(cipher_key, nonce, bytes(message or b""), auth)
        except Exception as exc:
            raise SendingChainError("encrypt") from exc


@dataclass(eq=False)
class SendingChain:
    """Sending chain of the ratchet.

    A failed call may leave the chain half updated: work on a clone and keep
    it only on success.
    """

    master_key: Optional[MasterKey] = None
    header_key: Optional[HeaderKey] = None
    next_header_key: HeaderKey = field(default_factory=HeaderKey)
    next_message_number: int = 0
    previous_chain_messages_count: int = 0
    crypto: SendingChainCrypto = field(default_factory=DefaultSendingChainCrypto)

    def __post_init__(self) -> None:
        if self.crypto is None:
            raise SendingChainError("crypto is None")

    def clone(self) -> SendingChain:
        """Return a copy with independent keys."""
        return replace(
            self,
            master_key=clone_optional(self.master_key),
            header_key=clone_optional(self.header_key),
            next_header_key=self.next_header_key.clone(),
        )

    def encrypt(
        self, head: Header, data: bytes, auth: Optional[bytes]
    ) -> tuple[bytes, bytes]:
        """Encrypt the header and data; return both ciphertexts."""
        if self.header_key is None:
            raise HeaderKeyMissingError("header key is None")
        try:
            encrypted_header = self.crypto.encrypt_header(self.header_key, head)
        except Exception as exc:
            raise SendingChainError("encrypt header") from exc
        try:
            message_key = self._advance()
        except Exception as exc:
            raise SendingChainError("advance chain") from exc
        full_auth = encrypted_header + (auth or b"")
        try:
            encrypted_data = self.crypto.encrypt_message(message_key, data, full_auth)
        except Exception as exc:
            raise SendingChainError("encrypt message") from exc
        return encrypted_header, encrypted_data

    def prepare_header(self, public_key: PublicKey) -> Header:
        """Build the header for the next message to send."""
        return Header(
            public_key=public_key,
            previous_sending_chain_messages_count=self.previous_chain_messages_count,
            message_number=self.next_message_number,
        )

    def upgrade(self, master_key: MasterKey, next_header_key: HeaderKey) -> None:
        """Start a new chain from a fresh master key."""
        self.master_key = master_key
        self.header_key = self.next_header_key.clone()
        self.next_header_key = next_header_key
        self.previous_chain_messages_count = self.next_message_number
        self.next_message_number = 0

    def _advance(self) -> MessageKey:
        if self.master_key is None:
            raise MasterKeyMissingError("master key is None")
        try:
            new_master_key, message_key = self.crypto.advance_chain(self.master_key)
        except Exception as exc:
            raise SendingChainError("crypto advance chain") from exc
        self.master_key = new_master_key
        self.next_message_number += 1
        return message_key