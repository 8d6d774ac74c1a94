"""The ratchet receiving chain."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Protocol

from nacl.bindings import crypto_aead_xchacha20poly1305_ietf_decrypt
from nacl.exceptions import CryptoError

from .header import Header, decode
from .kdf import KEY_SIZE, NONCE_SIZE, derive_message_cipher_key_and_nonce
from .keys import HeaderKey, MasterKey, MessageKey, PublicKey, clone_optional
from .skipped_keys import DefaultSkippedKeysStorage, SkippedKeysStorage

_MASTER_KEY_BYTE = b"\x02"
_MESSAGE_KEY_BYTE = b"\x01"

RatchetCallback = Callable[[PublicKey], None]
"""Performs the ratchet step and upgrades the receiving chain."""


class ReceivingChainError(Exception):
    """Raised when the receiving chain cannot be built or used."""


class ReceivingChainCrypto(Protocol):
    """Crypto used by the receiving chain."""

    def advance_chain(self, master_key: MasterKey) -> tuple[MasterKey, MessageKey]:
        """Return the next master key and the current message key."""

    def decrypt_header(self, key: HeaderKey, encrypted_header: bytes) -> Header:
        """Decrypt and decode a header with the header key."""

    def decrypt_message(
        self, key: MessageKey, encrypted_message: bytes, auth: Optional[bytes]
    ) -> bytes:
        """Decrypt a message with the message key, authenticating ``auth``."""


def _decrypt(key: bytes, nonce: bytes, data: bytes, auth: Optional[bytes]) -> bytes:
    if len(key) != KEY_SIZE:
        raise ReceivingChainError(
            f"new cipher: key must be {KEY_SIZE} bytes, got {len(key)}"
        )
    try:
        return crypto_aead_xchacha20poly1305_ietf_decrypt(bytes(data), auth, nonce, key)
    except CryptoError as exc:
        raise ReceivingChainError("open cipher") from exc


class DefaultReceivingChainCrypto(ReceivingChainCrypto):
    """HMAC-BLAKE2b-512 key chain with XChaCha20-Poly1305 decryption."""

    def advance_chain(self, master_key: MasterKey) -> tuple[MasterKey, MessageKey]:
        new_master = hmac.new(master_key.data, _MASTER_KEY_BYTE, hashlib.blake2b)
        message = hmac.new(master_key.data, _MESSAGE_KEY_BYTE, hashlib.blake2b)
        return MasterKey(new_master.digest()), MessageKey(message.digest())

    def decrypt_header(self, key: HeaderKey, encrypted_header: bytes) -> Header:
        if len(encrypted_header) <= NONCE_SIZE:
            raise ReceivingChainError(
                f"encrypted header too short, expected at least {NONCE_SIZE + 1} bytes"
            )
        decrypted = _decrypt(
            key.data,
            bytes(encrypted_header[:NONCE_SIZE]),
            encrypted_header[NONCE_SIZE:],
            None,
        )
        try:
            return decode(decrypted)
        except ValueError as exc:
            raise ReceivingChainError("decode header") from exc

    def decrypt_message(
        self, key: MessageKey, encrypted_message: bytes, auth: Optional[bytes]
    ) -> bytes:
        try:
            cipher_key, nonce = derive_message_cipher_key_and_nonce(key)
        except Exception as exc:
            raise ReceivingChainError("derive message cipher key and nonce") from exc
        try:
            return _decrypt(cipher_key, nonce, encrypted_message, auth)
        except ReceivingChainError as exc:
            raise ReceivingChainError("decrypt") from exc


@dataclass(eq=False)
class ReceivingChain:
    """Receiving chain of the ratchet.

    A failed call may leave the chain half updated: work on a clone and keep
    it only on success.
    """

    master_key: Optional[MasterKey] = None
    header_key: Optional[HeaderKey] = None
    next_header_key: HeaderKey = field(default_factory=HeaderKey)
    next_message_number: int = 0
    crypto: ReceivingChainCrypto = field(default_factory=DefaultReceivingChainCrypto)
    skipped_keys_storage: SkippedKeysStorage = field(
        default_factory=DefaultSkippedKeysStorage
    )

    def __post_init__(self) -> None:
        if self.crypto is None:
            raise ReceivingChainError("crypto is None")
        if self.skipped_keys_storage is None:
            raise ReceivingChainError("skipped keys storage is None")

    def clone(self) -> ReceivingChain:
        """Return a copy with independent keys and skipped keys storage."""
        return replace(
            self,
            master_key=clone_optional(self.master_key),
            header_key=clone_optional(self.header_key),
            next_header_key=self.next_header_key.clone(),
            skipped_keys_storage=self.skipped_keys_storage.clone(),
        )

    def decrypt(
        self,
        encrypted_header: bytes,
        encrypted_data: bytes,
        auth: Optional[bytes],
        ratchet: RatchetCallback,
    ) -> bytes:
        """Decrypt a message, calling ``ratchet`` when the sender has ratcheted."""
        try:
            return self._decrypt_with_skipped_keys(encrypted_header, encrypted_data, auth)
        except Exception as exc:
            skipped_error = exc

        try:
            self._handle_encrypted_header(encrypted_header, ratchet)
        except Exception as exc:
            raise ReceivingChainError(
                f"handle encrypted header (skipped keys: {skipped_error})"
            ) from exc

        try:
            message_key = self._advance()
        except Exception as exc:
            raise ReceivingChainError(
                f"advance chain (skipped keys: {skipped_error})"
            ) from exc

        full_auth = bytes(encrypted_header) + (auth or b"")
        try:
            return self.crypto.decrypt_message(message_key, encrypted_data, full_auth)
        except Exception as exc:
            raise ReceivingChainError(
                f"decrypt message (skipped keys: {skipped_error})"
            ) from exc

    def upgrade(self, master_key: MasterKey, next_header_key: HeaderKey) -> None:
        """Start a new chain from a fresh master key."""
        self.master_key = master_key
        self.header_key = self.next_header_key.clone()
        self.next_header_key = next_header_key
        self.next_message_number = 0

    def _advance(self) -> MessageKey:
        if self.master_key is None:
            raise ReceivingChainError("master key is None")
        try:
            new_master_key, message_key = self.crypto.advance_chain(self.master_key)
        except Exception as exc:
            raise ReceivingChainError("crypto advance chain") from exc
        self.master_key = new_master_key
        self.next_message_number += 1
        return message_key

    def _decrypt_header_with_current_or_next_key(
        self, encrypted_header: bytes
    ) -> tuple[Header, bool]:
        """Decrypt the header; the flag tells whether the next key was needed."""
        if self.header_key is not None:
            try:
                return self.crypto.decrypt_header(self.header_key, encrypted_header), False
            except Exception:
                pass
        try:
            head = self.crypto.decrypt_header(self.next_header_key, encrypted_header)
        except Exception as exc:
            raise ReceivingChainError("decrypt header with next key") from exc
        return head, True

    def _decrypt_with_skipped_keys(
        self, encrypted_header: bytes, encrypted_data: bytes, auth: Optional[bytes]
    ) -> bytes:
        for header_key, message_keys in self.skipped_keys_storage.items():
            try:
                head = self.crypto.decrypt_header(header_key, encrypted_header)
            except Exception:
                continue
            for message_number, message_key in message_keys:
                if message_number != head.message_number:
                    continue
                try:
                    data = self.crypto.decrypt_message(message_key, encrypted_data, auth)
                except Exception as exc:
                    raise ReceivingChainError("decrypt message") from exc
                try:
                    self.skipped_keys_storage.delete(header_key, message_number)
                except Exception as exc:
                    raise ReceivingChainError("delete skipped keys") from exc
                return data
        raise ReceivingChainError("skipped keys not found")

    def _handle_encrypted_header(
        self, encrypted_header: bytes, ratchet: RatchetCallback
    ) -> None:
        head, need_ratchet = self._decrypt_header_with_current_or_next_key(
            encrypted_header
        )
        if need_ratchet:
            try:
                self._skip_keys(head.previous_sending_chain_messages_count)
            except Exception as exc:
                raise ReceivingChainError("skip previous chain keys") from exc
            try:
                ratchet(head.public_key)
            except Exception as exc:
                raise ReceivingChainError("ratchet") from exc
        try:
            self._skip_keys(head.message_number)
        except Exception as exc:
            raise ReceivingChainError("skip current chain keys") from exc

    def _skip_keys(self, until_message_number: int) -> None:
        for message_number in range(self.next_message_number, until_message_number):
            message_key = self._advance()
            if self.header_key is None:
                raise ReceivingChainError("header key is None")
            try:
                self.skipped_keys_storage.add(self.header_key, message_number, message_key)
            except Exception as exc:
                raise ReceivingChainError("add skipped key") from exc