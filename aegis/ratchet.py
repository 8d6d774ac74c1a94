"""The ratchet participant that encrypts and decrypts conversation messages."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable, Optional, Protocol, TypeVar

from nacl.bindings import (
    crypto_box_keypair,
    crypto_scalarmult,
    crypto_scalarmult_BYTES,
    crypto_scalarmult_SCALARBYTES,
)

from .keys import (
    HeaderKey,
    MasterKey,
    PrivateKey,
    PublicKey,
    RootKey,
    SharedKey,
    clone_optional,
)
from .receivingchain import ReceivingChain, ReceivingChainCrypto
from .rootchain import RootChain, RootChainCrypto
from .sendingchain import SendingChain, SendingChainCrypto
from .skipped_keys import SkippedKeysStorage

_T = TypeVar("_T")


class RatchetError(Exception):
    """Raised when the ratchet cannot be built or a message cannot be handled."""


class RatchetCrypto(Protocol):
    """Key agreement used by the ratchet."""

    def compute_shared_key(
        self, private_key: PrivateKey, public_key: PublicKey
    ) -> SharedKey:
        """Compute the key shared between a private key and a foreign public key."""

    def generate_key_pair(self) -> tuple[PrivateKey, PublicKey]:
        """Generate a fresh private and public key pair."""


class DefaultRatchetCrypto(RatchetCrypto):
    """X25519 key agreement."""

    def compute_shared_key(
        self, private_key: PrivateKey, public_key: PublicKey
    ) -> SharedKey:
        if len(private_key.data) != crypto_scalarmult_SCALARBYTES:
            raise RatchetError(
                f"new private key: expected {crypto_scalarmult_SCALARBYTES} bytes, "
                f"got {len(private_key.data)}"
            )
        if len(public_key.data) != crypto_scalarmult_BYTES:
            raise RatchetError(
                f"new public key: expected {crypto_scalarmult_BYTES} bytes, "
                f"got {len(public_key.data)}"
            )
        try:
            shared = crypto_scalarmult(private_key.data, public_key.data)
        except Exception as exc:
            raise RatchetError("Diffie-Hellman") from exc
        if not any(shared):
            raise RatchetError("Diffie-Hellman: low order point")
        return SharedKey(shared)

    def generate_key_pair(self) -> tuple[PrivateKey, PublicKey]:
        try:
            public, private = crypto_box_keypair()
        except Exception as exc:
            raise RatchetError("generate private key") from exc
        return PrivateKey(private), PublicKey(public)


@dataclass(frozen=True)
class RatchetConfig:
    """Settings of a ratchet; chain settings left as ``None`` use the defaults."""

    crypto: RatchetCrypto = field(default_factory=DefaultRatchetCrypto)
    root_chain_crypto: Optional[RootChainCrypto] = None
    sending_chain_crypto: Optional[SendingChainCrypto] = None
    receiving_chain_crypto: Optional[ReceivingChainCrypto] = None
    skipped_keys_storage: Optional[SkippedKeysStorage] = None

    def __post_init__(self) -> None:
        if self.crypto is None:
            raise RatchetError("crypto is None")

    def _new_root_chain(self, root_key: RootKey) -> RootChain:
        options = _present(crypto=self.root_chain_crypto)
        try:
            return RootChain(root_key, **options)
        except Exception as exc:
            raise RatchetError("new root chain") from exc

    def _new_sending_chain(
        self,
        master_key: Optional[MasterKey],
        header_key: Optional[HeaderKey],
        next_header_key: HeaderKey,
    ) -> SendingChain:
        options = _present(crypto=self.sending_chain_crypto)
        try:
            return SendingChain(
                master_key=master_key,
                header_key=header_key,
                next_header_key=next_header_key,
                **options,
            )
        except Exception as exc:
            raise RatchetError("new sending chain") from exc

    def _new_receiving_chain(self, next_header_key: HeaderKey) -> ReceivingChain:
        options = _present(
            crypto=self.receiving_chain_crypto,
            skipped_keys_storage=self.skipped_keys_storage,
        )
        try:
            return ReceivingChain(next_header_key=next_header_key, **options)
        except Exception as exc:
            raise RatchetError("new receiving chain") from exc


def _present(**options: Any) -> dict[str, Any]:
    return {name: value for name, value in options.items() if value is not None}


@dataclass(eq=False)
class Ratchet:
    """A participant of the conversation.

    Not safe for concurrent use.
    """

    local_private_key: PrivateKey
    local_public_key: PublicKey
    remote_public_key: Optional[PublicKey]
    root_chain: RootChain
    sending_chain: SendingChain
    receiving_chain: ReceivingChain
    need_sending_chain_ratchet: bool = False
    config: RatchetConfig = field(default_factory=RatchetConfig)

    @classmethod
    def recipient(
        cls,
        local_private_key: PrivateKey,
        local_public_key: PublicKey,
        root_key: RootKey,
        sending_chain_next_header_key: HeaderKey,
        receiving_chain_next_header_key: HeaderKey,
        config: Optional[RatchetConfig] = None,
    ) -> Ratchet:
        """Create the participant that waits for the first message."""
        config = config if config is not None else RatchetConfig()
        return cls(
            local_private_key=local_private_key,
            local_public_key=local_public_key,
            remote_public_key=None,
            root_chain=config._new_root_chain(root_key),
            sending_chain=config._new_sending_chain(
                None, None, sending_chain_next_header_key
            ),
            receiving_chain=config._new_receiving_chain(receiving_chain_next_header_key),
            config=config,
        )

    @classmethod
    def sender(
        cls,
        remote_public_key: PublicKey,
        root_key: RootKey,
        sending_chain_header_key: HeaderKey,
        receiving_chain_next_header_key: HeaderKey,
        config: Optional[RatchetConfig] = None,
    ) -> Ratchet:
        """Create the participant that sends the first message."""
        config = config if config is not None else RatchetConfig()
        try:
            local_private_key, local_public_key = config.crypto.generate_key_pair()
        except Exception as exc:
            raise RatchetError("generate key pair") from exc
        try:
            shared_key = config.crypto.compute_shared_key(
                local_private_key, remote_public_key
            )
        except Exception as exc:
            raise RatchetError("compute shared key") from exc
        root_chain = config._new_root_chain(root_key)
        try:
            sending_chain_key, sending_chain_next_header_key = root_chain.advance(
                shared_key
            )
        except Exception as exc:
            raise RatchetError("advance root chain") from exc
        return cls(
            local_private_key=local_private_key,
            local_public_key=local_public_key,
            remote_public_key=remote_public_key,
            root_chain=root_chain,
            sending_chain=config._new_sending_chain(
                sending_chain_key, sending_chain_header_key, sending_chain_next_header_key
            ),
            receiving_chain=config._new_receiving_chain(receiving_chain_next_header_key),
            config=config,
        )

    def clone(self) -> Ratchet:
        """Return a copy with independent keys and chains."""
        return Ratchet(
            local_private_key=self.local_private_key.clone(),
            local_public_key=self.local_public_key.clone(),
            remote_public_key=clone_optional(self.remote_public_key),
            root_chain=self.root_chain.clone(),
            sending_chain=self.sending_chain.clone(),
            receiving_chain=self.receiving_chain.clone(),
            need_sending_chain_ratchet=self.need_sending_chain_ratchet,
            config=self.config,
        )

    def decrypt(
        self,
        encrypted_header: bytes,
        encrypted_data: bytes,
        auth: Optional[bytes] = None,
    ) -> bytes:
        """Decrypt a message; the state is left unchanged if this fails."""

        def action(dirty: Ratchet) -> bytes:
            try:
                return dirty.receiving_chain.decrypt(
                    encrypted_header,
                    encrypted_data,
                    auth,
                    dirty._ratchet_receiving_chain,
                )
            except Exception as exc:
                raise RatchetError("receiving chain decrypt") from exc

        return self._atomically(action)

    def encrypt(
        self, data: bytes, auth: Optional[bytes] = None
    ) -> tuple[bytes, bytes]:
        """Encrypt ``data``; return the encrypted header and encrypted data."""

        def action(dirty: Ratchet) -> tuple[bytes, bytes]:
            try:
                dirty._ratchet_sending_chain_if_needed()
            except Exception as exc:
                raise RatchetError("ratchet sending chain") from exc
            head = dirty.sending_chain.prepare_header(dirty.local_public_key)
            try:
                return dirty.sending_chain.encrypt(head, data, auth)
            except Exception as exc:
                raise RatchetError("sending chain encrypt") from exc

        return self._atomically(action)

    def _atomically(self, action: Callable[[Ratchet], _T]) -> _T:
        dirty = self.clone()
        result = action(dirty)
        for item in fields(self):
            setattr(self, item.name, getattr(dirty, item.name))
        return result

    def _ratchet_receiving_chain(self, remote_public_key: PublicKey) -> None:
        self.remote_public_key = remote_public_key
        try:
            shared_key = self.config.crypto.compute_shared_key(
                self.local_private_key, remote_public_key
            )
        except Exception as exc:
            raise RatchetError("compute shared key") from exc
        try:
            master_key, next_header_key = self.root_chain.advance(shared_key)
        except Exception as exc:
            raise RatchetError("advance root chain") from exc
        self.receiving_chain.upgrade(master_key, next_header_key)
        self.need_sending_chain_ratchet = True

    def _ratchet_sending_chain_if_needed(self) -> None:
        if not self.need_sending_chain_ratchet:
            return
        try:
            self.local_private_key, self.local_public_key = (
                self.config.crypto.generate_key_pair()
            )
        except Exception as exc:
            raise RatchetError("generate key pair") from exc
        if self.remote_public_key is None:
            raise RatchetError("remote public key is None")
        try:
            shared_key = self.config.crypto.compute_shared_key(
                self.local_private_key, self.remote_public_key
            )
        except Exception as exc:
            raise RatchetError("compute shared key") from exc
        try:
            master_key, next_header_key = self.root_chain.advance(shared_key)
        except Exception as exc:
            raise RatchetError("advance root chain") from exc
        self.sending_chain.upgrade(master_key, next_header_key)
        self.need_sending_chain_ratchet = False