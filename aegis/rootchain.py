"""The ratchet root chain."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Protocol

from .kdf import KDFError, _hkdf
from .keys import HeaderKey, MasterKey, RootKey, SharedKey

_KDF_INFO = b"advance root chain"
_KDF_OUTPUT_KEY_SIZE = 32


class RootChainError(Exception):
    """Raised when the root chain cannot be built or advanced."""


class RootChainCrypto(Protocol):
    """Crypto used by the root chain."""

    def advance_chain(
        self, root_key: RootKey, shared_key: SharedKey
    ) -> tuple[RootKey, MasterKey, HeaderKey]:
        """Return the new root key, a master key and the next header key."""


class DefaultRootChainCrypto(RootChainCrypto):
    """HKDF over BLAKE2b-512 keyed by the root key."""

    def advance_chain(
        self, root_key: RootKey, shared_key: SharedKey
    ) -> tuple[RootKey, MasterKey, HeaderKey]:
        size = _KDF_OUTPUT_KEY_SIZE
        try:
            output = _hkdf(shared_key.data, root_key.data, _KDF_INFO, 3 * size)
        except KDFError as exc:
            raise RootChainError("KDF") from exc
        return (
            RootKey(output[:size]),
            MasterKey(output[size : 2 * size]),
            HeaderKey(output[2 * size :]),
        )


@dataclass(eq=False)
class RootChain:
    """Root chain that turns shared keys into chain master keys."""

    root_key: RootKey
    crypto: RootChainCrypto = field(default_factory=DefaultRootChainCrypto)

    def __post_init__(self) -> None:
        if self.crypto is None:
            raise RootChainError("crypto is None")

    def advance(self, shared_key: SharedKey) -> tuple[MasterKey, HeaderKey]:
        """Advance the chain; return a new master key and next header key."""
        try:
            root_key, master_key, next_header_key = self.crypto.advance_chain(
                self.root_key, shared_key
            )
        except Exception as exc:
            raise RootChainError("advance chain") from exc
        self.root_key = root_key
        return master_key, next_header_key

    def clone(self) -> RootChain:
        """Return a copy with an independent root key."""
        return replace(self, root_key=self.root_key.clone())