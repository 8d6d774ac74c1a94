"""Key types exchanged and derived by the ratchet."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, TypeVar


@dataclass(frozen=True)
class _Key:
    """Immutable holder of raw key bytes."""

    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(memoryview(self.data)))


class HeaderKey(_Key):
    """Key for header encryption and decryption."""

    def clone(self) -> HeaderKey:
        """Return an independent copy of the key."""
        return HeaderKey(self.data)


class MasterKey(_Key):
    """Chain master key from which message keys are derived."""

    def clone(self) -> MasterKey:
        """Return an independent copy of the key."""
        return MasterKey(self.data)


class MessageKey(_Key):
    """Key that encrypts or decrypts a single message."""

    def clone(self) -> MessageKey:
        """Return an independent copy of the key."""
        return MessageKey(self.data)


class PrivateKey(_Key):
    """A participant's private key."""

    def clone(self) -> PrivateKey:
        """Return an independent copy of the key."""
        return PrivateKey(self.data)


class PublicKey(_Key):
    """A participant's public key."""

    def clone(self) -> PublicKey:
        """Return an independent copy of the key."""
        return PublicKey(self.data)


class RootKey(_Key):
    """Key of the ratchet root chain."""

    def clone(self) -> RootKey:
        """Return an independent copy of the key."""
        return RootKey(self.data)


class SharedKey(_Key):
    """Key shared between the participants."""


class _Cloneable(Protocol):
    def clone(self): ...


_C = TypeVar("_C", bound=_Cloneable)


def clone_optional(key: Optional[_C]) -> Optional[_C]:
    """Clone ``key``, passing ``None`` through unchanged."""
    if key is None:
        return None
    return key.clone()