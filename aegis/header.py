"""Message header and its wire encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .keys import PublicKey

_COUNTERS = struct.Struct("<QQ")
_UINT64_LIMIT = 1 << 64


class NotEnoughBytesError(ValueError):
    """Raised when encoded header bytes are too short."""


@dataclass(frozen=True)
class Header:
    """The message header."""

    public_key: PublicKey = field(default_factory=PublicKey)
    previous_sending_chain_messages_count: int = 0
    message_number: int = 0

    def __post_init__(self) -> None:
        for name in ("previous_sending_chain_messages_count", "message_number"):
            value = getattr(self, name)
            if not 0 <= value < _UINT64_LIMIT:
                raise ValueError(f"{name} must fit in an unsigned 64-bit integer")

    def encode(self) -> bytes:
        """Encode the header: message number, previous count, public key."""
        counters = _COUNTERS.pack(
            self.message_number, self.previous_sending_chain_messages_count
        )
        return counters + self.public_key.data


def decode(data: bytes) -> Header:
    """Decode header bytes produced by :meth:`Header.encode`."""
    if len(data) < _COUNTERS.size:
        raise NotEnoughBytesError(
            f"not enough bytes: expected at least {_COUNTERS.size}, got {len(data)}"
        )
    message_number, previous_count = _COUNTERS.unpack_from(data)
    return Header(
        public_key=PublicKey(bytes(data[_COUNTERS.size :])),
        previous_sending_chain_messages_count=previous_count,
        message_number=message_number,
    )