"""Storage of message keys skipped by the receiving chain."""

from __future__ import annotations

from typing import Iterator, Protocol

from .keys import HeaderKey, MessageKey

HEADER_KEYS_COUNT_TO_CLEAR = 4
MESSAGE_KEYS_COUNT_LIMIT = 1024

SkippedMessageKeys = Iterator[tuple[int, MessageKey]]


class TooManySkippedMessageKeysError(Exception):
    """Raised when one header key has too many skipped message keys."""


class SkippedKeysStorage(Protocol):
    """Storage of skipped keys of the receiving chain."""

    def add(
        self, header_key: HeaderKey, message_number: int, message_key: MessageKey
    ) -> None:
        """Store a skipped message key under its header key and number."""

    def clone(self) -> SkippedKeysStorage:
        """Return a deep copy of the storage."""

    def delete(self, header_key: HeaderKey, message_number: int) -> None:
        """Remove the key stored under the header key and message number."""

    def items(self) -> Iterator[tuple[HeaderKey, SkippedMessageKeys]]:
        """Iterate over header keys, each with its (number, message key) pairs."""


class DefaultSkippedKeysStorage(SkippedKeysStorage):
    """In-memory storage that forgets everything once too many header keys pile up."""

    def __init__(self) -> None:
        self._mapping: dict[bytes, dict[int, MessageKey]] = {}

    def __len__(self) -> int:
        """Number of header keys held."""
        return len(self._mapping)

    def add(
        self, header_key: HeaderKey, message_number: int, message_key: MessageKey
    ) -> None:
        if len(self._mapping) >= HEADER_KEYS_COUNT_TO_CLEAR:
            self._mapping.clear()
        if self.message_keys_count(header_key) >= MESSAGE_KEYS_COUNT_LIMIT:
            raise TooManySkippedMessageKeysError("too many skipped message keys")
        self._mapping.setdefault(header_key.data, {})[message_number] = message_key

    def clone(self) -> DefaultSkippedKeysStorage:
        copy = DefaultSkippedKeysStorage()
        copy._mapping = {
            header: {number: key.clone() for number, key in keys.items()}
            for header, keys in self._mapping.items()
        }
        return copy

    def delete(self, header_key: HeaderKey, message_number: int) -> None:
        message_keys = self._mapping.get(header_key.data)
        if message_keys is not None:
            message_keys.pop(message_number, None)

    def items(self) -> Iterator[tuple[HeaderKey, SkippedMessageKeys]]:
        for header, message_keys in list(self._mapping.items()):
            yield HeaderKey(header), iter(list(message_keys.items()))

    def message_keys_count(self, header_key: HeaderKey) -> int:
        """Number of message keys stored under ``header_key``."""
        return len(self._mapping.get(header_key.data, {}))