import pytest

from aegis.header import Header, decode
from aegis.keys import HeaderKey, MasterKey, MessageKey, PublicKey
from aegis.receivingchain import (
    DefaultReceivingChainCrypto,
    ReceivingChain,
    ReceivingChainError,
)
from aegis.sendingchain import SendingChain
from aegis.skipped_keys import DefaultSkippedKeysStorage


class _NullCrypto:
    def advance_chain(self, master_key):
        return MasterKey(), MessageKey()

    def decrypt_header(self, key, encrypted_header):
        return Header()

    def decrypt_message(self, key, encrypted_message, auth):
        return b""


class _RecordingStorage:
    def __init__(self):
        self.clone_called = False

    def add(self, header_key, message_number, message_key):
        pass

    def clone(self):
        self.clone_called = True
        return self

    def delete(self, header_key, message_number):
        pass

    def items(self):
        return iter([])


class _PrefixCrypto:
    """Plain 'encryption': ciphertext is the key bytes followed by the payload."""

    def advance_chain(self, master_key):
        return MasterKey(master_key.data + b"m"), MessageKey(master_key.data)

    def decrypt_header(self, key, encrypted_header):
        if not encrypted_header.startswith(key.data):
            raise ValueError("wrong header key")
        return decode(encrypted_header[len(key.data):])

    def decrypt_message(self, key, encrypted_message, auth):
        if not encrypted_message.startswith(key.data):
            raise ValueError("wrong message key")
        return encrypted_message[len(key.data):]


def _no_ratchet(public_key):
    raise AssertionError("ratchet must not be called")


def test_default_config():
    chain = ReceivingChain()
    assert isinstance(chain.crypto, DefaultReceivingChainCrypto)
    assert isinstance(chain.skipped_keys_storage, DefaultSkippedKeysStorage)
    assert chain.master_key is None
    assert chain.next_message_number == 0


def test_crypto_and_storage_options():
    crypto = _NullCrypto()
    storage = _RecordingStorage()
    chain = ReceivingChain(crypto=crypto, skipped_keys_storage=storage)
    assert chain.crypto is crypto
    assert chain.skipped_keys_storage is storage


def test_none_crypto():
    with pytest.raises(ReceivingChainError, match="crypto is None"):
        ReceivingChain(crypto=None)


def test_none_skipped_keys_storage():
    with pytest.raises(ReceivingChainError, match="skipped keys storage is None"):
        ReceivingChain(skipped_keys_storage=None)


def test_clone_clones_storage():
    storage = _RecordingStorage()
    chain = ReceivingChain(
        master_key=MasterKey(b"\x01\x02"),
        header_key=HeaderKey(b"\x03"),
        next_header_key=HeaderKey(b"\x04"),
        next_message_number=7,
        skipped_keys_storage=storage,
    )
    clone = chain.clone()
    assert storage.clone_called
    assert clone.master_key == chain.master_key
    assert clone.header_key == chain.header_key
    assert clone.next_header_key == chain.next_header_key
    assert clone.next_message_number == 7


def test_clone_is_independent():
    chain = ReceivingChain(master_key=MasterKey(b"\x01"), next_header_key=HeaderKey(b"\x02"))
    clone = chain.clone()
    clone.upgrade(MasterKey(b"\x09"), HeaderKey(b"\x08"))
    assert chain.master_key == MasterKey(b"\x01")
    assert chain.header_key is None
    assert chain.next_header_key == HeaderKey(b"\x02")


def test_upgrade():
    chain = ReceivingChain(next_header_key=HeaderKey(b"\x01\x02\x03"), next_message_number=222)
    chain.upgrade(MasterKey(b"\x0b\x16\x21"), HeaderKey(b"\x2c\x37\x42\x4d"))
    assert chain.master_key == MasterKey(b"\x0b\x16\x21")
    assert chain.header_key == HeaderKey(b"\x01\x02\x03")
    assert chain.next_header_key == HeaderKey(b"\x2c\x37\x42\x4d")
    assert chain.next_message_number == 0


def test_round_trip_with_sending_chain():
    header_key = HeaderKey(bytes(32))
    master_key = MasterKey(b"\x01\x02\x03")
    sender = SendingChain(master_key=master_key, header_key=header_key)
    receiver = ReceivingChain(
        master_key=master_key, header_key=header_key, next_header_key=HeaderKey(bytes([5]) * 32)
    )
    for text in (b"first", b"second"):
        head = sender.prepare_header(PublicKey(b"\x07" * 32))
        enc_header, enc_data = sender.encrypt(head, text, b"auth")
        assert receiver.decrypt(enc_header, enc_data, b"auth", _no_ratchet) == text
    assert receiver.next_message_number == 2


def test_wrong_auth_fails():
    header_key = HeaderKey(bytes(32))
    master_key = MasterKey(b"\x01")
    sender = SendingChain(master_key=master_key, header_key=header_key)
    receiver = ReceivingChain(master_key=master_key, header_key=header_key)
    enc_header, enc_data = sender.encrypt(sender.prepare_header(PublicKey()), b"data", b"a")
    with pytest.raises(ReceivingChainError, match="decrypt message"):
        receiver.decrypt(enc_header, enc_data, b"b", _no_ratchet)


def test_ratchet_called_on_next_header_key():
    header_key = HeaderKey(bytes([3]) * 32)
    master_key = MasterKey(b"\x01\x02")
    sender = SendingChain(master_key=master_key, header_key=header_key)
    receiver = ReceivingChain(next_header_key=header_key)
    public_key = PublicKey(b"\x11" * 32)
    seen = []

    def ratchet(remote_public_key):
        seen.append(remote_public_key)
        receiver.upgrade(master_key, HeaderKey(bytes([9]) * 32))

    enc_header, enc_data = sender.encrypt(sender.prepare_header(public_key), b"hello", None)
    assert receiver.decrypt(enc_header, enc_data, None, ratchet) == b"hello"
    assert seen == [public_key]
    assert receiver.header_key == header_key
    assert receiver.next_header_key == HeaderKey(bytes([9]) * 32)


def test_ratchet_error_is_raised():
    header_key = HeaderKey(bytes([3]) * 32)
    sender = SendingChain(master_key=MasterKey(b"\x01"), header_key=header_key)
    receiver = ReceivingChain(next_header_key=header_key)

    def ratchet(remote_public_key):
        raise RuntimeError("boom")

    enc_header, enc_data = sender.encrypt(sender.prepare_header(PublicKey()), b"x", None)
    with pytest.raises(ReceivingChainError, match="handle encrypted header"):
        receiver.decrypt(enc_header, enc_data, None, ratchet)


def test_missing_master_key():
    header_key = HeaderKey(bytes(32))
    sender = SendingChain(master_key=MasterKey(b"\x01"), header_key=header_key)
    receiver = ReceivingChain(header_key=header_key)
    enc_header, enc_data = sender.encrypt(sender.prepare_header(PublicKey()), b"x", None)
    with pytest.raises(ReceivingChainError, match="advance chain"):
        receiver.decrypt(enc_header, enc_data, None, _no_ratchet)


def test_skipped_keys_are_stored_and_used():
    storage = DefaultSkippedKeysStorage()
    current = HeaderKey(b"cur")
    receiver = ReceivingChain(
        master_key=MasterKey(b"k"),
        header_key=current,
        next_header_key=HeaderKey(b"nxt"),
        crypto=_PrefixCrypto(),
        skipped_keys_storage=storage,
    )
    third = receiver.decrypt(
        b"cur" + Header(message_number=2).encode(), b"kmm" + b"two", None, _no_ratchet
    )
    assert third == b"two"
    assert storage.message_keys_count(current) == 2
    first = receiver.decrypt(
        b"cur" + Header(message_number=0).encode(), b"k" + b"zero", None, _no_ratchet
    )
    assert first == b"zero"
    assert storage.message_keys_count(current) == 1
    assert receiver.next_message_number == 3


def test_default_crypto_short_header():
    crypto = DefaultReceivingChainCrypto()
    with pytest.raises(ReceivingChainError, match="too short"):
        crypto.decrypt_header(HeaderKey(bytes(32)), bytes(24))


def test_default_crypto_wrong_key_length():
    crypto = DefaultReceivingChainCrypto()
    with pytest.raises(ReceivingChainError, match="new cipher"):
        crypto.decrypt_header(HeaderKey(b"\x01\x02\x03"), bytes(60))


def test_default_crypto_advance_chain_matches_sending():
    master_key = MasterKey(b"\x01\x02\x03\x04")
    receiving = DefaultReceivingChainCrypto().advance_chain(master_key)
    sending = SendingChain().crypto.advance_chain(master_key)
    assert receiving == sending
    assert receiving[0].data != receiving[1].data
    assert len(receiving[0].data) == 64