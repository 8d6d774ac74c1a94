import pytest

from aegis.keys import (
    HeaderKey,
    MasterKey,
    MessageKey,
    PrivateKey,
    PublicKey,
    RootKey,
    SharedKey,
    clone_optional,
)

DATA = [b"", bytes([1, 2, 3, 4, 5])]


@pytest.mark.parametrize("data", DATA)
def test_header_key_clone(data):
    key = HeaderKey(data)
    clone = key.clone()
    assert clone == key
    assert clone is not key
    assert type(clone) is HeaderKey


@pytest.mark.parametrize("data", DATA)
def test_master_key_clone(data):
    key = MasterKey(data)
    clone = key.clone()
    assert clone == key
    assert clone is not key
    assert type(clone) is MasterKey


@pytest.mark.parametrize("data", DATA)
def test_message_key_clone(data):
    key = MessageKey(data)
    clone = key.clone()
    assert clone == key
    assert clone is not key
    assert type(clone) is MessageKey


@pytest.mark.parametrize("data", DATA)
def test_private_key_clone(data):
    key = PrivateKey(data)
    clone = key.clone()
    assert clone == key
    assert clone is not key
    assert type(clone) is PrivateKey


@pytest.mark.parametrize("data", DATA)
def test_public_key_clone(data):
    key = PublicKey(data)
    clone = key.clone()
    assert clone == key
    assert clone is not key
    assert type(clone) is PublicKey


@pytest.mark.parametrize("data", DATA)
def test_root_key_clone(data):
    key = RootKey(data)
    clone = key.clone()
    assert clone == key
    assert clone is not key
    assert type(clone) is RootKey


def test_zero_keys_clone_to_empty_bytes():
    assert HeaderKey().clone().data == b""
    assert MasterKey().clone().data == b""
    assert MessageKey().clone().data == b""
    assert PrivateKey().clone().data == b""
    assert PublicKey().clone().data == b""
    assert RootKey().clone().data == b""


def test_clone_optional_none():
    assert clone_optional(None) is None


@pytest.mark.parametrize("data", DATA)
def test_clone_optional_header_key(data):
    key = HeaderKey(data)
    clone = clone_optional(key)
    assert clone == key
    assert clone is not key


@pytest.mark.parametrize("data", DATA)
def test_clone_optional_master_key(data):
    key = MasterKey(data)
    clone = clone_optional(key)
    assert clone == key
    assert clone is not key


@pytest.mark.parametrize("data", DATA)
def test_clone_optional_public_key(data):
    key = PublicKey(data)
    clone = clone_optional(key)
    assert clone == key
    assert clone is not key


def test_bytearray_is_copied():
    raw = bytearray(b"\x01\x02\x03")
    key = MasterKey(raw)
    raw[0] = 9
    assert key.data == b"\x01\x02\x03"


def test_different_types_are_not_equal():
    assert HeaderKey(b"\x01") != MasterKey(b"\x01")


def test_keys_are_hashable_by_value():
    mapping = {HeaderKey(b"\x01\x02"): 1}
    assert mapping[HeaderKey(b"\x01\x02")] == 1


def test_non_bytes_rejected():
    with pytest.raises(TypeError):
        SharedKey(5)