# aegis

A double ratchet with header encryption, for two parties that already share a
root key and a pair of header keys and want forward-secret, end-to-end
encrypted messages.

- X25519 key agreement for each ratchet step
- HKDF over BLAKE2b-512 for the root chain and for message cipher keys
- HMAC-BLAKE2b-512 for the sending and receiving chains
- XChaCha20-Poly1305 for headers and message bodies
- Messages that arrive out of order are decrypted with stored skipped keys

## Installation

```
pip install aegis
```

## Usage

Both sides agree beforehand on a root key and two 32-byte header keys. The
recipient publishes a public key; the sender starts from it.

```python
from aegis.keys import HeaderKey, RootKey
from aegis.ratchet import DefaultRatchetCrypto, Ratchet

crypto = DefaultRatchetCrypto()
bob_private, bob_public = crypto.generate_key_pair()

root_key = RootKey(bytes(32))
header_key_a = HeaderKey(bytes(range(32)))
header_key_b = HeaderKey(bytes(range(32, 64)))

alice = Ratchet.sender(bob_public, root_key, header_key_a, header_key_b)
bob = Ratchet.recipient(bob_private, bob_public, root_key, header_key_b, header_key_a)

encrypted_header, encrypted_data = alice.encrypt(b"hello", b"associated data")
assert bob.decrypt(encrypted_header, encrypted_data, b"associated data") == b"hello"

encrypted_header, encrypted_data = bob.encrypt(b"hi", b"")
assert alice.decrypt(encrypted_header, encrypted_data, b"") == b"hi"
```

`Ratchet.encrypt(data, auth=None)` returns the encrypted header and the
encrypted data; `Ratchet.decrypt(encrypted_header, encrypted_data, auth=None)`
returns the plaintext. The encrypted header is authenticated together with the
message, so both parts must be delivered unchanged. Both methods work on a
clone of the ratchet and keep it only when they succeed, so a failed call
leaves the ratchet as it was. A `Ratchet` is not safe to share between threads
without locking.

## Modules

- `aegis.keys` – immutable key types (`HeaderKey`, `MasterKey`, `MessageKey`,
  `PrivateKey`, `PublicKey`, `RootKey`, `SharedKey`) holding raw bytes in
  `data`, and `clone_optional`.
- `aegis.header` – `Header` (public key, previous sending chain message count,
  message number) with `encode()`, and `decode()`. The encoding is the message
  number and the previous count as little-endian 64-bit integers, followed by
  the public key bytes.
- `aegis.kdf` – `derive_message_cipher_key_and_nonce()` for a message key.
- `aegis.rootchain` – `RootChain`, the `RootChainCrypto` interface and
  `DefaultRootChainCrypto`.
- `aegis.sendingchain` – `SendingChain`, the `SendingChainCrypto` interface and
  `DefaultSendingChainCrypto`.
- `aegis.receivingchain` – `ReceivingChain`, the `ReceivingChainCrypto`
  interface and `DefaultReceivingChainCrypto`.
- `aegis.skipped_keys` – the `SkippedKeysStorage` interface and
  `DefaultSkippedKeysStorage`.
- `aegis.ratchet` – `Ratchet`, `RatchetConfig`, the `RatchetCrypto` interface
  and `DefaultRatchetCrypto`.

## Customising

Pass a `RatchetConfig` as the `config` argument of `Ratchet.sender` or
`Ratchet.recipient`. Its fields are:

- `crypto` – the key agreement (`DefaultRatchetCrypto` by default);
- `root_chain_crypto`, `sending_chain_crypto`, `receiving_chain_crypto` – the
  crypto of each chain, or `None` for the defaults;
- `skipped_keys_storage` – where skipped message keys are kept, or `None` for
  a fresh `DefaultSkippedKeysStorage`.

A storage instance given in a config is used as it is by the receiving chain
built from that config, so give each ratchet its own config when you pass one.

`DefaultSkippedKeysStorage` keeps keys in memory. It holds at most 1024 message
keys for each header key and raises `TooManySkippedMessageKeysError` beyond
that; when keys for four header keys are already held, the next `add` forgets
all of them first.

## Errors

Failures raise exceptions: `RatchetError`, `RootChainError`,
`SendingChainError` (with `HeaderKeyMissingError` and `MasterKeyMissingError`),
`ReceivingChainError`, `KDFError`, `NotEnoughBytesError` and
`TooManySkippedMessageKeysError`. The underlying cause is kept in the exception
chain.

## What it does not do

The package covers the ratchet only. It does not agree on the initial root key
and header keys, does not save or load ratchet state, and does not send or
receive messages over any transport; those are left to the application.

## Development

```
pip install -e ".[test]"
pytest
```