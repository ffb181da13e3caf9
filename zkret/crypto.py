"""
Key material and symmetric crypto for the Secret Santa protocol.

- KeyPair: Ed25519 identity key (PyNaCl signing). The public key is a participant's
  identity; the secret key is the 32-byte seed.
- X25519KeyExchange: ephemeral Curve25519 keys and shared-secret derivation using
  the same Box precomputation libsodium uses for crypto_box.
- encrypt_data / decrypt_data: XSalsa20-Poly1305 SecretBox under a shared secret.

Notes:
- Deterministic key derivation uses Scrypt to turn an arbitrary password into a
  32-byte seed. Identity keys and key-exchange keys use different salts so the two
  public keys cannot be linked to each other.
"""

from __future__ import annotations

from typing import Optional

import nacl.exceptions
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from nacl import public, secret, signing

from zkret.errors import CryptoError, DecryptionFailed, SerializationError

IDENTITY_SALT = b"secret-santa-fixed-salt"
KEY_EXCHANGE_SALT = b"secret-santa-kx-salt"
KEY_SIZE = 32
SIGNATURE_SIZE = 64


# ---------------------------
# Key derivation / helpers
# ---------------------------

def derive_seed_from_password(password: str, *, salt: bytes = IDENTITY_SALT) -> bytes:
    """
    Derive a 32-byte seed from a password using Scrypt.
    Use a fixed salt to keep derivation deterministic across runs for the same password.
    """
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=2**14, r=8, p=1)
    return kdf.derive(password.encode())


def _decode_hex(value: str, what: str) -> bytes:
    try:
        return bytes.fromhex(value.strip())
    except ValueError as e:
        raise SerializationError(f"invalid hex for {what}: {e}")


# ---------------------------
# Identity keys
# ---------------------------

class KeyPair:
    """An Ed25519 identity keypair."""

    def __init__(self, public_key: bytes, secret_key: bytes) -> None:
        try:
            signing_key = signing.SigningKey(bytes(secret_key))
        except nacl.exceptions.CryptoError as e:
            raise CryptoError(f"invalid secret key: {e}")
        if signing_key.verify_key.encode() != bytes(public_key):
            raise CryptoError("public key does not belong to secret key")
        self._signing_key = signing_key
        self.public_key = bytes(public_key)

    @classmethod
    def from_seed(cls, seed32: bytes) -> "KeyPair":
        if len(seed32) != KEY_SIZE:
            raise CryptoError("seed must be 32 bytes")
        sk = signing.SigningKey(seed32)
        return cls(sk.verify_key.encode(), seed32)

    @classmethod
    def generate(cls) -> "KeyPair":
        sk = signing.SigningKey.generate()
        return cls(sk.verify_key.encode(), sk.encode())

    @classmethod
    def from_password(cls, password: str) -> "KeyPair":
        return cls.from_seed(derive_seed_from_password(password))

    @classmethod
    def from_hex(cls, public_hex: str, secret_hex: str) -> "KeyPair":
        return cls(_decode_hex(public_hex, "public key"), _decode_hex(secret_hex, "secret key"))

    @property
    def secret_key(self) -> bytes:
        return self._signing_key.encode()

    def to_hex(self) -> tuple:
        return self.public_key.hex(), self.secret_key.hex()

    def sign(self, message: bytes) -> bytes:
        return self._signing_key.sign(message).signature

    def __repr__(self) -> str:
        return f"KeyPair(public={self.public_key.hex()})"


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """
    Check an Ed25519 signature. Returns False for a bad signature and raises
    CryptoError when the key or signature is malformed.
    """
    try:
        vk = signing.VerifyKey(public_key)
    except nacl.exceptions.CryptoError as e:
        raise CryptoError(f"invalid verify key: {e}")
    if len(signature) != SIGNATURE_SIZE:
        raise CryptoError(f"signature must be 64 bytes, got {len(signature)}")
    try:
        vk.verify(message, signature)
    except nacl.exceptions.BadSignatureError:
        return False
    return True


def reveal_message(public_key: bytes) -> bytes:
    """The message a participant signs when revealing."""
    return b"reveal:" + public_key.hex().encode("ascii")


# ---------------------------
# Key exchange
# ---------------------------

class X25519KeyExchange:
    """
    Key-exchange capability backed by Curve25519.

    A "pair" is a nacl.public.PrivateKey; its public half is derived on demand.
    """

    def generate(self) -> public.PrivateKey:
        return public.PrivateKey.generate()

    def from_secret(self, secret_key: bytes) -> public.PrivateKey:
        try:
            return public.PrivateKey(bytes(secret_key))
        except nacl.exceptions.CryptoError as e:
            raise CryptoError(f"invalid key-exchange secret: {e}")

    def from_password(self, password: str) -> public.PrivateKey:
        return self.from_secret(derive_seed_from_password(password, salt=KEY_EXCHANGE_SALT))

    def public_key(self, pair: public.PrivateKey) -> bytes:
        return bytes(pair.public_key)

    def secret_key(self, pair: public.PrivateKey) -> bytes:
        return bytes(pair)

    def shared_secret(self, own_secret: bytes, peer_public: bytes) -> bytes:
        """
        Derive the 32-byte secret both sides compute: shared(a, B) == shared(b, A).
        """
        try:
            box = public.Box(public.PrivateKey(bytes(own_secret)), public.PublicKey(bytes(peer_public)))
            return box.shared_key()
        except nacl.exceptions.CryptoError as e:
            raise CryptoError(f"key exchange failed: {e}")


# ---------------------------
# Symmetric encryption
# ---------------------------

def encrypt_data(plaintext: bytes, key: bytes, nonce: Optional[bytes] = None) -> bytes:
    """
    Encrypt under a 32-byte shared secret. Output is nonce || ciphertext.
    """
    try:
        return bytes(secret.SecretBox(key).encrypt(plaintext, nonce))
    except nacl.exceptions.CryptoError as e:
        raise CryptoError(f"encryption failed: {e}")


def decrypt_data(ciphertext: bytes, key: bytes) -> bytes:
    try:
        box = secret.SecretBox(key)
    except nacl.exceptions.CryptoError as e:
        raise CryptoError(f"invalid key: {e}")
    try:
        return box.decrypt(ciphertext)
    except nacl.exceptions.CryptoError as e:
        raise DecryptionFailed(str(e) or "ciphertext failed authentication")
