"""
Keypair files owned by the drivers.

- ``<path>``: ``hex(public_key):hex(secret_key)``
- ``<path with .dh suffix>``: hex key-exchange secret saved when making a choice
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from zkret.crypto import KeyPair, X25519KeyExchange
from zkret.errors import CryptoError, SerializationError, ZkretError


class KeyFileError(ZkretError):
    label = "FileError"


def dh_path(path) -> Path:
    return Path(path).with_suffix(".dh")


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise KeyFileError(f"cannot read {path}: {e}")


def _write(path: Path, data: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data, encoding="utf-8")
        path.chmod(0o600)
    except OSError as e:
        raise KeyFileError(f"cannot write {path}: {e}")


def save_keypair(keypair: KeyPair, path) -> None:
    public_hex, secret_hex = keypair.to_hex()
    _write(Path(path), f"{public_hex}:{secret_hex}")


def load_keypair(path) -> KeyPair:
    parts = _read(Path(path)).strip().split(":")
    if len(parts) != 2:
        raise KeyFileError(f"invalid keypair file format: {path}")
    return KeyPair.from_hex(parts[0], parts[1])


def save_key_exchange(pair: Any, path, key_exchange: X25519KeyExchange = None) -> None:
    kx = key_exchange or X25519KeyExchange()
    _write(dh_path(path), kx.secret_key(pair).hex())


def load_key_exchange(path, key_exchange: X25519KeyExchange = None) -> Any:
    kx = key_exchange or X25519KeyExchange()
    path = dh_path(path)
    raw = _read(path).strip()
    try:
        secret = bytes.fromhex(raw)
    except ValueError as e:
        raise SerializationError(f"invalid hex in {path}: {e}")
    try:
        return kx.from_secret(secret)
    except CryptoError as e:
        raise KeyFileError(f"{path}: {e.detail}")
