"""
Error taxonomy shared by the engine, its collaborators and the drivers.

Every error carries a short ``label`` (the taxonomy name shown to users) and
the underlying ``detail`` string. Drivers render ``label: detail``.
"""

from __future__ import annotations


class ZkretError(Exception):
    label = "Error"
    retryable = False

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def render(self) -> str:
        return f"{self.label}: {self.detail}" if self.detail else self.label


# ---------------------------
# Protocol preconditions
# ---------------------------

class ProtocolViolation(ZkretError):
    """A phase gate or protocol precondition was broken."""
    label = "ProtocolViolation"


class NotEntered(ProtocolViolation):
    label = "NotEntered"


class TargetNotFound(ProtocolViolation):
    label = "TargetNotFound"


class AlreadyChosen(ProtocolViolation):
    label = "AlreadyChosen"


class NotChosen(ProtocolViolation):
    label = "NotChosen"


class NotFound(ProtocolViolation):
    label = "NotFound"


# ---------------------------
# Crypto
# ---------------------------

class CryptoError(ZkretError):
    """Proof, signature or key-exchange failure."""
    label = "CryptoError"


class ProofError(CryptoError):
    label = "ProofError"


class DecryptionFailed(CryptoError):
    label = "DecryptionFailed"


# ---------------------------
# Storage / data
# ---------------------------

class StorageError(ZkretError):
    label = "StorageError"


class StorageTimeout(StorageError):
    """Confirmation polling ran out of attempts. Safe to retry."""
    label = "StorageTimeout"
    retryable = True


class IntegrityError(StorageError):
    """Stored content no longer hashes to its address."""
    label = "IntegrityError"


class SerializationError(ZkretError):
    label = "SerializationError"
