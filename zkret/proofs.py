"""
Proof capability used by the protocol engine.

The engine only ever sees ``prove(kind, witness) -> Proof`` and ``verify(proof) -> bool``.
Any prover with those two methods can be passed in (a circuit-backed one, or a
test double returning canned proofs).

SignatureProofProvider is the reference prover shipped with the package. It binds a
proof to its phase and public inputs with an Ed25519 signature made by the witness'
secret key. It is sound for "the holder of public_inputs[0] made this claim" but it
does not hide anything: the public inputs are in the clear.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

import nacl.exceptions
from nacl import signing

from zkret.crypto import verify_signature
from zkret.errors import CryptoError, ProofError

logger = logging.getLogger(__name__)


class ProofKind(enum.IntEnum):
    ENTER = 1
    CHOICE = 2
    REVEAL = 3


@dataclass(frozen=True)
class Proof:
    data: bytes
    public_inputs: Tuple[str, ...]
    kind: ProofKind


class ProofProvider(Protocol):
    def prove(self, kind: ProofKind, witness: Sequence[bytes]) -> Proof:
        ...

    def verify(self, proof: Proof) -> bool:
        ...


def statement(kind: ProofKind, public_inputs: Sequence[str]) -> bytes:
    """Canonical bytes a proof commits to."""
    return f"zkret-proof:{kind.name}:{'|'.join(public_inputs)}".encode("utf-8")


class SignatureProofProvider:
    """
    Witness layout: ``[public_part, ..., secret_key]``. The first public part must be
    the Ed25519 public key of ``secret_key``; every public part becomes a hex public
    input, e.g. ENTER ``[pk, sk]`` and CHOICE ``[chooser_pk, chosen_pk, sk]``.
    """

    def prove(self, kind: ProofKind, witness: Sequence[bytes]) -> Proof:
        if len(witness) < 2:
            raise ProofError(f"{kind.name} witness needs a public key and a secret key")
        *public_parts, secret_key = witness
        try:
            sk = signing.SigningKey(bytes(secret_key))
        except nacl.exceptions.CryptoError as e:
            raise ProofError(f"invalid secret key in witness: {e}")
        if sk.verify_key.encode() != bytes(public_parts[0]):
            raise ProofError("witness secret key does not match its public key")

        public_inputs = tuple(bytes(p).hex() for p in public_parts)
        signature = sk.sign(statement(kind, public_inputs)).signature
        logger.debug("generated %s proof over %d public inputs", kind.name, len(public_inputs))
        return Proof(data=signature, public_inputs=public_inputs, kind=kind)

    def verify(self, proof: Proof) -> bool:
        if not proof.public_inputs:
            raise CryptoError("proof has no public inputs")
        try:
            public_key = bytes.fromhex(proof.public_inputs[0])
        except ValueError as e:
            raise CryptoError(f"malformed public input: {e}")
        return verify_signature(public_key, statement(proof.kind, proof.public_inputs), proof.data)
