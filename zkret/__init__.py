"""ZKret Santa: a Secret Santa protocol over an append-only record store."""

from zkret.crypto import KeyPair, X25519KeyExchange
from zkret.engine import PhasePolicy, ProtocolEngine
from zkret.proofs import Proof, ProofKind, SignatureProofProvider
from zkret.registry import Participant, ParticipantRegistry, Phase
from zkret.storage import FileRecordStore, MemoryRecordStore, Record, RecordStore, RecordType

__version__ = "0.1.0"

__all__ = [
    "FileRecordStore",
    "KeyPair",
    "MemoryRecordStore",
    "Participant",
    "ParticipantRegistry",
    "Phase",
    "PhasePolicy",
    "Proof",
    "ProofKind",
    "ProtocolEngine",
    "Record",
    "RecordStore",
    "RecordType",
    "SignatureProofProvider",
    "X25519KeyExchange",
]
