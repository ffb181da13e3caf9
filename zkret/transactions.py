"""
The three protocol transactions and their canonical binary encoding.

Layout (big-endian)::

    b"ZKS" | version:u8 | record type:u8 | fields...

Fields are written in declaration order: byte strings as ``u32 length || bytes``,
text as UTF-8 byte strings, timestamps as ``u64`` and proofs as
``kind:u8 || data || count:u16 || inputs``. Decoding rejects unknown tags,
truncated input and trailing bytes with SerializationError.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional, Union

from zkret.errors import SerializationError
from zkret.proofs import Proof, ProofKind
from zkret.storage import RecordType

MAGIC = b"ZKS"
VERSION = 1

_TYPE_TAGS = {
    RecordType.ENTER: 1,
    RecordType.CHOICE: 2,
    RecordType.REVEAL: 3,
}
_TAG_TYPES = {tag: rt for rt, tag in _TYPE_TAGS.items()}


@dataclass(frozen=True)
class EnterTransaction:
    public_key: bytes
    proof: Proof
    timestamp: int


@dataclass(frozen=True)
class ChoiceTransaction:
    chosen_public_key: bytes
    chooser_key_exchange_public_key: bytes
    proof: Proof
    timestamp: int

    @property
    def chooser_public_key(self) -> Optional[bytes]:
        """The chooser named by the proof's first public input, if readable."""
        if not self.proof.public_inputs:
            return None
        try:
            return bytes.fromhex(self.proof.public_inputs[0])
        except ValueError:
            return None


@dataclass(frozen=True)
class RevealTransaction:
    public_key: bytes
    encrypted_identity: bytes
    key_exchange_public_key: bytes
    signature: bytes
    timestamp: int


Transaction = Union[EnterTransaction, ChoiceTransaction, RevealTransaction]


def record_type_of(tx: Transaction) -> RecordType:
    if isinstance(tx, EnterTransaction):
        return RecordType.ENTER
    if isinstance(tx, ChoiceTransaction):
        return RecordType.CHOICE
    if isinstance(tx, RevealTransaction):
        return RecordType.REVEAL
    raise SerializationError(f"not a transaction: {type(tx).__name__}")


# ---------------------------
# Encoding
# ---------------------------

class _Writer:
    def __init__(self) -> None:
        self._parts = []

    def raw(self, value: bytes) -> None:
        self._parts.append(value)

    def u8(self, value: int) -> None:
        self._parts.append(struct.pack(">B", value))

    def u64(self, value: int) -> None:
        try:
            self._parts.append(struct.pack(">Q", value))
        except struct.error as e:
            raise SerializationError(f"timestamp out of range: {e}")

    def blob(self, value: bytes) -> None:
        value = bytes(value)
        self._parts.append(struct.pack(">I", len(value)))
        self._parts.append(value)

    def text(self, value: str) -> None:
        self.blob(value.encode("utf-8"))

    def proof(self, proof: Proof) -> None:
        self.u8(int(proof.kind))
        self.blob(proof.data)
        if len(proof.public_inputs) > 0xFFFF:
            raise SerializationError("too many public inputs")
        self._parts.append(struct.pack(">H", len(proof.public_inputs)))
        for value in proof.public_inputs:
            self.text(value)

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


def encode(tx: Transaction) -> bytes:
    record_type = record_type_of(tx)
    w = _Writer()
    w.raw(MAGIC)
    w.u8(VERSION)
    w.u8(_TYPE_TAGS[record_type])

    if isinstance(tx, EnterTransaction):
        w.blob(tx.public_key)
        w.proof(tx.proof)
        w.u64(tx.timestamp)
    elif isinstance(tx, ChoiceTransaction):
        w.blob(tx.chosen_public_key)
        w.blob(tx.chooser_key_exchange_public_key)
        w.proof(tx.proof)
        w.u64(tx.timestamp)
    else:
        w.blob(tx.public_key)
        w.blob(tx.encrypted_identity)
        w.blob(tx.key_exchange_public_key)
        w.blob(tx.signature)
        w.u64(tx.timestamp)
    return w.getvalue()


# ---------------------------
# Decoding
# ---------------------------

class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise SerializationError(
                f"truncated transaction: need {n} bytes at offset {self._pos}, have {len(self._data) - self._pos}"
            )
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def _unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def u8(self) -> int:
        return self._unpack(">B")

    def u64(self) -> int:
        return self._unpack(">Q")

    def blob(self) -> bytes:
        return self.take(self._unpack(">I"))

    def text(self) -> str:
        raw = self.blob()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(f"invalid text field: {e}")

    def proof(self) -> Proof:
        tag = self.u8()
        try:
            kind = ProofKind(tag)
        except ValueError:
            raise SerializationError(f"unknown proof kind {tag}")
        data = self.blob()
        count = self._unpack(">H")
        inputs = tuple(self.text() for _ in range(count))
        return Proof(data=data, public_inputs=inputs, kind=kind)

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise SerializationError(f"{len(self._data) - self._pos} trailing bytes after transaction")


def decode(data: bytes, record_type: Optional[RecordType] = None) -> Transaction:
    """
    Decode one transaction. When ``record_type`` is given (the tag the record was
    stored under), the encoded type must agree with it.
    """
    r = _Reader(data)
    if r.take(len(MAGIC)) != MAGIC:
        raise SerializationError("not a transaction (bad magic)")
    version = r.u8()
    if version != VERSION:
        raise SerializationError(f"unsupported transaction version {version}")
    tag = r.u8()
    if tag not in _TAG_TYPES:
        raise SerializationError(f"unknown transaction type {tag}")
    encoded_type = _TAG_TYPES[tag]
    if record_type is not None and RecordType(record_type) != encoded_type:
        raise SerializationError(
            f"record tagged {RecordType(record_type).value} holds a {encoded_type.value}"
        )

    if encoded_type == RecordType.ENTER:
        tx = EnterTransaction(public_key=r.blob(), proof=r.proof(), timestamp=r.u64())
    elif encoded_type == RecordType.CHOICE:
        tx = ChoiceTransaction(
            chosen_public_key=r.blob(),
            chooser_key_exchange_public_key=r.blob(),
            proof=r.proof(),
            timestamp=r.u64(),
        )
    else:
        tx = RevealTransaction(
            public_key=r.blob(),
            encrypted_identity=r.blob(),
            key_exchange_public_key=r.blob(),
            signature=r.blob(),
            timestamp=r.u64(),
        )
    r.finish()
    return tx
