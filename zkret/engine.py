"""
Protocol engine: the phase-gated Secret Santa state machine.

The engine owns no state of its own beyond a ParticipantRegistry that it can
always rebuild by replaying the record store (refresh()). Every mutating operation
runs refresh -> validate -> prove -> store -> fold inside one lock, so concurrent
callers on the same engine cannot both pass the "target not yet chosen" check.
Races between engines (other processes) are settled on replay: the registry keeps
the first valid choice per target in storage order.

Phase gating comes in two policies:
- STRICT: the literal gates (enter in Setup/Enter, choice in Enter/Choice,
  reveal in Choice/Reveal). A late entrant is refused once anyone has chosen.
- PERMISSIVE (default): only Complete closes the protocol. Each participant's own
  flags in the registry decide what they may do next, so nobody is blocked
  because somebody else moved the global phase forward.
The phase itself only ever moves forward.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from zkret.crypto import KeyPair, decrypt_data, encrypt_data, reveal_message, verify_signature
from zkret.errors import (
    AlreadyChosen,
    CryptoError,
    DecryptionFailed,
    IntegrityError,
    NotChosen,
    NotEntered,
    NotFound,
    ProtocolViolation,
    SerializationError,
    TargetNotFound,
)
from zkret.proofs import ProofKind, ProofProvider
from zkret.registry import Participant, ParticipantRegistry, Phase
from zkret.storage import Record, RecordStore
from zkret.transactions import (
    ChoiceTransaction,
    EnterTransaction,
    RevealTransaction,
    Transaction,
    decode,
    encode,
    record_type_of,
)

logger = logging.getLogger(__name__)


class PhasePolicy(str, enum.Enum):
    PERMISSIVE = "permissive"
    STRICT = "strict"


_STRICT_GATES = {
    Phase.ENTER: (Phase.SETUP, Phase.ENTER),
    Phase.CHOICE: (Phase.ENTER, Phase.CHOICE),
    Phase.REVEAL: (Phase.CHOICE, Phase.REVEAL),
}


class ProtocolEngine:

    def __init__(
        self,
        store: RecordStore,
        prover: ProofProvider,
        key_exchange: Any,
        *,
        policy: PhasePolicy = PhasePolicy.PERMISSIVE,
        verify_records: bool = True,
        refresh_before_write: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.prover = prover
        self.key_exchange = key_exchange
        self.policy = PhasePolicy(policy)
        self.verify_records = verify_records
        self.refresh_before_write = refresh_before_write
        self._clock = clock
        self._lock = threading.RLock()
        self._registry = ParticipantRegistry()
        self._completed = False
        self.refresh()

    @property
    def registry(self) -> ParticipantRegistry:
        return self._registry

    # ---------------------------
    # Replay
    # ---------------------------

    def refresh(self) -> ParticipantRegistry:
        """Rebuild the registry from genesis by replaying the store in order."""
        with self._lock:
            registry = ParticipantRegistry()
            records = self.store.list()
            skipped = 0
            for record in records:
                tx = self._load(record)
                if tx is None:
                    skipped += 1
                    continue
                registry.apply(tx)
            self._registry = registry
            logger.info(
                "replayed %d records (%d skipped), %d participants, phase %s",
                len(records), skipped, len(registry), registry.phase.label,
            )
            return registry

    def _load(self, record: Record) -> Optional[Transaction]:
        try:
            data = self.store.retrieve(record.content_address)
        except IntegrityError as e:
            logger.warning("skipping record %s: %s", record.id, e.render())
            return None
        try:
            tx = decode(data, record.record_type)
        except SerializationError as e:
            logger.warning("skipping record %s: %s", record.id, e.render())
            return None
        if self.verify_records and not self._authentic(tx):
            logger.warning("skipping record %s: %s failed authentication", record.id, type(tx).__name__)
            return None
        return tx

    def _authentic(self, tx: Transaction) -> bool:
        try:
            if isinstance(tx, EnterTransaction):
                return (
                    tx.proof.kind == ProofKind.ENTER
                    and tx.proof.public_inputs[:1] == (tx.public_key.hex(),)
                    and self.prover.verify(tx.proof)
                )
            if isinstance(tx, ChoiceTransaction):
                return (
                    tx.proof.kind == ProofKind.CHOICE
                    and len(tx.proof.public_inputs) >= 2
                    and tx.proof.public_inputs[1] == tx.chosen_public_key.hex()
                    and self.prover.verify(tx.proof)
                )
            return verify_signature(tx.public_key, reveal_message(tx.public_key), tx.signature)
        except CryptoError as e:
            logger.warning("malformed credentials on %s: %s", type(tx).__name__, e.render())
            return False

    # ---------------------------
    # Helpers
    # ---------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _check_phase(self, operation: Phase) -> None:
        current = self.current_phase()
        if current == Phase.COMPLETE:
            raise ProtocolViolation(f"{operation.label} not available: protocol is complete")
        if self.policy == PhasePolicy.STRICT and current not in _STRICT_GATES[operation]:
            raise ProtocolViolation(
                f"{operation.label} phase not available in current phase {current.label}"
            )

    def _begin(self, operation: Phase) -> None:
        if self.refresh_before_write:
            self.refresh()
        self._check_phase(operation)

    def _commit(self, tx: Transaction) -> Record:
        record = self.store.store(encode(tx), record_type_of(tx))
        if not self._registry.apply(tx):
            logger.warning("stored %s %s was not authoritative", type(tx).__name__, record.id)
        return record

    # ---------------------------
    # Transitions
    # ---------------------------

    def enter(self, keypair: KeyPair) -> Record:
        """Register ``keypair.public_key`` as a participant."""
        with self._lock:
            self._begin(Phase.ENTER)
            proof = self.prover.prove(ProofKind.ENTER, [keypair.public_key, keypair.secret_key])
            tx = EnterTransaction(public_key=keypair.public_key, proof=proof, timestamp=self._now())
            return self._commit(tx)

    def choice(self, chooser_keypair: KeyPair, chosen_public_key: bytes, key_exchange_keypair: Any) -> Record:
        """
        Choose ``chosen_public_key`` as santee, binding the chooser's key-exchange
        public key so the santee can later reveal to them.
        """
        chosen = bytes(chosen_public_key)
        chooser_pk = chooser_keypair.public_key
        with self._lock:
            self._begin(Phase.CHOICE)
            chooser = self._registry.get(chooser_pk)
            if chooser is None or not chooser.has_entered:
                raise NotEntered("must complete ENTER before making a choice")
            target = self._registry.get(chosen)
            if target is None:
                raise TargetNotFound(f"no participant entered with public key {chosen.hex()}")
            if target.chosen_by is not None:
                raise AlreadyChosen(f"{chosen.hex()} already has a secret santa")
            if chooser.has_chosen:
                raise ProtocolViolation("you have already made a choice")

            proof = self.prover.prove(ProofKind.CHOICE, [chooser_pk, chosen, chooser_keypair.secret_key])
            tx = ChoiceTransaction(
                chosen_public_key=chosen,
                chooser_key_exchange_public_key=self.key_exchange.public_key(key_exchange_keypair),
                proof=proof,
                timestamp=self._now(),
            )
            return self._commit(tx)

    def reveal(
        self,
        keypair: KeyPair,
        identity_plaintext: str,
        own_key_exchange_keypair: Any,
        peer_key_exchange_public_key: bytes,
    ) -> Record:
        """Disclose ``identity_plaintext`` so that only this participant's santa can read it."""
        public_key = keypair.public_key
        with self._lock:
            self._begin(Phase.REVEAL)
            participant = self._registry.get(public_key)
            if participant is None or participant.chosen_by is None:
                raise NotChosen("participant has not been chosen by anyone")
            if participant.has_revealed:
                raise ProtocolViolation("you have already revealed")

            kx = self.key_exchange
            shared = kx.shared_secret(kx.secret_key(own_key_exchange_keypair), peer_key_exchange_public_key)
            tx = RevealTransaction(
                public_key=public_key,
                encrypted_identity=encrypt_data(identity_plaintext.encode("utf-8"), shared),
                key_exchange_public_key=kx.public_key(own_key_exchange_keypair),
                signature=keypair.sign(reveal_message(public_key)),
                timestamp=self._now(),
            )
            return self._commit(tx)

    def complete(self) -> None:
        """Close the protocol. Held in memory; drivers decide when a run is over."""
        with self._lock:
            self._completed = True
            logger.info("protocol marked complete")

    # ---------------------------
    # Queries
    # ---------------------------

    def current_phase(self) -> Phase:
        if self._completed:
            return Phase.COMPLETE
        return self._registry.phase

    def available_choices(self) -> List[bytes]:
        """Entered keys nobody has chosen. Callers drop their own key."""
        with self._lock:
            return self._registry.available()

    def participant(self, public_key: bytes) -> Optional[Participant]:
        with self._lock:
            return self._registry.get(public_key)

    def has_santa(self, public_key: bytes) -> bool:
        with self._lock:
            participant = self._registry.get(public_key)
            return participant is not None and participant.chosen_by is not None

    def santa_key_exchange_public_key(self, public_key: bytes) -> bytes:
        with self._lock:
            choice = self._registry.choice_for(public_key)
        if choice is None:
            raise NotFound(f"nobody has chosen {bytes(public_key).hex()}")
        return choice.chooser_key_exchange_public_key

    def santee_revealed_info(self, keypair: KeyPair, key_exchange_keypair: Any) -> Optional[str]:
        """
        Decrypt what this participant's santee revealed. Returns None while the
        santee has not revealed yet; a key-exchange pair other than the one bound
        in the choice surfaces as DecryptionFailed.
        """
        kx = self.key_exchange
        with self._lock:
            choice = self._registry.choice_by(keypair.public_key)
            if choice is None:
                raise NotFound("you have not chosen anyone")
            reveal = self._registry.reveal_of(choice.chosen_public_key)
        if reveal is None:
            return None

        shared = kx.shared_secret(kx.secret_key(key_exchange_keypair), reveal.key_exchange_public_key)
        plaintext = decrypt_data(reveal.encrypted_identity, shared)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailed(f"revealed identity is not valid text: {e}")

    def status(self) -> Dict[str, Any]:
        with self._lock:
            data: Dict[str, Any] = {"phase": self.current_phase().label}
            data.update(self._registry.counts())
            return data
