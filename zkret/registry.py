"""
Participant registry: the projection of the transaction log into protocol state.

The registry is a pure fold. It never talks to storage or crypto; the engine
authenticates transactions before handing them over. Folding the same ordered
log always gives an equal registry.

Fold rules (first valid wins, by log order):
- Enter: creates the participant. Repeated Enters for a key are no-ops.
- Choice: the chooser (first proof public input) and the target must both have
  entered, the target must not have a chooser yet and the chooser must not have
  chosen before.
- Reveal: the revealer must have a chooser and must not have revealed before.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from zkret.transactions import ChoiceTransaction, EnterTransaction, RevealTransaction, Transaction

logger = logging.getLogger(__name__)


class Phase(enum.IntEnum):
    SETUP = 0
    ENTER = 1
    CHOICE = 2
    REVEAL = 3
    COMPLETE = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass
class Participant:
    public_key: bytes
    has_entered: bool = False
    has_chosen: bool = False
    chosen_by: Optional[bytes] = None
    has_revealed: bool = False


class ParticipantRegistry:

    def __init__(self) -> None:
        self._participants: Dict[bytes, Participant] = {}
        self._entered: List[bytes] = []
        self._choice_for: Dict[bytes, ChoiceTransaction] = {}
        self._choice_by: Dict[bytes, ChoiceTransaction] = {}
        self._reveals: Dict[bytes, RevealTransaction] = {}
        self.phase = Phase.SETUP

    @classmethod
    def fold(cls, transactions: Iterable[Transaction]) -> "ParticipantRegistry":
        registry = cls()
        for tx in transactions:
            registry.apply(tx)
        return registry

    def apply(self, tx: Transaction) -> bool:
        """Fold one transaction. Returns True if it was authoritative."""
        if isinstance(tx, EnterTransaction):
            applied = self._apply_enter(tx)
            phase = Phase.ENTER
        elif isinstance(tx, ChoiceTransaction):
            applied = self._apply_choice(tx)
            phase = Phase.CHOICE
        elif isinstance(tx, RevealTransaction):
            applied = self._apply_reveal(tx)
            phase = Phase.REVEAL
        else:
            raise TypeError(f"cannot fold {type(tx).__name__}")
        if applied:
            self.phase = max(self.phase, phase)
        else:
            logger.debug("ignored non-authoritative %s", type(tx).__name__)
        return applied

    def _apply_enter(self, tx: EnterTransaction) -> bool:
        key = bytes(tx.public_key)
        if key in self._participants:
            return False
        self._participants[key] = Participant(public_key=key, has_entered=True)
        self._entered.append(key)
        return True

    def _apply_choice(self, tx: ChoiceTransaction) -> bool:
        chooser = self._participants.get(tx.chooser_public_key or b"")
        target = self._participants.get(bytes(tx.chosen_public_key))
        if chooser is None or target is None:
            return False
        if target.chosen_by is not None or chooser.has_chosen:
            return False
        chooser.has_chosen = True
        target.chosen_by = chooser.public_key
        self._choice_for[target.public_key] = tx
        self._choice_by[chooser.public_key] = tx
        return True

    def _apply_reveal(self, tx: RevealTransaction) -> bool:
        participant = self._participants.get(bytes(tx.public_key))
        if participant is None or participant.chosen_by is None or participant.has_revealed:
            return False
        participant.has_revealed = True
        self._reveals[participant.public_key] = tx
        return True

    # ---------------------------
    # Queries
    # ---------------------------

    def get(self, public_key: bytes) -> Optional[Participant]:
        return self._participants.get(bytes(public_key))

    def __contains__(self, public_key: bytes) -> bool:
        return bytes(public_key) in self._participants

    def __len__(self) -> int:
        return len(self._participants)

    def entered_keys(self) -> List[bytes]:
        """All entered public keys, in Enter order."""
        return list(self._entered)

    def available(self) -> List[bytes]:
        """Entered keys nobody has chosen yet."""
        return [k for k in self._entered if self._participants[k].chosen_by is None]

    def choice_for(self, target: bytes) -> Optional[ChoiceTransaction]:
        return self._choice_for.get(bytes(target))

    def choice_by(self, chooser: bytes) -> Optional[ChoiceTransaction]:
        return self._choice_by.get(bytes(chooser))

    def reveal_of(self, public_key: bytes) -> Optional[RevealTransaction]:
        return self._reveals.get(bytes(public_key))

    def counts(self) -> Dict[str, int]:
        participants = self._participants.values()
        return {
            "entered": len(self._entered),
            "chosen": sum(1 for p in participants if p.chosen_by is not None),
            "revealed": sum(1 for p in participants if p.has_revealed),
            "available": len(self.available()),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParticipantRegistry):
            return NotImplemented
        return (
            self.phase == other.phase
            and self._entered == other._entered
            and self._participants == other._participants
            and self._choice_for == other._choice_for
            and self._reveals == other._reveals
        )
