"""Tests for the registry fold. Proofs here are placeholders: the fold never verifies."""

from zkret.proofs import Proof, ProofKind
from zkret.registry import ParticipantRegistry, Phase
from zkret.transactions import ChoiceTransaction, EnterTransaction, RevealTransaction

A = b"\xaa" * 32
B = b"\xbb" * 32
C = b"\xcc" * 32


def enter(key: bytes) -> EnterTransaction:
    return EnterTransaction(public_key=key, proof=Proof(b"p", (key.hex(),), ProofKind.ENTER), timestamp=1)


def choice(chooser: bytes, chosen: bytes, kx: bytes = b"\x01" * 32) -> ChoiceTransaction:
    return ChoiceTransaction(
        chosen_public_key=chosen,
        chooser_key_exchange_public_key=kx,
        proof=Proof(b"p", (chooser.hex(), chosen.hex()), ProofKind.CHOICE),
        timestamp=2,
    )


def reveal(key: bytes) -> RevealTransaction:
    return RevealTransaction(
        public_key=key,
        encrypted_identity=b"secret",
        key_exchange_public_key=b"\x02" * 32,
        signature=b"s" * 64,
        timestamp=3,
    )


class TestEnterFold:
    def test_duplicate_enter_is_noop(self) -> None:
        registry = ParticipantRegistry()
        assert registry.apply(enter(A))
        assert not registry.apply(enter(A))
        assert registry.entered_keys() == [A]
        assert registry.get(A).has_entered

    def test_empty_registry(self) -> None:
        registry = ParticipantRegistry()
        assert registry.phase == Phase.SETUP
        assert registry.available() == []
        assert registry.get(A) is None


class TestChoiceFold:
    def test_first_choice_wins(self) -> None:
        registry = ParticipantRegistry.fold([enter(A), enter(B), enter(C), choice(A, B), choice(C, B)])
        assert registry.get(B).chosen_by == A
        assert registry.get(A).has_chosen
        assert not registry.get(C).has_chosen
        assert registry.choice_for(B).chooser_public_key == A
        assert registry.choice_by(C) is None

    def test_choice_needs_entered_parties(self) -> None:
        registry = ParticipantRegistry.fold([enter(A), choice(A, B), choice(C, A)])
        assert registry.get(A).chosen_by is None
        assert registry.phase == Phase.ENTER

    def test_one_choice_per_chooser(self) -> None:
        registry = ParticipantRegistry.fold([enter(A), enter(B), enter(C), choice(A, B), choice(A, C)])
        assert registry.get(C).chosen_by is None
        assert registry.available() == [A, C]

    def test_unreadable_chooser_is_ignored(self) -> None:
        registry = ParticipantRegistry.fold([enter(A), enter(B)])
        bad = ChoiceTransaction(B, b"\x01" * 32, Proof(b"p", ("zz",), ProofKind.CHOICE), 2)
        assert bad.chooser_public_key is None
        assert not registry.apply(bad)


class TestRevealFold:
    def test_reveal_before_choice_is_ignored(self) -> None:
        registry = ParticipantRegistry.fold([enter(A), enter(B), reveal(B), choice(A, B)])
        assert not registry.get(B).has_revealed
        assert registry.reveal_of(B) is None

        registry.apply(reveal(B))
        assert registry.get(B).has_revealed
        assert registry.phase == Phase.REVEAL


class TestDeterminism:
    def test_refold_is_equal(self) -> None:
        log = [enter(A), enter(B), enter(C), choice(A, B), choice(C, B), choice(B, C), reveal(B), reveal(B)]
        assert ParticipantRegistry.fold(log) == ParticipantRegistry.fold(log)

    def test_order_decides(self) -> None:
        first = ParticipantRegistry.fold([enter(A), enter(B), enter(C), choice(A, B), choice(C, B)])
        second = ParticipantRegistry.fold([enter(A), enter(B), enter(C), choice(C, B), choice(A, B)])
        assert first != second
        assert second.get(B).chosen_by == C

    def test_counts(self) -> None:
        registry = ParticipantRegistry.fold([enter(A), enter(B), enter(C), choice(A, B), reveal(B)])
        assert registry.counts() == {"entered": 3, "chosen": 1, "revealed": 1, "available": 2}
