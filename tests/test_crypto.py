"""Tests for identity keys, key exchange, symmetric encryption and the reference prover."""

import pytest

from zkret.crypto import (
    KeyPair,
    X25519KeyExchange,
    decrypt_data,
    derive_seed_from_password,
    encrypt_data,
    reveal_message,
    verify_signature,
)
from zkret.errors import CryptoError, DecryptionFailed, ProofError, SerializationError
from zkret.proofs import Proof, ProofKind, SignatureProofProvider


class TestKeyPair:
    def test_sign_and_verify(self) -> None:
        kp = KeyPair.generate()
        sig = kp.sign(b"hello")
        assert verify_signature(kp.public_key, b"hello", sig)
        assert not verify_signature(kp.public_key, b"hullo", sig)

    def test_hex_round_trip(self) -> None:
        kp = KeyPair.generate()
        restored = KeyPair.from_hex(*kp.to_hex())
        assert restored.public_key == kp.public_key
        assert restored.secret_key == kp.secret_key

    def test_mismatched_halves(self) -> None:
        a, b = KeyPair.generate(), KeyPair.generate()
        with pytest.raises(CryptoError):
            KeyPair(a.public_key, b.secret_key)

    def test_bad_hex(self) -> None:
        with pytest.raises(SerializationError):
            KeyPair.from_hex("zz", "00")

    def test_password_derivation_is_deterministic(self) -> None:
        assert KeyPair.from_password("one").public_key == KeyPair.from_password("one").public_key
        assert KeyPair.from_password("one").public_key != KeyPair.from_password("two").public_key
        assert len(derive_seed_from_password("one")) == 32

    def test_repr_hides_secret(self) -> None:
        kp = KeyPair.generate()
        assert kp.secret_key.hex() not in repr(kp)

    def test_malformed_signature(self) -> None:
        kp = KeyPair.generate()
        with pytest.raises(CryptoError):
            verify_signature(kp.public_key, b"m", b"short")
        with pytest.raises(CryptoError):
            verify_signature(b"\x00" * 5, b"m", b"\x00" * 64)

    def test_reveal_message(self) -> None:
        assert reveal_message(b"\x01\xff") == b"reveal:01ff"


class TestKeyExchange:
    def test_shared_secret_symmetry(self) -> None:
        kx = X25519KeyExchange()
        a, b = kx.generate(), kx.generate()
        ab = kx.shared_secret(kx.secret_key(a), kx.public_key(b))
        ba = kx.shared_secret(kx.secret_key(b), kx.public_key(a))
        assert ab == ba
        assert len(ab) == 32

    def test_encrypt_then_decrypt_with_peer_secret(self) -> None:
        kx = X25519KeyExchange()
        a, b = kx.generate(), kx.generate()
        ciphertext = encrypt_data(b"meet at noon", kx.shared_secret(kx.secret_key(a), kx.public_key(b)))
        assert decrypt_data(ciphertext, kx.shared_secret(kx.secret_key(b), kx.public_key(a))) == b"meet at noon"

    def test_invalid_peer_key(self) -> None:
        kx = X25519KeyExchange()
        with pytest.raises(CryptoError):
            kx.shared_secret(kx.secret_key(kx.generate()), b"\x01\x02")

    def test_from_secret_round_trip(self) -> None:
        kx = X25519KeyExchange()
        pair = kx.generate()
        assert kx.public_key(kx.from_secret(kx.secret_key(pair))) == kx.public_key(pair)
        with pytest.raises(CryptoError):
            kx.from_secret(b"short")

    def test_password_keys_are_unlinked(self) -> None:
        kx = X25519KeyExchange()
        pair = kx.from_password("pw")
        assert kx.public_key(pair) == kx.public_key(kx.from_password("pw"))
        assert kx.public_key(pair) != KeyPair.from_password("pw").public_key


class TestSecretBox:
    def test_wrong_key(self) -> None:
        ciphertext = encrypt_data(b"data", b"\x01" * 32)
        with pytest.raises(DecryptionFailed):
            decrypt_data(ciphertext, b"\x02" * 32)

    def test_truncated_ciphertext(self) -> None:
        with pytest.raises(DecryptionFailed):
            decrypt_data(b"\x00" * 10, b"\x01" * 32)

    def test_fresh_nonce_per_message(self) -> None:
        key = b"\x01" * 32
        assert encrypt_data(b"same", key) != encrypt_data(b"same", key)

    def test_bad_key_length(self) -> None:
        with pytest.raises(CryptoError):
            encrypt_data(b"data", b"\x01" * 3)


class TestSignatureProofProvider:
    def test_enter_proof(self) -> None:
        kp = KeyPair.generate()
        prover = SignatureProofProvider()
        proof = prover.prove(ProofKind.ENTER, [kp.public_key, kp.secret_key])
        assert proof.kind == ProofKind.ENTER
        assert proof.public_inputs == (kp.public_key.hex(),)
        assert prover.verify(proof)

    def test_choice_proof_binds_target(self) -> None:
        kp, target = KeyPair.generate(), KeyPair.generate()
        prover = SignatureProofProvider()
        proof = prover.prove(ProofKind.CHOICE, [kp.public_key, target.public_key, kp.secret_key])
        assert proof.public_inputs == (kp.public_key.hex(), target.public_key.hex())
        assert prover.verify(proof)

        other = KeyPair.generate().public_key.hex()
        assert not prover.verify(Proof(proof.data, (proof.public_inputs[0], other), proof.kind))
        assert not prover.verify(Proof(proof.data, proof.public_inputs, ProofKind.ENTER))

    def test_witness_must_match(self) -> None:
        a, b = KeyPair.generate(), KeyPair.generate()
        with pytest.raises(ProofError):
            SignatureProofProvider().prove(ProofKind.ENTER, [a.public_key, b.secret_key])
        with pytest.raises(ProofError):
            SignatureProofProvider().prove(ProofKind.ENTER, [a.secret_key])

    def test_malformed_proof(self) -> None:
        prover = SignatureProofProvider()
        with pytest.raises(CryptoError):
            prover.verify(Proof(b"\x00" * 64, ("not hex",), ProofKind.ENTER))
        with pytest.raises(CryptoError):
            prover.verify(Proof(b"\x00" * 64, (), ProofKind.ENTER))
        with pytest.raises(CryptoError):
            prover.verify(Proof(b"\x00" * 3, (KeyPair.generate().public_key.hex(),), ProofKind.ENTER))
