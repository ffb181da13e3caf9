"""Tests for settings loading and keypair files."""

from pathlib import Path

import pytest

from zkret.config import Settings, load_settings
from zkret.crypto import KeyPair, X25519KeyExchange
from zkret.errors import SerializationError
from zkret.keyfile import (
    KeyFileError,
    dh_path,
    load_key_exchange,
    load_keypair,
    save_key_exchange,
    save_keypair,
)


class TestSettings:
    def test_defaults(self) -> None:
        assert load_settings({}) == Settings()

    def test_overrides(self) -> None:
        settings = load_settings({
            "ZKRET_STORE_DIR": "/tmp/ledger",
            "ZKRET_KEYPAIR_FILE": "me.zkret",
            "ZKRET_CONFIRM_ATTEMPTS": "3",
            "ZKRET_CONFIRM_INTERVAL": "0.25",
            "ZKRET_PHASE_POLICY": "STRICT",
            "ZKRET_LOG_LEVEL": "debug",
        })
        assert settings.store_dir == Path("/tmp/ledger")
        assert settings.keypair_file == Path("me.zkret")
        assert settings.confirm_attempts == 3
        assert settings.confirm_interval == 0.25
        assert settings.phase_policy == "strict"
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [
        ("ZKRET_CONFIRM_ATTEMPTS", "many"),
        ("ZKRET_CONFIRM_ATTEMPTS", "0"),
        ("ZKRET_CONFIRM_INTERVAL", "-1"),
        ("ZKRET_PHASE_POLICY", "lax"),
        ("ZKRET_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values(self, name, value) -> None:
        with pytest.raises(ValueError, match=name):
            load_settings({name: value})


class TestKeyFiles:
    def test_keypair_round_trip(self, tmp_path) -> None:
        kp = KeyPair.generate()
        path = tmp_path / "key.zkret"
        save_keypair(kp, path)
        public_hex, secret_hex = path.read_text().split(":")
        assert public_hex == kp.public_key.hex()
        assert load_keypair(path).secret_key == kp.secret_key

    def test_key_exchange_sibling_file(self, tmp_path) -> None:
        kx = X25519KeyExchange()
        pair = kx.generate()
        path = tmp_path / "key.zkret"
        save_key_exchange(pair, path)
        assert dh_path(path) == tmp_path / "key.dh"
        assert dh_path(path).read_text() == kx.secret_key(pair).hex()
        assert kx.public_key(load_key_exchange(path)) == kx.public_key(pair)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(KeyFileError):
            load_keypair(tmp_path / "absent.zkret")
        with pytest.raises(KeyFileError):
            load_key_exchange(tmp_path / "absent.zkret")

    def test_bad_format(self, tmp_path) -> None:
        path = tmp_path / "key.zkret"
        path.write_text("no-separator")
        with pytest.raises(KeyFileError):
            load_keypair(path)
        path.write_text("zz:yy")
        with pytest.raises(SerializationError):
            load_keypair(path)

    def test_bad_dh_file(self, tmp_path) -> None:
        path = tmp_path / "key.zkret"
        dh_path(path).write_text("not hex")
        with pytest.raises(SerializationError):
            load_key_exchange(path)
        dh_path(path).write_text("abcd")
        with pytest.raises(KeyFileError):
            load_key_exchange(path)
