"""
Pytest configuration and shared fixtures.
"""
import pytest

from zkret.crypto import KeyPair, X25519KeyExchange
from zkret.engine import ProtocolEngine
from zkret.proofs import SignatureProofProvider
from zkret.storage import MemoryRecordStore

FIXED_TIME = 1_700_000_000


@pytest.fixture
def store():
    """In-memory store that confirms on the first poll and never sleeps."""
    return MemoryRecordStore(confirm_attempts=3, confirm_interval=0)


@pytest.fixture
def kx():
    return X25519KeyExchange()


@pytest.fixture
def make_engine(store, kx):
    def _make(target_store=None, **kwargs):
        kwargs.setdefault("clock", lambda: FIXED_TIME)
        return ProtocolEngine(target_store or store, SignatureProofProvider(), kx, **kwargs)
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def alice():
    return KeyPair.generate()


@pytest.fixture
def bob():
    return KeyPair.generate()


@pytest.fixture
def carol():
    return KeyPair.generate()
