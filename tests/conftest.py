"""
fitledger test fixtures
"""

import pytest

from fitledger.coprocessor import Coprocessor
from fitledger.fhe import setup_crypto_context
from fitledger.tracker import FitnessTracker, TrackerContext
from fitledger.types import PlaintextRecord
from fitledger.wallet import KeyWallet

CONTRACT = "0x47432b5d028882727d16c25cfdb12f45180b8d02"


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(scope="session")
def crypto_context():
    """One BFVRNS PRE context shared by the whole session."""
    return setup_crypto_context()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coprocessor(crypto_context, clock):
    return Coprocessor(cc=crypto_context, clock=clock)


@pytest.fixture
def context(coprocessor, clock):
    return TrackerContext.local(contract_address=CONTRACT, coprocessor=coprocessor, clock=clock)


@pytest.fixture
def tracker(context):
    return FitnessTracker(context)


@pytest.fixture
def other_wallet(context):
    """A second owner on the same ledger."""
    return KeyWallet.generate(ledger=context.ledger)


@pytest.fixture
def sample_record():
    return PlaintextRecord(height=175, weight_grams=70000, systolic=120, diastolic=80)
