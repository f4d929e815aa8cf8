"""
Shared fixtures for nite ledger tests.

Accounts are deterministic eth-account keys so that signatures are
reproducible between runs.
"""

from types import SimpleNamespace

import pytest

from nite.core.chain import Chain
from nite.core.contracts.erc20 import ERC20Token
from nite.core.contracts.factory import Factory
from nite.core.contracts.nite_token import NiteToken

from nite_tests.helpers import make_account

GENESIS_TIMESTAMP = 1_700_000_000
TEST_CHAIN_ID = 84532

ACCOUNT_NAMES = (
    "deployer",
    "host",
    "operator",
    "treasury",
    "alice",
    "bob",
    "carol",
    "approved",
    "other",
)


@pytest.fixture
def accounts():
    """Named local accounts (``accounts.host.address``, ``accounts.host.key``)."""
    return SimpleNamespace(**{name: make_account(name) for name in ACCOUNT_NAMES})


@pytest.fixture
def chain():
    return Chain(chain_id=TEST_CHAIN_ID, timestamp=GENESIS_TIMESTAMP)


@pytest.fixture
def gas_token(chain, accounts):
    return ERC20Token(chain=chain, name="Travel", symbol="TRVL", owner=accounts.deployer.address)


@pytest.fixture
def factory(chain, accounts, gas_token):
    return Factory(
        chain=chain,
        owner=accounts.deployer.address,
        operator=accounts.operator.address,
        treasury=accounts.treasury.address,
        fee_token=gas_token.address,
        fee_amount_per_transfer=0,
    )


@pytest.fixture
def token(chain, accounts, factory):
    """Ledger as deployed: paused, no fee, no booking tracking."""
    return NiteToken(
        chain=chain,
        host=accounts.host.address,
        factory=factory.address,
        name="Nite Villa",
        symbol="NV",
        base_uri="https://nite.example/villa/",
        track_bookings=False,
    )


@pytest.fixture
def live_token(token, accounts):
    """Unpaused ledger."""
    token.unpause(accounts.host.address)
    return token


@pytest.fixture
def booking_token(chain, accounts, factory):
    ledger = NiteToken(
        chain=chain,
        host=accounts.host.address,
        factory=factory.address,
        name="Nite Lodge",
        symbol="NL",
        track_bookings=True,
    )
    ledger.unpause(accounts.host.address)
    return ledger
