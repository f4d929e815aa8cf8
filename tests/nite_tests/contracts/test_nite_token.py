"""
Tests for NiteToken: the pause gate, host/operator privileges, host
administration and per-transfer fee metering.
"""

import pytest

from nite.core import config
from nite.core.addresses import ZERO_ADDRESS
from nite.core.contracts import nite_token as nite_token_module
from nite.core.contracts.erc20 import (
    ERC20InsufficientAllowanceError,
    ERC20InsufficientBalanceError,
    ERC20Token,
)
from nite.core.contracts.nite_token import NiteToken
from nite.core.ledger_exceptions import (
    ContractError,
    OnlyHostError,
    OwnableInvalidOwnerError,
    OwnableUnauthorizedAccountError,
    TransferWhilePausedError,
    UnauthorizedError,
    ZeroAddressError,
)
from nite.core.metrics import LedgerMetrics

from nite_tests.helpers import events_of

FEE = 200


class TestDeployment:
    def test_starts_paused(self, token, accounts):
        assert token.paused
        assert token.host == accounts.host.address
        assert token.name == "Nite Villa"
        assert token.symbol == "NV"

    def test_zero_host_rejected(self, chain, factory):
        with pytest.raises(OwnableInvalidOwnerError):
            NiteToken(chain=chain, host=ZERO_ADDRESS, factory=factory.address, name="X", symbol="X")

    def test_zero_registry_rejected(self, chain, accounts):
        with pytest.raises(ZeroAddressError):
            NiteToken(chain=chain, host=accounts.host.address, factory=ZERO_ADDRESS, name="X", symbol="X")

    def test_fee_schedule_mirrors_registry(self, token, factory, gas_token, accounts):
        schedule = token.fee_schedule()
        assert schedule.operator == accounts.operator.address
        assert schedule.treasury == accounts.treasury.address
        assert schedule.fee_token == gas_token.address
        assert schedule.fee_per_transfer == 0

    def test_missing_registry_fails_calls(self, chain, accounts):
        orphan = NiteToken(
            chain=chain,
            host=accounts.host.address,
            factory=accounts.other.address,
            name="Orphan",
            symbol="OR",
        )
        with pytest.raises(ContractError):
            orphan.transfer_from(accounts.host.address, accounts.host.address, accounts.bob.address, 1)


class TestPause:
    """Holders are frozen while paused; host and operator are not."""

    def test_holder_blocked_while_paused(self, token, accounts):
        host, alice, bob = accounts.host.address, accounts.alice.address, accounts.bob.address
        token.transfer_from(host, host, alice, 1)

        with pytest.raises(TransferWhilePausedError):
            token.transfer_from(alice, alice, bob, 1)
        assert token.owner_of(1) == alice

    def test_paused_error_is_an_authorization_failure(self):
        assert issubclass(TransferWhilePausedError, UnauthorizedError)

    def test_approved_account_blocked_while_paused(self, token, accounts):
        host, approved = accounts.host.address, accounts.approved.address
        token.approve(host, approved, 1)

        with pytest.raises(TransferWhilePausedError):
            token.transfer_from(approved, host, accounts.bob.address, 1)

    def test_pause_checked_before_ownership(self, token, accounts):
        with pytest.raises(TransferWhilePausedError):
            token.transfer_from(accounts.alice.address, accounts.bob.address, accounts.carol.address, 1)

    def test_operator_moves_host_tokens_while_paused(self, token, accounts):
        host, bob = accounts.host.address, accounts.bob.address
        operator = accounts.operator.address

        token.transfer_from(operator, host, bob, 1)
        token.bulk_transfer_from(operator, host, bob, 2, 3)

        assert [token.owner_of(i) for i in (1, 2, 3)] == [bob, bob, bob]

    @pytest.mark.parametrize("caller_name", ["host", "operator"])
    def test_privileged_caller_cannot_take_holder_token(self, live_token, accounts, caller_name):
        host, alice = accounts.host.address, accounts.alice.address
        caller = getattr(accounts, caller_name).address
        live_token.safe_transfer_from(host, host, alice, 5042)
        before = live_token.snapshot()

        with pytest.raises(UnauthorizedError):
            live_token.safe_transfer_from(caller, alice, accounts.other.address, 5042)
        with pytest.raises(UnauthorizedError):
            live_token.transfer_from(caller, alice, host, 5042)

        assert live_token.snapshot() == before
        assert live_token.owner_of(5042) == alice

    def test_privileged_caller_cannot_take_holder_range(self, live_token, accounts):
        host, alice, bob = accounts.host.address, accounts.alice.address, accounts.bob.address
        live_token.bulk_transfer_from(host, host, alice, 10, 12)

        with pytest.raises(UnauthorizedError):
            live_token.bulk_transfer_from(host, alice, bob, 10, 12)
        assert [live_token.owner_of(i) for i in (10, 11, 12)] == [alice, alice, alice]
        assert live_token.balance_of(bob) == 0

    def test_privileged_caller_moves_holder_token_with_approval(self, live_token, accounts):
        host, alice = accounts.host.address, accounts.alice.address
        live_token.transfer_from(host, host, alice, 1)
        live_token.approve(alice, host, 1)

        live_token.transfer_from(host, alice, host, 1)

        assert live_token.owner_of(1) == host
        assert live_token.balance_of(alice) == 0

    def test_unpause_then_holder_transfers(self, token, accounts):
        host, alice, bob = accounts.host.address, accounts.alice.address, accounts.bob.address
        token.transfer_from(host, host, alice, 1)

        token.unpause(host)
        token.transfer_from(alice, alice, bob, 1)

        assert token.owner_of(1) == bob
        assert events_of(token, "Unpaused") == [{"account": host}]

    def test_pause_again_blocks_holders(self, live_token, accounts):
        host, alice = accounts.host.address, accounts.alice.address
        live_token.transfer_from(host, host, alice, 1)
        live_token.pause(host)

        with pytest.raises(TransferWhilePausedError):
            live_token.transfer_from(alice, alice, accounts.bob.address, 1)
        assert events_of(live_token, "Paused") == [{"account": host}]

    def test_operator_change_takes_effect_immediately(self, token, factory, accounts):
        host, operator = accounts.host.address, accounts.operator.address
        factory.set_operator(accounts.deployer.address, accounts.carol.address)

        with pytest.raises(TransferWhilePausedError):
            token.transfer_from(operator, host, operator, 1)
        token.transfer_from(accounts.carol.address, host, accounts.bob.address, 1)
        assert token.owner_of(1) == accounts.bob.address


class TestAdministration:
    @pytest.mark.parametrize(
        "method, args",
        [
            ("pause", ()),
            ("unpause", ()),
            ("set_name", ("Renamed",)),
            ("set_base_uri", ("ipfs://x/",)),
            ("withdraw_gas_token", ("0x" + "11" * 20, 1)),
        ],
    )
    def test_host_only(self, token, accounts, method, args):
        with pytest.raises(OnlyHostError) as exc_info:
            getattr(token, method)(accounts.operator.address, *args)
        assert isinstance(exc_info.value, OwnableUnauthorizedAccountError)

    def test_set_metadata(self, token, accounts):
        host = accounts.host.address
        token.set_name(host, "Nite Chalet")
        token.set_base_uri(host, "ipfs://chalet/")

        assert token.name == "Nite Chalet"
        assert token.token_uri(3) == "ipfs://chalet/3"

    def test_withdraw_gas_token(self, token, gas_token, accounts):
        host, deployer = accounts.host.address, accounts.deployer.address
        gas_token.mint(deployer, token.address, 500)

        token.withdraw_gas_token(host, host, 300)

        assert gas_token.balance_of(token.address) == 200
        assert gas_token.balance_of(host) == 300
        assert events_of(token, "WithdrawGasToken") == [{"to_address": host, "amount": 300}]

    def test_withdraw_to_zero_rejected(self, token, accounts):
        with pytest.raises(ZeroAddressError):
            token.withdraw_gas_token(accounts.host.address, ZERO_ADDRESS, 1)

    def test_withdraw_more_than_balance(self, token, gas_token, accounts):
        gas_token.mint(accounts.deployer.address, token.address, 10)

        with pytest.raises(ERC20InsufficientBalanceError):
            token.withdraw_gas_token(accounts.host.address, accounts.host.address, 11)
        assert gas_token.balance_of(token.address) == 10
        assert events_of(token, "WithdrawGasToken") == []


class TestFees:
    """Fee metering against the registry's fee schedule."""

    @pytest.fixture
    def priced(self, factory, accounts):
        factory.set_fee_amount_per_transfer(accounts.deployer.address, FEE)
        return factory

    def test_no_fee_moves_nothing(self, token, gas_token, accounts):
        host = accounts.host.address
        token.bulk_transfer_from(host, host, accounts.alice.address, 1, 5)
        assert gas_token.events == []

    def test_host_transfer_paid_by_ledger(self, priced, token, gas_token, accounts):
        host, deployer, treasury = accounts.host.address, accounts.deployer.address, accounts.treasury.address
        gas_token.mint(deployer, token.address, 5 * FEE)

        token.bulk_transfer_from(host, host, accounts.alice.address, 5042, 5046)

        assert gas_token.balance_of(token.address) == 0
        assert gas_token.balance_of(treasury) == 5 * FEE

    def test_host_fees_follow_token_count(self, priced, token, gas_token, accounts):
        host, to = accounts.host.address, accounts.alice.address
        gas_token.mint(accounts.deployer.address, token.address, 1_000)

        token.safe_bulk_transfer_from(host, host, to, 5042, 5044)
        assert gas_token.balance_of(token.address) == 400
        assert gas_token.balance_of(accounts.treasury.address) == 600

        token.safe_transfer_from(host, host, to, 6000)
        assert gas_token.balance_of(token.address) == 200
        assert token.balance_of(to) == 4

    def test_host_transfer_without_ledger_funds_reverts(self, priced, token, gas_token, accounts):
        host, alice = accounts.host.address, accounts.alice.address
        gas_token.mint(accounts.deployer.address, token.address, 5 * FEE)
        token.bulk_transfer_from(host, host, alice, 5042, 5046)

        with pytest.raises(ERC20InsufficientBalanceError):
            token.bulk_transfer_from(host, host, alice, 5047, 5051)

        assert token.owner_of(5047) == host
        assert token.balance_of(alice) == 5

    def test_operator_transfer_paid_by_ledger(self, priced, token, gas_token, accounts):
        host, alice = accounts.host.address, accounts.alice.address
        gas_token.mint(accounts.deployer.address, token.address, FEE)
        gas_token.mint(accounts.deployer.address, alice, FEE)

        token.transfer_from(accounts.operator.address, host, alice, 1)

        assert gas_token.balance_of(token.address) == 0
        assert gas_token.balance_of(alice) == FEE

    def test_holder_transfer_paid_by_holder_allowance(self, priced, live_token, gas_token, accounts):
        host, alice, bob = accounts.host.address, accounts.alice.address, accounts.bob.address
        gas_token.mint(accounts.deployer.address, live_token.address, FEE)
        live_token.transfer_from(host, host, alice, 1)
        gas_token.mint(accounts.deployer.address, alice, 500)
        gas_token.approve(alice, live_token.address, FEE)

        live_token.transfer_from(alice, alice, bob, 1)

        assert gas_token.balance_of(alice) == 300
        assert gas_token.balance_of(accounts.treasury.address) == 2 * FEE
        assert gas_token.allowance(alice, live_token.address) == 0

    def test_holder_without_allowance_reverts(self, priced, live_token, gas_token, accounts):
        host, alice, bob = accounts.host.address, accounts.alice.address, accounts.bob.address
        gas_token.mint(accounts.deployer.address, live_token.address, FEE)
        live_token.transfer_from(host, host, alice, 1)
        gas_token.mint(accounts.deployer.address, alice, 500)

        with pytest.raises(ERC20InsufficientAllowanceError):
            live_token.transfer_from(alice, alice, bob, 1)

        assert live_token.owner_of(1) == alice
        assert gas_token.balance_of(alice) == 500

    def test_approved_caller_charges_the_token_owner(self, priced, live_token, gas_token, accounts):
        host, alice, approved = accounts.host.address, accounts.alice.address, accounts.approved.address
        gas_token.mint(accounts.deployer.address, live_token.address, FEE)
        live_token.transfer_from(host, host, alice, 1)
        live_token.approve(alice, approved, 1)
        gas_token.mint(accounts.deployer.address, alice, FEE)
        gas_token.approve(alice, live_token.address, FEE)

        live_token.transfer_from(approved, alice, accounts.bob.address, 1)

        assert gas_token.balance_of(alice) == 0
        assert gas_token.balance_of(approved) == 0

    def test_bulk_fee_scales_with_range(self, priced, live_token, gas_token, accounts):
        host, alice = accounts.host.address, accounts.alice.address
        gas_token.mint(accounts.deployer.address, live_token.address, 3 * FEE)
        live_token.bulk_transfer_from(host, host, alice, 1, 3)
        gas_token.mint(accounts.deployer.address, alice, 3 * FEE)
        gas_token.approve(alice, live_token.address, 3 * FEE)

        live_token.bulk_transfer_from(alice, alice, accounts.bob.address, 1, 3)

        assert gas_token.balance_of(alice) == 0
        assert gas_token.balance_of(accounts.treasury.address) == 6 * FEE

    def test_registry_changes_apply_to_next_transfer(self, priced, token, factory, gas_token, accounts):
        host, deployer = accounts.host.address, accounts.deployer.address
        gas_token.mint(deployer, token.address, 1_000)

        token.transfer_from(host, host, accounts.alice.address, 1)
        factory.set_fee_amount_per_transfer(deployer, 50)
        factory.set_treasury(deployer, accounts.other.address)
        token.transfer_from(host, host, accounts.alice.address, 2)

        assert gas_token.balance_of(accounts.treasury.address) == FEE
        assert gas_token.balance_of(accounts.other.address) == 50

    def test_fee_token_switch(self, priced, token, factory, chain, accounts):
        host, deployer = accounts.host.address, accounts.deployer.address
        other_token = ERC20Token(chain=chain, name="Other", symbol="OTH", owner=deployer)
        other_token.mint(deployer, token.address, FEE)
        factory.set_fee_token(deployer, other_token.address)

        token.transfer_from(host, host, accounts.alice.address, 1)

        assert other_token.balance_of(accounts.treasury.address) == FEE


class TestMetrics:
    @pytest.fixture
    def metrics(self, monkeypatch):
        collector = LedgerMetrics()
        monkeypatch.setitem(config.FEATURE_FLAGS, "metrics", True)
        monkeypatch.setattr(nite_token_module, "get_metrics", lambda: collector)
        return collector

    def test_committed_transfer_is_counted(self, metrics, token, accounts):
        host = accounts.host.address
        token.bulk_transfer_from(host, host, accounts.alice.address, 1, 4)
        token.transfer_from(host, host, accounts.alice.address, 5)

        assert metrics.registry.get_sample_value("nite_transfers_total", {"kind": "bulk"}) == 1
        assert metrics.registry.get_sample_value("nite_transfers_total", {"kind": "single"}) == 1
        assert metrics.registry.get_sample_value("nite_tokens_moved_total") == 5

    def test_reverted_transfer_is_not_counted(self, metrics, token, accounts):
        with pytest.raises(TransferWhilePausedError):
            token.transfer_from(accounts.alice.address, accounts.host.address, accounts.alice.address, 1)

        assert metrics.registry.get_sample_value("nite_transfers_total", {"kind": "single"}) is None
