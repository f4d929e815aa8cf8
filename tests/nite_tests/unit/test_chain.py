"""
Tests for the in-process chain: call atomicity, nested savepoints,
commit callbacks, the contract registry and native coin.
"""

import pytest

from nite.core import config
from nite.core.addresses import ZERO_ADDRESS
from nite.core.chain import Chain
from nite.core.contracts.erc20 import ERC20InsufficientBalanceError, ERC20Token
from nite.core.ledger_exceptions import TransferFailedError, ZeroAddressError


@pytest.fixture
def funded(gas_token, accounts):
    gas_token.mint(accounts.deployer.address, accounts.alice.address, 100)
    return gas_token


class TestAtomicity:
    def test_failed_call_leaves_no_trace(self, funded, accounts):
        events_before = list(funded.events)
        balances_before = dict(funded.balances)

        with pytest.raises(ERC20InsufficientBalanceError):
            funded.transfer(accounts.alice.address, accounts.bob.address, 101)

        assert funded.events == events_before
        assert funded.balances == balances_before

    def test_outer_failure_undoes_committed_inner_calls(self, chain, funded, accounts):
        alice, bob = accounts.alice.address, accounts.bob.address

        with pytest.raises(RuntimeError):
            with chain.transaction():
                funded.transfer(alice, bob, 40)
                assert funded.balance_of(bob) == 40
                raise RuntimeError("abort")

        assert funded.balance_of(bob) == 0
        assert funded.balance_of(alice) == 100

    def test_caught_inner_failure_keeps_outer_progress(self, chain, funded, accounts):
        alice, bob = accounts.alice.address, accounts.bob.address

        with chain.transaction():
            funded.transfer(alice, bob, 40)
            with pytest.raises(ERC20InsufficientBalanceError):
                funded.transfer(alice, bob, 500)
            funded.transfer(alice, bob, 10)

        assert funded.balance_of(bob) == 50

    def test_restored_objects_are_the_same_instances(self, chain, funded, accounts):
        registered = chain.get_contract(funded.address)
        with pytest.raises(ERC20InsufficientBalanceError):
            funded.transfer(accounts.alice.address, accounts.bob.address, 101)
        assert chain.get_contract(funded.address) is registered

    def test_deployment_inside_failed_scope_is_dropped(self, chain, accounts):
        with pytest.raises(RuntimeError):
            with chain.transaction():
                token = ERC20Token(chain=chain, name="Temp", symbol="TMP", owner=accounts.deployer.address)
                assert chain.is_contract(token.address)
                raise RuntimeError("abort")

        assert not chain.is_contract(token.address)

    def test_in_transaction_flag(self, chain):
        assert not chain.in_transaction
        with chain.transaction():
            assert chain.in_transaction
        assert not chain.in_transaction


class TestCommitCallbacks:
    def test_runs_after_outermost_commit(self, chain):
        calls = []
        with chain.transaction():
            with chain.transaction():
                chain.on_commit(lambda: calls.append("inner"))
            assert calls == []
        assert calls == ["inner"]

    def test_discarded_on_rollback(self, chain):
        calls = []
        with pytest.raises(RuntimeError):
            with chain.transaction():
                chain.on_commit(lambda: calls.append("x"))
                raise RuntimeError("abort")
        assert calls == []

    def test_discarded_when_inner_scope_fails(self, chain):
        calls = []
        with chain.transaction():
            with pytest.raises(RuntimeError):
                with chain.transaction():
                    chain.on_commit(lambda: calls.append("inner"))
                    raise RuntimeError("abort")
            chain.on_commit(lambda: calls.append("outer"))
        assert calls == ["outer"]

    def test_runs_immediately_outside_transactions(self, chain):
        calls = []
        chain.on_commit(lambda: calls.append("now"))
        assert calls == ["now"]


class TestRegistryAndClock:
    def test_new_addresses_are_unique(self, chain):
        assert chain.new_address() != chain.new_address()

    def test_register_occupied_address(self, chain, funded, accounts):
        with pytest.raises(ValueError):
            ERC20Token(
                chain=chain,
                name="Clash",
                symbol="CL",
                owner=accounts.deployer.address,
                address=funded.address,
            )

    def test_accounts_without_code(self, chain, accounts):
        assert not chain.is_contract(accounts.alice.address)
        assert chain.get_contract(accounts.alice.address) is None

    def test_lookup_is_case_insensitive(self, chain, funded):
        assert chain.get_contract(funded.address.lower()) is funded

    def test_pinned_clock(self, chain):
        start = chain.block_timestamp()
        assert chain.advance_time(60) == start + 60
        chain.set_timestamp(5)
        assert chain.block_timestamp() == 5

    def test_default_chain_id(self):
        assert Chain().chain_id == config.CHAIN_ID

    def test_events_carry_block_time(self, chain, funded):
        assert funded.events[-1].block_timestamp == chain.block_timestamp()


class TestNativeCoin:
    def test_fund_and_transfer(self, chain, accounts):
        alice, bob = accounts.alice.address, accounts.bob.address
        chain.fund(alice, 100)
        chain.transfer_native(alice, bob, 30)

        assert chain.native_balance(alice) == 70
        assert chain.native_balance(bob) == 30

    def test_insufficient_funds(self, chain, accounts):
        with pytest.raises(TransferFailedError):
            chain.transfer_native(accounts.alice.address, accounts.bob.address, 1)

    def test_zero_recipient(self, chain, accounts):
        chain.fund(accounts.alice.address, 1)
        with pytest.raises(ZeroAddressError):
            chain.transfer_native(accounts.alice.address, ZERO_ADDRESS, 1)

    def test_negative_funding(self, chain, accounts):
        with pytest.raises(ValueError):
            chain.fund(accounts.alice.address, -1)

    def test_native_balances_roll_back(self, chain, accounts):
        alice, bob = accounts.alice.address, accounts.bob.address
        chain.fund(alice, 100)

        with pytest.raises(RuntimeError):
            with chain.transaction():
                chain.transfer_native(alice, bob, 100)
                raise RuntimeError("abort")

        assert chain.native_balance(alice) == 100
        assert chain.native_balance(bob) == 0
