"""
Tests for the mock token, router and swap adapter.
"""

import pytest

from fhedca.core.chain import (
    Chain,
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientOutput,
    InvalidAmount,
    Unauthorized,
)
from fhedca.core.events import Approval, SwapAggregateExecuted, Transfer
from fhedca.core.swap import DexAdapter, MockRouter, SwapAdapter
from fhedca.core.token import MockToken
from fhedca.crypto import random_address


@pytest.fixture
def chain():
    return Chain(start_time=1_700_000_000)


@pytest.fixture
def deployer():
    return random_address()


@pytest.fixture
def token_in(chain, deployer):
    return MockToken(chain, deployer, "Mock USD", "mUSD")


@pytest.fixture
def token_out(chain, deployer):
    return MockToken(chain, deployer, "Mock WETH", "mWETH")


@pytest.fixture
def router(chain, deployer, token_out):
    router = MockRouter(chain, deployer, token_out, price_bps=10_000)
    token_out.mint(router.address, 1_000_000)
    return router


@pytest.fixture
def adapter(chain, deployer, router, token_in, token_out):
    return DexAdapter(chain, deployer, router, token_in, token_out)


@pytest.fixture
def caller(token_in, adapter):
    caller = random_address()
    token_in.mint(caller, 10_000)
    token_in.approve(caller, adapter.address, 10_000)
    return caller


class TestMockToken:
    def test_mint_and_transfer(self, chain, token_in):
        a, b = random_address(), random_address()
        token_in.mint(a, 100)
        token_in.transfer(a, b, 40)

        assert token_in.balance_of(a) == 60
        assert token_in.balance_of(b) == 40
        assert token_in.total_supply == 100
        assert len(chain.events(Transfer)) == 2

    def test_transfer_over_balance(self, token_in):
        a = random_address()
        token_in.mint(a, 10)
        with pytest.raises(InsufficientBalance):
            token_in.transfer(a, random_address(), 11)
        assert token_in.balance_of(a) == 10

    def test_transfer_from_uses_allowance(self, chain, token_in):
        owner, spender, to = random_address(), random_address(), random_address()
        token_in.mint(owner, 100)
        token_in.approve(owner, spender, 30)
        token_in.transfer_from(spender, owner, to, 20)

        assert token_in.allowance(owner, spender) == 10
        assert token_in.balance_of(to) == 20
        assert len(chain.events(Approval)) == 1

    def test_transfer_from_over_allowance(self, token_in):
        owner, spender = random_address(), random_address()
        token_in.mint(owner, 100)
        token_in.approve(owner, spender, 5)
        with pytest.raises(InsufficientAllowance):
            token_in.transfer_from(spender, owner, spender, 6)
        assert token_in.allowance(owner, spender) == 5

    def test_negative_amounts(self, token_in):
        with pytest.raises(InvalidAmount):
            token_in.mint(random_address(), -1)
        with pytest.raises(InvalidAmount):
            token_in.approve(random_address(), random_address(), -1)


class TestMockRouter:
    def test_quote(self, router):
        assert router.quote(300) == 300

    def test_two_to_one(self, chain, deployer, token_out):
        router = MockRouter(chain, deployer, token_out, price_bps=20_000)
        assert router.quote(300) == 600

    def test_set_price_owner_only(self, router, deployer):
        router.set_price(deployer, 5_000)
        assert router.quote(100) == 50
        with pytest.raises(Unauthorized):
            router.set_price(random_address(), 1)

    def test_invalid_price(self, chain, deployer, token_out):
        with pytest.raises(ValueError):
            MockRouter(chain, deployer, token_out, price_bps=-1)


class TestDexAdapter:
    """Tests for swap."""

    def test_swap(self, chain, adapter, router, token_in, token_out, caller):
        recipient = random_address()
        amount_out = adapter.swap(caller, 1_000, 900, recipient)

        assert amount_out == 1_000
        assert token_out.balance_of(recipient) == 1_000
        assert token_in.balance_of(caller) == 9_000
        assert token_in.balance_of(router.address) == 1_000

        events = chain.events(SwapAggregateExecuted, emitter=adapter.address)
        assert len(events) == 1
        assert events[0].event.amount_in == 1_000
        assert events[0].event.amount_out == 1_000

    def test_insufficient_output_reverts(self, chain, adapter, token_in, token_out, caller):
        recipient = random_address()
        logs_before = len(chain.logs)

        with pytest.raises(InsufficientOutput) as exc:
            adapter.swap(caller, 1_000, 1_001, recipient)

        assert exc.value.reason == "INSUFFICIENT_OUTPUT_AMOUNT"
        assert token_in.balance_of(caller) == 10_000
        assert token_out.balance_of(recipient) == 0
        assert len(chain.logs) == logs_before

    def test_insufficient_allowance(self, adapter, token_in):
        caller = random_address()
        token_in.mint(caller, 1_000)
        with pytest.raises(InsufficientAllowance):
            adapter.swap(caller, 1_000, 0, caller)

    def test_router_out_of_liquidity(self, adapter, caller, token_in):
        token_in.mint(caller, 5_000_000)
        token_in.approve(caller, adapter.address, 5_000_000)
        with pytest.raises(InsufficientBalance):
            adapter.swap(caller, 2_000_000, 0, caller)

    def test_zero_amount(self, adapter, caller):
        with pytest.raises(InvalidAmount):
            adapter.swap(caller, 0, 0, caller)

    def test_satisfies_protocol(self, adapter):
        assert isinstance(adapter, SwapAdapter)
