"""
Shared test fixtures for the searcher test suite.
All tests run offline with constant-product fake markets and in-memory
stand-ins for the chain node and relay.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from flashbots_arb_bot.config import ExecutionConfig, SearchConfig
from flashbots_arb_bot.connector import AuthManager, RpcError, SimulationResult
from flashbots_arb_bot.exec import BundleExecutorContract, BundleSubmitter
from flashbots_arb_bot.markets import EthMarket, MarketSource, MultipleCallData, QuoteError
from flashbots_arb_bot.signals import CrossedMarketOpportunity
from flashbots_arb_bot.units import ETHER, WETH_ADDRESS

TOKEN = "0x" + "11" * 20
OTHER_TOKEN = "0x" + "12" * 20
EXECUTOR_ADDRESS = "0x" + "33" * 20
SEARCHER_KEY = "0x" + "44" * 32
RELAY_KEY = "0x" + "55" * 32


class FakeMarket(EthMarket):
    """Uniswap V2 style constant-product pool with a 0.3% fee."""

    def __init__(
        self,
        market_address: str,
        token: str,
        weth_reserve: int,
        token_reserve: int,
        protocol: str = "UniswapV2",
    ):
        super().__init__(market_address, (WETH_ADDRESS, token), protocol)
        self.reserves = {WETH_ADDRESS: weth_reserve, token: token_reserve}
        self.sell_calls: list[tuple] = []

    def tokens_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in = self.reserves[token_in]
        reserve_out = self.reserves[token_out]
        amount_in_with_fee = amount_in * 997
        return amount_in_with_fee * reserve_out // (reserve_in * 1000 + amount_in_with_fee)

    def tokens_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        reserve_in = self.reserves[token_in]
        reserve_out = self.reserves[token_out]
        if amount_out >= reserve_out:
            raise QuoteError(f"{self.market_address} cannot provide {amount_out}")
        return reserve_in * amount_out * 1000 // ((reserve_out - amount_out) * 997) + 1

    async def build_sell_calls(self, token_in, amount_in, next_market) -> MultipleCallData:
        self.sell_calls.append((token_in, amount_in, next_market))
        return MultipleCallData(targets=[self.market_address], data=["0x022c0d9f"])

    async def build_sell_payload(self, token_in, amount_in, recipient) -> str:
        self.sell_calls.append((token_in, amount_in, recipient))
        return "0x022c0d9f00"


class BrokenMarket(FakeMarket):
    """Market that cannot quote anything."""

    def tokens_out(self, token_in, token_out, amount_in):
        raise QuoteError("reserves unavailable")

    def tokens_in(self, token_in, token_out, amount_out):
        raise QuoteError("reserves unavailable")


class FakeMarketSource(MarketSource):
    def __init__(self, markets_by_token=None):
        self._markets = markets_by_token or {}
        self.updated_blocks: list[Optional[int]] = []

    def markets_by_token(self):
        return self._markets

    async def update_reserves(self, block_number=None):
        self.updated_blocks.append(block_number)


class FakeChainClient:
    """Node stand-in: fixed gas estimate (or error) and nonce."""

    def __init__(self, gas_estimate: int = 300_000, error: Optional[Exception] = None, nonce: int = 7):
        self.gas_estimate = gas_estimate
        self.error = error
        self.nonce = nonce
        self.estimate_calls: list[dict] = []
        self.nonce_calls: list[str] = []

    async def estimate_gas(self, transaction):
        self.estimate_calls.append(transaction)
        if self.error is not None:
            raise self.error
        return self.gas_estimate

    async def get_transaction_count(self, address, block="latest"):
        self.nonce_calls.append(address)
        return self.nonce

    async def close(self):
        pass


class FakeRelayClient:
    """Relay stand-in recording every sign, simulate and send call."""

    def __init__(
        self,
        simulation: Optional[SimulationResult] = None,
        send_error: Optional[Exception] = None,
    ):
        self.simulation = simulation or SimulationResult(
            coinbase_diff=ETHER // 50,
            total_gas_used=250_000,
            bundle_hash="0xbundle",
        )
        self.send_error = send_error
        self.signed_bundles: list = []
        self.simulations: list[tuple[list[str], int]] = []
        self.sends: list[tuple[list[str], int]] = []

    async def sign_bundle(self, bundle):
        self.signed_bundles.append(bundle)
        return [
            entry.signed_transaction or f"0xsigned{i:02d}"
            for i, entry in enumerate(bundle.transactions)
        ]

    async def simulate(self, signed_bundle, target_block, state_block="latest"):
        self.simulations.append((signed_bundle, target_block))
        return self.simulation

    async def send_bundle(self, signed_bundle, target_block):
        self.sends.append((signed_bundle, target_block))
        if self.send_error is not None:
            raise self.send_error
        return f"0xhash{target_block}"

    async def close(self):
        pass


@pytest.fixture
def search_config():
    return SearchConfig()


@pytest.fixture
def execution_config():
    return ExecutionConfig()


@pytest.fixture
def auth():
    return AuthManager(SEARCHER_KEY, RELAY_KEY, chain_id=1)


@pytest.fixture
def crossed_markets():
    """Scenario A: X sells token at ~1.00 WETH, Y buys it at ~1.05 WETH."""
    market_x = FakeMarket("0x" + "aa" * 20, TOKEN, 100 * ETHER, 100 * ETHER, protocol="UniswapV2")
    market_y = FakeMarket("0x" + "bb" * 20, TOKEN, 105 * ETHER, 100 * ETHER, protocol="Sushiswap")
    return market_x, market_y


@pytest.fixture
def make_opportunity(crossed_markets):
    """Factory for opportunities over the scenario A markets."""
    market_x, market_y = crossed_markets

    def _factory(**overrides):
        defaults = {
            "token_address": TOKEN,
            "buy_from_market": market_x,
            "sell_to_market": market_y,
            "volume": ETHER,
            "profit": ETHER // 40,
        }
        defaults.update(overrides)
        return CrossedMarketOpportunity(**defaults)

    return _factory


@pytest.fixture
def make_submitter(auth, execution_config):
    """Factory for submitters wired to fake clients."""

    def _factory(chain=None, relay=None, config=None, metrics=None):
        return BundleSubmitter(
            chain_client=chain or FakeChainClient(),
            relay_client=relay or FakeRelayClient(),
            auth_manager=auth,
            executor_contract=BundleExecutorContract(EXECUTOR_ADDRESS),
            execution_config=config or execution_config,
            weth_address=WETH_ADDRESS,
            metrics=metrics,
        )

    return _factory


def rpc_revert() -> RpcError:
    return RpcError(3, "execution reverted")


def build_market_source(config):
    """Factory referenced as ``conftest:build_market_source`` in loader tests."""
    return FakeMarketSource()


def build_not_a_source(config):
    return object()


def always_rate_limited(transport, monkeypatch):
    """Point a JSON-RPC transport at a session that answers every request with HTTP 429."""
    session = MagicMock()
    session.closed = False
    session.post.return_value.__aenter__.return_value = MagicMock(status=429)
    transport._session = session
    monkeypatch.setattr("asyncio.sleep", AsyncMock())
    return session
