"""
Flashbots relay client.
Signs bundles, simulates them with eth_callBundle and submits them with eth_sendBundle.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, TYPE_CHECKING

import aiohttp

from .auth import AuthManager
from .jsonrpc import JsonRpcTransport, RpcError

if TYPE_CHECKING:
    from .chain_client import ChainClient


@dataclass
class BundledTransaction:
    """
    One entry of a bundle.

    Either an unsigned ``transaction`` plus the ``signer`` that will sign it,
    or a ``signed_transaction`` taken as-is (e.g. a pending transaction to
    back-run).
    """
    transaction: Optional[dict[str, Any]] = None
    signer: Optional[AuthManager] = None
    signed_transaction: Optional[str] = None

    def __post_init__(self) -> None:
        if self.signed_transaction is None and (self.transaction is None or self.signer is None):
            raise ValueError("BundledTransaction needs a signed_transaction or a transaction and signer")


@dataclass
class Bundle:
    """Ordered transactions that execute atomically, all or none."""
    transactions: list[BundledTransaction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.transactions)


@dataclass
class SimulationResult:
    """Relay simulation outcome for a signed bundle."""
    error: Optional[str] = None
    first_revert_index: Optional[int] = None
    coinbase_diff: int = 0
    total_gas_used: int = 0
    bundle_hash: Optional[str] = None
    results: list[dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.first_revert_index is None

    @property
    def effective_gas_price(self) -> int:
        """Wei paid to the block producer per unit of gas."""
        if self.total_gas_used == 0:
            return 0
        return self.coinbase_diff // self.total_gas_used


def parse_simulation(result: dict[str, Any]) -> SimulationResult:
    """Decode an eth_callBundle result."""
    results = result.get("results", [])
    first_revert = None
    for i, tx_result in enumerate(results):
        if "revert" in tx_result or "error" in tx_result:
            first_revert = i
            break

    return SimulationResult(
        first_revert_index=first_revert,
        coinbase_diff=int(result.get("coinbaseDiff", "0")),
        total_gas_used=int(result.get("totalGasUsed", 0)),
        bundle_hash=result.get("bundleHash"),
        results=results,
    )


class FlashbotsRelayClient(JsonRpcTransport):
    """JSON-RPC client for a Flashbots-compatible relay."""

    def __init__(
        self,
        auth_manager: AuthManager,
        chain_client: "ChainClient",
        relay_url: str = "https://relay.flashbots.net",
        timeout_seconds: int = 10,
        max_retries: int = 3,
        retry_backoff_base: float = 1.5,
    ):
        super().__init__(relay_url, timeout_seconds, max_retries, retry_backoff_base)
        self.auth = auth_manager
        self.chain = chain_client

    def _headers(self, body: str) -> dict[str, str]:
        return self.auth.get_relay_headers(body)

    async def sign_bundle(self, bundle: Bundle) -> list[str]:
        """
        Sign every unsigned transaction in the bundle.

        Nonces are fetched once per signer and incremented for each further
        transaction from the same signer.
        """
        nonces: dict[str, int] = {}
        signed = []

        for entry in bundle.transactions:
            if entry.signed_transaction is not None:
                signed.append(entry.signed_transaction)
                continue

            address = entry.signer.address
            if address not in nonces:
                nonces[address] = await self.chain.get_transaction_count(address)

            transaction = dict(entry.transaction)
            transaction.setdefault("chainId", entry.signer.chain_id)
            transaction["nonce"] = nonces[address]
            nonces[address] += 1

            signed.append(entry.signer.sign_transaction(transaction))

        return signed

    async def simulate(
        self,
        signed_bundle: list[str],
        target_block: int,
        state_block: str = "latest",
    ) -> SimulationResult:
        """
        Simulate a signed bundle against ``state_block`` as if mined in ``target_block``.

        Relay or transport failures are reported through ``error`` rather than raised.
        """
        params = [{
            "txs": signed_bundle,
            "blockNumber": hex(target_block),
            "stateBlockNumber": state_block,
        }]
        try:
            result = await self.request("eth_callBundle", params)
        except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            return SimulationResult(error=str(e))

        if not isinstance(result, dict):
            return SimulationResult(error=f"Unexpected simulation response: {result!r}")
        return parse_simulation(result)

    async def send_bundle(self, signed_bundle: list[str], target_block: int) -> str:
        """Submit a signed bundle for ``target_block``. Returns the bundle hash."""
        params = [{
            "txs": signed_bundle,
            "blockNumber": hex(target_block),
        }]
        result = await self.request("eth_sendBundle", params)
        if isinstance(result, dict):
            return result.get("bundleHash", "")
        return str(result or "")
