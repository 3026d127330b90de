"""
Ethereum node client.
Block height, gas estimation and nonce lookups over JSON-RPC.
"""

from typing import Any

from eth_utils import to_hex

from .jsonrpc import JsonRpcTransport

_QUANTITY_FIELDS = ("gas", "gasPrice", "value", "nonce", "chainId", "maxFeePerGas", "maxPriorityFeePerGas")


def to_rpc_transaction(transaction: dict[str, Any]) -> dict[str, Any]:
    """Render integer transaction fields as hex quantities for the node."""
    rpc_tx = {}
    for key, value in transaction.items():
        if key in _QUANTITY_FIELDS and isinstance(value, int):
            rpc_tx[key] = hex(value)
        elif isinstance(value, (bytes, bytearray)):
            rpc_tx[key] = to_hex(value)
        else:
            rpc_tx[key] = value
    return rpc_tx


class ChainClient(JsonRpcTransport):
    """JSON-RPC client for the execution-layer node."""

    async def block_number(self) -> int:
        return int(await self.request("eth_blockNumber"), 16)

    async def chain_id(self) -> int:
        return int(await self.request("eth_chainId"), 16)

    async def estimate_gas(self, transaction: dict[str, Any]) -> int:
        """
        Estimate gas for a transaction.

        Raises RpcError when the node reports the call would revert.
        """
        result = await self.request("eth_estimateGas", [to_rpc_transaction(transaction)])
        return int(result, 16)

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return int(await self.request("eth_getTransactionCount", [address, block]), 16)
