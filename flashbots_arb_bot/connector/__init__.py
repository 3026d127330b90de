"""Node, relay and block-stream connector module."""

from .auth import AuthManager
from .chain_client import ChainClient, to_rpc_transaction
from .jsonrpc import JsonRpcTransport, RpcError
from .relay_client import Bundle, BundledTransaction, FlashbotsRelayClient, SimulationResult
from .ws_client import BlockSubscriber

__all__ = [
    "AuthManager",
    "ChainClient",
    "to_rpc_transaction",
    "JsonRpcTransport",
    "RpcError",
    "Bundle",
    "BundledTransaction",
    "FlashbotsRelayClient",
    "SimulationResult",
    "BlockSubscriber",
]
