"""
Calldata for the on-chain bundle executor contract.

The contract receives WETH volume, forwards it through the listed calls in
order, checks it ended with more WETH than it started with, and pays the
block producer through a coinbase transfer.
"""

from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_bytes, to_checksum_address, to_hex

UNISWAP_WETH_SIGNATURE = "uniswapWeth(uint256,uint256,address[],bytes[])"
UNISWAP_WETH_TYPES = ["uint256", "uint256", "address[]", "bytes[]"]


class BundleExecutorContract:
    """Builds transactions against a deployed bundle executor."""

    def __init__(self, address: str):
        self.address = to_checksum_address(address)
        self._selector = function_signature_to_4byte_selector(UNISWAP_WETH_SIGNATURE)

    def encode_uniswap_weth(
        self,
        weth_amount_to_first_market: int,
        eth_amount_to_coinbase: int,
        targets: list[str],
        payloads: list[str],
    ) -> str:
        """ABI-encode an atomic-execute call. Returns hex calldata."""
        if len(targets) != len(payloads):
            raise ValueError(f"targets/payloads length mismatch: {len(targets)} != {len(payloads)}")

        args = encode(
            UNISWAP_WETH_TYPES,
            [
                weth_amount_to_first_market,
                eth_amount_to_coinbase,
                [to_checksum_address(t) for t in targets],
                [to_bytes(hexstr=p) for p in payloads],
            ],
        )
        return to_hex(self._selector + args)

    def populate_uniswap_weth(
        self,
        weth_amount_to_first_market: int,
        eth_amount_to_coinbase: int,
        targets: list[str],
        payloads: list[str],
        gas_price: int = 0,
        gas_limit: int = 1_000_000,
    ) -> dict[str, Any]:
        """Unsigned legacy transaction calling uniswapWeth."""
        return {
            "to": self.address,
            "data": self.encode_uniswap_weth(
                weth_amount_to_first_market,
                eth_amount_to_coinbase,
                targets,
                payloads,
            ),
            "value": 0,
            "gasPrice": gas_price,
            "gas": gas_limit,
        }
