"""
Key management for the searcher.
Holds the transaction-signing account and the relay-identity account.
"""

from typing import Any, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_hex


class AuthManager:
    """
    Manages the two keys a searcher uses.

    - The searcher key signs the arbitrage transactions and pays nothing
      (gas price is zero, the block producer is paid via coinbase transfer).
    - The relay-signing key only identifies the searcher to the relay; it
      never holds funds.
    """

    SIGNATURE_HEADER = "X-Flashbots-Signature"

    def __init__(
        self,
        private_key: str,
        relay_signing_key: Optional[str] = None,
        chain_id: int = 1,
    ):
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self.chain_id = chain_id

        self.generated_relay_key = relay_signing_key is None
        if relay_signing_key is None:
            self.relay_account = Account.create()
        else:
            self.relay_account = Account.from_key(relay_signing_key)
        self.relay_address = self.relay_account.address

    def get_relay_headers(self, body: str) -> dict[str, str]:
        """
        Sign a relay request body.

        The relay expects an EIP-191 signature over the hex keccak256 of the body.
        """
        body_hash = to_hex(keccak(text=body))
        signed = self.relay_account.sign_message(encode_defunct(text=body_hash))
        return {self.SIGNATURE_HEADER: f"{self.relay_address}:{to_hex(signed.signature)}"}

    def sign_transaction(self, transaction: dict[str, Any]) -> str:
        """Sign with the searcher key. Returns the raw transaction as hex."""
        signed = self.account.sign_transaction(transaction)
        return to_hex(signed.raw_transaction)
