"""
Abstract market and market-source interfaces.

Concrete venues (Uniswap V2 forks and the like) and the discovery layer that
builds them live outside this package; they plug in by implementing these
classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class QuoteError(Exception):
    """A market cannot price the requested amount (e.g. not enough liquidity)."""


@dataclass
class MultipleCallData:
    """Ordered call targets with their positionally paired payloads."""
    targets: list[str] = field(default_factory=list)
    data: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.targets) != len(self.data):
            raise ValueError(
                f"targets/data length mismatch: {len(self.targets)} != {len(self.data)}"
            )


class EthMarket(ABC):
    """
    A venue trading two tokens.

    Quotes are pure functions of the market's current reserves. All amounts
    are integers in base units.
    """

    def __init__(self, market_address: str, tokens: tuple[str, str], protocol: str):
        self.market_address = market_address
        self.tokens = tuple(tokens)
        self.protocol = protocol

    @abstractmethod
    def tokens_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Amount of ``token_out`` received for selling ``amount_in`` of ``token_in``."""

    @abstractmethod
    def tokens_in(self, token_in: str, token_out: str, amount_out: int) -> int:
        """Amount of ``token_in`` needed to receive ``amount_out`` of ``token_out``."""

    @abstractmethod
    async def build_sell_calls(
        self,
        token_in: str,
        amount_in: int,
        next_market: "EthMarket",
    ) -> MultipleCallData:
        """Calls that sell ``amount_in`` and forward the output to ``next_market``."""

    @abstractmethod
    async def build_sell_payload(self, token_in: str, amount_in: int, recipient: str) -> str:
        """Hex payload for a call on this market that sells into ``recipient``."""

    def trades_token(self, token: str) -> bool:
        return token in self.tokens

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.protocol} {self.market_address})"


MarketsByToken = dict[str, list[EthMarket]]


class MarketSource(ABC):
    """Owns the long-lived markets and keeps their reserves current."""

    @abstractmethod
    def markets_by_token(self) -> MarketsByToken:
        """Markets grouped by the non-WETH token they trade."""

    @abstractmethod
    async def update_reserves(self, block_number: Optional[int] = None) -> None:
        """Refresh reserves for every market before a detection cycle."""
