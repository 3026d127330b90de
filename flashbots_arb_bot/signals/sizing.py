"""
Trade-size search for a crossed market pair.

Profit at size ``s`` is ``sell.tokens_out(token, WETH, buy.tokens_out(WETH, token, s)) - s``.
Both strategies assume profit rises then falls over the searched range; on
pools where that does not hold (concentrated liquidity, tick crossings) they
can miss the global maximum.
"""

from abc import ABC, abstractmethod
from typing import Optional, TYPE_CHECKING

from ..markets import QuoteError

if TYPE_CHECKING:
    from ..markets import EthMarket


def calculate_profit(
    buy_market: "EthMarket",
    sell_market: "EthMarket",
    token_address: str,
    weth_address: str,
    volume: int,
) -> int:
    """Profit in WETH from buying ``volume`` worth of token and selling it back."""
    tokens_bought = buy_market.tokens_out(weth_address, token_address, volume)
    proceeds = sell_market.tokens_out(token_address, weth_address, tokens_bought)
    return proceeds - volume


class VolumeSizer(ABC):
    """Finds the most profitable WETH volume for a buy/sell market pair."""

    def __init__(self, weth_address: str):
        self.weth_address = weth_address

    def profit_at(
        self,
        buy_market: "EthMarket",
        sell_market: "EthMarket",
        token_address: str,
        volume: int,
    ) -> int:
        return calculate_profit(buy_market, sell_market, token_address, self.weth_address, volume)

    @abstractmethod
    def best_volume(
        self,
        buy_market: "EthMarket",
        sell_market: "EthMarket",
        token_address: str,
    ) -> Optional[tuple[int, int]]:
        """
        Return ``(volume, profit)`` for the best size found.

        Returns None when not even the smallest size can be quoted.
        """


class LadderSizer(VolumeSizer):
    """
    Walks an ascending ladder of trial volumes.

    As soon as profit drops below the best seen, the midpoint between the
    current size and the best size is tried once and the walk stops.
    """

    def __init__(self, weth_address: str, trial_volumes: tuple[int, ...]):
        super().__init__(weth_address)
        if not trial_volumes:
            raise ValueError("trial_volumes cannot be empty")
        self.trial_volumes = tuple(trial_volumes)

    def best_volume(
        self,
        buy_market: "EthMarket",
        sell_market: "EthMarket",
        token_address: str,
    ) -> Optional[tuple[int, int]]:
        best: Optional[tuple[int, int]] = None

        for size in self.trial_volumes:
            try:
                profit = self.profit_at(buy_market, sell_market, token_address, size)
            except QuoteError:
                break

            if best is not None and profit < best[1]:
                # The last step overshot; meet halfway once
                try_size = (size + best[0]) // 2
                try:
                    try_profit = self.profit_at(buy_market, sell_market, token_address, try_size)
                except QuoteError:
                    break
                if try_profit > best[1]:
                    best = (try_size, try_profit)
                break

            best = (size, profit)

        return best


class TernarySizer(VolumeSizer):
    """Bounded integer ternary search between the smallest and largest trial volume."""

    def __init__(
        self,
        weth_address: str,
        lower: int,
        upper: int,
        tolerance: int,
        max_iterations: int = 100,
    ):
        super().__init__(weth_address)
        if lower <= 0 or upper < lower:
            raise ValueError(f"invalid search bounds [{lower}, {upper}]")
        self.lower = lower
        self.upper = upper
        self.tolerance = max(tolerance, 2)
        self.max_iterations = max_iterations

    def best_volume(
        self,
        buy_market: "EthMarket",
        sell_market: "EthMarket",
        token_address: str,
    ) -> Optional[tuple[int, int]]:
        def profit(volume: int) -> Optional[int]:
            try:
                return self.profit_at(buy_market, sell_market, token_address, volume)
            except QuoteError:
                return None

        lower_profit = profit(self.lower)
        if lower_profit is None:
            return None

        lo, hi = self.lower, self.upper
        for _ in range(self.max_iterations):
            if hi - lo <= self.tolerance:
                break
            third = (hi - lo) // 3
            m1, m2 = lo + third, hi - third
            p1, p2 = profit(m1), profit(m2)
            # An unquotable point sits past the usable range
            if p2 is None or (p1 is not None and p1 >= p2):
                hi = m2
            else:
                lo = m1

        best = (self.lower, lower_profit)
        for volume in (lo, (lo + hi) // 2, hi):
            p = profit(volume)
            if p is not None and p > best[1]:
                best = (volume, p)
        return best


def build_sizer(
    name: str,
    weth_address: str,
    trial_volumes: tuple[int, ...],
    tolerance: int,
) -> VolumeSizer:
    """Create the sizer named in configuration."""
    if name == "ladder":
        return LadderSizer(weth_address, trial_volumes)
    if name == "ternary":
        return TernarySizer(weth_address, min(trial_volumes), max(trial_volumes), tolerance)
    raise ValueError(f"Unknown sizer: {name}")
