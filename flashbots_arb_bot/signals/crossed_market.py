"""
Crossed-market arbitrage detector.
Finds token markets where buying on one venue and selling on another is profitable.
"""

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from ..markets import QuoteError
from ..units import format_units
from .sizing import VolumeSizer, build_sizer

if TYPE_CHECKING:
    from ..config import SearchConfig
    from ..markets import EthMarket, MarketsByToken


@dataclass
class PricedMarket:
    """
    A market's buy/sell quote for the probe amount of token, in WETH.

    Comparing small fixed-size quotes approximates marginal prices without
    letting price impact dominate.
    """
    market: "EthMarket"
    buy_token_price: int  # WETH needed to acquire the probe amount
    sell_token_price: int  # WETH received for selling the probe amount


@dataclass
class CrossedMarketOpportunity:
    """
    A sized arbitrage plan for one token.

    profit = sell_to_market proceeds for the tokens bought with ``volume`` WETH, minus ``volume``.
    """
    token_address: str
    buy_from_market: "EthMarket"
    sell_to_market: "EthMarket"
    volume: int
    profit: int

    @property
    def is_profitable(self) -> bool:
        return self.profit > 0


def price_market(
    market: "EthMarket",
    token_address: str,
    weth_address: str,
    probe_volume: int,
) -> PricedMarket:
    """Quote the probe amount in both directions against WETH."""
    return PricedMarket(
        market=market,
        buy_token_price=market.tokens_in(weth_address, token_address, probe_volume),
        sell_token_price=market.tokens_out(token_address, weth_address, probe_volume),
    )


def find_crossed_pairs(
    priced_markets: list[PricedMarket],
) -> list[tuple["EthMarket", "EthMarket"]]:
    """
    Return every (buy_market, sell_market) where the sell quote beats the buy quote.

    The comparison is strict, so a market never pairs with itself.
    """
    crossed = []
    for buy in priced_markets:
        for sell in priced_markets:
            if sell.sell_token_price > buy.buy_token_price:
                crossed.append((buy.market, sell.market))
    return crossed


def rank_opportunities(
    opportunities: list[CrossedMarketOpportunity],
    min_profit: int,
) -> list[CrossedMarketOpportunity]:
    """Drop opportunities at or below ``min_profit`` and sort by profit, highest first."""
    ranked = [o for o in opportunities if o.profit > min_profit]
    # list.sort is stable, so equal profits keep input order
    ranked.sort(key=lambda o: o.profit, reverse=True)
    return ranked


def format_crossed_market(opportunity: CrossedMarketOpportunity) -> str:
    """Human-readable summary of an opportunity."""
    buy = opportunity.buy_from_market
    sell = opportunity.sell_to_market
    return (
        f"Profit: {format_units(opportunity.profit)} Volume: {format_units(opportunity.volume)}\n"
        f"{buy.protocol} ({buy.market_address})\n"
        f"  {buy.tokens[0]} => {buy.tokens[1]}\n"
        f"{sell.protocol} ({sell.market_address})\n"
        f"  {sell.tokens[0]} => {sell.tokens[1]}\n"
    )


class CrossedMarketDetector:
    """
    Detects crossed markets across all tokens.

    For each token:
    1. Price every market at the probe volume
    2. Pair markets where one's sell quote exceeds another's buy quote
    3. Size each pair and keep the most profitable
    Then filter by minimum profit and rank.

    Holds no state between calls; each evaluation works on the snapshot passed in.
    """

    def __init__(
        self,
        search_config: "SearchConfig",
        sizer: Optional[VolumeSizer] = None,
    ):
        self.config = search_config
        self.weth = search_config.weth_address
        self.sizer = sizer or build_sizer(
            search_config.sizer,
            search_config.weth_address,
            search_config.trial_volumes,
            search_config.ternary_tolerance,
        )

    def price_markets(self, token_address: str, markets: list["EthMarket"]) -> list[PricedMarket]:
        """Price each market, leaving out those that cannot quote the probe."""
        priced = []
        for market in markets:
            try:
                priced.append(
                    price_market(market, token_address, self.weth, self.config.probe_volume)
                )
            except QuoteError:
                continue
        return priced

    def best_crossed_market(
        self,
        crossed_markets: list[tuple["EthMarket", "EthMarket"]],
        token_address: str,
    ) -> Optional[CrossedMarketOpportunity]:
        """Size every crossed pair and return the most profitable one."""
        best: Optional[CrossedMarketOpportunity] = None

        for buy_from_market, sell_to_market in crossed_markets:
            sized = self.sizer.best_volume(buy_from_market, sell_to_market, token_address)
            if sized is None:
                continue

            volume, profit = sized
            if best is None or profit > best.profit:
                best = CrossedMarketOpportunity(
                    token_address=token_address,
                    buy_from_market=buy_from_market,
                    sell_to_market=sell_to_market,
                    volume=volume,
                    profit=profit,
                )

        return best

    def check_token(
        self,
        token_address: str,
        markets: list["EthMarket"],
    ) -> Optional[CrossedMarketOpportunity]:
        """Best sized opportunity for one token, before threshold filtering."""
        if len(markets) < 2:
            return None

        priced_markets = self.price_markets(token_address, markets)
        crossed_markets = find_crossed_pairs(priced_markets)
        if not crossed_markets:
            return None

        return self.best_crossed_market(crossed_markets, token_address)

    def evaluate_markets(
        self,
        markets_by_token: "MarketsByToken",
    ) -> list[CrossedMarketOpportunity]:
        """
        Scan all tokens for crossed markets.
        Returns opportunities above the minimum profit, highest profit first.
        """
        best_crossed_markets = []

        for token_address, markets in markets_by_token.items():
            opportunity = self.check_token(token_address, markets)
            if opportunity is not None:
                best_crossed_markets.append(opportunity)

        return rank_opportunities(best_crossed_markets, self.config.min_profit)
