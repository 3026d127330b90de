"""Tests for crossed-market detection, sizing and ranking."""

import pytest

from conftest import OTHER_TOKEN, TOKEN, BrokenMarket, FakeMarket

from flashbots_arb_bot.config import SearchConfig
from flashbots_arb_bot.markets import QuoteError
from flashbots_arb_bot.signals import (
    CrossedMarketDetector,
    CrossedMarketOpportunity,
    LadderSizer,
    TernarySizer,
    build_sizer,
    calculate_profit,
    find_crossed_pairs,
    format_crossed_market,
    rank_opportunities,
)
from flashbots_arb_bot.signals.crossed_market import price_market
from flashbots_arb_bot.units import ETHER, WETH_ADDRESS


class CappedMarket(FakeMarket):
    """Refuses to quote inputs above a cap."""

    def __init__(self, *args, cap: int, **kwargs):
        super().__init__(*args, **kwargs)
        self.cap = cap

    def tokens_out(self, token_in, token_out, amount_in):
        if amount_in > self.cap:
            raise QuoteError("insufficient liquidity")
        return super().tokens_out(token_in, token_out, amount_in)


def _opportunity(token, profit, label="x"):
    market = FakeMarket("0x" + "aa" * 20, token, ETHER, ETHER, protocol=label)
    return CrossedMarketOpportunity(
        token_address=token,
        buy_from_market=market,
        sell_to_market=market,
        volume=ETHER,
        profit=profit,
    )


class TestPricing:
    def test_price_market_quotes_probe_both_ways(self, crossed_markets):
        market_x, _ = crossed_markets
        priced = price_market(market_x, TOKEN, WETH_ADDRESS, ETHER // 100)
        assert priced.market is market_x
        assert priced.buy_token_price == market_x.tokens_in(WETH_ADDRESS, TOKEN, ETHER // 100)
        assert priced.sell_token_price == market_x.tokens_out(TOKEN, WETH_ADDRESS, ETHER // 100)
        # Buying costs more than selling returns on the same pool
        assert priced.buy_token_price > priced.sell_token_price

    def test_unquotable_market_left_out(self, crossed_markets, search_config):
        broken = BrokenMarket("0x" + "cc" * 20, TOKEN, ETHER, ETHER)
        detector = CrossedMarketDetector(search_config)
        priced = detector.price_markets(TOKEN, [*crossed_markets, broken])
        assert [p.market for p in priced] == list(crossed_markets)


class TestFindCrossedPairs:
    def test_scenario_a_single_pair(self, crossed_markets):
        market_x, market_y = crossed_markets
        priced = [price_market(m, TOKEN, WETH_ADDRESS, ETHER // 100) for m in crossed_markets]
        assert find_crossed_pairs(priced) == [(market_x, market_y)]

    def test_zero_spread_yields_no_pairs(self):
        markets = [
            FakeMarket("0x" + f"{i:02x}" * 20, TOKEN, 100 * ETHER, 100 * ETHER)
            for i in range(1, 4)
        ]
        priced = [price_market(m, TOKEN, WETH_ADDRESS, ETHER // 100) for m in markets]
        assert find_crossed_pairs(priced) == []


class TestLadderSizer:
    def test_scenario_a_peaks_at_one_ether(self, crossed_markets, search_config):
        market_x, market_y = crossed_markets
        sizer = LadderSizer(WETH_ADDRESS, search_config.trial_volumes)
        volume, profit = sizer.best_volume(market_x, market_y, TOKEN)
        assert volume == ETHER
        assert profit == calculate_profit(market_x, market_y, TOKEN, WETH_ADDRESS, ETHER)
        assert 23 * ETHER // 1000 < profit < 24 * ETHER // 1000

    def test_never_below_smallest_trial_profit(self, crossed_markets, search_config):
        market_x, market_y = crossed_markets
        sizer = LadderSizer(WETH_ADDRESS, search_config.trial_volumes)
        _, profit = sizer.best_volume(market_x, market_y, TOKEN)
        assert profit >= sizer.profit_at(market_x, market_y, TOKEN, search_config.trial_volumes[0])

    def test_bisection_midpoint_kept_when_better(self, crossed_markets):
        market_x, market_y = crossed_markets
        # 2 ETH overshoots the peak; halfway back to 0.5 ETH lands near it
        ladder = (ETHER // 2, 2 * ETHER)
        sizer = LadderSizer(WETH_ADDRESS, ladder)
        volume, profit = sizer.best_volume(market_x, market_y, TOKEN)
        assert volume == 5 * ETHER // 4
        assert profit == sizer.profit_at(market_x, market_y, TOKEN, 5 * ETHER // 4)
        assert profit > sizer.profit_at(market_x, market_y, TOKEN, ETHER // 2)
        assert volume <= ladder[-1]

    def test_bisection_midpoint_discarded_when_worse(self, crossed_markets):
        market_x, market_y = crossed_markets
        sizer = LadderSizer(WETH_ADDRESS, (ETHER, 10 * ETHER))
        volume, _ = sizer.best_volume(market_x, market_y, TOKEN)
        assert volume == ETHER

    def test_quote_error_keeps_best_so_far(self):
        market_x = FakeMarket("0x" + "aa" * 20, TOKEN, 100 * ETHER, 100 * ETHER)
        market_y = CappedMarket(
            "0x" + "bb" * 20, TOKEN, 105 * ETHER, 100 * ETHER, cap=ETHER // 3
        )
        sizer = LadderSizer(WETH_ADDRESS, SearchConfig().trial_volumes)
        volume, profit = sizer.best_volume(market_x, market_y, TOKEN)
        assert volume == ETHER // 4
        assert profit > 0

    def test_nothing_quotable_returns_none(self, crossed_markets):
        market_x, _ = crossed_markets
        broken = BrokenMarket("0x" + "cc" * 20, TOKEN, ETHER, ETHER)
        sizer = LadderSizer(WETH_ADDRESS, SearchConfig().trial_volumes)
        assert sizer.best_volume(market_x, broken, TOKEN) is None


class TestTernarySizer:
    def test_finds_at_least_ladder_profit(self, crossed_markets, search_config):
        market_x, market_y = crossed_markets
        ladder = build_sizer("ladder", WETH_ADDRESS, search_config.trial_volumes, search_config.ternary_tolerance)
        ternary = build_sizer("ternary", WETH_ADDRESS, search_config.trial_volumes, search_config.ternary_tolerance)
        assert isinstance(ternary, TernarySizer)

        _, ladder_profit = ladder.best_volume(market_x, market_y, TOKEN)
        volume, profit = ternary.best_volume(market_x, market_y, TOKEN)

        assert search_config.trial_volumes[0] <= volume <= search_config.trial_volumes[-1]
        assert profit >= ladder_profit

    def test_unquotable_lower_bound_returns_none(self, crossed_markets):
        market_x, _ = crossed_markets
        broken = BrokenMarket("0x" + "cc" * 20, TOKEN, ETHER, ETHER)
        sizer = TernarySizer(WETH_ADDRESS, ETHER // 100, 10 * ETHER, ETHER // 1000)
        assert sizer.best_volume(market_x, broken, TOKEN) is None

    def test_unknown_sizer_rejected(self):
        with pytest.raises(ValueError, match="golden"):
            build_sizer("golden", WETH_ADDRESS, (ETHER,), 1)


class TestRanking:
    def test_sorted_by_profit_descending(self):
        opportunities = [_opportunity(TOKEN, 5 * ETHER // 1000), _opportunity(OTHER_TOKEN, 9 * ETHER // 1000)]
        ranked = rank_opportunities(opportunities, ETHER // 1000)
        assert [o.token_address for o in ranked] == [OTHER_TOKEN, TOKEN]

    def test_stable_on_ties(self):
        first = _opportunity(TOKEN, ETHER // 100, label="first")
        second = _opportunity(OTHER_TOKEN, ETHER // 100, label="second")
        ranked = rank_opportunities([first, second], 0)
        assert ranked == [first, second]

    def test_threshold_is_strict(self):
        at_threshold = _opportunity(TOKEN, ETHER // 1000)
        above = _opportunity(OTHER_TOKEN, ETHER // 1000 + 1)
        ranked = rank_opportunities([at_threshold, above], ETHER // 1000)
        assert ranked == [above]


class TestCrossedMarketDetector:
    def test_scenario_a(self, crossed_markets, search_config):
        market_x, market_y = crossed_markets
        detector = CrossedMarketDetector(search_config)
        opportunities = detector.evaluate_markets({TOKEN: [market_x, market_y]})

        assert len(opportunities) == 1
        opportunity = opportunities[0]
        assert opportunity.token_address == TOKEN
        assert opportunity.buy_from_market is market_x
        assert opportunity.sell_to_market is market_y
        assert opportunity.volume == ETHER
        assert opportunity.profit > search_config.min_profit
        assert opportunity.profit == calculate_profit(
            market_x, market_y, TOKEN, WETH_ADDRESS, opportunity.volume
        )

    def test_scenario_b_equal_markets(self, search_config):
        markets = [
            FakeMarket("0x" + f"{i:02x}" * 20, TOKEN, 100 * ETHER, 100 * ETHER)
            for i in range(1, 4)
        ]
        detector = CrossedMarketDetector(search_config)
        assert detector.evaluate_markets({TOKEN: markets}) == []

    def test_single_market_token_ignored(self, crossed_markets, search_config):
        detector = CrossedMarketDetector(search_config)
        assert detector.check_token(TOKEN, [crossed_markets[0]]) is None

    def test_best_pair_per_token(self, crossed_markets, search_config):
        market_x, market_y = crossed_markets
        market_z = FakeMarket("0x" + "dd" * 20, TOKEN, 110 * ETHER, 100 * ETHER, protocol="Crowdswap")
        detector = CrossedMarketDetector(search_config)
        opportunities = detector.evaluate_markets({TOKEN: [market_x, market_y, market_z]})

        assert len(opportunities) == 1
        assert opportunities[0].buy_from_market is market_x
        assert opportunities[0].sell_to_market is market_z

    def test_ranks_across_tokens(self, search_config):
        small = [
            FakeMarket("0x" + "a1" * 20, TOKEN, 100 * ETHER, 100 * ETHER),
            FakeMarket("0x" + "a2" * 20, TOKEN, 103 * ETHER, 100 * ETHER),
        ]
        large = [
            FakeMarket("0x" + "b1" * 20, OTHER_TOKEN, 100 * ETHER, 100 * ETHER),
            FakeMarket("0x" + "b2" * 20, OTHER_TOKEN, 110 * ETHER, 100 * ETHER),
        ]
        detector = CrossedMarketDetector(search_config)
        opportunities = detector.evaluate_markets({TOKEN: small, OTHER_TOKEN: large})

        assert [o.token_address for o in opportunities] == [OTHER_TOKEN, TOKEN]
        assert all(o.profit > search_config.min_profit for o in opportunities)

    def test_min_profit_filters_everything(self, crossed_markets):
        detector = CrossedMarketDetector(SearchConfig(min_profit=ETHER))
        assert detector.evaluate_markets({TOKEN: list(crossed_markets)}) == []

    def test_injected_sizer_used(self, crossed_markets, search_config):
        class FixedSizer(LadderSizer):
            def best_volume(self, buy_market, sell_market, token_address):
                return ETHER // 2, ETHER // 10

        detector = CrossedMarketDetector(search_config, sizer=FixedSizer(WETH_ADDRESS, (ETHER,)))
        opportunities = detector.evaluate_markets({TOKEN: list(crossed_markets)})
        assert opportunities[0].volume == ETHER // 2
        assert opportunities[0].profit == ETHER // 10

    def test_format_crossed_market(self, make_opportunity):
        summary = format_crossed_market(make_opportunity())
        assert "Profit: 0.025" in summary
        assert "Volume: 1" in summary
        assert "UniswapV2" in summary
        assert "Sushiswap" in summary
