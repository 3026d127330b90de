"""Signals module for crossed-market detection."""

from .crossed_market import (
    CrossedMarketDetector,
    CrossedMarketOpportunity,
    PricedMarket,
    find_crossed_pairs,
    format_crossed_market,
    rank_opportunities,
)
from .sizing import LadderSizer, TernarySizer, VolumeSizer, build_sizer, calculate_profit

__all__ = [
    "CrossedMarketDetector",
    "CrossedMarketOpportunity",
    "PricedMarket",
    "find_crossed_pairs",
    "format_crossed_market",
    "rank_opportunities",
    "LadderSizer",
    "TernarySizer",
    "VolumeSizer",
    "build_sizer",
    "calculate_profit",
]
