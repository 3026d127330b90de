"""Market capability interface consumed by the detector and submitter."""

from .base import EthMarket, MarketSource, MarketsByToken, MultipleCallData, QuoteError

__all__ = ["EthMarket", "MarketSource", "MarketsByToken", "MultipleCallData", "QuoteError"]
