"""
Flashbots crossed-market arbitrage searcher.

Watches WETH pairs across Uniswap-style venues, buys on the market where the
token is cheap, sells where it is dear, and submits both legs as one atomic
bundle to a private relay.
"""

__version__ = "1.0.0"
