"""Base-unit constants and formatting for wei amounts."""

from decimal import Decimal

ETHER = 10 ** 18

WETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"


def to_decimal(value: int, decimals: int = 18) -> Decimal:
    """Convert an integer amount in base units to a Decimal."""
    return Decimal(value) / (Decimal(10) ** decimals)


def format_units(value: int, decimals: int = 18) -> str:
    return str(to_decimal(value, decimals))
