"""
Configuration management for the Flashbots arbitrage searcher.
All secrets via environment variables. All tunable parameters externalized.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .monitor.logger import LogLevel
from .units import ETHER, WETH_ADDRESS

# Trial sizes used by the ladder search, as base-asset amounts.
DEFAULT_TRIAL_VOLUMES: tuple[int, ...] = (
    ETHER // 100,
    ETHER // 10,
    ETHER // 6,
    ETHER // 4,
    ETHER // 2,
    ETHER,
    ETHER * 2,
    ETHER * 5,
    ETHER * 10,
)

SIZERS = ("ladder", "ternary")


@dataclass
class SearchConfig:
    """Crossed-market detection parameters."""
    weth_address: str = WETH_ADDRESS
    probe_volume: int = ETHER // 100  # Amount used to sample marginal price
    min_profit: int = ETHER // 1000  # Opportunities at or below this are noise
    trial_volumes: tuple[int, ...] = DEFAULT_TRIAL_VOLUMES
    sizer: str = "ladder"
    ternary_tolerance: int = ETHER // 1000  # Stop ternary search below this width


@dataclass
class ExecutionConfig:
    """Bundle construction and submission parameters."""
    miner_reward_percentage: int = 80
    gas_price: int = 0  # Producer is paid through the coinbase transfer instead
    default_gas_limit: int = 1_000_000
    max_gas_estimate: int = 1_400_000  # Anything above is treated as suspicious
    gas_limit_multiplier: int = 2
    simulation_block_offset: int = 1
    target_block_offsets: tuple[int, ...] = (1, 2)


@dataclass
class ConnectionConfig:
    """Node and relay connection configuration."""
    rpc_url: str = "http://127.0.0.1:8545"
    ws_url: str = "ws://127.0.0.1:8546"
    relay_url: str = "https://relay.flashbots.net"
    chain_id: int = 1
    ws_reconnect_delay_seconds: int = 5
    ws_ping_interval_seconds: int = 30
    rpc_timeout_seconds: int = 10
    max_retries: int = 3
    retry_backoff_base: float = 1.5


@dataclass
class Config:
    """Main configuration container."""
    # Secrets from environment
    private_key: str = field(default_factory=lambda: os.environ.get("PRIVATE_KEY", ""))
    bundle_executor_address: str = field(
        default_factory=lambda: os.environ.get("BUNDLE_EXECUTOR_ADDRESS", "")
    )
    # Identifies the searcher to the relay; any key works but a stable one builds reputation
    flashbots_relay_signing_key: Optional[str] = field(
        default_factory=lambda: os.environ.get("FLASHBOTS_RELAY_SIGNING_KEY") or None
    )

    # Sub-configs
    search: SearchConfig = field(default_factory=SearchConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)

    # "package.module:factory" returning a MarketSource
    market_source: str = field(default_factory=lambda: os.environ.get("MARKET_SOURCE", ""))

    # Logging
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.environ.get("LOG_FILE") or None)

    def validate(self) -> list[str]:
        """Validate configuration. Returns list of errors."""
        errors = []

        if not self.private_key:
            errors.append("PRIVATE_KEY is required")
        if not self.bundle_executor_address:
            errors.append("BUNDLE_EXECUTOR_ADDRESS is required")
        if not self.market_source:
            errors.append("MARKET_SOURCE is required (format: package.module:factory)")
        elif ":" not in self.market_source:
            errors.append("MARKET_SOURCE must look like package.module:factory")
        if not 0 <= self.execution.miner_reward_percentage <= 100:
            errors.append("miner_reward_percentage must be between 0 and 100")
        if self.search.probe_volume <= 0:
            errors.append("probe_volume must be positive")
        if self.search.min_profit < 0:
            errors.append("min_profit cannot be negative")
        if not self.search.trial_volumes:
            errors.append("trial_volumes cannot be empty")
        elif list(self.search.trial_volumes) != sorted(set(self.search.trial_volumes)):
            errors.append("trial_volumes must be strictly ascending")
        elif self.search.trial_volumes[0] <= 0:
            errors.append("trial_volumes must be positive")
        if self.search.sizer not in SIZERS:
            errors.append(f"sizer must be one of {', '.join(SIZERS)}")
        if self.execution.max_gas_estimate <= 0:
            errors.append("max_gas_estimate must be positive")
        if self.log_level.upper() not in LogLevel.__members__:
            errors.append(f"LOG_LEVEL must be one of {', '.join(LogLevel.__members__)}")

        return errors


def load_config_from_env() -> Config:
    """Load configuration from environment variables."""
    config = Config()

    # Override connection params from env
    if os.environ.get("ETHEREUM_RPC_URL"):
        config.connection.rpc_url = os.environ["ETHEREUM_RPC_URL"]
    if os.environ.get("ETHEREUM_WS_URL"):
        config.connection.ws_url = os.environ["ETHEREUM_WS_URL"]
    if os.environ.get("FLASHBOTS_RELAY_URL"):
        config.connection.relay_url = os.environ["FLASHBOTS_RELAY_URL"]
    if os.environ.get("CHAIN_ID"):
        config.connection.chain_id = int(os.environ["CHAIN_ID"])

    # Override search params from env
    if os.environ.get("WETH_ADDRESS"):
        config.search.weth_address = os.environ["WETH_ADDRESS"]
    if os.environ.get("PROBE_VOLUME_WEI"):
        config.search.probe_volume = int(os.environ["PROBE_VOLUME_WEI"])
    if os.environ.get("MIN_PROFIT_WEI"):
        config.search.min_profit = int(os.environ["MIN_PROFIT_WEI"])
    if os.environ.get("SIZER"):
        config.search.sizer = os.environ["SIZER"].lower()

    # Override execution params from env
    if os.environ.get("MINER_REWARD_PERCENTAGE"):
        config.execution.miner_reward_percentage = int(os.environ["MINER_REWARD_PERCENTAGE"])
    if os.environ.get("MAX_GAS_ESTIMATE"):
        config.execution.max_gas_estimate = int(os.environ["MAX_GAS_ESTIMATE"])

    return config
