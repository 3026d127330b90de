"""
Main searcher orchestration.
Runs one detection-and-submission cycle per new block.
"""

import asyncio
import importlib
import signal
import time
from typing import Optional

import aiohttp

from .config import Config, load_config_from_env
from .connector import AuthManager, BlockSubscriber, ChainClient, FlashbotsRelayClient, RpcError
from .exec import BundleAttempt, BundleBroadcastError, BundleExecutorContract, BundleSubmitter, NoArbitrageSubmitted
from .markets import MarketSource
from .monitor import Logger, MetricsCollector
from .signals import CrossedMarketDetector, format_crossed_market
from .units import format_units


def load_market_source(path: str, config: Config) -> MarketSource:
    """Import ``package.module:factory`` and call the factory with the config."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Invalid market source path: {path!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    source = factory(config)
    if not isinstance(source, MarketSource):
        raise TypeError(f"{path} returned {type(source).__name__}, expected a MarketSource")
    return source


class LatestBlockSlot:
    """
    Single-slot mailbox for block numbers.

    A block that arrives while another is still pending replaces it, so the
    worker always starts on the newest block and cycles never overlap.
    """

    def __init__(self):
        self._block: Optional[int] = None
        self._event = asyncio.Event()

    def put(self, block_number: int) -> bool:
        """Store a block. Returns True if a pending block was dropped."""
        dropped = self._block is not None
        self._block = block_number
        self._event.set()
        return dropped

    async def get(self) -> int:
        """Wait for and take the newest pending block."""
        while self._block is None:
            self._event.clear()
            await self._event.wait()
        block_number = self._block
        self._block = None
        self._event.clear()
        return block_number

    @property
    def pending(self) -> Optional[int]:
        return self._block


class ArbitrageBot:
    """
    Crossed-market arbitrage searcher.

    Strategy:
    1. Wait for a new block
    2. Refresh reserves through the market source
    3. Detect and size crossed markets per token
    4. Submit the best bundle that survives gas estimation and simulation
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        market_source: Optional[MarketSource] = None,
    ):
        self.config = config or load_config_from_env()

        # Validate configuration
        errors = self.config.validate()
        if errors:
            raise ValueError(f"Configuration errors: {errors}")

        self.logger = Logger(
            name="flashbots_arb",
            level=self.config.log_level,
            log_file=self.config.log_file,
        )

        self.auth = AuthManager(
            private_key=self.config.private_key,
            relay_signing_key=self.config.flashbots_relay_signing_key,
            chain_id=self.config.connection.chain_id,
        )

        self.chain_client = ChainClient(
            url=self.config.connection.rpc_url,
            timeout_seconds=self.config.connection.rpc_timeout_seconds,
            max_retries=self.config.connection.max_retries,
            retry_backoff_base=self.config.connection.retry_backoff_base,
        )

        self.relay_client = FlashbotsRelayClient(
            auth_manager=self.auth,
            chain_client=self.chain_client,
            relay_url=self.config.connection.relay_url,
            timeout_seconds=self.config.connection.rpc_timeout_seconds,
            max_retries=self.config.connection.max_retries,
            retry_backoff_base=self.config.connection.retry_backoff_base,
        )

        self.block_subscriber = BlockSubscriber(
            ws_url=self.config.connection.ws_url,
            reconnect_delay=self.config.connection.ws_reconnect_delay_seconds,
            ping_interval=self.config.connection.ws_ping_interval_seconds,
        )

        self.market_source = market_source or load_market_source(self.config.market_source, self.config)

        self.metrics = MetricsCollector()

        self.detector = CrossedMarketDetector(self.config.search)

        self.submitter = BundleSubmitter(
            chain_client=self.chain_client,
            relay_client=self.relay_client,
            auth_manager=self.auth,
            executor_contract=BundleExecutorContract(self.config.bundle_executor_address),
            execution_config=self.config.execution,
            weth_address=self.config.search.weth_address,
            logger=self.logger,
            metrics=self.metrics,
        )

        # State
        self._running = False
        self._block_slot = LatestBlockSlot()
        self._tasks: list[asyncio.Task] = []
        self._last_attempt: Optional[BundleAttempt] = None

    async def start(self) -> None:
        """Start the searcher."""
        self._running = True

        self.logger.startup({
            "searcher_address": self.auth.address,
            "relay_signing_address": self.auth.relay_address,
            "bundle_executor": self.config.bundle_executor_address,
            "miner_reward_percentage": self.config.execution.miner_reward_percentage,
            "min_profit": format_units(self.config.search.min_profit),
            "sizer": self.config.search.sizer,
        })
        if self.auth.generated_relay_key:
            self.logger.warning(
                "relay_signing_key_generated",
                relay_signing_address=self.auth.relay_address,
                message="Set FLASHBOTS_RELAY_SIGNING_KEY to keep relay reputation across restarts",
            )

        await self._check_chain_id()
        self._setup_ws_callbacks()

        self._tasks = [
            asyncio.create_task(self._ws_loop()),
            asyncio.create_task(self._cycle_loop()),
        ]

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            self.logger.info("bot_cancelled")
        except Exception as e:
            self.logger.error("bot_error", error=str(e))
            raise
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Stop the searcher gracefully."""
        self.logger.info("bot_stopping")
        self._running = False
        await self.block_subscriber.disconnect()

        for task in self._tasks:
            task.cancel()

        self.logger.shutdown()

    async def _check_chain_id(self) -> None:
        """Warn when the node serves a different chain than transactions are signed for."""
        try:
            node_chain_id = await self.chain_client.chain_id()
        except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.warning("chain_id_check_failed", error=str(e))
            return

        if node_chain_id != self.config.connection.chain_id:
            self.logger.warning(
                "chain_id_mismatch",
                node_chain_id=node_chain_id,
                configured_chain_id=self.config.connection.chain_id,
            )

    def _setup_ws_callbacks(self) -> None:
        """Setup block subscription callbacks."""

        def on_block(block_number: int) -> None:
            self.metrics.record_block()
            if self._block_slot.put(block_number):
                self.metrics.record_block_dropped()
            self.logger.debug("new_block", block_number=block_number)

        def on_connected() -> None:
            self.logger.ws_connected(self.config.connection.ws_url)

        def on_disconnected() -> None:
            self.logger.ws_disconnected()
            self.metrics.record_ws_reconnect()

        def on_error(e: Exception) -> None:
            self.logger.error("ws_error", error=str(e))
            self.metrics.record_api_error()

        self.block_subscriber.on_block(on_block)
        self.block_subscriber.on_connected(on_connected)
        self.block_subscriber.on_disconnected(on_disconnected)
        self.block_subscriber.on_error(on_error)

    async def _ws_loop(self) -> None:
        """Block subscription loop."""
        while self._running:
            try:
                await self.block_subscriber.connect()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("ws_loop_error", error=str(e))
                await asyncio.sleep(self.config.connection.ws_reconnect_delay_seconds)

    async def _cycle_loop(self) -> None:
        """Take the newest block and run its cycle, one at a time."""
        while self._running:
            try:
                block_number = await self._block_slot.get()
                await self.run_cycle(block_number)
            except asyncio.CancelledError:
                break

    async def run_cycle(self, block_number: int) -> Optional[BundleAttempt]:
        """
        Evaluate all markets for one block and submit the best bundle.

        Returns the submitted attempt, or None when nothing was submitted.
        No failure here stops the searcher; the next block starts fresh.
        """
        start_time = time.time()
        exhausted = False
        errored = False

        try:
            await self.market_source.update_reserves(block_number)
            opportunities = self.detector.evaluate_markets(self.market_source.markets_by_token())

            if not opportunities:
                self.logger.no_crossed_markets(block_number)
                return None

            self.metrics.record_crossed_markets(len(opportunities))
            for opportunity in opportunities:
                self.logger.crossed_market(
                    token=opportunity.token_address,
                    buy_protocol=opportunity.buy_from_market.protocol,
                    buy_market=opportunity.buy_from_market.market_address,
                    sell_protocol=opportunity.sell_to_market.protocol,
                    sell_market=opportunity.sell_to_market.market_address,
                    volume=format_units(opportunity.volume),
                    profit=format_units(opportunity.profit),
                    summary=format_crossed_market(opportunity),
                )

            attempt = await self.submitter.take_crossed_markets(
                opportunities,
                block_number,
                self.config.execution.miner_reward_percentage,
            )
            self._last_attempt = attempt
            return attempt

        except NoArbitrageSubmitted as e:
            exhausted = True
            self.logger.cycle_failed(block_number, "no_arbitrage_submitted", str(e))
        except BundleBroadcastError as e:
            errored = True
            self._last_attempt = e.attempt
            self.logger.cycle_failed(block_number, "broadcast_failed", str(e))
        except Exception as e:
            errored = True
            self.metrics.record_api_error()
            self.logger.error("cycle_error", block_number=block_number, error=str(e))
        finally:
            self.metrics.record_cycle(
                (time.time() - start_time) * 1000,
                exhausted=exhausted,
                errored=errored,
            )

        return None

    async def _cleanup(self) -> None:
        """Cleanup resources."""
        await self.chain_client.close()
        await self.relay_client.close()
        self.logger.info("cleanup_complete")

    def get_status(self) -> dict:
        """Get current searcher status."""
        return {
            "running": self._running,
            "ws_connected": self.block_subscriber.is_connected,
            "pending_block": self._block_slot.pending,
            "last_attempt": (
                {
                    "token": self._last_attempt.opportunity.token_address,
                    "status": self._last_attempt.status.value,
                    "block_number": self._last_attempt.block_number,
                }
                if self._last_attempt else None
            ),
            "metrics": self.metrics.get_session_metrics(),
        }


async def run_bot(
    config: Optional[Config] = None,
    market_source: Optional[MarketSource] = None,
) -> None:
    """Run the searcher with signal handling."""
    bot = ArbitrageBot(config, market_source)

    loop = asyncio.get_running_loop()

    def signal_handler():
        asyncio.create_task(bot.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await bot.start()
    except KeyboardInterrupt:
        await bot.stop()
