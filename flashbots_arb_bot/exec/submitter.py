"""
Bundle submission engine for crossed-market arbitrage.
Builds the two-leg call sequence, gates it on gas estimation and relay
simulation, and broadcasts it for the next blocks.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

import aiohttp

from ..connector import Bundle, BundledTransaction, RpcError
from ..markets import QuoteError
from ..units import format_units

if TYPE_CHECKING:
    from ..config import ExecutionConfig
    from ..connector import AuthManager, ChainClient, FlashbotsRelayClient, SimulationResult
    from ..monitor import Logger, MetricsCollector
    from ..signals import CrossedMarketOpportunity
    from .bundle_executor import BundleExecutorContract


class AttemptStatus(Enum):
    """Where an opportunity got to in the submission pipeline."""
    BUILT = "built"
    COST_CHECKED = "cost_checked"
    SIMULATED = "simulated"
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(Enum):
    """Why an opportunity was abandoned."""
    BUILD_FAILED = "build_failed"
    ESTIMATE_GAS_FAILED = "estimate_gas_failed"
    GAS_TOO_HIGH = "gas_too_high"
    SIGN_FAILED = "sign_failed"
    SIMULATION_FAILED = "simulation_failed"


class NoArbitrageSubmitted(Exception):
    """Every opportunity in the cycle was skipped."""

    def __init__(self, attempts: list["BundleAttempt"]):
        super().__init__("No arbitrage submitted to relay")
        self.attempts = attempts


class BundleBroadcastError(Exception):
    """The relay rejected a bundle that passed simulation."""

    def __init__(self, attempt: "BundleAttempt", cause: Exception):
        super().__init__(f"Bundle broadcast failed for {attempt.opportunity.token_address}: {cause}")
        self.attempt = attempt
        self.cause = cause


_NETWORK_ERRORS = (RpcError, aiohttp.ClientError, asyncio.TimeoutError)


@dataclass
class BundleAttempt:
    """One opportunity's pass through the submission pipeline."""
    attempt_id: str
    opportunity: "CrossedMarketOpportunity"
    block_number: int
    status: AttemptStatus = AttemptStatus.BUILT
    targets: list[str] = field(default_factory=list)
    payloads: list[str] = field(default_factory=list)
    miner_reward: int = 0
    transaction: Optional[dict[str, Any]] = None
    gas_estimate: Optional[int] = None
    signed_bundle: list[str] = field(default_factory=list)
    simulation: Optional["SimulationResult"] = None
    bundle_hashes: list[str] = field(default_factory=list)
    skip_reason: Optional[SkipReason] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def is_submitted(self) -> bool:
        return self.status == AttemptStatus.SUBMITTED

    def skip(self, reason: SkipReason, error: str = "") -> "BundleAttempt":
        self.status = AttemptStatus.SKIPPED
        self.skip_reason = reason
        self.error = error or None
        self.completed_at = time.time()
        return self


class BundleSubmitter:
    """
    Turns ranked opportunities into a submitted bundle.

    Key principles:
    1. Opportunities are tried in rank order, each at most once per block
    2. Anything that fails estimation or simulation is skipped, never signed twice
    3. The first bundle the relay accepts ends the cycle
    """

    def __init__(
        self,
        chain_client: "ChainClient",
        relay_client: "FlashbotsRelayClient",
        auth_manager: "AuthManager",
        executor_contract: "BundleExecutorContract",
        execution_config: "ExecutionConfig",
        weth_address: str,
        logger: Optional["Logger"] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.chain = chain_client
        self.relay = relay_client
        self.auth = auth_manager
        self.executor = executor_contract
        self.config = execution_config
        self.weth = weth_address
        self.logger = logger
        self.metrics = metrics

    async def take_crossed_markets(
        self,
        opportunities: list["CrossedMarketOpportunity"],
        block_number: int,
        miner_reward_percentage: Optional[int] = None,
        leading_transactions: Optional[list[str]] = None,
    ) -> BundleAttempt:
        """
        Try opportunities in order until one bundle is submitted.

        Raises NoArbitrageSubmitted when every opportunity is skipped and
        BundleBroadcastError when the relay rejects a simulated bundle.
        """
        if miner_reward_percentage is None:
            miner_reward_percentage = self.config.miner_reward_percentage

        attempts = []
        for opportunity in opportunities:
            attempt = await self.attempt(
                opportunity,
                block_number,
                miner_reward_percentage,
                leading_transactions,
            )
            attempts.append(attempt)
            if attempt.is_submitted:
                return attempt

        raise NoArbitrageSubmitted(attempts)

    async def attempt(
        self,
        opportunity: "CrossedMarketOpportunity",
        block_number: int,
        miner_reward_percentage: int,
        leading_transactions: Optional[list[str]] = None,
    ) -> BundleAttempt:
        """Run one opportunity through build, cost check, simulation and broadcast."""
        attempt = BundleAttempt(
            attempt_id=str(uuid.uuid4()),
            opportunity=opportunity,
            block_number=block_number,
        )
        if self.metrics:
            self.metrics.record_bundle_attempt()

        if self.logger:
            self.logger.info(
                "bundle_attempt",
                attempt_id=attempt.attempt_id,
                token=opportunity.token_address,
                volume=str(opportunity.volume),
                profit=str(opportunity.profit),
            )

        try:
            await self._build(attempt, miner_reward_percentage)
        except QuoteError as e:
            return self._skipped(attempt, SkipReason.BUILD_FAILED, str(e))

        await self._check_cost(attempt)
        if attempt.status == AttemptStatus.SKIPPED:
            return attempt

        await self._simulate(attempt, leading_transactions or [])
        if attempt.status == AttemptStatus.SKIPPED:
            return attempt

        await self._broadcast(attempt)
        return attempt

    async def _build(self, attempt: BundleAttempt, miner_reward_percentage: int) -> None:
        """Compose buy leg, sell leg and the executor transaction."""
        opportunity = attempt.opportunity
        buy_market = opportunity.buy_from_market
        sell_market = opportunity.sell_to_market

        # Buy leg pays its output straight into the sell market
        buy_calls = await buy_market.build_sell_calls(self.weth, opportunity.volume, sell_market)
        intermediate = buy_market.tokens_out(self.weth, opportunity.token_address, opportunity.volume)
        sell_payload = await sell_market.build_sell_payload(
            opportunity.token_address,
            intermediate,
            self.executor.address,
        )

        attempt.targets = [*buy_calls.targets, sell_market.market_address]
        attempt.payloads = [*buy_calls.data, sell_payload]
        attempt.miner_reward = opportunity.profit * miner_reward_percentage // 100

        attempt.transaction = self.executor.populate_uniswap_weth(
            opportunity.volume,
            attempt.miner_reward,
            attempt.targets,
            attempt.payloads,
            gas_price=self.config.gas_price,
            gas_limit=self.config.default_gas_limit,
        )
        attempt.status = AttemptStatus.BUILT

    async def _check_cost(self, attempt: BundleAttempt) -> None:
        """Skip transactions that would revert or cost suspiciously much gas."""
        try:
            estimate = await self.chain.estimate_gas({**attempt.transaction, "from": self.auth.address})
        except _NETWORK_ERRORS as e:
            self._skipped(attempt, SkipReason.ESTIMATE_GAS_FAILED, str(e))
            return

        attempt.gas_estimate = estimate
        if estimate > self.config.max_gas_estimate:
            self._skipped(
                attempt,
                SkipReason.GAS_TOO_HIGH,
                f"EstimateGas succeeded, but suspiciously large: {estimate}",
            )
            return

        attempt.transaction["gas"] = estimate * self.config.gas_limit_multiplier
        attempt.status = AttemptStatus.COST_CHECKED

    async def _simulate(self, attempt: BundleAttempt, leading_transactions: list[str]) -> None:
        """Sign the bundle and dry-run it against the relay."""
        bundle = Bundle(transactions=[
            *(BundledTransaction(signed_transaction=raw) for raw in leading_transactions),
            BundledTransaction(transaction=attempt.transaction, signer=self.auth),
        ])
        try:
            attempt.signed_bundle = await self.relay.sign_bundle(bundle)
        except _NETWORK_ERRORS as e:
            # Nonce lookup failed
            self._skipped(attempt, SkipReason.SIGN_FAILED, str(e))
            return

        target_block = attempt.block_number + self.config.simulation_block_offset
        simulation = await self.relay.simulate(attempt.signed_bundle, target_block)
        attempt.simulation = simulation

        if not simulation.succeeded:
            detail = simulation.error or f"transaction {simulation.first_revert_index} reverted"
            self._skipped(attempt, SkipReason.SIMULATION_FAILED, detail)
            return

        attempt.status = AttemptStatus.SIMULATED
        if self.logger:
            self.logger.bundle_simulated(
                attempt_id=attempt.attempt_id,
                token=attempt.opportunity.token_address,
                coinbase_diff=format_units(simulation.coinbase_diff),
                effective_gas_price_gwei=format_units(simulation.effective_gas_price, 9),
                total_gas_used=simulation.total_gas_used,
            )

    async def _broadcast(self, attempt: BundleAttempt) -> None:
        """Send the signed bundle for each target block; all must be accepted."""
        target_blocks = [attempt.block_number + offset for offset in self.config.target_block_offsets]

        # Every send runs to completion before the outcome is decided
        results = await asyncio.gather(
            *(self.relay.send_bundle(attempt.signed_bundle, target_block) for target_block in target_blocks),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if not isinstance(error, _NETWORK_ERRORS):
                raise error

        if errors:
            e = errors[0]
            attempt.status = AttemptStatus.FAILED
            attempt.error = str(e)
            attempt.completed_at = time.time()
            if self.metrics:
                self.metrics.record_broadcast_failure()
            if self.logger:
                self.logger.error(
                    "bundle_broadcast_failed",
                    attempt_id=attempt.attempt_id,
                    token=attempt.opportunity.token_address,
                    error=str(e),
                )
            raise BundleBroadcastError(attempt, e) from e

        attempt.bundle_hashes = list(results)
        attempt.status = AttemptStatus.SUBMITTED
        attempt.completed_at = time.time()

        if self.metrics:
            self.metrics.record_bundle_submitted(
                expected_profit=attempt.opportunity.profit,
                miner_reward=attempt.miner_reward,
            )
        if self.logger:
            self.logger.bundle_submitted(
                attempt_id=attempt.attempt_id,
                token=attempt.opportunity.token_address,
                target_blocks=target_blocks,
                bundle_hashes=attempt.bundle_hashes,
                profit=format_units(attempt.opportunity.profit),
                miner_reward=format_units(attempt.miner_reward),
            )

    def _skipped(self, attempt: BundleAttempt, reason: SkipReason, error: str) -> BundleAttempt:
        attempt.skip(reason, error)
        if self.metrics:
            self.metrics.record_bundle_skipped(reason.value)
        if self.logger:
            self.logger.bundle_skipped(
                attempt_id=attempt.attempt_id,
                token=attempt.opportunity.token_address,
                reason=reason.value,
                error=error,
            )
        return attempt
