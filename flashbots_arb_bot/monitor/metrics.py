"""
Metrics collection for monitoring searcher performance.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SessionMetrics:
    """Metrics for a searcher session."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    # Blocks
    blocks_seen: int = 0
    blocks_dropped: int = 0
    cycles_completed: int = 0
    cycles_exhausted: int = 0
    cycles_errored: int = 0

    # Detection
    crossed_markets_found: int = 0

    # Submission
    bundles_attempted: int = 0
    bundles_submitted: int = 0
    broadcast_failures: int = 0
    skips: Counter = field(default_factory=Counter)

    # Wei totals for submitted bundles
    total_expected_profit: int = 0
    total_miner_reward: int = 0

    # Timing
    total_cycle_time_ms: float = 0
    avg_cycle_time_ms: float = 0

    # Connection
    ws_reconnects: int = 0
    api_errors: int = 0


class MetricsCollector:
    """
    Collects and aggregates metrics for the searcher.
    """

    def __init__(self):
        self._session = SessionMetrics()

    def record_block(self) -> None:
        self._session.blocks_seen += 1

    def record_block_dropped(self) -> None:
        """Record a block superseded before its cycle started."""
        self._session.blocks_dropped += 1

    def record_crossed_markets(self, count: int) -> None:
        self._session.crossed_markets_found += count

    def record_bundle_attempt(self) -> None:
        self._session.bundles_attempted += 1

    def record_bundle_skipped(self, reason: str) -> None:
        self._session.skips[reason] += 1

    def record_bundle_submitted(self, expected_profit: int, miner_reward: int) -> None:
        """Record a bundle the relay accepted."""
        self._session.bundles_submitted += 1
        self._session.total_expected_profit += expected_profit
        self._session.total_miner_reward += miner_reward

    def record_broadcast_failure(self) -> None:
        self._session.broadcast_failures += 1
        self._session.api_errors += 1

    def record_cycle(self, duration_ms: float, exhausted: bool = False, errored: bool = False) -> None:
        """Record a finished block cycle."""
        self._session.cycles_completed += 1
        if exhausted:
            self._session.cycles_exhausted += 1
        if errored:
            self._session.cycles_errored += 1

        self._session.total_cycle_time_ms += duration_ms
        self._session.avg_cycle_time_ms = self._session.total_cycle_time_ms / self._session.cycles_completed

    def record_ws_reconnect(self) -> None:
        """Record a WebSocket reconnection."""
        self._session.ws_reconnects += 1

    def record_api_error(self) -> None:
        """Record an API error."""
        self._session.api_errors += 1

    def get_session_metrics(self) -> dict:
        """Get current session metrics as dict."""
        uptime = time.time() - self._session.start_time

        return {
            "uptime_seconds": uptime,
            "blocks_seen": self._session.blocks_seen,
            "blocks_dropped": self._session.blocks_dropped,
            "cycles_completed": self._session.cycles_completed,
            "cycles_exhausted": self._session.cycles_exhausted,
            "cycles_errored": self._session.cycles_errored,
            "crossed_markets_found": self._session.crossed_markets_found,
            "bundles_attempted": self._session.bundles_attempted,
            "bundles_submitted": self._session.bundles_submitted,
            "broadcast_failures": self._session.broadcast_failures,
            "skips": dict(self._session.skips),
            "submission_rate": (
                self._session.bundles_submitted / self._session.bundles_attempted
                if self._session.bundles_attempted > 0 else 0
            ),
            "total_expected_profit": str(self._session.total_expected_profit),
            "total_miner_reward": str(self._session.total_miner_reward),
            "avg_cycle_time_ms": self._session.avg_cycle_time_ms,
            "ws_reconnects": self._session.ws_reconnects,
            "api_errors": self._session.api_errors,
        }

    def reset_session(self) -> None:
        """Reset session metrics."""
        self._session = SessionMetrics()
