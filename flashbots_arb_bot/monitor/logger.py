"""
Structured JSON logging for the searcher.
All logs are JSON for easy parsing and analysis.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class LogLevel(Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "event": record.msg,
            "logger": record.name,
        }

        # Add extra fields
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class Logger:
    """
    Structured JSON logger for the searcher.

    All log entries are JSON objects with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level
    - event: Event name/type
    - Additional context fields
    """

    def __init__(
        self,
        name: str = "flashbots_arb",
        level: str = "INFO",
        log_file: Optional[str] = None,
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers = []  # Clear existing handlers

        formatter = JSONFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        """Internal log method."""
        if not self.logger.isEnabledFor(level):
            return
        record = self.logger.makeRecord(
            self.logger.name,
            level,
            "",
            0,
            event,
            (),
            None,
        )
        record.extra_fields = kwargs
        self.logger.handle(record)

    def debug(self, event: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, event, **kwargs)

    def critical(self, event: str, **kwargs: Any) -> None:
        """Log critical message."""
        self._log(logging.CRITICAL, event, **kwargs)

    # === Convenience methods for common events ===

    def crossed_market(
        self,
        token: str,
        buy_protocol: str,
        buy_market: str,
        sell_protocol: str,
        sell_market: str,
        volume: str,
        profit: str,
        summary: str = "",
    ) -> None:
        """Log a detected crossed market."""
        self.info(
            "crossed_market",
            token=token,
            buy_protocol=buy_protocol,
            buy_market=buy_market,
            sell_protocol=sell_protocol,
            sell_market=sell_market,
            volume=volume,
            profit=profit,
            summary=summary,
        )

    def no_crossed_markets(self, block_number: int) -> None:
        self.info("no_crossed_markets", block_number=block_number)

    def bundle_skipped(self, attempt_id: str, token: str, reason: str, error: str = "") -> None:
        """Log an opportunity abandoned before broadcast."""
        self.warning(
            "bundle_skipped",
            attempt_id=attempt_id,
            token=token,
            reason=reason,
            error=error,
        )

    def bundle_simulated(
        self,
        attempt_id: str,
        token: str,
        coinbase_diff: str,
        effective_gas_price_gwei: str,
        total_gas_used: int,
    ) -> None:
        """Log a bundle that passed relay simulation."""
        self.info(
            "bundle_simulated",
            attempt_id=attempt_id,
            token=token,
            coinbase_diff=coinbase_diff,
            effective_gas_price_gwei=effective_gas_price_gwei,
            total_gas_used=total_gas_used,
        )

    def bundle_submitted(
        self,
        attempt_id: str,
        token: str,
        target_blocks: list[int],
        bundle_hashes: list[str],
        profit: str,
        miner_reward: str,
    ) -> None:
        """Log a bundle accepted by the relay."""
        self.info(
            "bundle_submitted",
            attempt_id=attempt_id,
            token=token,
            target_blocks=target_blocks,
            bundle_hashes=bundle_hashes,
            profit=profit,
            miner_reward=miner_reward,
        )

    def cycle_failed(self, block_number: int, reason: str, error: str = "") -> None:
        """Log a block cycle that ended without a submitted bundle."""
        self.warning("cycle_failed", block_number=block_number, reason=reason, error=error)

    def ws_connected(self, url: str) -> None:
        """Log WebSocket connected."""
        self.info("ws_connected", url=url)

    def ws_disconnected(self, reason: str = "") -> None:
        """Log WebSocket disconnected."""
        self.warning("ws_disconnected", reason=reason)

    def startup(self, config: dict) -> None:
        """Log searcher startup."""
        self.info("bot_startup", config=config)

    def shutdown(self, reason: str = "normal") -> None:
        """Log searcher shutdown."""
        self.info("bot_shutdown", reason=reason)
